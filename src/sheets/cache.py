"""Read-through caches for row data, header rows and workbook metadata.

Three caches with different lifetimes sit in front of the transport:

* row data, keyed by ``(spreadsheet_id, range)``, short lived because every
  write changes it
* header rows, keyed by ``(spreadsheet_id, sheet_name)``
* workbook metadata, keyed by ``spreadsheet_id``

Misses go through a shared :class:`SingleFlight` so a burst of identical
reads costs one upstream call. Writes purge the affected sheet through
:meth:`SheetsCache.invalidate_sheet`, which gives read-after-write
consistency within one process. A fetch stores its result only while it
still owns its in-flight slot; invalidation detaches the slot, so a read
that raced a write to its sheet is returned but not cached. Nothing is
coordinated across processes.
"""

import logging
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from src.sheets.errors import BadRequestError
from src.sheets.ranges import has_sheet_part, header_range, range_sheet_name
from src.sheets.singleflight import SingleFlight
from src.sheets.transport import SheetProperties, SheetsTransport


logger = logging.getLogger(__name__)

DATA_TTL = 15.0
NO_CACHE_TTL = 1.5
SCHEMA_TTL = 300.0

KeyType = TypeVar("KeyType", bound=Hashable)
ValueType = TypeVar("ValueType")


@dataclass
class CacheEntry(Generic[ValueType]):
    value: ValueType
    stored_at: float
    expires_at: float


class TTLCache(Generic[KeyType, ValueType]):
    """In-memory map whose entries expire after a time-to-live.

    Expired entries are dropped when read, and swept from the whole map at
    most once per ``ttl`` on :meth:`set`, so caller-chosen keys cannot pile up.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[KeyType, CacheEntry[ValueType]] = {}
        self._next_sweep = 0.0

    def get(self, key: KeyType, max_age: Optional[float] = None) -> Optional[ValueType]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if now >= entry.expires_at:
            del self._entries[key]
            return None
        if max_age is not None and now - entry.stored_at > max_age:
            return None
        return entry.value

    def set(self, key: KeyType, value: ValueType, ttl: Optional[float] = None) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
            self._next_sweep = now + self.ttl
        lifetime = self.ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, stored_at=now, expires_at=now + lifetime)

    def invalidate(self, key: KeyType) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_where(self, predicate: Callable[[KeyType], bool]) -> int:
        keys = [key for key in self._entries if predicate(key)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def _sweep(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept expired cache entries", extra={"expired": len(expired)})
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class SheetsCache:
    """Caching, coalescing front for :class:`SheetsTransport` reads."""

    def __init__(
        self,
        transport: SheetsTransport,
        *,
        data_ttl: float = DATA_TTL,
        no_cache_ttl: float = NO_CACHE_TTL,
        schema_ttl: float = SCHEMA_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.no_cache_ttl = no_cache_ttl
        self.data: TTLCache[Tuple[str, str], List[List[Any]]] = TTLCache(data_ttl, clock)
        self.headers: TTLCache[Tuple[str, str], List[str]] = TTLCache(schema_ttl, clock)
        self.metadata_cache: TTLCache[str, List[SheetProperties]] = TTLCache(schema_ttl, clock)
        self._flights: SingleFlight[Any] = SingleFlight()

    @property
    def spreadsheet_id(self) -> str:
        return self.transport.spreadsheet_id

    async def read_range(self, range_ref: str, no_cache: bool = False) -> List[List[Any]]:
        key = (self.spreadsheet_id, range_ref)
        max_age = self.no_cache_ttl if no_cache else None
        cached = self.data.get(key, max_age=max_age)
        if cached is not None:
            logger.debug("Row cache hit", extra={"range": range_ref, "no_cache": no_cache})
            return cached

        ttl = self.no_cache_ttl if no_cache else None
        flight_key = ("data",) + key

        async def _fetch() -> List[List[Any]]:
            grid = await self.transport.read_range(range_ref)
            if self._flights.owns(flight_key):
                self.data.set(key, grid, ttl=ttl)
            return grid

        return await self._flights.do(flight_key, _fetch)

    async def header_row(self, sheet_name: str) -> List[str]:
        key = (self.spreadsheet_id, sheet_name)
        cached = self.headers.get(key)
        if cached is not None:
            return cached

        flight_key = ("headers",) + key

        async def _fetch() -> List[str]:
            grid = await self.transport.read_range(header_range(sheet_name))
            headers = [str(cell) for cell in grid[0]] if grid else []
            if headers and self._flights.owns(flight_key):
                self.headers.set(key, headers)
            return headers

        return await self._flights.do(flight_key, _fetch)

    async def metadata(self) -> List[SheetProperties]:
        key = self.spreadsheet_id
        cached = self.metadata_cache.get(key)
        if cached is not None:
            return cached

        flight_key = ("metadata", key)

        async def _fetch() -> List[SheetProperties]:
            sheets = await self.transport.get_metadata()
            if self._flights.owns(flight_key):
                self.metadata_cache.set(key, sheets)
            return sheets

        return await self._flights.do(flight_key, _fetch)

    async def sheet_names(self) -> List[str]:
        return [sheet.title for sheet in await self.metadata()]

    async def sheet_id(self, sheet_name: str) -> int:
        """Resolve a sheet's numeric id, refreshing metadata once on a miss."""

        for attempt in range(2):
            for sheet in await self.metadata():
                if sheet.title == sheet_name:
                    return sheet.sheet_id
            if attempt == 0:
                logger.info("Sheet missing from cached metadata; refreshing", extra={"sheet": sheet_name})
                self.metadata_cache.invalidate(self.spreadsheet_id)
        raise BadRequestError(f'Sheet "{sheet_name}" not found')

    def invalidate_sheet(self, sheet_name: str, structural: bool = False) -> None:
        """Purge everything cached or in flight for ``sheet_name``.

        Ranges without a sheet part (``A1:B5``) resolve against whichever sheet
        the API picks, so every write purges them too.
        """

        spreadsheet_id = self.spreadsheet_id

        def _touches_sheet(range_ref: str) -> bool:
            return not has_sheet_part(range_ref) or range_sheet_name(range_ref) == sheet_name

        def _data_key(key: Tuple[str, str]) -> bool:
            return key[0] == spreadsheet_id and _touches_sheet(key[1])

        def _flight_key(key: Hashable) -> bool:
            if not isinstance(key, tuple) or key[1:2] != (spreadsheet_id,):
                return False
            if key[0] == "data":
                return _touches_sheet(key[2])
            if key[0] == "headers":
                return key[2] == sheet_name
            return structural and key[0] == "metadata"

        purged = self.data.invalidate_where(_data_key)
        self.headers.invalidate((spreadsheet_id, sheet_name))
        if structural:
            self.metadata_cache.invalidate(spreadsheet_id)
        self._flights.forget(_flight_key)
        logger.info(
            "Invalidated sheet caches",
            extra={"sheet": sheet_name, "purged_ranges": purged, "structural": structural},
        )


__all__ = ["DATA_TTL", "NO_CACHE_TTL", "SCHEMA_TTL", "CacheEntry", "SheetsCache", "TTLCache"]
