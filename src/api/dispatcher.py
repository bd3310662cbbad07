"""Action routing for the single JSON endpoint.

Each request names an ``action`` and, depending on it, a target sheet, a
field mapping and a 1-based ``rowIndex`` taken from an earlier ``getData``
read. Row indexes are not re-validated against the sheet: if another client
inserted or deleted rows since that read, an update or delete lands on
whatever row now sits at that index.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from src.sheets.cache import SheetsCache
from src.sheets.errors import BadRequestError
from src.sheets.ranges import has_sheet_part, row_range, sheet_range
from src.sheets.rows import FIRST_DATA_ROW, grid_to_records, record_to_row


logger = logging.getLogger(__name__)


@dataclass
class ProxyRequest:
    action: str
    sheet_name: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    row_index: Optional[int] = None
    range: Optional[str] = None
    no_cache: bool = False
    values: Optional[List[List[Any]]] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProxyRequest":
        """Validate the JSON envelope sent by callers."""

        if not isinstance(payload, Mapping):
            raise BadRequestError("Request body must be a JSON object")

        action = payload.get("action")
        if not isinstance(action, str) or not action:
            raise BadRequestError("action is required")

        sheet_name = payload.get("sheetName")
        if sheet_name is not None and not isinstance(sheet_name, str):
            raise BadRequestError("sheetName must be a string", action=action)

        data = payload.get("data")
        if data is not None and not isinstance(data, Mapping):
            raise BadRequestError("data must be an object", action=action)

        range_ref = payload.get("range")
        if range_ref is not None and not isinstance(range_ref, str):
            raise BadRequestError("range must be a string", action=action)

        no_cache = payload.get("noCache")
        if no_cache is not None and not isinstance(no_cache, bool):
            raise BadRequestError("noCache must be a boolean", action=action)

        values = payload.get("values")
        if values is not None:
            if not isinstance(values, list):
                raise BadRequestError("values must be a list of rows", action=action)
            values = [row if isinstance(row, list) else [row] for row in values]

        return cls(
            action=action,
            sheet_name=sheet_name or None,
            data=dict(data) if data is not None else None,
            row_index=_parse_row_index(payload.get("rowIndex"), action),
            range=range_ref or None,
            no_cache=bool(no_cache),
            values=values,
        )


class Dispatcher:
    """Routes a :class:`ProxyRequest` to the cache and transport layers."""

    def __init__(self, cache: SheetsCache) -> None:
        self.cache = cache
        self._handlers: Dict[str, Callable[[ProxyRequest], Awaitable[Any]]] = {
            "listSheetNames": self.list_sheet_names,
            "getSheetNames": self.list_sheet_names,
            "getData": self.get_data,
            "create": self.create,
            "update": self.update,
            "delete": self.delete,
            "append": self.append,
        }

    @property
    def transport(self):
        return self.cache.transport

    async def dispatch(self, request: ProxyRequest) -> Any:
        handler = self._handlers.get(request.action)
        if handler is None:
            raise BadRequestError(f"Unknown action: {request.action}", action=request.action)

        logger.info(
            "Processing action",
            extra={"action": request.action, "sheet": request.sheet_name or "N/A"},
        )
        result = await handler(request)
        logger.info("Action completed", extra={"action": request.action})
        return result

    async def list_sheet_names(self, request: ProxyRequest) -> List[str]:
        return await self.cache.sheet_names()

    async def get_data(self, request: ProxyRequest) -> Dict[str, Any]:
        if not request.sheet_name and not request.range:
            raise BadRequestError("sheetName or range is required for getData action", action=request.action)

        if request.range is None or request.range == request.sheet_name:
            range_ref = sheet_range(request.sheet_name)
        elif request.sheet_name and not has_sheet_part(request.range):
            range_ref = sheet_range(request.sheet_name, request.range)
        else:
            range_ref = request.range
        grid = await self.cache.read_range(range_ref, no_cache=request.no_cache)
        headers, rows = grid_to_records(grid)
        return {"headers": headers, "rows": rows}

    async def create(self, request: ProxyRequest) -> Dict[str, Any]:
        _require(request, "sheet_name", "data")
        values = await self._encode(request)
        await self.transport.append_row(sheet_range(request.sheet_name), values)
        self.cache.invalidate_sheet(request.sheet_name)
        return _success("Row created successfully")

    async def update(self, request: ProxyRequest) -> Dict[str, Any]:
        _require(request, "sheet_name", "data", "row_index")
        values = await self._encode(request)
        await self.transport.overwrite_row(row_range(request.sheet_name, request.row_index), values)
        self.cache.invalidate_sheet(request.sheet_name)
        return _success("Row updated successfully")

    async def delete(self, request: ProxyRequest) -> Dict[str, Any]:
        _require(request, "sheet_name", "row_index")
        sheet_id = await self.cache.sheet_id(request.sheet_name)
        start_index = request.row_index - 1
        await self.transport.delete_rows(sheet_id, start_index, start_index + 1)
        self.cache.invalidate_sheet(request.sheet_name, structural=True)
        return _success("Row deleted successfully")

    async def append(self, request: ProxyRequest) -> Dict[str, Any]:
        _require(request, "sheet_name", "values")
        if not request.values:
            raise BadRequestError("values must contain at least one row", action=request.action)
        await self.transport.append_rows(sheet_range(request.sheet_name), request.values)
        self.cache.invalidate_sheet(request.sheet_name)
        return _success("Rows appended successfully")

    async def _encode(self, request: ProxyRequest) -> List[Any]:
        headers = await self.cache.header_row(request.sheet_name)
        if not headers:
            raise BadRequestError(f'No headers found in sheet "{request.sheet_name}"', action=request.action)
        return record_to_row(headers, request.data)


_FIELD_NAMES = {"sheet_name": "sheetName", "data": "data", "row_index": "rowIndex", "values": "values"}


def _require(request: ProxyRequest, *fields: str) -> None:
    if all(getattr(request, field) is not None for field in fields):
        return
    names = [_FIELD_NAMES[field] for field in fields]
    listed = names[0] if len(names) == 1 else ", ".join(names[:-1]) + " and " + names[-1]
    verb = "is" if len(names) == 1 else "are"
    raise BadRequestError(f"{listed} {verb} required for {request.action} action", action=request.action)


def _parse_row_index(value: Any, action: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise BadRequestError("rowIndex must be an integer", action=action)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise BadRequestError("rowIndex must be an integer", action=action)
    if value < FIRST_DATA_ROW:
        raise BadRequestError(
            f"rowIndex must be {FIRST_DATA_ROW} or greater; row 1 holds the headers", action=action
        )
    return value


def _success(message: str) -> Dict[str, Any]:
    return {"success": True, "message": message}


__all__ = ["Dispatcher", "ProxyRequest"]
