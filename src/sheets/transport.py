import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence
from urllib.parse import quote

import httpx

from src.sheets.errors import TransportError


logger = logging.getLogger(__name__)

API_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
RATE_LIMIT_BACKOFF = 1.0
VALUE_INPUT_OPTION = "USER_ENTERED"


class TokenProvider(Protocol):
    async def get_access_token(self) -> str: ...

    def invalidate(self) -> None: ...


@dataclass(frozen=True)
class SheetProperties:
    """One tab of the workbook as reported by the metadata endpoint."""

    title: str
    sheet_id: int
    index: int = 0


class SheetsTransport:
    """Raw calls against the Sheets v4 REST API.

    Each method is a single HTTP request carrying a bearer token. Failures
    raise :class:`TransportError` with the upstream status and body. Only
    :meth:`read_range` retries, once, when the API reports rate limiting.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        tokens: TokenProvider,
        client: httpx.AsyncClient,
        *,
        base_url: str = API_BASE_URL,
        rate_limit_backoff: float = RATE_LIMIT_BACKOFF,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.tokens = tokens
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.rate_limit_backoff = rate_limit_backoff
        self._sleep = sleep

    async def read_range(self, range_ref: str) -> List[List[Any]]:
        try:
            payload = await self._request("GET", self._values_url(range_ref), action="read_range")
        except TransportError as exc:
            if not exc.is_rate_limited:
                raise
            logger.warning(
                "Rate limited reading range; retrying once",
                extra={"range": range_ref, "status": exc.status, "backoff": self.rate_limit_backoff},
            )
            await self._sleep(self.rate_limit_backoff)
            payload = await self._request("GET", self._values_url(range_ref), action="read_range")
        return payload.get("values", [])

    async def append_row(self, range_ref: str, values: Sequence[Any]) -> Dict[str, Any]:
        return await self.append_rows(range_ref, [values])

    async def append_rows(self, range_ref: str, rows: Sequence[Sequence[Any]]) -> Dict[str, Any]:
        return await self._request(
            "POST",
            self._values_url(range_ref, ":append"),
            action="append_rows",
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json={"values": [list(row) for row in rows]},
        )

    async def overwrite_row(self, range_ref: str, values: Sequence[Any]) -> Dict[str, Any]:
        return await self._request(
            "PUT",
            self._values_url(range_ref),
            action="overwrite_row",
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"values": [list(values)]},
        )

    async def delete_rows(self, sheet_id: int, start_index: int, end_index: int) -> Dict[str, Any]:
        request = {
            "deleteDimension": {
                "range": {
                    "sheetId": sheet_id,
                    "dimension": "ROWS",
                    "startIndex": start_index,
                    "endIndex": end_index,
                }
            }
        }
        return await self._request(
            "POST",
            f"{self._spreadsheet_url()}:batchUpdate",
            action="delete_rows",
            json={"requests": [request]},
        )

    async def get_metadata(self) -> List[SheetProperties]:
        payload = await self._request(
            "GET",
            self._spreadsheet_url(),
            action="get_metadata",
            params={"fields": "sheets.properties(sheetId,title,index)"},
        )
        sheets = []
        for sheet in payload.get("sheets", []):
            properties = sheet.get("properties", {})
            sheets.append(
                SheetProperties(
                    title=properties.get("title", ""),
                    sheet_id=int(properties.get("sheetId", 0)),
                    index=int(properties.get("index", len(sheets))),
                )
            )
        return sorted(sheets, key=lambda sheet: sheet.index)

    def _spreadsheet_url(self) -> str:
        return f"{self.base_url}/{self.spreadsheet_id}"

    def _values_url(self, range_ref: str, suffix: str = "") -> str:
        return f"{self._spreadsheet_url()}/values/{quote(range_ref, safe='')}{suffix}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        action: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        token = await self.tokens.get_access_token()
        logger.info(
            "Calling Google Sheets API",
            extra={"action": action, "spreadsheet_id": self.spreadsheet_id},
        )
        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Google Sheets {action} failed: {exc}") from exc

        if not response.is_success:
            body = response.text
            if response.status_code == 401:
                self.tokens.invalidate()
            logger.error(
                "Google Sheets API call failed",
                extra={"action": action, "status": response.status_code},
            )
            raise TransportError(
                f"Google Sheets {action} failed ({response.status_code}): {body}",
                status=response.status_code,
                body=body,
            )

        if not response.content:
            return {}
        return response.json()


__all__ = ["API_BASE_URL", "SheetProperties", "SheetsTransport", "TokenProvider"]
