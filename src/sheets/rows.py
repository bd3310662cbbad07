"""Translate between sheet grids and column-name keyed records.

Header text in the workbook is typed by people, so callers' field names
rarely match it exactly ("Descrição" vs "DESCRICAO", "Data " vs "Data").
Encoding resolves each header against the caller's mapping in three tiers:
exact key, whitespace-trimmed header, then a normalized form that ignores
accents, case, whitespace and punctuation.
"""

import re
import unicodedata
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

ROW_INDEX_FIELD = "_rowIndex"
FIRST_DATA_ROW = 2

_NON_ALNUM_RE = re.compile(r"[\W_]+", re.UNICODE)


def normalize_header(text: Any) -> str:
    decomposed = unicodedata.normalize("NFKD", str(text))
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _NON_ALNUM_RE.sub("", stripped).upper()


def grid_to_records(grid: Sequence[Sequence[Any]]) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Split a grid into its header row and decoded records."""

    if not grid:
        return [], []
    headers = ["" if cell is None else str(cell) for cell in grid[0]]
    return headers, rows_to_records(headers, grid[1:])


def rows_to_records(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    records = []
    for position, row in enumerate(rows):
        record: Dict[str, Any] = {}
        for column, header in enumerate(headers):
            value = row[column] if column < len(row) else None
            record[header] = "" if value is None else value
        record[ROW_INDEX_FIELD] = position + FIRST_DATA_ROW
        records.append(record)
    return records


def record_to_row(headers: Sequence[str], record: Mapping[str, Any]) -> List[Any]:
    """Encode ``record`` into a row aligned with ``headers``."""

    normalized: Dict[str, Any] = {}
    for key, value in record.items():
        if key == ROW_INDEX_FIELD or value is None:
            continue
        normalized_key = normalize_header(key)
        if normalized_key:
            normalized.setdefault(normalized_key, value)

    return [_resolve_value(header, record, normalized) for header in headers]


def _resolve_value(header: str, record: Mapping[str, Any], normalized: Mapping[str, Any]) -> Any:
    for candidate in (record.get(header), record.get(header.strip())):
        if candidate is not None:
            return candidate

    key = normalize_header(header)
    value: Optional[Any] = normalized.get(key) if key else None
    return "" if value is None else value


__all__ = [
    "FIRST_DATA_ROW",
    "ROW_INDEX_FIELD",
    "grid_to_records",
    "normalize_header",
    "record_to_row",
    "rows_to_records",
]
