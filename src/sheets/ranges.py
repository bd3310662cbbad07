"""A1-notation helpers for sheet-qualified ranges."""

import re
from typing import Optional


FULL_SHEET_CELLS = "A:ZZ"

_BARE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def quote_sheet_name(sheet_name: str) -> str:
    """Quote a sheet name for A1 notation when it is not a bare identifier."""

    if _BARE_NAME_RE.match(sheet_name):
        return sheet_name
    return "'" + sheet_name.replace("'", "''") + "'"


def sheet_range(sheet_name: str, cells: str = FULL_SHEET_CELLS) -> str:
    return f"{quote_sheet_name(sheet_name)}!{cells}"


def header_range(sheet_name: str) -> str:
    return sheet_range(sheet_name, "1:1")


def row_range(sheet_name: str, row_index: int) -> str:
    return sheet_range(sheet_name, f"A{row_index}")


def has_sheet_part(range_ref: str) -> bool:
    """True when ``range_ref`` names its sheet (``Veiculo!A1`` or ``'Ordem Serviço'``)."""

    return range_ref.startswith("'") or "!" in range_ref


def range_sheet_name(range_ref: str) -> Optional[str]:
    """Return the sheet a range points at, unquoting it when needed.

    ``Veiculo!A:ZZ`` and ``'Ordem Serviço'!A2`` name their sheet before the
    ``!``; a range without ``!`` is a whole sheet.
    """

    if not range_ref:
        return None

    if range_ref.startswith("'"):
        name = []
        index = 1
        while index < len(range_ref):
            char = range_ref[index]
            if char == "'":
                if range_ref[index + 1 : index + 2] == "'":
                    name.append("'")
                    index += 2
                    continue
                return "".join(name)
            name.append(char)
            index += 1
        return None

    sheet, _, _ = range_ref.partition("!")
    return sheet


__all__ = [
    "FULL_SHEET_CELLS",
    "has_sheet_part",
    "header_range",
    "quote_sheet_name",
    "range_sheet_name",
    "row_range",
    "sheet_range",
]
