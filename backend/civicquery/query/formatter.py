"""Result formatting - turns rows into the text table shown to users and the chart model."""

from __future__ import annotations

import re
from typing import Any, Sequence

from ..core.exceptions import UnsupportedTypeError

NO_DATA = "<no data found>"

_NUMERIC_CELL = re.compile(r"^-?\$?-?[\d,]+(\.\d+)?$")


def _money(text: str, is_currency: bool) -> str:
    if not is_currency:
        return text
    if text.startswith("-"):
        return f"-${text[1:]}"
    return f"${text}"


def format_cell(value: Any, is_currency: bool = False) -> str:
    """Format one result value.

    Raises:
        UnsupportedTypeError: For any type other than int, float, str or None
    """
    if value is None:
        return NO_DATA
    # bool is an int subclass; SQLite never returns one
    if isinstance(value, bool):
        raise UnsupportedTypeError(value)
    if isinstance(value, int):
        return _money(f"{value:,}", is_currency)
    if isinstance(value, float):
        return _money(f"{value:,.2f}", is_currency)
    if isinstance(value, str):
        return value
    raise UnsupportedTypeError(value)


def format_header(name: str, storage_type: str) -> str:
    return f"{name} ({storage_type})"


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Render an ASCII grid; numeric cells are right-aligned."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(cells: Sequence[str], align_numbers: bool) -> str:
        padded = []
        for cell, width in zip(cells, widths):
            if align_numbers and _NUMERIC_CELL.match(cell):
                padded.append(f" {cell.rjust(width)} ")
            else:
                padded.append(f" {cell.ljust(width)} ")
        return "|" + "|".join(padded) + "|"

    lines = [border, line(headers, False), border]
    lines.extend(line(row, True) for row in rows)
    lines.append(border)
    return "\n".join(lines)
