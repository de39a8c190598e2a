"""Column and row range resolution.

Endpoints given in reverse order ("V:F") are swapped rather than rejected,
the same way a spreadsheet UI treats a backwards selection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .coordinates import TOTAL_COLUMNS, check_row, column_name_to_number
from .errors import InvalidColumnNameError, InvalidRowNumberError

ColumnRef = Union[str, int]


@dataclass(frozen=True)
class ColumnRange:
    start: int
    end: int

    def __iter__(self):
        return iter(range(self.start, self.end + 1))

    def __contains__(self, col: object) -> bool:
        return isinstance(col, int) and self.start <= col <= self.end


@dataclass(frozen=True)
class RowRange:
    start: int
    end: int

    def __iter__(self):
        return iter(range(self.start, self.end + 1))

    def __contains__(self, row: object) -> bool:
        return isinstance(row, int) and self.start <= row <= self.end


def column_number(col: ColumnRef) -> int:
    """Decode a single column endpoint given as letters or a number."""
    if isinstance(col, bool):
        raise InvalidColumnNameError(str(col))
    if isinstance(col, int):
        if col < 1 or col > TOTAL_COLUMNS:
            raise InvalidColumnNameError(str(col))
        return col
    return column_name_to_number(col.strip())


def row_number(row: Union[str, int]) -> int:
    if isinstance(row, bool):
        raise InvalidRowNumberError(str(row))
    if isinstance(row, str):
        text = row.strip()
        if not text.isdigit():
            raise InvalidRowNumberError(row)
        row = int(text)
    return check_row(row)


def resolve_column_range(start: ColumnRef, end: Optional[ColumnRef] = None) -> ColumnRange:
    """Resolve "F", "F:V", ("F", "V") or (6, 22) to a normalized ColumnRange."""
    if end is None and isinstance(start, str) and ":" in start:
        start, end = start.split(":", 1)
    first = column_number(start)
    last = column_number(end) if end is not None else first
    if first > last:
        first, last = last, first
    return ColumnRange(first, last)


def resolve_row_range(start: Union[str, int], end: Optional[Union[str, int]] = None) -> RowRange:
    if end is None and isinstance(start, str) and ":" in start:
        start, end = start.split(":", 1)
    first = row_number(start)
    last = row_number(end) if end is not None else first
    if first > last:
        first, last = last, first
    return RowRange(first, last)
