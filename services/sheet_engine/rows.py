"""Row access: streaming row iterator, eager collector and row mutators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union
from xml.etree import ElementTree as ET

from .coordinates import DEFAULT_ROW_HEIGHT, MAX_OUTLINE_LEVEL, MAX_ROW_HEIGHT
from .cols import ensure_sheet_format
from .dimension import get_dimension
from .errors import OutlineLevelExceededError, RowHeightExceededError, SpreadsheetError
from .ranges import row_number
from .stream import TokenCursor, cell_text, row_cells

if TYPE_CHECKING:
    from .workbook import Workbook

RowRef = Union[str, int]


# =============================================================================
# STREAMING ITERATOR
# =============================================================================

class RowIterator:
    """Forward-only cursor producing one row of cell text at a time.

    The underlying token cursor is kept between calls, so a full pass over
    the sheet decodes the XML once.
    """

    def __init__(self, workbook: "Workbook", sheet: str) -> None:
        part = workbook.resolve_sheet(sheet)
        dimension = get_dimension(workbook, sheet)
        self.sheet = sheet
        self.sheet_xml = workbook.get_sheet_xml(part)
        self.total_rows = dimension.total_rows
        self.total_cols = dimension.total_cols
        self.current_row = 0
        self.error: Optional[SpreadsheetError] = None
        self._shared_strings = workbook.shared_strings.texts
        self._chunk_size = workbook.chunk_size
        self._cursor: Optional[TokenCursor] = None
        self._pending: Optional[Tuple[int, ET.Element]] = None
        self._current: Optional[Tuple[int, List[str]]] = None

    def next(self) -> bool:
        """Advance to the next row. False once past the last row or after an error."""
        if self.error is not None:
            return False
        self.current_row += 1
        return self.current_row <= self.total_rows

    def _seek(self, row: int) -> Optional[ET.Element]:
        # Rows before the target are skipped; a row after it stays pending
        if self._cursor is None:
            self._cursor = TokenCursor(self.sheet_xml, self._chunk_size)
        while True:
            if self._pending is None:
                self._pending = self._cursor.next_row()
                if self._pending is None:
                    return None
            row_num, row_el = self._pending
            if row_num > row:
                return None
            self._pending = None
            if row_num == row:
                return row_el

    def columns(self) -> List[str]:
        """Cell text of the current row in column order, padded up to its last value."""
        if not self.sheet_xml or not 1 <= self.current_row <= self.total_rows:
            return []
        if self._current is not None and self._current[0] == self.current_row:
            return list(self._current[1])
        values: Dict[int, str] = {}
        try:
            row_el = self._seek(self.current_row)
            if row_el is None:
                self._current = (self.current_row, [])
                return []
            for col, cell_el in row_cells(row_el, self.current_row):
                if col <= self.total_cols:
                    values[col] = cell_text(cell_el, self._shared_strings)
        except SpreadsheetError as e:
            self.error = e
            raise
        last = max((col for col, text in values.items() if text), default=0)
        row_values = [values.get(col, "") for col in range(1, last + 1)]
        self._current = (self.current_row, row_values)
        return list(row_values)

    def __iter__(self) -> "RowIterator":
        return self

    def __next__(self) -> List[str]:
        if not self.next():
            if self.error is not None:
                raise self.error
            raise StopIteration
        return self.columns()


def get_rows(workbook: "Workbook", sheet: str) -> List[List[str]]:
    """Materialize every row of a sheet, exactly as RowIterator yields them."""
    rows = RowIterator(workbook, sheet)
    result: List[List[str]] = []
    while rows.next():
        result.append(rows.columns())
    if rows.error is not None:
        raise rows.error
    return result


# =============================================================================
# MUTATORS
# =============================================================================

def set_row_visible(workbook: "Workbook", sheet: str, row: RowRef, visible: bool) -> None:
    row_num = row_number(row)
    part = workbook.resolve_sheet(sheet)
    workbook.worksheet(part).ensure_row(row_num).hidden = not visible
    workbook.invalidate_dimension(part)


def get_row_visible(workbook: "Workbook", sheet: str, row: RowRef) -> bool:
    row_num = row_number(row)
    part = workbook.resolve_sheet(sheet)
    row_el = workbook.worksheet(part, for_update=False).find_row(row_num)
    return row_el is None or not row_el.hidden


def set_row_height(workbook: "Workbook", sheet: str, row: RowRef, height: float) -> None:
    """Set a row height in points."""
    row_num = row_number(row)
    if height > MAX_ROW_HEIGHT:
        raise RowHeightExceededError(height)
    part = workbook.resolve_sheet(sheet)
    row_el = workbook.worksheet(part).ensure_row(row_num)
    row_el.height = float(height)
    row_el.custom_height = True
    workbook.invalidate_dimension(part)


def get_row_height(workbook: "Workbook", sheet: str, row: RowRef) -> float:
    row_num = row_number(row)
    part = workbook.resolve_sheet(sheet)
    ws = workbook.worksheet(part, for_update=False)
    row_el = ws.find_row(row_num)
    if row_el is not None and row_el.height is not None:
        return row_el.height
    if ws.sheet_format is not None:
        return ws.sheet_format.default_row_height
    return DEFAULT_ROW_HEIGHT


def set_row_outline_level(workbook: "Workbook", sheet: str, row: RowRef, level: int) -> None:
    row_num = row_number(row)
    if not 0 <= level <= MAX_OUTLINE_LEVEL:
        raise OutlineLevelExceededError(level)
    part = workbook.resolve_sheet(sheet)
    ws = workbook.worksheet(part)
    ws.ensure_row(row_num).outline_level = level
    ensure_sheet_format(ws).outline_level_row = max((r.outline_level for r in ws.sheet_data), default=0)
    workbook.invalidate_dimension(part)


def get_row_outline_level(workbook: "Workbook", sheet: str, row: RowRef) -> int:
    row_num = row_number(row)
    part = workbook.resolve_sheet(sheet)
    row_el = workbook.worksheet(part, for_update=False).find_row(row_num)
    return row_el.outline_level if row_el is not None else 0
