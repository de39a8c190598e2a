"""Column access: streaming column iterator, eager collector and column mutators.

Column metadata lives in the worksheet's <cols> list as range records
(min..max). Every setter first normalizes that list so no two records
overlap, applies the change to exactly the requested columns, then merges
adjacent records with equal properties back together.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .coordinates import (
    DEFAULT_COL_WIDTH,
    MAX_COLUMN_WIDTH,
    MAX_OUTLINE_LEVEL,
    cell_name_to_coordinates,
)
from .dimension import get_dimension
from .errors import (
    ColumnWidthExceededError,
    InvalidStyleIdError,
    OutlineLevelExceededError,
    SpreadsheetError,
)
from .package import cell_style_count
from .ranges import ColumnRange, ColumnRef, column_number, resolve_column_range
from .schemas import ColumnInfo, SheetFormat, Worksheet
from .stream import TokenCursor, cell_text, row_cells

if TYPE_CHECKING:
    from .workbook import Workbook

logger = logging.getLogger(__name__)


# =============================================================================
# STREAMING ITERATOR
# =============================================================================

class ColumnIterator:
    """Forward-only cursor producing one column of cell text at a time.

    Usage:
        cols = workbook.cols("Sheet1")
        while cols.next():
            values = cols.rows()
        if cols.error:
            ...

    Not safe for concurrent use.
    """

    def __init__(self, workbook: "Workbook", sheet: str) -> None:
        part = workbook.resolve_sheet(sheet)
        dimension = get_dimension(workbook, sheet)
        self.sheet = sheet
        self.sheet_xml = workbook.get_sheet_xml(part)
        self.total_cols = dimension.total_cols
        self.total_rows = dimension.total_rows
        self.current_col = 0
        self.error: Optional[SpreadsheetError] = None
        self._shared_strings = workbook.shared_strings.texts
        self._chunk_size = workbook.chunk_size

    def next(self) -> bool:
        """Advance to the next column. False once past the last column or after an error."""
        if self.error is not None:
            return False
        self.current_col += 1
        return self.current_col <= self.total_cols

    def rows(self) -> List[str]:
        """Cell text of the current column, one entry per row up to total_rows."""
        if not self.sheet_xml or not 1 <= self.current_col <= self.total_cols:
            return []
        column = [""] * self.total_rows
        cursor = TokenCursor(self.sheet_xml, self._chunk_size)
        try:
            for row_num, row_el in cursor.rows():
                cells = row_cells(row_el, row_num)
                if row_num > self.total_rows:
                    continue
                for col, cell_el in cells:
                    if col == self.current_col:
                        column[row_num - 1] = cell_text(cell_el, self._shared_strings)
        except SpreadsheetError as e:
            self.error = e
            raise
        return column

    def __iter__(self) -> "ColumnIterator":
        return self

    def __next__(self) -> List[str]:
        if not self.next():
            if self.error is not None:
                raise self.error
            raise StopIteration
        return self.rows()


def get_cols(workbook: "Workbook", sheet: str) -> List[List[str]]:
    """Materialize every column of a sheet, exactly as ColumnIterator yields them."""
    cols = ColumnIterator(workbook, sheet)
    result: List[List[str]] = []
    while cols.next():
        result.append(cols.rows())
    if cols.error is not None:
        raise cols.error
    return result


# =============================================================================
# COLUMN RECORDS
# =============================================================================

def _cut(records: List[ColumnInfo], start: int, end: int) -> List[ColumnInfo]:
    """Records with columns start..end removed, splitting any that straddle."""
    kept: List[ColumnInfo] = []
    for info in records:
        if info.max < start or info.min > end:
            kept.append(info)
            continue
        if info.min < start:
            kept.append(info.model_copy(update={"max": start - 1}))
        if info.max > end:
            kept.append(info.model_copy(update={"min": end + 1}))
    return kept


def normalize_cols(records: List[ColumnInfo]) -> List[ColumnInfo]:
    """Non-overlapping records sorted by min. Later records win on overlap."""
    result: List[ColumnInfo] = []
    for info in records:
        if info.min > info.max:
            continue
        result = _cut(result, info.min, info.max)
        result.append(info.model_copy())
    return sorted(result, key=lambda c: c.min)


def _droppable(info: ColumnInfo, default_width: float) -> bool:
    if info.is_default:
        return True
    return info.width == default_width and not info.custom_width and info.same_properties(
        ColumnInfo(min=info.min, max=info.max, width=default_width)
    )


def _merge_cols(records: List[ColumnInfo], default_width: float) -> List[ColumnInfo]:
    merged: List[ColumnInfo] = []
    for info in sorted(records, key=lambda c: c.min):
        if _droppable(info, default_width):
            continue
        if merged and merged[-1].max + 1 == info.min and merged[-1].same_properties(info):
            merged[-1] = merged[-1].model_copy(update={"max": info.max})
        else:
            merged.append(info)
    return merged


def default_col_width(ws: Worksheet) -> float:
    if ws.sheet_format is not None and ws.sheet_format.default_col_width is not None:
        return ws.sheet_format.default_col_width
    return DEFAULT_COL_WIDTH


def update_cols(ws: Worksheet, col_range: ColumnRange, changes: Dict[str, Any]) -> None:
    """Apply property changes to every column in col_range.

    Columns with no record yet get a new one carrying the sheet's default
    width, so the new record renders the same as before.
    """
    default_width = default_col_width(ws)
    records = normalize_cols(ws.cols)
    updated: List[ColumnInfo] = []
    col = col_range.start
    for info in records:
        if info.max < col_range.start or info.min > col_range.end:
            continue
        lo, hi = max(info.min, col_range.start), min(info.max, col_range.end)
        if lo > col:
            updated.append(ColumnInfo(min=col, max=lo - 1, width=default_width).model_copy(update=changes))
        updated.append(info.model_copy(update={"min": lo, "max": hi, **changes}))
        col = hi + 1
    if col <= col_range.end:
        updated.append(ColumnInfo(min=col, max=col_range.end, width=default_width).model_copy(update=changes))
    ws.cols = _merge_cols(_cut(records, col_range.start, col_range.end) + updated, default_width)
    logger.debug(f"[COLS] {col_range.start}..{col_range.end} <- {changes}, {len(ws.cols)} records")


def ensure_sheet_format(ws: Worksheet) -> SheetFormat:
    if ws.sheet_format is None:
        ws.sheet_format = SheetFormat()
    return ws.sheet_format


# =============================================================================
# MUTATORS
# =============================================================================

def set_col_visible(workbook: "Workbook", sheet: str, columns: ColumnRef, visible: bool) -> None:
    """Show or hide a column or a range like "F:V" (or "V:F")."""
    col_range = resolve_column_range(columns)
    part = workbook.resolve_sheet(sheet)
    ws = workbook.worksheet(part)
    update_cols(ws, col_range, {"hidden": not visible})
    workbook.invalidate_dimension(part)


def get_col_visible(workbook: "Workbook", sheet: str, col: ColumnRef) -> bool:
    part = workbook.resolve_sheet(sheet)
    col_num = column_number(col)
    info = workbook.worksheet(part, for_update=False).col_info(col_num)
    return info is None or not info.hidden


def set_col_outline_level(workbook: "Workbook", sheet: str, columns: ColumnRef, level: int) -> None:
    """Set the grouping depth (0-7) of a column or column range."""
    col_range = resolve_column_range(columns)
    if not 0 <= level <= MAX_OUTLINE_LEVEL:
        raise OutlineLevelExceededError(level)
    part = workbook.resolve_sheet(sheet)
    ws = workbook.worksheet(part)
    update_cols(ws, col_range, {"outline_level": level})
    ensure_sheet_format(ws).outline_level_col = max((c.outline_level for c in ws.cols), default=0)
    workbook.invalidate_dimension(part)


def get_col_outline_level(workbook: "Workbook", sheet: str, col: ColumnRef) -> int:
    part = workbook.resolve_sheet(sheet)
    col_num = column_number(col)
    info = workbook.worksheet(part, for_update=False).col_info(col_num)
    return info.outline_level if info is not None else 0


def set_col_width(
    workbook: "Workbook",
    sheet: str,
    start: ColumnRef,
    end: Optional[ColumnRef],
    width: float,
) -> None:
    """Set the width (in characters) of columns start..end, in either order."""
    col_range = resolve_column_range(start, end)
    if width > MAX_COLUMN_WIDTH:
        raise ColumnWidthExceededError(width)
    part = workbook.resolve_sheet(sheet)
    ws = workbook.worksheet(part)
    update_cols(ws, col_range, {"width": float(width), "custom_width": True})
    workbook.invalidate_dimension(part)


def get_col_width(workbook: "Workbook", sheet: str, col: ColumnRef) -> float:
    """Width of a column, falling back to the sheet default."""
    part = workbook.resolve_sheet(sheet)
    col_num = column_number(col)
    ws = workbook.worksheet(part, for_update=False)
    info = ws.col_info(col_num)
    if info is not None and info.width is not None:
        return info.width
    return default_col_width(ws)


def set_col_style(workbook: "Workbook", sheet: str, columns: ColumnRef, style_id: int) -> None:
    """Assign a cellXfs style to whole columns, including cells already in them."""
    col_range = resolve_column_range(columns)
    part = workbook.resolve_sheet(sheet)
    style_count = cell_style_count(workbook.parts)
    if style_id < 0 or (style_count and style_id >= style_count):
        raise InvalidStyleIdError(style_id)
    ws = workbook.worksheet(part)
    update_cols(ws, col_range, {"style": style_id})
    for row in ws.sheet_data:
        for cell in row.cells:
            col, _ = cell_name_to_coordinates(cell.ref)
            if col in col_range:
                cell.style = style_id
    workbook.invalidate_dimension(part)


def get_col_style(workbook: "Workbook", sheet: str, col: ColumnRef) -> int:
    part = workbook.resolve_sheet(sheet)
    col_num = column_number(col)
    info = workbook.worksheet(part, for_update=False).col_info(col_num)
    if info is None or info.style is None:
        return 0
    return info.style
