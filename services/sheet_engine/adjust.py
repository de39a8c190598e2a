"""Insert and remove whole columns or rows.

Every structure in the worksheet that stores an absolute cell address is
re-addressed: cells, rows, column records, merged ranges, hyperlinks, the
auto filter, and the sqref lists of conditional formats and data
validations. Formulas are not rewritten, and the workbook calculation chain
is dropped so it gets rebuilt.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Tuple
from xml.etree import ElementTree as ET

from .coordinates import (
    TOTAL_COLUMNS,
    cell_name_to_coordinates,
    check_row,
    coordinates_to_cell_name,
    coordinates_to_range_ref,
    range_ref_to_coordinates,
)
from .package import remove_calc_chain
from .ranges import ColumnRef, column_number, row_number
from .schemas import ColumnInfo, Worksheet
from .worksheet_xml import element_xml, local_name

if TYPE_CHECKING:
    from .workbook import Workbook

logger = logging.getLogger(__name__)

COLUMNS = "columns"
ROWS = "rows"

Bounds = Tuple[int, int, int, int]


def _shift(value: int, num: int, offset: int) -> Optional[int]:
    """New position of a line after inserting (+1) or removing (-1) line num.

    None means the line itself was removed.
    """
    if value < num:
        return value
    if offset < 0 and value == num:
        return None
    return value + offset


def _shift_span(lo: int, hi: int, num: int, offset: int) -> Optional[Tuple[int, int]]:
    """Re-address an inclusive span lo..hi. None when it was exactly the removed line."""
    if offset < 0 and lo == hi == num:
        return None
    if lo > num or (offset > 0 and lo == num):
        lo += offset
    if hi >= num:
        hi += offset
    return lo, hi


def _shift_bounds(bounds: Bounds, axis: str, num: int, offset: int) -> Optional[Bounds]:
    """Re-address a rectangle. None when it lay entirely on a removed line."""
    min_col, min_row, max_col, max_row = bounds
    span = _shift_span(*((min_col, max_col) if axis == COLUMNS else (min_row, max_row)), num, offset)
    if span is None:
        return None
    lo, hi = span
    if axis == COLUMNS:
        return lo, min_row, hi, max_row
    return min_col, lo, max_col, hi


def _bounds_ref(bounds: Bounds) -> str:
    min_col, min_row, max_col, max_row = bounds
    if (min_col, min_row) == (max_col, max_row):
        return coordinates_to_cell_name(min_col, min_row)
    return coordinates_to_range_ref(*bounds)


# =============================================================================
# PASSES
# =============================================================================

def _adjust_sheet_data(ws: Worksheet, axis: str, num: int, offset: int) -> None:
    rows = []
    for row in ws.sheet_data:
        if axis == ROWS:
            new_r = _shift(row.r, num, offset)
            if new_r is None:
                continue
            row.r = check_row(new_r)
        else:
            # Column spans are only an optimisation hint and go stale
            row.spans = None
        cells = []
        for cell in row.cells:
            col, _ = cell_name_to_coordinates(cell.ref)
            if axis == COLUMNS:
                col = _shift(col, num, offset)
                if col is None:
                    continue
            cell.ref = coordinates_to_cell_name(col, row.r)
            cells.append(cell)
        row.cells = cells
        rows.append(row)
    ws.sheet_data = rows


def _adjust_cols(ws: Worksheet, num: int, offset: int) -> None:
    cols: List[ColumnInfo] = []
    for info in ws.cols:
        span = _shift_span(info.min, info.max, num, offset)
        if span is None or span[0] > TOTAL_COLUMNS:
            continue
        lo, hi = span[0], min(span[1], TOTAL_COLUMNS)
        cols.append(info.model_copy(update={"min": lo, "max": hi}))
    ws.cols = cols


def _adjust_merges(ws: Worksheet, axis: str, num: int, offset: int) -> None:
    merges = []
    for merge in ws.merge_cells:
        bounds = _shift_bounds(merge.bounds, axis, num, offset)
        if bounds is None or bounds[:2] == bounds[2:]:
            continue
        merge.ref = coordinates_to_range_ref(*bounds)
        merges.append(merge)
    ws.merge_cells = merges


def _adjust_hyperlinks(ws: Worksheet, axis: str, num: int, offset: int) -> List[str]:
    """Re-address hyperlinks and return relationship ids of the dropped ones."""
    links = []
    dropped: List[str] = []
    for link in ws.hyperlinks:
        bounds = _shift_bounds(range_ref_to_coordinates(link.ref), axis, num, offset)
        if bounds is None:
            if link.r_id:
                dropped.append(link.r_id)
            continue
        link.ref = _bounds_ref(bounds)
        links.append(link)
    ws.hyperlinks = links
    still_used = {link.r_id for link in links}
    return [r_id for r_id in dropped if r_id not in still_used]


def _adjust_auto_filter(ws: Worksheet, axis: str, num: int, offset: int) -> None:
    if ws.auto_filter is None:
        return
    bounds = _shift_bounds(range_ref_to_coordinates(ws.auto_filter.ref), axis, num, offset)
    if bounds is None:
        ws.auto_filter = None
        return
    ws.auto_filter.ref = _bounds_ref(bounds)


def _adjust_sqref(sqref: str, axis: str, num: int, offset: int) -> str:
    """Re-address a space-separated range list, dropping ranges that vanish."""
    refs = []
    for ref in sqref.split():
        bounds = _shift_bounds(range_ref_to_coordinates(ref), axis, num, offset)
        if bounds is not None:
            refs.append(_bounds_ref(bounds))
    return " ".join(refs)


def _adjust_range_lists(ws: Worksheet, axis: str, num: int, offset: int) -> None:
    """Conditional formats and data validations kept as raw XML."""
    extra = []
    for raw in ws.extra:
        if raw.tag == "conditionalFormatting":
            el = ET.fromstring(raw.xml)
            sqref = _adjust_sqref(el.get("sqref", ""), axis, num, offset)
            if not sqref:
                continue
            el.set("sqref", sqref)
            raw = raw.model_copy(update={"xml": element_xml(el)})
        elif raw.tag == "dataValidations":
            el = ET.fromstring(raw.xml)
            kept = 0
            for rule in [r for r in el if local_name(r.tag) == "dataValidation"]:
                sqref = _adjust_sqref(rule.get("sqref", ""), axis, num, offset)
                if sqref:
                    rule.set("sqref", sqref)
                    kept += 1
                else:
                    el.remove(rule)
            if not kept:
                continue
            el.set("count", str(kept))
            raw = raw.model_copy(update={"xml": element_xml(el)})
        extra.append(raw)
    ws.extra = extra


def adjust_helper(workbook: "Workbook", sheet: str, axis: str, num: int, offset: int) -> None:
    """Shift everything at or after line num of the given axis by offset (+1 or -1)."""
    part = workbook.resolve_sheet(sheet)
    ws = workbook.worksheet(part)
    _adjust_sheet_data(ws, axis, num, offset)
    if axis == COLUMNS:
        _adjust_cols(ws, num, offset)
    _adjust_merges(ws, axis, num, offset)
    for r_id in _adjust_hyperlinks(ws, axis, num, offset):
        workbook.remove_sheet_relationship(part, r_id)
    _adjust_auto_filter(ws, axis, num, offset)
    _adjust_range_lists(ws, axis, num, offset)
    if remove_calc_chain(workbook.parts):
        logger.info("[ADJUST] Dropped calculation chain")
    workbook.invalidate_dimension(part)
    action = "insert" if offset > 0 else "remove"
    logger.info(f"[ADJUST] {sheet}: {action} {axis[:-1]} {num}")


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def insert_col(workbook: "Workbook", sheet: str, col: ColumnRef) -> None:
    """Insert an empty column before col, shifting later columns right."""
    adjust_helper(workbook, sheet, COLUMNS, column_number(col), 1)


def remove_col(workbook: "Workbook", sheet: str, col: ColumnRef) -> None:
    """Delete column col and its cells, shifting later columns left."""
    adjust_helper(workbook, sheet, COLUMNS, column_number(col), -1)


def insert_row(workbook: "Workbook", sheet: str, row) -> None:
    adjust_helper(workbook, sheet, ROWS, row_number(row), 1)


def remove_row(workbook: "Workbook", sheet: str, row) -> None:
    adjust_helper(workbook, sheet, ROWS, row_number(row), -1)
