"""Worksheet dimension tracking.

The populated bounding box of a sheet is taken from the stored
``<dimension ref>`` hint when it is well formed, and from a streaming scan
of every row and cell otherwise. Results are cached per worksheet part on
the owning Workbook and dropped by every mutation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .coordinates import range_ref_to_coordinates
from .errors import InvalidCoordinateError
from .schemas import EMPTY_DIMENSION, WorksheetDimension
from .stream import TokenCursor, local_name, row_cells

if TYPE_CHECKING:
    from .workbook import Workbook

logger = logging.getLogger(__name__)


def _decode_hint(ref: Optional[str]) -> Optional[WorksheetDimension]:
    if not ref:
        return None
    try:
        min_col, min_row, max_col, max_row = range_ref_to_coordinates(ref)
    except InvalidCoordinateError:
        return None
    return WorksheetDimension(first_row=min_row, last_row=max_row, first_col=min_col, last_col=max_col)


def _scan_rows(cursor: TokenCursor) -> WorksheetDimension:
    first_row = last_row = first_col = last_col = 0
    for row_num, row_el in cursor.rows():
        cols = [col for col, _ in row_cells(row_el, row_num)]
        if not cols:
            continue
        if not first_row:
            first_row, first_col = row_num, min(cols)
        first_row = min(first_row, row_num)
        last_row = max(last_row, row_num)
        first_col = min(first_col, min(cols))
        last_col = max(last_col, max(cols))
    if not last_row:
        return EMPTY_DIMENSION
    return WorksheetDimension(first_row=first_row, last_row=last_row, first_col=first_col, last_col=last_col)


def scan_dimension(data: Optional[bytes], chunk_size: Optional[int] = None) -> WorksheetDimension:
    """Compute the dimension of raw worksheet XML.

    A well-formed hint is trusted once the first cell is seen. A sheet with
    no cells is EMPTY whatever its hint says.
    """
    cursor = TokenCursor(data, chunk_size)
    hint: Optional[WorksheetDimension] = None
    for event, element in cursor.events():
        name = local_name(element.tag)
        if event == "end":
            if name == "sheetData":
                return EMPTY_DIMENSION
            continue
        if name == "dimension":
            hint = _decode_hint(element.get("ref"))
        elif name == "sheetData" and hint is None:
            logger.debug("[DIMENSION] No usable hint, scanning rows")
            return _scan_rows(cursor)
        elif name == "c" and hint is not None:
            return hint
    return EMPTY_DIMENSION


def get_dimension(workbook: "Workbook", sheet: str) -> WorksheetDimension:
    """Get the populated bounding box of a sheet, using the per-part cache."""
    part = workbook.resolve_sheet(sheet)
    workbook.flush_worksheet(part)
    cached = workbook.cached_dimension(part)
    if cached is not None:
        return cached
    dimension = scan_dimension(workbook.get_sheet_xml(part), workbook.chunk_size)
    workbook.store_dimension(part, dimension)
    logger.debug(f"[DIMENSION] {sheet}: {dimension.last_col} cols x {dimension.last_row} rows")
    return dimension
