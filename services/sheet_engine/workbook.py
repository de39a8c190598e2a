"""The Workbook document object.

A Workbook owns the part store of one open package, the parsed worksheets
that have been fetched for reading or update, the per-part dimension cache
and the shared string table. Column and row operations are implemented in
cols.py, rows.py and adjust.py and exposed here as methods.

Usage:
    wb = Workbook.open("book.xlsx")
    for values in wb.rows("Sheet1"):
        print(values)
    wb.set_col_width("Sheet1", "A", "C", 20)
    wb.save("book.xlsx")
"""

from __future__ import annotations

import logging
import threading
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional, Union

from services.engine_config import get_engine_settings

from . import adjust
from . import cols as _cols
from . import rows as _rows
from .coordinates import cell_name_to_coordinates, coordinates_to_cell_name, coordinates_to_range_ref
from .dimension import get_dimension
from .errors import SheetNotExistError, SpreadsheetError
from .package import (
    REL_HYPERLINK,
    PartStore,
    Relationship,
    SharedStrings,
    Source,
    add_sheet_entry,
    blank_package,
    ensure_shared_strings_part,
    next_relationship_id,
    parse_relationships,
    read_package,
    rels_part_for,
    serialize_relationships,
    shared_strings_part,
    sheet_entries,
    write_package,
)
from .ranges import ColumnRef
from .schemas import AutoFilter, Hyperlink, MergedCellRange, Worksheet, WorksheetDimension
from .stream import inline_string_text, resolve_cell_text
from .worksheet_xml import parse_worksheet, serialize_worksheet

logger = logging.getLogger(__name__)

CellValue = Union[str, int, float, bool, None]


class Workbook:
    """An open spreadsheet document."""

    def __init__(self, parts: PartStore, chunk_size: Optional[int] = None) -> None:
        self.parts = parts
        self.chunk_size = chunk_size or get_engine_settings().stream_chunk_size
        self._lock = threading.RLock()
        self._worksheets: Dict[str, Worksheet] = {}
        self._dirty: set = set()
        self._dimensions: Dict[str, WorksheetDimension] = {}
        self._shared_strings: Optional[SharedStrings] = None

    @classmethod
    def open(cls, source: Source, chunk_size: Optional[int] = None) -> "Workbook":
        return cls(read_package(source), chunk_size)

    @classmethod
    def new(cls, chunk_size: Optional[int] = None) -> "Workbook":
        """A blank workbook with one empty sheet named Sheet1."""
        return cls(blank_package(), chunk_size)

    # =========================================================================
    # SHEETS
    # =========================================================================

    @property
    def sheet_names(self) -> List[str]:
        return [name for name, _, _ in sheet_entries(self.parts)]

    def get_sheet_name(self, index: int) -> str:
        names = self.sheet_names
        if not 0 <= index < len(names):
            return ""
        return names[index]

    def resolve_sheet(self, name: str) -> str:
        """Map a sheet name to its worksheet part path."""
        for sheet_name, _, part in sheet_entries(self.parts):
            if sheet_name == name:
                return part
        raise SheetNotExistError(name)

    def new_sheet(self, name: str) -> int:
        """Add an empty sheet and return its index. An existing name returns its index."""
        names = self.sheet_names
        if name in names:
            return names.index(name)
        part = add_sheet_entry(self.parts, name)
        logger.info(f"[SHEET] Added {name} as {part}")
        return len(names)

    def get_sheet_xml(self, part: str) -> bytes:
        """Raw worksheet XML. Empty for a part that has no body."""
        return self.parts.load(part) or b""

    def worksheet(self, part: str, for_update: bool = True) -> Worksheet:
        """Parsed worksheet for a part, loaded once and cached.

        Fetching for update drops the cached dimension and marks the
        worksheet to be written back on the next flush.
        """
        with self._lock:
            ws = self._worksheets.get(part)
            if ws is None:
                ws = parse_worksheet(self.parts.load(part))
                self._worksheets[part] = ws
            if for_update:
                self._dirty.add(part)
                self.invalidate_dimension(part)
            return ws

    def flush_worksheet(self, part: str) -> None:
        """Write a modified parsed worksheet back to its part."""
        with self._lock:
            if part not in self._dirty:
                return
            self.parts.store(part, serialize_worksheet(self._worksheets[part]))
            self._dirty.discard(part)

    def discard_worksheet(self, part: str) -> None:
        """Forget the parsed worksheet and cached dimension of a part.

        Call after storing new bytes for a part directly in the part store.
        """
        with self._lock:
            self._worksheets.pop(part, None)
            self._dirty.discard(part)
            self._dimensions.pop(part, None)

    def remove_sheet_relationship(self, part: str, r_id: str) -> None:
        rels_part = rels_part_for(part)
        rels = parse_relationships(self.parts.load(rels_part))
        kept = [rel for rel in rels if rel.id != r_id]
        if len(kept) != len(rels):
            self.parts.store(rels_part, serialize_relationships(kept))

    # =========================================================================
    # DIMENSION CACHE
    # =========================================================================

    def invalidate_dimension(self, part: str) -> None:
        with self._lock:
            if self._dimensions.pop(part, None) is not None:
                logger.debug(f"[DIMENSION] Invalidated {part}")

    def cached_dimension(self, part: str) -> Optional[WorksheetDimension]:
        with self._lock:
            return self._dimensions.get(part)

    def store_dimension(self, part: str, dimension: WorksheetDimension) -> None:
        with self._lock:
            self._dimensions[part] = dimension

    def get_dimension(self, sheet: str) -> WorksheetDimension:
        return get_dimension(self, sheet)

    # =========================================================================
    # CELLS
    # =========================================================================

    @property
    def shared_strings(self) -> SharedStrings:
        with self._lock:
            if self._shared_strings is None:
                self._shared_strings = SharedStrings(self.parts.load(shared_strings_part(self.parts)))
            return self._shared_strings

    def set_cell_value(self, sheet: str, cell: str, value: CellValue) -> None:
        """Store a value in a cell. Strings go to the shared string table; None clears the cell."""
        col, row = cell_name_to_coordinates(cell)
        part = self.resolve_sheet(sheet)
        ws = self.worksheet(part)
        ref = coordinates_to_cell_name(col, row)
        if value is None:
            row_el = ws.find_row(row)
            if row_el is not None:
                row_el.cells = [c for c in row_el.cells if c.ref != ref]
            return
        target = ws.ensure_cell(col, row, ref)
        target.formula = None
        target.inline_string = None
        if isinstance(value, bool):
            target.type, target.value = "b", "1" if value else "0"
        elif isinstance(value, (int, float)):
            target.type, target.value = None, str(value)
        else:
            target.type, target.value = "s", str(self.shared_strings.index_of(str(value)))

    def get_cell_value(self, sheet: str, cell: str) -> str:
        col, row = cell_name_to_coordinates(cell)
        part = self.resolve_sheet(sheet)
        row_el = self.worksheet(part, for_update=False).find_row(row)
        if row_el is None:
            return ""
        ref = coordinates_to_cell_name(col, row)
        for target in row_el.cells:
            if target.ref == ref:
                return resolve_cell_text(
                    target.type,
                    target.value,
                    inline_string_text(target.inline_string),
                    self.shared_strings.texts,
                )
        return ""

    def merge_cell(self, sheet: str, top_left: str, bottom_right: str) -> None:
        """Merge a range. Existing merges that overlap it are removed."""
        col1, row1 = cell_name_to_coordinates(top_left)
        col2, row2 = cell_name_to_coordinates(bottom_right)
        ref = coordinates_to_range_ref(col1, row1, col2, row2)
        part = self.resolve_sheet(sheet)
        ws = self.worksheet(part)
        new = MergedCellRange(ref=ref)
        min_col, min_row, max_col, max_row = new.bounds
        kept = []
        for merge in ws.merge_cells:
            c1, r1, c2, r2 = merge.bounds
            if c1 > max_col or c2 < min_col or r1 > max_row or r2 < min_row:
                kept.append(merge)
        kept.append(new)
        ws.merge_cells = kept

    def get_merge_cells(self, sheet: str) -> List[str]:
        part = self.resolve_sheet(sheet)
        return [merge.ref for merge in self.worksheet(part, for_update=False).merge_cells]

    def set_cell_hyperlink(
        self,
        sheet: str,
        cell: str,
        link: str,
        link_type: str,
        display: Optional[str] = None,
        tooltip: Optional[str] = None,
    ) -> None:
        """Attach a hyperlink to a cell.

        link_type "External" stores the URL as a sheet relationship;
        "Location" stores an in-workbook target such as "Sheet2!A1".
        """
        col, row = cell_name_to_coordinates(cell)
        ref = coordinates_to_cell_name(col, row)
        if link_type not in ("External", "Location"):
            raise SpreadsheetError(f"invalid link type {link_type!r}", {"link_type": link_type})
        part = self.resolve_sheet(sheet)
        ws = self.worksheet(part)
        existing = ws.get_hyperlink(ref)
        if existing is not None:
            ws.hyperlinks.remove(existing)
            if existing.r_id:
                self.remove_sheet_relationship(part, existing.r_id)
        if link_type == "External":
            rels_part = rels_part_for(part)
            rels = parse_relationships(self.parts.load(rels_part))
            r_id = next_relationship_id(rels)
            rels.append(Relationship(id=r_id, type=REL_HYPERLINK, target=link, target_mode="External"))
            self.parts.store(rels_part, serialize_relationships(rels))
            hyperlink = Hyperlink(ref=ref, r_id=r_id, display=display, tooltip=tooltip)
        else:
            hyperlink = Hyperlink(ref=ref, location=link, display=display, tooltip=tooltip)
        ws.hyperlinks.append(hyperlink)

    def get_cell_hyperlink(self, sheet: str, cell: str) -> Optional[str]:
        """Target of a cell's hyperlink: the URL for external links, the location otherwise."""
        col, row = cell_name_to_coordinates(cell)
        part = self.resolve_sheet(sheet)
        link = self.worksheet(part, for_update=False).get_hyperlink(coordinates_to_cell_name(col, row))
        if link is None:
            return None
        if link.r_id:
            for rel in parse_relationships(self.parts.load(rels_part_for(part))):
                if rel.id == link.r_id:
                    return rel.target
        return link.location

    def auto_filter(self, sheet: str, top_left: str, bottom_right: str) -> None:
        """Put an auto filter on a range. Filter criteria are not supported."""
        col1, row1 = cell_name_to_coordinates(top_left)
        col2, row2 = cell_name_to_coordinates(bottom_right)
        part = self.resolve_sheet(sheet)
        self.worksheet(part).auto_filter = AutoFilter(ref=coordinates_to_range_ref(col1, row1, col2, row2))

    # =========================================================================
    # ITERATION
    # =========================================================================

    def cols(self, sheet: str) -> _cols.ColumnIterator:
        return _cols.ColumnIterator(self, sheet)

    def rows(self, sheet: str) -> _rows.RowIterator:
        return _rows.RowIterator(self, sheet)

    def get_cols(self, sheet: str) -> List[List[str]]:
        return _cols.get_cols(self, sheet)

    def get_rows(self, sheet: str) -> List[List[str]]:
        return _rows.get_rows(self, sheet)

    # =========================================================================
    # COLUMNS
    # =========================================================================

    def set_col_visible(self, sheet: str, columns: ColumnRef, visible: bool) -> None:
        _cols.set_col_visible(self, sheet, columns, visible)

    def get_col_visible(self, sheet: str, col: ColumnRef) -> bool:
        return _cols.get_col_visible(self, sheet, col)

    def set_col_outline_level(self, sheet: str, columns: ColumnRef, level: int) -> None:
        _cols.set_col_outline_level(self, sheet, columns, level)

    def get_col_outline_level(self, sheet: str, col: ColumnRef) -> int:
        return _cols.get_col_outline_level(self, sheet, col)

    def set_col_width(self, sheet: str, start: ColumnRef, end: Optional[ColumnRef], width: float) -> None:
        _cols.set_col_width(self, sheet, start, end, width)

    def get_col_width(self, sheet: str, col: ColumnRef) -> float:
        return _cols.get_col_width(self, sheet, col)

    def set_col_style(self, sheet: str, columns: ColumnRef, style_id: int) -> None:
        _cols.set_col_style(self, sheet, columns, style_id)

    def get_col_style(self, sheet: str, col: ColumnRef) -> int:
        return _cols.get_col_style(self, sheet, col)

    def insert_col(self, sheet: str, col: ColumnRef) -> None:
        adjust.insert_col(self, sheet, col)

    def remove_col(self, sheet: str, col: ColumnRef) -> None:
        adjust.remove_col(self, sheet, col)

    # =========================================================================
    # ROWS
    # =========================================================================

    def set_row_visible(self, sheet: str, row: _rows.RowRef, visible: bool) -> None:
        _rows.set_row_visible(self, sheet, row, visible)

    def get_row_visible(self, sheet: str, row: _rows.RowRef) -> bool:
        return _rows.get_row_visible(self, sheet, row)

    def set_row_height(self, sheet: str, row: _rows.RowRef, height: float) -> None:
        _rows.set_row_height(self, sheet, row, height)

    def get_row_height(self, sheet: str, row: _rows.RowRef) -> float:
        return _rows.get_row_height(self, sheet, row)

    def set_row_outline_level(self, sheet: str, row: _rows.RowRef, level: int) -> None:
        _rows.set_row_outline_level(self, sheet, row, level)

    def get_row_outline_level(self, sheet: str, row: _rows.RowRef) -> int:
        return _rows.get_row_outline_level(self, sheet, row)

    def insert_row(self, sheet: str, row: _rows.RowRef) -> None:
        adjust.insert_row(self, sheet, row)

    def remove_row(self, sheet: str, row: _rows.RowRef) -> None:
        adjust.remove_row(self, sheet, row)

    # =========================================================================
    # SAVE
    # =========================================================================

    def flush(self) -> None:
        """Write every modified worksheet and the shared string table to the part store."""
        with self._lock:
            for part in list(self._dirty):
                self.flush_worksheet(part)
            if self._shared_strings is not None and self._shared_strings.dirty:
                ensure_shared_strings_part(self.parts)
                self.parts.store(shared_strings_part(self.parts), self._shared_strings.to_xml())

    def save(self, path: Union[str, Path]) -> None:
        self.flush()
        write_package(self.parts, str(path))

    def write_to_bytes(self) -> bytes:
        self.flush()
        buffer = BytesIO()
        write_package(self.parts, buffer)
        return buffer.getvalue()
