"""Pydantic schemas for the worksheet structure.

These schemas model the parts of a worksheet part that carry cell
coordinates: the dimension, column metadata, rows and cells, merged
ranges, hyperlinks and the auto filter. Every other worksheet element is
kept as raw XML and written back untouched.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .coordinates import cell_name_to_coordinates, range_ref_to_coordinates


class WorksheetDimension(BaseModel):
    """Populated bounding box of a worksheet (1-indexed, inclusive).

    All zeros means the sheet has no populated cells.
    """
    model_config = ConfigDict(frozen=True)

    first_row: int = 0
    last_row: int = 0
    first_col: int = 0
    last_col: int = 0

    @property
    def is_empty(self) -> bool:
        return self.last_row == 0 or self.last_col == 0

    @property
    def total_rows(self) -> int:
        return self.last_row

    @property
    def total_cols(self) -> int:
        return self.last_col


EMPTY_DIMENSION = WorksheetDimension()


# =============================================================================
# CELLS AND ROWS
# =============================================================================

class CellXML(BaseModel):
    """A <c> element."""
    ref: Optional[str] = None  # r, e.g. "B2"
    style: Optional[int] = None  # s
    type: Optional[str] = None  # t: "s", "n", "b", "e", "str", "inlineStr", "d"
    value: Optional[str] = None  # <v> text
    formula: Optional[str] = None  # raw <f> element
    inline_string: Optional[str] = None  # raw <is> element
    attrs: Dict[str, str] = {}  # anything else (cm, vm, ph)


class RowXML(BaseModel):
    """A <row> element and its cells."""
    r: Optional[int] = None
    spans: Optional[str] = None
    style: Optional[int] = None
    custom_format: bool = False
    height: Optional[float] = None
    custom_height: bool = False
    hidden: bool = False
    outline_level: int = 0
    collapsed: bool = False
    attrs: Dict[str, str] = {}
    cells: List[CellXML] = []


# =============================================================================
# COLUMN METADATA
# =============================================================================

class ColumnInfo(BaseModel):
    """A <col> record covering columns min..max."""
    min: int
    max: int
    width: Optional[float] = None
    style: Optional[int] = None
    hidden: bool = False
    best_fit: bool = False
    custom_width: bool = False
    outline_level: int = 0
    collapsed: bool = False
    phonetic: bool = False

    def same_properties(self, other: "ColumnInfo") -> bool:
        return self.model_dump(exclude={"min", "max"}) == other.model_dump(exclude={"min", "max"})

    @property
    def is_default(self) -> bool:
        return self.same_properties(ColumnInfo(min=self.min, max=self.max))


class SheetFormat(BaseModel):
    """The <sheetFormatPr> element."""
    base_col_width: Optional[int] = None
    default_col_width: Optional[float] = None
    default_row_height: float = 15.0
    custom_height: bool = False
    zero_height: bool = False
    outline_level_row: int = 0
    outline_level_col: int = 0
    attrs: Dict[str, str] = {}


# =============================================================================
# COORDINATE-BEARING STRUCTURES
# =============================================================================

class MergedCellRange(BaseModel):
    """A merged cell range in a worksheet."""
    ref: str  # Range reference e.g. "B2:F6"

    @property
    def bounds(self):
        return range_ref_to_coordinates(self.ref)


class Hyperlink(BaseModel):
    """A <hyperlink> anchored to a cell or range."""
    ref: str
    r_id: Optional[str] = None  # Relationship ID for external links
    location: Optional[str] = None  # Internal location (e.g., "Sheet2!A1")
    display: Optional[str] = None
    tooltip: Optional[str] = None


class AutoFilter(BaseModel):
    ref: str
    inner_xml: str = ""  # filterColumn / sortState children, kept verbatim


class RawElement(BaseModel):
    """A worksheet child the engine does not model."""
    tag: str  # local name
    xml: str
    rank: int  # position in the schema child order


# =============================================================================
# WORKSHEET
# =============================================================================

class Worksheet(BaseModel):
    """Parsed worksheet part.

    This is an edit overlay bound to the underlying XML, not a full model.
    The original root tag is kept so every namespace declaration survives
    a round trip.
    """
    root_open: Optional[str] = None
    dimension: Optional[str] = None
    sheet_format: Optional[SheetFormat] = None
    cols: List[ColumnInfo] = []
    sheet_data: List[RowXML] = []
    merge_cells: List[MergedCellRange] = []
    hyperlinks: List[Hyperlink] = []
    auto_filter: Optional[AutoFilter] = None
    extra: List[RawElement] = Field(default_factory=list)

    def find_row(self, row: int) -> Optional[RowXML]:
        for row_el in self.sheet_data:
            if row_el.r == row:
                return row_el
        return None

    def ensure_row(self, row: int) -> RowXML:
        """Get the <row> for a row number, inserting it in order if missing."""
        for i, row_el in enumerate(self.sheet_data):
            if row_el.r == row:
                return row_el
            if (row_el.r or 0) > row:
                new_row = RowXML(r=row)
                self.sheet_data.insert(i, new_row)
                return new_row
        new_row = RowXML(r=row)
        self.sheet_data.append(new_row)
        return new_row

    def ensure_cell(self, col: int, row: int, ref: str) -> CellXML:
        """Get the <c> at (col, row), inserting it in column order if missing."""
        row_el = self.ensure_row(row)
        for i, cell in enumerate(row_el.cells):
            cell_col = cell_name_to_coordinates(cell.ref)[0]
            if cell_col == col:
                return cell
            if cell_col > col:
                new_cell = CellXML(ref=ref)
                row_el.cells.insert(i, new_cell)
                return new_cell
        new_cell = CellXML(ref=ref)
        row_el.cells.append(new_cell)
        return new_cell

    def get_hyperlink(self, ref: str) -> Optional[Hyperlink]:
        for link in self.hyperlinks:
            if link.ref == ref:
                return link
        return None

    def col_info(self, col: int) -> Optional[ColumnInfo]:
        """Get the column record covering a 1-indexed column, if any."""
        for info in self.cols:
            if info.min <= col <= info.max:
                return info
        return None
