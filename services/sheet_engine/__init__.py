"""Sheet Engine - coordinate model and streaming access for XLSX worksheets.

This module handles:
1. Converting between cell references, column letters and numbers
2. Streaming a worksheet column by column or row by row
3. Column and row properties (width, height, visibility, outline level, style)
4. Inserting and removing columns and rows with every address kept consistent
"""

from .coordinates import (
    DEFAULT_COL_WIDTH,
    DEFAULT_ROW_HEIGHT,
    MAX_COLUMN_WIDTH,
    MAX_OUTLINE_LEVEL,
    MAX_ROW_HEIGHT,
    TOTAL_COLUMNS,
    TOTAL_ROWS,
    cell_name_to_coordinates,
    column_name_to_number,
    column_number_to_name,
    convert_col_width_to_pixels,
    convert_row_height_to_pixels,
    coordinates_to_cell_name,
    coordinates_to_range_ref,
    join_cell_name,
    range_ref_to_coordinates,
    split_cell_name,
)
from .errors import (
    ColumnWidthExceededError,
    InvalidCellNameError,
    InvalidColumnNameError,
    InvalidColumnNumberError,
    InvalidCoordinateError,
    InvalidRowNumberError,
    InvalidStyleIdError,
    OutlineLevelExceededError,
    PackageError,
    RowHeightExceededError,
    SheetNotExistError,
    SpreadsheetError,
)
from .ranges import ColumnRange, RowRange, resolve_column_range, resolve_row_range
from .schemas import (
    # Worksheet structure
    EMPTY_DIMENSION,
    ColumnInfo,
    Hyperlink,
    MergedCellRange,
    RowXML,
    CellXML,
    Worksheet,
    WorksheetDimension,
)
from .cols import ColumnIterator
from .rows import RowIterator
from .workbook import Workbook

__all__ = [
    # Document
    "Workbook",
    "ColumnIterator",
    "RowIterator",
    # Coordinates
    "TOTAL_ROWS",
    "TOTAL_COLUMNS",
    "MAX_COLUMN_WIDTH",
    "MAX_ROW_HEIGHT",
    "MAX_OUTLINE_LEVEL",
    "DEFAULT_COL_WIDTH",
    "DEFAULT_ROW_HEIGHT",
    "column_name_to_number",
    "column_number_to_name",
    "split_cell_name",
    "join_cell_name",
    "cell_name_to_coordinates",
    "coordinates_to_cell_name",
    "range_ref_to_coordinates",
    "coordinates_to_range_ref",
    "convert_col_width_to_pixels",
    "convert_row_height_to_pixels",
    # Ranges
    "ColumnRange",
    "RowRange",
    "resolve_column_range",
    "resolve_row_range",
    # Schemas
    "EMPTY_DIMENSION",
    "WorksheetDimension",
    "Worksheet",
    "RowXML",
    "CellXML",
    "ColumnInfo",
    "MergedCellRange",
    "Hyperlink",
    # Errors
    "SpreadsheetError",
    "SheetNotExistError",
    "PackageError",
    "InvalidCoordinateError",
    "InvalidColumnNameError",
    "InvalidColumnNumberError",
    "InvalidRowNumberError",
    "InvalidCellNameError",
    "OutlineLevelExceededError",
    "ColumnWidthExceededError",
    "RowHeightExceededError",
    "InvalidStyleIdError",
]
