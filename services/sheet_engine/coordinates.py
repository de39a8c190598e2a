"""Cell coordinate codec.

Converts between column letters ("A".."XFD"), 1-indexed column numbers,
row numbers and combined cell references like "C4" or "$C$4".
"""

from __future__ import annotations

import math
import re
from typing import Tuple

from .errors import (
    InvalidCellNameError,
    InvalidColumnNameError,
    InvalidColumnNumberError,
    InvalidCoordinateError,
    InvalidRowNumberError,
)


# =============================================================================
# SPREADSHEET LIMITS
# =============================================================================

TOTAL_ROWS = 1048576
TOTAL_COLUMNS = 16384
MAX_COLUMN_WIDTH = 255
MAX_ROW_HEIGHT = 409
MAX_OUTLINE_LEVEL = 7

DEFAULT_COL_WIDTH = 9.140625
DEFAULT_ROW_HEIGHT = 15.0

_CELL_RE = re.compile(r"^\$?([A-Za-z]+)\$?([1-9][0-9]*)$")


# =============================================================================
# COLUMNS
# =============================================================================

def column_name_to_number(name: str) -> int:
    """Convert column letter(s) to a 1-indexed number. A=1, Z=26, AA=27."""
    if not name or not name.isascii() or not name.isalpha():
        raise InvalidColumnNameError(name)
    result = 0
    for char in name.upper():
        result = result * 26 + (ord(char) - ord("A") + 1)
        if result > TOTAL_COLUMNS:
            raise InvalidColumnNameError(name)
    return result


def column_number_to_name(number: int) -> str:
    """Convert a 1-indexed column number to letter(s). 1=A, 27=AA."""
    if number < 1 or number > TOTAL_COLUMNS:
        raise InvalidColumnNumberError(number)
    result = ""
    while number > 0:
        number -= 1
        result = chr(ord("A") + (number % 26)) + result
        number //= 26
    return result


def check_row(row: int) -> int:
    if row < 1 or row > TOTAL_ROWS:
        raise InvalidRowNumberError(row)
    return row


# =============================================================================
# CELLS
# =============================================================================

def split_cell_name(ref: str) -> Tuple[str, int]:
    """Split a reference like 'AA100' into ('AA', 100)."""
    match = _CELL_RE.match(ref or "")
    if not match:
        raise InvalidCellNameError(ref)
    return match.group(1).upper(), int(match.group(2))


def join_cell_name(col: str, row: int) -> str:
    if not col or not col.isascii() or not col.isalpha():
        raise InvalidColumnNameError(col)
    check_row(row)
    return f"{col.upper()}{row}"


def cell_name_to_coordinates(ref: str) -> Tuple[int, int]:
    """Parse a cell reference into (col, row).

    Raises InvalidCellNameError for anything that is not letters followed by a
    positive row number, or for a column or row outside the sheet limits.
    """
    try:
        col_name, row = split_cell_name(ref)
        col = column_name_to_number(col_name)
        check_row(row)
    except InvalidCoordinateError as e:
        raise InvalidCellNameError(ref, converting=True) from e
    return col, row


def coordinates_to_cell_name(col: int, row: int, absolute: bool = False) -> str:
    if col < 1 or row < 1:
        raise InvalidCoordinateError(f"invalid cell coordinates [{col}, {row}]")
    col_name = column_number_to_name(col)
    check_row(row)
    if absolute:
        return f"${col_name}${row}"
    return f"{col_name}{row}"


# =============================================================================
# RANGES
# =============================================================================

def range_ref_to_coordinates(ref: str) -> Tuple[int, int, int, int]:
    """Parse a range like 'B2:F6' into (min_col, min_row, max_col, max_row).

    A single cell reference is treated as a one-cell range. Corners may be
    given in any order.
    """
    parts = ref.split(":")
    if len(parts) == 1:
        parts = [parts[0], parts[0]]
    if len(parts) != 2:
        raise InvalidCellNameError(ref)
    col1, row1 = cell_name_to_coordinates(parts[0])
    col2, row2 = cell_name_to_coordinates(parts[1])
    return min(col1, col2), min(row1, row2), max(col1, col2), max(row1, row2)


def coordinates_to_range_ref(col1: int, row1: int, col2: int, row2: int) -> str:
    first = coordinates_to_cell_name(min(col1, col2), min(row1, row2))
    last = coordinates_to_cell_name(max(col1, col2), max(row1, row2))
    return f"{first}:{last}"


# =============================================================================
# UNIT CONVERSION
# =============================================================================

def convert_col_width_to_pixels(width: float) -> float:
    """Convert a column width in characters to pixels (Calibri 11)."""
    padding = 5.0
    max_digit_width = 7.0
    if width == 0:
        return 0.0
    if width < 1:
        return float(math.ceil(width * 12 + 0.5))
    return float(math.ceil(width * max_digit_width + 0.5 + padding))


def convert_row_height_to_pixels(height: float) -> float:
    """Convert a row height in points to pixels."""
    if height == 0:
        return 0.0
    return float(math.ceil(4.0 / 3.0 * height))
