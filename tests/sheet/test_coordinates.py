"""Tests for the cell coordinate codec and range resolver."""

import sys
from pathlib import Path

# Add project root to path (tests/sheet/ -> tests/ -> project root)
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from services.sheet_engine import (
    TOTAL_COLUMNS,
    InvalidCellNameError,
    InvalidColumnNameError,
    InvalidColumnNumberError,
    InvalidCoordinateError,
    InvalidRowNumberError,
    cell_name_to_coordinates,
    column_name_to_number,
    column_number_to_name,
    convert_col_width_to_pixels,
    convert_row_height_to_pixels,
    coordinates_to_cell_name,
    coordinates_to_range_ref,
    join_cell_name,
    range_ref_to_coordinates,
    resolve_column_range,
    resolve_row_range,
    split_cell_name,
)


class TestColumnNames:
    """Column letters <-> numbers."""

    @pytest.mark.parametrize("name,number", [
        ("A", 1), ("Z", 26), ("AA", 27), ("AZ", 52), ("BA", 53), ("ZZ", 702),
        ("AAA", 703), ("XFD", 16384), ("xfd", 16384), ("c", 3),
    ])
    def test_known_values(self, name, number):
        assert column_name_to_number(name) == number
        assert column_number_to_name(number) == name.upper()

    def test_every_column_round_trips(self):
        for number in range(1, TOTAL_COLUMNS + 1):
            assert column_name_to_number(column_number_to_name(number)) == number

    @pytest.mark.parametrize("name", ["", "*", "A1", "-1", "XFE", "ZZZZ", "É"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidColumnNameError) as exc:
            column_name_to_number(name)
        assert str(exc.value) == f'invalid column name "{name}"'

    @pytest.mark.parametrize("number", [0, -1, 16385])
    def test_invalid_numbers(self, number):
        with pytest.raises(InvalidColumnNumberError) as exc:
            column_number_to_name(number)
        assert str(exc.value) == f"invalid column number {number}"

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            column_name_to_number("*")


class TestCellNames:
    """Cell references like "C4"."""

    def test_split(self):
        assert split_cell_name("C4") == ("C", 4)
        assert split_cell_name("aa100") == ("AA", 100)
        assert split_cell_name("$B$2") == ("B", 2)

    @pytest.mark.parametrize("ref", ["A", "4", "A0", "A01", "4A", "A-1", "", "A 1"])
    def test_split_rejects_bad_shapes(self, ref):
        with pytest.raises(InvalidCellNameError):
            split_cell_name(ref)

    def test_join(self):
        assert join_cell_name("c", 4) == "C4"
        with pytest.raises(InvalidRowNumberError):
            join_cell_name("C", 0)
        with pytest.raises(InvalidColumnNameError):
            join_cell_name("C1", 1)

    def test_to_coordinates(self):
        assert cell_name_to_coordinates("C4") == (3, 4)
        assert cell_name_to_coordinates("XFD1048576") == (16384, 1048576)

    def test_to_coordinates_message(self):
        with pytest.raises(InvalidCellNameError) as exc:
            cell_name_to_coordinates("A")
        assert str(exc.value) == 'cannot convert cell "A" to coordinates: invalid cell name "A"'
        assert exc.value.__cause__ is not None

    def test_out_of_range_cells(self):
        with pytest.raises(InvalidCellNameError):
            cell_name_to_coordinates("XFE1")
        with pytest.raises(InvalidCellNameError):
            cell_name_to_coordinates("A1048577")

    def test_from_coordinates(self):
        assert coordinates_to_cell_name(3, 4) == "C4"
        assert coordinates_to_cell_name(3, 4, absolute=True) == "$C$4"

    @pytest.mark.parametrize("col,row", [(0, 1), (1, 0), (-1, 5)])
    def test_from_coordinates_rejects_zero(self, col, row):
        with pytest.raises(InvalidCoordinateError):
            coordinates_to_cell_name(col, row)

    def test_row_number_message(self):
        with pytest.raises(InvalidRowNumberError) as exc:
            coordinates_to_cell_name(1, 1048577)
        assert str(exc.value) == "invalid row number 1048577"


class TestRangeRefs:
    """Rectangular ranges like "A1:C3"."""

    def test_normalizes_corners(self):
        assert range_ref_to_coordinates("A1:C3") == (1, 1, 3, 3)
        assert range_ref_to_coordinates("C3:A1") == (1, 1, 3, 3)
        assert range_ref_to_coordinates("C1:A3") == (1, 1, 3, 3)

    def test_single_cell(self):
        assert range_ref_to_coordinates("B2") == (2, 2, 2, 2)

    def test_to_ref(self):
        assert coordinates_to_range_ref(3, 3, 1, 1) == "A1:C3"

    def test_bad_range(self):
        with pytest.raises(InvalidCellNameError):
            range_ref_to_coordinates("A1:B2:C3")
        with pytest.raises(InvalidCellNameError):
            range_ref_to_coordinates("A1:B")


class TestRangeResolver:
    """Column and row endpoint resolution."""

    def test_single_column(self):
        col_range = resolve_column_range("F")
        assert (col_range.start, col_range.end) == (6, 6)

    def test_reversed_endpoints_are_swapped(self):
        assert resolve_column_range("V:F") == resolve_column_range("F:V")
        assert resolve_column_range("B", "A") == resolve_column_range("A", "B")
        assert resolve_column_range(22, 6) == resolve_column_range("F", "V")

    def test_membership_and_iteration(self):
        col_range = resolve_column_range("B:D")
        assert list(col_range) == [2, 3, 4]
        assert 3 in col_range
        assert 5 not in col_range

    @pytest.mark.parametrize("columns,bad", [("A:-1", "-1"), ("*", "*"), ("A:*", "*"), ("", "")])
    def test_bad_endpoint(self, columns, bad):
        with pytest.raises(InvalidColumnNameError) as exc:
            resolve_column_range(columns)
        assert str(exc.value) == f'invalid column name "{bad}"'

    def test_int_endpoint_out_of_range(self):
        with pytest.raises(InvalidColumnNameError):
            resolve_column_range(0)
        with pytest.raises(InvalidColumnNameError):
            resolve_column_range(True)

    def test_rows(self):
        row_range = resolve_row_range("5:2")
        assert (row_range.start, row_range.end) == (2, 5)
        assert resolve_row_range(3) == resolve_row_range("3")

    def test_bad_row(self):
        with pytest.raises(InvalidRowNumberError) as exc:
            resolve_row_range(0)
        assert str(exc.value) == "invalid row number 0"
        with pytest.raises(InvalidRowNumberError):
            resolve_row_range("x")


class TestUnitConversion:
    """Width and height pixel conversions."""

    def test_col_width(self):
        assert convert_col_width_to_pixels(0) == 0
        assert convert_col_width_to_pixels(-1) == -11
        assert convert_col_width_to_pixels(9.140625) == 70
        assert convert_col_width_to_pixels(0.5) == 7

    def test_row_height(self):
        assert convert_row_height_to_pixels(0) == 0
        assert convert_row_height_to_pixels(15) == 20
