"""Tests for inserting and removing columns and rows."""

import sys
from pathlib import Path

# Add project root to path (tests/sheet/ -> tests/ -> project root)
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from services.sheet_engine import (
    InvalidColumnNameError,
    InvalidColumnNumberError,
    InvalidRowNumberError,
    SheetNotExistError,
    Workbook,
)
from services.sheet_engine.package import (
    CALC_CHAIN_PART,
    CONTENT_TYPES_PART,
    REL_CALC_CHAIN,
    WORKBOOK_RELS_PART,
    Relationship,
    add_content_type_override,
    parse_relationships,
    serialize_relationships,
)

SHEET1 = "xl/worksheets/sheet1.xml"
SHEET1_RELS = "xl/worksheets/_rels/sheet1.xml.rels"
MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"

RANGE_LIST_SHEET = (
    f'<worksheet xmlns="{MAIN_NS}">'
    '<sheetData><row r="2"><c r="B2"><v>5</v></c></row></sheetData>'
    '<conditionalFormatting sqref="B2 D4:E5">'
    '<cfRule type="cellIs" priority="1" operator="greaterThan"><formula>1</formula></cfRule>'
    '</conditionalFormatting>'
    '<conditionalFormatting sqref="A1:A9">'
    '<cfRule type="containsBlanks" priority="2"/>'
    '</conditionalFormatting>'
    '<dataValidations count="2">'
    '<dataValidation type="whole" sqref="A1"><formula1>1</formula1></dataValidation>'
    '<dataValidation type="list" sqref="B2:B9"><formula1>"a,b"</formula1></dataValidation>'
    '</dataValidations>'
    '</worksheet>'
)


def _fill_cells(wb, sheet, cols, rows):
    for col in range(1, cols + 1):
        for row in range(1, rows + 1):
            wb.set_cell_value(sheet, f"{chr(ord('A') + col - 1)}{row}", f"{col}:{row}")


class TestInsertCol:
    """insert_col."""

    def test_shifts_values_right(self):
        wb = Workbook.new()
        wb.set_cell_value("Sheet1", "C2", "moved")
        wb.set_cell_value("Sheet1", "A1", "stays")
        wb.insert_col("Sheet1", "A")
        assert wb.get_cell_value("Sheet1", "D2") == "moved"
        assert wb.get_cell_value("Sheet1", "C2") == ""
        assert wb.get_cell_value("Sheet1", "B1") == "stays"

    def test_dimension_is_invalidated(self):
        wb = Workbook.new()
        wb.set_cell_value("Sheet1", "C2", 1)
        assert wb.get_dimension("Sheet1").last_col == 3
        wb.insert_col("Sheet1", "B")
        assert wb.get_dimension("Sheet1").last_col == 4
        assert wb.get_cols("Sheet1")[3] == ["", "1"]

    def test_coordinate_bearing_structures(self):
        wb = Workbook.new()
        _fill_cells(wb, "Sheet1", 10, 10)
        wb.set_cell_hyperlink("Sheet1", "A5", "https://example.com", "External")
        wb.merge_cell("Sheet1", "A1", "C3")
        wb.auto_filter("Sheet1", "A2", "B2")
        wb.insert_col("Sheet1", "A")

        ws = wb.worksheet(SHEET1, for_update=False)
        assert [m.ref for m in ws.merge_cells] == ["B1:D3"]
        assert [h.ref for h in ws.hyperlinks] == ["B5"]
        assert ws.auto_filter.ref == "B2:C2"
        assert wb.get_cell_hyperlink("Sheet1", "B5") == "https://example.com"

    def test_inside_a_range(self):
        wb = Workbook.new()
        wb.merge_cell("Sheet1", "A1", "C1")
        wb.set_col_width("Sheet1", "A", "C", 20)
        wb.insert_col("Sheet1", "B")
        ws = wb.worksheet(SHEET1, for_update=False)
        assert [m.ref for m in ws.merge_cells] == ["A1:D1"]
        assert [(c.min, c.max) for c in ws.cols] == [(1, 4)]

    def test_column_records_after_target_shift(self):
        wb = Workbook.new()
        wb.set_col_visible("Sheet1", "C", False)
        wb.insert_col("Sheet1", "A")
        assert wb.get_col_visible("Sheet1", "C") is True
        assert wb.get_col_visible("Sheet1", "D") is False

    def test_past_last_column(self):
        wb = Workbook.new()
        wb.set_cell_value("Sheet1", "XFD1", 1)
        with pytest.raises(InvalidColumnNumberError):
            wb.insert_col("Sheet1", "A")

    def test_errors(self):
        wb = Workbook.new()
        with pytest.raises(InvalidColumnNameError) as exc:
            wb.insert_col("Sheet1", "*")
        assert str(exc.value) == 'invalid column name "*"'
        with pytest.raises(SheetNotExistError):
            wb.insert_col("SheetN", "A")


class TestRemoveCol:
    """remove_col."""

    def test_shifts_values_left(self):
        wb = Workbook.new()
        wb.set_cell_value("Sheet1", "A5", "gone")
        wb.set_cell_value("Sheet1", "C5", "moved")
        wb.remove_col("Sheet1", "A")
        assert wb.get_cell_value("Sheet1", "B5") == "moved"
        assert wb.get_cell_value("Sheet1", "A5") == ""
        assert wb.get_cell_value("Sheet1", "C5") == ""

    def test_merges_and_hyperlinks(self):
        wb = Workbook.new()
        _fill_cells(wb, "Sheet1", 10, 15)
        wb.set_cell_hyperlink("Sheet1", "A5", "https://example.com/a", "External")
        wb.set_cell_hyperlink("Sheet1", "C5", "https://example.com/c", "External")
        wb.merge_cell("Sheet1", "A1", "B1")
        wb.merge_cell("Sheet1", "A2", "C2")

        wb.remove_col("Sheet1", "A")
        ws = wb.worksheet(SHEET1, for_update=False)
        # A1:B1 shrinks to a single cell and is dropped
        assert [m.ref for m in ws.merge_cells] == ["A2:B2"]
        assert [h.ref for h in ws.hyperlinks] == ["B5"]
        assert wb.get_cell_hyperlink("Sheet1", "B5") == "https://example.com/c"
        targets = [rel.target for rel in parse_relationships(wb.parts.load(SHEET1_RELS))]
        assert targets == ["https://example.com/c"]

        wb.remove_col("Sheet1", "A")
        ws = wb.worksheet(SHEET1, for_update=False)
        assert ws.merge_cells == []
        assert [h.ref for h in ws.hyperlinks] == ["A5"]
        assert wb.get_cell_value("Sheet1", "A1") == "3:1"

    def test_column_records(self):
        wb = Workbook.new()
        wb.set_col_width("Sheet1", "B", "D", 30)
        wb.set_col_visible("Sheet1", "F", False)
        wb.remove_col("Sheet1", "C")
        assert wb.get_col_width("Sheet1", "C") == 30
        assert wb.get_col_width("Sheet1", "D") != 30
        assert wb.get_col_visible("Sheet1", "E") is False
        wb.remove_col("Sheet1", "E")
        assert wb.get_col_visible("Sheet1", "E") is True

    def test_auto_filter_on_removed_column(self):
        wb = Workbook.new()
        wb.auto_filter("Sheet1", "B1", "B9")
        wb.remove_col("Sheet1", "B")
        assert wb.worksheet(SHEET1, for_update=False).auto_filter is None

    def test_errors(self):
        wb = Workbook.new()
        with pytest.raises(InvalidColumnNameError):
            wb.remove_col("Sheet1", "*")
        with pytest.raises(SheetNotExistError) as exc:
            wb.remove_col("SheetN", "B")
        assert str(exc.value) == "sheet SheetN is not exist"


class TestInsertRemoveRow:
    """insert_row and remove_row."""

    def test_insert_row(self):
        wb = Workbook.new()
        wb.set_cell_value("Sheet1", "B2", "x")
        wb.set_row_height("Sheet1", 2, 40)
        wb.merge_cell("Sheet1", "A2", "B3")
        wb.insert_row("Sheet1", 1)
        assert wb.get_cell_value("Sheet1", "B3") == "x"
        assert wb.get_row_height("Sheet1", 3) == 40
        ws = wb.worksheet(SHEET1, for_update=False)
        assert [m.ref for m in ws.merge_cells] == ["A3:B4"]

    def test_remove_row(self):
        wb = Workbook.new()
        wb.set_cell_value("Sheet1", "A1", "gone")
        wb.set_cell_value("Sheet1", "A3", "moved")
        wb.set_cell_hyperlink("Sheet1", "A1", "Sheet1!A3", "Location")
        wb.remove_row("Sheet1", 1)
        assert wb.get_rows("Sheet1") == [[], ["moved"]]
        assert wb.worksheet(SHEET1, for_update=False).hyperlinks == []

    def test_past_last_row(self):
        wb = Workbook.new()
        wb.set_row_height("Sheet1", 1048576, 20)
        with pytest.raises(InvalidRowNumberError):
            wb.insert_row("Sheet1", 2)

    def test_errors(self):
        wb = Workbook.new()
        with pytest.raises(InvalidRowNumberError) as exc:
            wb.remove_row("Sheet1", 0)
        assert str(exc.value) == "invalid row number 0"
        with pytest.raises(SheetNotExistError):
            wb.insert_row("SheetN", 1)


class TestRangeLists:
    """Conditional formats, data validations and the calculation chain."""

    def _workbook(self):
        wb = Workbook.new()
        wb.parts.store(SHEET1, RANGE_LIST_SHEET.encode("utf-8"))
        wb.discard_worksheet(SHEET1)
        return wb

    def _body(self, wb):
        wb.flush()
        return wb.parts.load(SHEET1).decode("utf-8")

    def test_insert_col(self):
        wb = self._workbook()
        wb.insert_col("Sheet1", "A")
        body = self._body(wb)
        assert wb.get_cell_value("Sheet1", "C2") == "5"
        assert 'sqref="C2 E4:F5"' in body
        assert 'sqref="B1:B9"' in body
        assert 'sqref="B1"' in body
        assert 'sqref="C2:C9"' in body
        assert 'count="2"' in body

    def test_remove_col(self):
        wb = self._workbook()
        wb.remove_col("Sheet1", "A")
        body = self._body(wb)
        assert 'sqref="A2 C4:D5"' in body
        assert body.count("<conditionalFormatting") == 1
        assert 'sqref="A2:A9"' in body
        assert 'sqref="A1"' not in body
        assert '<dataValidations count="1">' in body

    def test_remove_row(self):
        wb = self._workbook()
        wb.remove_row("Sheet1", 2)
        body = self._body(wb)
        assert 'sqref="D3:E4"' in body
        assert 'sqref="A1:A8"' in body
        assert 'sqref="A1"' in body
        assert 'sqref="B2:B8"' in body

    def test_all_validations_removed(self):
        wb = Workbook.new()
        wb.parts.store(SHEET1, (
            f'<worksheet xmlns="{MAIN_NS}"><sheetData/>'
            '<dataValidations count="1"><dataValidation type="whole" sqref="C1:C5"/></dataValidations>'
            '</worksheet>'
        ).encode("utf-8"))
        wb.discard_worksheet(SHEET1)
        wb.remove_col("Sheet1", "C")
        assert "dataValidation" not in self._body(wb)

    def test_calc_chain_is_dropped(self):
        wb = Workbook.new()
        rels = parse_relationships(wb.parts.load(WORKBOOK_RELS_PART))
        rels.append(Relationship(id="rId9", type=REL_CALC_CHAIN, target="calcChain.xml"))
        wb.parts.store(WORKBOOK_RELS_PART, serialize_relationships(rels))
        wb.parts.store(CALC_CHAIN_PART, f'<calcChain xmlns="{MAIN_NS}"><c r="B2" i="1"/></calcChain>'.encode("utf-8"))
        add_content_type_override(
            wb.parts, CALC_CHAIN_PART,
            "application/vnd.openxmlformats-officedocument.spreadsheetml.calcChain+xml",
        )

        wb.insert_row("Sheet1", 1)
        assert CALC_CHAIN_PART not in wb.parts
        assert all(rel.type != REL_CALC_CHAIN for rel in parse_relationships(wb.parts.load(WORKBOOK_RELS_PART)))
        assert b"calcChain" not in wb.parts.load(CONTENT_TYPES_PART)
        reopened = Workbook.open(wb.write_to_bytes())
        assert reopened.sheet_names == ["Sheet1"]
