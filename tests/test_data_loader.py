"""Reading .xlsx workbooks into cell grids."""
from datetime import datetime

import pytest

from ratecard.data_loader import read_workbook, to_cell
from ratecard.errors import WorkbookReadError
from ratecard.models import EMPTY, NumberCell, TextCell


def test_to_cell_maps_raw_values():
    assert to_cell(None) is EMPTY
    assert to_cell("") is EMPTY
    assert to_cell(float("nan")) is EMPTY
    assert to_cell(12) == NumberCell(12.0)
    assert to_cell(" 美国 ") == TextCell(" 美国 ")
    assert to_cell(datetime(2024, 3, 1, 8, 30)) == TextCell("2024-03-01")


def test_read_workbook_from_path(tmp_path, xlsx_bytes, dated_rows):
    path = tmp_path / "vendor.xlsx"
    path.write_bytes(xlsx_bytes({"YE123": dated_rows, "说明": [["仅供参考"]]}))

    workbook = read_workbook(path)
    assert workbook.source == str(path)
    assert workbook.sheet_names == ["YE123", "说明"]

    sheet = workbook.sheets[0]
    assert sheet.cell(0, 1) == TextCell("2024-03-01")
    assert sheet.text(1, 0) == "国家"
    assert sheet.cell(2, 2) == NumberCell(50.0)
    assert sheet.text(2, 1) == "0-0.5"


def test_read_workbook_from_bytes(xlsx_bytes, rate_rows):
    workbook = read_workbook(xlsx_bytes({"Sheet1": rate_rows}))
    assert workbook.source == "<upload>"
    assert workbook.sheets[0].row_count == 4

    named = read_workbook(xlsx_bytes({"Sheet1": rate_rows}), name="vendor.xlsx")
    assert named.source == "vendor.xlsx"


def test_unreadable_input_raises_workbook_read_error(tmp_path):
    with pytest.raises(WorkbookReadError):
        read_workbook(b"this is not a zip archive")
    with pytest.raises(WorkbookReadError):
        read_workbook(tmp_path / "missing.xlsx")
