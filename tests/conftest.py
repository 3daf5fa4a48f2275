from __future__ import annotations

from datetime import datetime
import io

from openpyxl import Workbook as XlsxWorkbook
import pytest

from ratecard.models import Sheet, Workbook


RATE_ROWS = [
    ["国家", "重量(KG)", "价格", "挂号费"],
    ["美国", "0-0.5", 50, 15],
    ["美国", "0.5-1", 45, 15],
    ["英国", "0-0.5", 40, 12],
]

DIRECTORY_ROWS = [
    ["产品名称", "渠道代码"],
    ["美国专线", "YE001"],
    ["英国专线", "YE002"],
]


@pytest.fixture
def make_sheet():
    def make(name: str, rows: list[list[object]]) -> Sheet:
        return Sheet.from_values(name, rows)
    return make


@pytest.fixture
def rate_rows() -> list[list[object]]:
    return [list(r) for r in RATE_ROWS]


@pytest.fixture
def vendor_workbook(make_sheet, rate_rows) -> Workbook:
    return Workbook(
        source="vendor.xlsx",
        sheets=(
            make_sheet("目录", DIRECTORY_ROWS),
            make_sheet("YE123", rate_rows),
            make_sheet("美国专线", rate_rows),
            make_sheet("偏远附加费", [["邮编", "附加费"], ["99501", 20]]),
        ),
    )


@pytest.fixture
def xlsx_bytes():
    """Build a real .xlsx file in memory from {sheet name: rows}."""
    def build(sheets: dict[str, list[list[object]]]) -> bytes:
        wb = XlsxWorkbook()
        wb.remove(wb.active)
        for name, rows in sheets.items():
            ws = wb.create_sheet(title=name)
            for row in rows:
                ws.append(row)
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()
    return build


@pytest.fixture
def dated_rows(rate_rows) -> list[list[object]]:
    return [["生效日期", datetime(2024, 3, 1)], *rate_rows]
