from __future__ import annotations

from datetime import date, datetime, time
import io
import logging
import math
from pathlib import Path
import zipfile

from openpyxl.utils.exceptions import InvalidFileException
import pandas as pd

from ratecard.errors import WorkbookReadError
from ratecard.models import Cell, EMPTY, Sheet, TextCell, Workbook, make_cell


logger = logging.getLogger(__name__)

_READ_ERRORS = (OSError, ValueError, KeyError, zipfile.BadZipFile, InvalidFileException)


def to_cell(value: object) -> Cell:
    """Map a raw pandas/openpyxl value onto the cell union."""
    if value is None:
        return EMPTY
    if isinstance(value, (datetime, date)):
        if pd.isna(value):
            return EMPTY
        return TextCell(value.strftime("%Y-%m-%d"))
    if isinstance(value, time):
        return TextCell(value.isoformat())
    if isinstance(value, (bool, str)):
        return make_cell(value)
    if pd.api.types.is_number(value):
        number = float(value)
        return EMPTY if math.isnan(number) else make_cell(number)
    return make_cell(str(value))


def frame_to_sheet(name: str, df: pd.DataFrame) -> Sheet:
    rows = tuple(tuple(to_cell(v) for v in record) for record in df.itertuples(index=False, name=None))
    return Sheet(name=str(name), rows=rows)


def _open(source: Path | str | bytes) -> pd.ExcelFile:
    target = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else Path(source)
    try:
        return pd.ExcelFile(target, engine="openpyxl")
    except _READ_ERRORS as e:
        raise WorkbookReadError(f"Cannot open workbook: {e}") from e


def read_workbook(source: Path | str | bytes, name: str | None = None) -> Workbook:
    """Read every sheet of an .xlsx file (path or raw bytes) as raw cell grids."""
    label = name or (str(source) if not isinstance(source, (bytes, bytearray)) else "<upload>")
    xl = _open(source)
    sheets = []
    with xl:
        for sheet_name in xl.sheet_names:
            try:
                df = pd.read_excel(xl, sheet_name=sheet_name, header=None, dtype=object, keep_default_na=False)
            except _READ_ERRORS as e:
                raise WorkbookReadError(f"Cannot read sheet {sheet_name!r} of {label}: {e}") from e
            sheets.append(frame_to_sheet(sheet_name, df))
    logger.info("Read workbook %s: %d sheets", label, len(sheets))
    return Workbook(source=label, sheets=tuple(sheets))
