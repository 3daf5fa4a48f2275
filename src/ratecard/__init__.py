"""
Rate card ingestion and chargeable weight engine.

Handles vendor rate card workbooks of varying layouts:
- Classifying each sheet (rate card, surcharge table, directory, other)
- Extracting normalized price lines from ad-hoc column layouts
- Detecting weight bracket structure changes between versions
- Computing chargeable weight from per-channel divisor rules

Usage:
    from ratecard import RateImportService, read_workbook

    service = RateImportService()
    results = service.import_workbook_sync(read_workbook(Path("vendor.xlsx")))
"""

from .data_loader import read_workbook
from .detector import SheetClassifier, classify_sheet
from .service import RateImportService
from .weight import evaluate

__all__ = ["RateImportService", "SheetClassifier", "classify_sheet", "evaluate", "read_workbook"]
