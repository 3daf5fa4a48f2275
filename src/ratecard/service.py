"""
RateImportService - Main interface for workbook imports.

Runs every sheet of a vendor workbook through classification, extraction and
structure validation, and returns one SheetImportResult per sheet in workbook
order.

Usage:
    service = RateImportService(history=channel_has_history, baseline_store=store)
    results = await service.import_workbook(read_workbook(Path("vendor.xlsx")))
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable, Union

from ratecard.config import AppConfig
from ratecard.detector import BLACKLIST_PATTERNS, SheetClassifier
from ratecard.data_loader import read_workbook
from ratecard.models import DetectionResult, Sheet, SheetImportResult, SheetType, Workbook
from ratecard.parsers.directory import find_directory_sheet, parse_directory
from ratecard.parsers.rate_table import ExtractionResult, extract_rates
from ratecard.structure import (
    BaselineStore,
    InMemoryBaselineStore,
    JsonFileBaselineStore,
    StructureValidator,
    compute_signature,
    signature_from_brackets,
)


logger = logging.getLogger(__name__)

HistoryLookup = Callable[[str], Union[bool, Awaitable[bool]]]

# The first blacklist patterns name surcharge sheets (附加费 / 偏远 / 燃油).
_SURCHARGE_PATTERNS = BLACKLIST_PATTERNS[:3]


def _no_history(channel_code: str) -> bool:
    return False


def default_baseline_store(config: AppConfig) -> BaselineStore:
    if config.storage.baseline_path is not None:
        return JsonFileBaselineStore(config.storage.baseline_path)
    return InMemoryBaselineStore()


class RateImportService:
    """
    Imports vendor workbooks sheet by sheet.

    Handles:
    - Directory sheet cross-reference (sheet name -> channel code)
    - Per-sheet classification and rate extraction
    - Structure signature comparison for channels with prior versions

    The history lookup may be a plain function or a coroutine function. It is
    awaited once per sheet with a channel code, in sheet order.
    """

    def __init__(
        self,
        history: HistoryLookup | None = None,
        baseline_store: BaselineStore | None = None,
        config: AppConfig | None = None,
    ):
        self.config = config or AppConfig.default()
        self.history = history or _no_history
        self.baseline_store = baseline_store or default_baseline_store(self.config)
        self.validator = StructureValidator(self.baseline_store, tolerance=self.config.structure.minor_tolerance)

    async def _has_history(self, channel_code: str) -> bool:
        result = self.history(channel_code)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    def _sheet_type(self, sheet: Sheet, detection: DetectionResult, directory_name: str | None) -> SheetType:
        if sheet.name == directory_name:
            return "DIRECTORY"
        if detection.verdict in ("rate", "uncertain"):
            return "RATE_CARD"
        if any(p.search(sheet.name) for p in _SURCHARGE_PATTERNS):
            return "SURCHARGE"
        return "OTHER"

    def _extract(self, sheet: Sheet) -> ExtractionResult:
        cfg = self.config.extraction
        return extract_rates(
            sheet,
            default_currency=cfg.default_currency,
            header_scan_rows=cfg.header_scan_rows,
            max_data_rows=cfg.max_data_rows,
        )

    async def import_workbook(self, workbook: Workbook) -> list[SheetImportResult]:
        directory_sheet = find_directory_sheet(workbook)
        directory = parse_directory(directory_sheet)
        directory_name = directory_sheet.name if directory_sheet is not None else None
        classifier = SheetClassifier(config=self.config.detection, directory=directory)

        results: list[SheetImportResult] = []
        for sheet in workbook.sheets:
            try:
                detection = classifier.classify(sheet)
                extraction = ExtractionResult()
                signature = None
                if detection.verdict in ("rate", "uncertain"):
                    extraction = self._extract(sheet)
                    signature = compute_signature(sheet, self.config.structure.max_scan_rows)
                    if not signature.brackets:
                        signature = signature_from_brackets(
                            (i.weight_from or 0.0, i.weight_to)
                            for i in extraction.items
                            if i.weight_to is not None
                        )
            except Exception as e:
                logger.warning("Sheet %r failed, marked skipped: %s", sheet.name, e, exc_info=True)
                results.append(
                    SheetImportResult(
                        sheet_name=sheet.name,
                        sheet_type="OTHER",
                        detection=DetectionResult(
                            verdict="skipped",
                            reason_log=(f"processing error: {e}",),
                            detector="error",
                        ),
                    )
                )
                continue

            change = None
            change_message = None
            code = detection.channel_code
            if code and signature is not None:
                try:
                    has_history = await self._has_history(code)
                    change = self.validator.check(code, signature, has_history)
                except Exception as e:
                    logger.warning("Structure check for %s failed on sheet %r: %s", code, sheet.name, e, exc_info=True)
                    change_message = f"structure check failed: {e}"
                if change is not None:
                    change_message = change.message

            results.append(
                SheetImportResult(
                    sheet_name=sheet.name,
                    sheet_type=self._sheet_type(sheet, detection, directory_name),
                    detection=detection,
                    channel_code=code,
                    structure_change_level=change.level if change else None,
                    structure_change_message=change_message,
                    signature=signature,
                    items=extraction.items,
                    notes=extraction.notes,
                )
            )

        logger.info(
            "Workbook %s: %d sheets, %d rate cards",
            workbook.source, len(results), sum(1 for r in results if r.sheet_type == "RATE_CARD"),
        )
        return results

    async def import_file(self, source: Path | str | bytes, name: str | None = None) -> list[SheetImportResult]:
        return await self.import_workbook(read_workbook(source, name=name))

    def import_workbook_sync(self, workbook: Workbook) -> list[SheetImportResult]:
        return asyncio.run(self.import_workbook(workbook))
