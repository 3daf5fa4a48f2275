"""
Classify worksheets as rate cards.

Each sheet is run through an ordered list of detector strategies:
- Name blacklist: surcharge / appendix / directory sheets -> skipped
- Vendor whitelist: "<vendor><product type>" sheet names -> rate
- Pure code name: the sheet is named after its channel code -> rate
- Header code: a "渠道代码: XX123" label near the top -> rate
- Column headers: a recognizable price table header row -> uncertain

The first authoritative (non-uncertain) result wins. A whitelisted sheet name
carries no code, so its header area is still searched for one. When no
strategy gives a channel code, the workbook's directory sheet is consulted as
a fallback.

Usage:
    from ratecard.detector import SheetClassifier

    classifier = SheetClassifier(directory=parse_directory(find_directory_sheet(wb)))
    result = classifier.classify(sheet)
"""
from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import re
from typing import Protocol

from ratecard.columns import has_key_columns, map_header_row
from ratecard.config import DetectionConfig
from ratecard.models import DetectionResult, Sheet
from ratecard.normalize import normalize_text, parse_date
from ratecard.parsers.directory import ChannelDirectory


logger = logging.getLogger(__name__)

FORWARD_FILL_ROWS = 5

CHANNEL_CODE_RE = re.compile(r"^[A-Z]{2}[A-Z0-9]+$")
MIN_CODE_LENGTH = 4

BLACKLIST_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"附加费|附加|杂费|surcharge",
        r"偏远|remote",
        r"燃油|fuel",
        r"附录|附表|appendix",
        r"目录|索引|index|directory|contents|catalog",
        r"说明|须知|注意事项|公告|通知|notice|readme|instructions?|terms",
        r"禁运|违禁|prohibited",
        r"邮编|postcode|zip\s*code",
    )
]

VENDOR_KEYWORDS = (
    "云途", "燕文", "递四方", "4px", "万邦", "顺友", "纵腾", "华翰", "三态", "联邮",
    "出口易", "邮政", "e邮宝", "中邮", "速卖通", "菜鸟", "yunexpress", "yanwen", "wanb",
    "sunyou", "sfc", "ubi", "cne",
)

PRODUCT_TYPE_KEYWORDS = (
    "挂号", "平邮", "专线", "小包", "大货", "普货", "带电", "快递", "特惠", "经济",
    "标准", "优先", "空派", "海派", "包税", "registered", "tracked", "standard",
    "economy", "express", "priority",
)

_CODE_LABEL = r"(?:运输代码|渠道代码|产品代码|渠道编码|产品编码|服务代码|channel\s*code|product\s*code|service\s*code|code)"
CODE_LABEL_RE = re.compile(rf"{_CODE_LABEL}\s*[:=]?\s*([A-Za-z0-9\-]*)", re.IGNORECASE)

EFFECTIVE_DATE_LABEL_RE = re.compile(
    r"生效日期|生效时间|执行日期|启用日期|effective\s*date|effective\s*from|valid\s*from",
    re.IGNORECASE,
)

# (row offset, col offset) probed for a value when the label cell has none.
NEIGHBOUR_OFFSETS = ((0, 1), (0, 2), (1, 0), (1, 1), (2, 0))


def is_channel_code(text: str) -> bool:
    candidate = normalize_text(text)
    return len(candidate) >= MIN_CODE_LENGTH and bool(CHANNEL_CODE_RE.match(candidate))


# ============================================================================
# CONTEXT & STRATEGY PROTOCOL
# ============================================================================

@dataclass(frozen=True)
class DetectionContext:
    """What a detector strategy gets to look at for one sheet."""
    sheet_name: str
    sheet: Sheet
    config: DetectionConfig
    effective_date: str | None = None


class Detector(Protocol):
    name: str

    def detect(self, ctx: DetectionContext) -> DetectionResult | None: ...


class NameBlacklistDetector:
    name = "name_blacklist"

    def detect(self, ctx: DetectionContext) -> DetectionResult | None:
        for pattern in BLACKLIST_PATTERNS:
            m = pattern.search(ctx.sheet_name)
            if m:
                return DetectionResult(
                    verdict="skipped",
                    score=0,
                    confidence=100,
                    effective_date=ctx.effective_date,
                    reason_log=(f"sheet name matches blacklist keyword '{m.group(0)}'",),
                    detector=self.name,
                )
        return None


class VendorWhitelistDetector:
    name = "vendor_whitelist"

    def detect(self, ctx: DetectionContext) -> DetectionResult | None:
        lowered = normalize_text(ctx.sheet_name).casefold()
        vendor = next((k for k in VENDOR_KEYWORDS if k in lowered), None)
        if vendor is None:
            return None
        product = next((k for k in PRODUCT_TYPE_KEYWORDS if k in lowered), None)
        if product is None:
            return None
        return DetectionResult(
            verdict="rate",
            score=100,
            confidence=100,
            effective_date=ctx.effective_date,
            reason_log=(f"sheet name has vendor '{vendor}' and product type '{product}'",),
            detector=self.name,
        )


class PureCodeNameDetector:
    name = "pure_code_name"

    def detect(self, ctx: DetectionContext) -> DetectionResult | None:
        code = normalize_text(ctx.sheet_name)
        if not is_channel_code(code):
            return None
        return DetectionResult(
            verdict="rate",
            score=100,
            confidence=95,
            channel_code=code,
            effective_date=ctx.effective_date,
            reason_log=(f"sheet name '{code}' is a channel code",),
            detector=self.name,
        )


def find_header_code(sheet: Sheet, max_rows: int, max_cols: int) -> tuple[str, int, int] | None:
    """Locate a channel code label and its value in the header area."""
    for row in range(min(max_rows, sheet.row_count)):
        for col in range(max_cols):
            text = normalize_text(sheet.text(row, col))
            if not text:
                continue
            m = CODE_LABEL_RE.search(text)
            if not m:
                continue
            inline = m.group(1).strip("-")
            if inline and is_channel_code(inline):
                return inline, row, col
            # Bare label: "code" alone is too generic unless it is the whole cell.
            if inline or (m.group(0).strip().casefold().startswith("code") and len(text) > 6):
                continue
            for dr, dc in NEIGHBOUR_OFFSETS:
                value = normalize_text(sheet.text(row + dr, col + dc))
                if is_channel_code(value):
                    return value, row + dr, col + dc
    return None


class HeaderCodeDetector:
    name = "header_code"

    def detect(self, ctx: DetectionContext) -> DetectionResult | None:
        found = find_header_code(ctx.sheet, ctx.config.header_scan_rows, ctx.config.header_scan_cols)
        if found is None:
            return None
        code, row, col = found
        score, confidence = 50, 70
        reasons = [f"channel code '{code}' found at row {row + 1}, column {col + 1}"]
        if ctx.effective_date:
            score += 10
            confidence += 15
            reasons.append(f"effective date {ctx.effective_date}")
        if len(code) >= 6:
            score += 10
            confidence += 10
            reasons.append("code length >= 6")
        return DetectionResult(
            verdict="rate",
            score=score,
            confidence=min(confidence, 100),
            channel_code=code,
            effective_date=ctx.effective_date,
            reason_log=tuple(reasons),
            detector=self.name,
        )


class ColumnHeaderDetector:
    name = "column_header"

    def detect(self, ctx: DetectionContext) -> DetectionResult | None:
        best_row, best_map = None, {}
        for row in range(min(ctx.config.header_scan_rows, ctx.sheet.row_count)):
            column_map = map_header_row(ctx.sheet, row)
            if len(column_map) > len(best_map):
                best_row, best_map = row, column_map
        matches = len(best_map)
        if best_row is None or matches < ctx.config.min_column_matches:
            return None
        if not has_key_columns(best_map):
            logger.debug("Sheet %r: %d header matches but key columns missing", ctx.sheet_name, matches)
            return None
        return DetectionResult(
            verdict="uncertain",
            score=min(30, 5 * matches),
            confidence=min(70, 30 + 8 * (matches - 3)),
            effective_date=ctx.effective_date,
            reason_log=(f"row {best_row + 1} has {matches} rate table columns: {', '.join(sorted(best_map))}",),
            detector=self.name,
        )


DEFAULT_DETECTORS: tuple[Detector, ...] = (
    NameBlacklistDetector(),
    VendorWhitelistDetector(),
    PureCodeNameDetector(),
    HeaderCodeDetector(),
    ColumnHeaderDetector(),
)


# ============================================================================
# EFFECTIVE DATE
# ============================================================================

def find_effective_date(sheet: Sheet, sheet_name: str, max_rows: int = 15, max_cols: int = 10) -> str | None:
    for row in range(min(max_rows, sheet.row_count)):
        for col in range(max_cols):
            text = normalize_text(sheet.text(row, col))
            if not text or not EFFECTIVE_DATE_LABEL_RE.search(text):
                continue
            date = parse_date(text)
            if date:
                return date
            for dr, dc in NEIGHBOUR_OFFSETS:
                date = parse_date(sheet.text(row + dr, col + dc))
                if date:
                    return date
    return parse_date(sheet_name)


# ============================================================================
# CLASSIFIER
# ============================================================================

class SheetClassifier:
    """Folds a sheet over the detector strategies, then applies the directory fallback."""

    def __init__(
        self,
        config: DetectionConfig | None = None,
        directory: ChannelDirectory | None = None,
        detectors: tuple[Detector, ...] = DEFAULT_DETECTORS,
    ):
        self.config = config or DetectionConfig()
        self.directory = directory or ChannelDirectory()
        self.detectors = detectors

    def classify(self, sheet: Sheet) -> DetectionResult:
        filled = sheet.forward_fill(FORWARD_FILL_ROWS)
        ctx = DetectionContext(
            sheet_name=sheet.name,
            sheet=filled,
            config=self.config,
            effective_date=find_effective_date(
                filled, sheet.name, self.config.header_scan_rows, self.config.header_scan_cols
            ),
        )

        result = self._fold(ctx)
        if result.channel_code is None and result.detector == VendorWhitelistDetector.name:
            result = self._header_code_fill(ctx, result)
        if result.channel_code is None and result.detector != NameBlacklistDetector.name:
            result = self._directory_fallback(sheet.name, result)

        logger.info(
            "Sheet %r: %s (score=%d, confidence=%d, code=%s, via %s)",
            sheet.name, result.verdict, result.score, result.confidence, result.channel_code, result.detector,
        )
        return result

    def _fold(self, ctx: DetectionContext) -> DetectionResult:
        first_uncertain = None
        for detector in self.detectors:
            result = detector.detect(ctx)
            if result is None:
                continue
            if result.is_authoritative:
                return result
            if first_uncertain is None:
                first_uncertain = result

        if first_uncertain is not None:
            return first_uncertain
        return DetectionResult(
            verdict=self.config.unmatched_verdict,
            score=0,
            confidence=0,
            effective_date=ctx.effective_date,
            reason_log=("no channel/transport code found",),
            detector="unmatched",
        )

    def _header_code_fill(self, ctx: DetectionContext, result: DetectionResult) -> DetectionResult:
        """A whitelisted sheet keeps its verdict; the code comes from the header area."""
        found = find_header_code(ctx.sheet, self.config.header_scan_rows, self.config.header_scan_cols)
        if found is None:
            return result
        code, row, col = found
        return replace(
            result,
            channel_code=code,
            reason_log=result.reason_log + (f"channel code '{code}' found at row {row + 1}, column {col + 1}",),
        )

    def _directory_fallback(self, sheet_name: str, result: DetectionResult) -> DetectionResult:
        match = self.directory.lookup(sheet_name)
        if match is None:
            return result
        reason = f"directory {match.method} match '{match.product_name}' -> {match.code} (score {match.score})"
        confidence = result.confidence if result.detector == VendorWhitelistDetector.name else max(
            result.confidence, int(round(match.score * 90))
        )
        return replace(
            result,
            verdict="rate",
            score=100,
            confidence=confidence,
            channel_code=match.code,
            reason_log=result.reason_log + (reason,),
        )


def classify_sheet(
    sheet: Sheet,
    config: DetectionConfig | None = None,
    directory: ChannelDirectory | None = None,
) -> DetectionResult:
    return SheetClassifier(config=config, directory=directory).classify(sheet)
