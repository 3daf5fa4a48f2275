"""
Parser for the channel rule bulk import template.

One row per channel: volumetric divisor, dimension limits, and optionally one
conditional divisor rule. Rows are validated independently; a bad row is
reported by its spreadsheet row number and does not stop the rest.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging

from ratecard.errors import RuleSetError
from ratecard.models import ChannelLimits, ChannelRuleSet, ConditionalRule, ConditionalRuleSet, Sheet, SimpleRuleSet
from ratecard.normalize import clean_key, normalize_text, parse_number


logger = logging.getLogger(__name__)

TEMPLATE_COLUMNS: dict[str, tuple[str, ...]] = {
    "channel_code": ("渠道代码", "channel code", "code"),
    "divisor": ("泡比", "体积重系数", "volume weight divisor", "divisor"),
    "max_length": ("最大长度", "max length"),
    "max_width": ("最大宽度", "max width"),
    "max_height": ("最大高度", "max height"),
    "max_weight": ("最大重量", "max weight"),
    "max_single_side": ("单边最大", "最长边", "max single side", "max side"),
    "notes": ("备注", "notes", "remark"),
    "conditional_enabled": ("启用条件规则", "conditional rules", "enable conditional"),
    "cond_weight_max": ("条件-重量阈值", "重量阈值", "condition weight max", "weight max"),
    "cond_base_divisor": ("条件-基准泡比", "基准泡比", "condition base divisor", "base divisor"),
    "cond_ratio_threshold": ("条件-比率阈值", "比率阈值", "condition ratio threshold", "ratio threshold"),
    "cond_exceeds_divisor": ("条件-超出时泡比", "超出时泡比", "condition exceeds divisor", "exceeds divisor"),
}

# Checked before the generic names they contain ("条件-基准泡比" also contains "泡比").
_MATCH_ORDER = (
    "cond_weight_max", "cond_base_divisor", "cond_ratio_threshold", "cond_exceeds_divisor",
    "conditional_enabled", "max_single_side", "max_length", "max_width", "max_height", "max_weight",
    "channel_code", "divisor", "notes",
)

TRUTHY = {"是", "yes", "y", "true", "1", "启用", "on"}

DEFAULT_WEIGHT_MAX = 2.0
DEFAULT_BASE_DIVISOR = 6000.0
DEFAULT_RATIO_THRESHOLD = 2.0
DEFAULT_EXCEEDS_DIVISOR = 8000.0


@dataclass(frozen=True)
class ChannelRuleRow:
    row_number: int
    channel_code: str
    rule_set: ChannelRuleSet
    limits: ChannelLimits


@dataclass(frozen=True)
class ChannelRuleImport:
    rows: tuple[ChannelRuleRow, ...] = ()
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.errors


def _match_column(text: str) -> str | None:
    key = clean_key(text)
    if not key:
        return None
    for name in _MATCH_ORDER:
        for alias in TEMPLATE_COLUMNS[name]:
            if clean_key(alias) == key:
                return name
    for name in _MATCH_ORDER:
        for alias in TEMPLATE_COLUMNS[name]:
            alias_key = clean_key(alias)
            if len(alias_key) >= 2 and alias_key in key:
                return name
    return None


def _header(sheet: Sheet, scan_rows: int = 5) -> tuple[int, dict[str, int]] | None:
    for row in range(min(scan_rows, sheet.row_count)):
        columns: dict[str, int] = {}
        for col, text in enumerate(sheet.row_texts(row)):
            name = _match_column(text)
            if name and name not in columns:
                columns[name] = col
        if "channel_code" in columns:
            return row, columns
    return None


def _parse_row(sheet: Sheet, row: int, columns: dict[str, int]) -> tuple[ChannelRuleSet, ChannelLimits]:
    def text(name: str) -> str:
        return sheet.text(row, columns[name]) if name in columns else ""

    def number(name: str, default: float | None = None) -> float | None:
        raw = text(name)
        if not raw:
            return default
        value = parse_number(raw)
        if value is None:
            raise RuleSetError(f"{name} is not a number: {raw!r}")
        return value

    divisor = number("divisor", 5000.0)
    if normalize_text(text("conditional_enabled")).casefold() in TRUTHY:
        rule = ConditionalRule(
            weight_max=number("cond_weight_max", DEFAULT_WEIGHT_MAX),
            base_divisor=number("cond_base_divisor", DEFAULT_BASE_DIVISOR),
            volume_ratio_threshold=number("cond_ratio_threshold", DEFAULT_RATIO_THRESHOLD),
            exceeds_divisor=number("cond_exceeds_divisor", DEFAULT_EXCEEDS_DIVISOR),
        )
        rule_set: ChannelRuleSet = ConditionalRuleSet(rules=(rule,), default_divisor=divisor)
    else:
        rule_set = SimpleRuleSet(divisor=divisor)

    limits = ChannelLimits(
        max_length=number("max_length"),
        max_width=number("max_width"),
        max_height=number("max_height"),
        max_weight=number("max_weight"),
        max_single_side=number("max_single_side"),
        notes=text("notes") or None,
    )
    return rule_set, limits


def parse_channel_rules(sheet: Sheet, known_codes: set[str] | None = None) -> ChannelRuleImport:
    header = _header(sheet)
    if header is None:
        return ChannelRuleImport(errors=("no header row with a channel code column found",))
    header_row, columns = header

    rows: list[ChannelRuleRow] = []
    errors: list[str] = []
    for row in range(header_row + 1, sheet.row_count):
        if sheet.is_blank_row(row):
            continue
        row_number = row + 1
        code = normalize_text(sheet.text(row, columns["channel_code"])).upper()
        if not code:
            errors.append(f"row {row_number}: missing channel code")
            continue
        if known_codes is not None and code not in known_codes:
            errors.append(f"row {row_number}: unknown channel code {code}")
            continue
        try:
            rule_set, limits = _parse_row(sheet, row, columns)
        except RuleSetError as e:
            errors.append(f"row {row_number}: invalid rule set: {e}")
            continue
        rows.append(ChannelRuleRow(row_number=row_number, channel_code=code, rule_set=rule_set, limits=limits))

    logger.info("Channel rule import: %d rows, %d errors", len(rows), len(errors))
    return ChannelRuleImport(rows=tuple(rows), errors=tuple(errors))
