"""
Data models for the rate card pipeline.

These dataclasses define the structure of data flowing through each step:
workbook cells -> detection verdict -> extracted rate items -> structure
signature, plus the channel rule sets consumed by the weight evaluator.
Using frozen dataclasses so results are immutable once produced.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Literal, Union

from ratecard.errors import RuleSetError


# ============================================================================
# CELLS & SHEETS
# ============================================================================

@dataclass(frozen=True)
class EmptyCell:
    pass


@dataclass(frozen=True)
class TextCell:
    value: str


@dataclass(frozen=True)
class NumberCell:
    value: float


Cell = Union[EmptyCell, TextCell, NumberCell]

EMPTY = EmptyCell()


def cell_text(cell: Cell) -> str:
    """Render a cell as text. Integral numbers drop the trailing ".0"."""
    if isinstance(cell, TextCell):
        return cell.value
    if isinstance(cell, NumberCell):
        value = cell.value
        if math.isfinite(value) and value == int(value):
            return str(int(value))
        return repr(value)
    return ""


def make_cell(value: object) -> Cell:
    """Build a cell from a loosely typed python value (str/int/float/None)."""
    if value is None:
        return EMPTY
    if isinstance(value, (EmptyCell, TextCell, NumberCell)):
        return value
    if isinstance(value, bool):
        return TextCell(str(value))
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return EMPTY
        return NumberCell(float(value))
    text = str(value)
    if not text.strip():
        return EMPTY
    return TextCell(text)


@dataclass(frozen=True)
class Sheet:
    """
    One worksheet as a row-major grid.

    Accessors are bounds-checked: reading outside the grid yields EMPTY
    rather than raising, so positional heuristics can probe neighbours freely.
    """
    name: str
    rows: tuple[tuple[Cell, ...], ...] = ()

    @classmethod
    def from_values(cls, name: str, values: list[list[object]]) -> Sheet:
        return cls(name=name, rows=tuple(tuple(make_cell(v) for v in row) for row in values))

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    def cell(self, row: int, col: int) -> Cell:
        if row < 0 or col < 0 or row >= len(self.rows):
            return EMPTY
        cells = self.rows[row]
        if col >= len(cells):
            return EMPTY
        return cells[col]

    def text(self, row: int, col: int) -> str:
        return cell_text(self.cell(row, col)).strip()

    def row_texts(self, row: int) -> list[str]:
        if row < 0 or row >= len(self.rows):
            return []
        return [cell_text(c).strip() for c in self.rows[row]]

    def is_blank_row(self, row: int) -> bool:
        return not any(self.row_texts(row))

    def forward_fill(self, rows: int = 5) -> Sheet:
        """
        Fill empty cells in the first `rows` rows with the nearest non-empty
        value to their left, compensating for merged header cells.
        """
        filled: list[tuple[Cell, ...]] = []
        for idx, cells in enumerate(self.rows):
            if idx >= rows:
                filled.append(cells)
                continue
            last: Cell = EMPTY
            out: list[Cell] = []
            for c in cells:
                if isinstance(c, EmptyCell):
                    out.append(last)
                else:
                    out.append(c)
                    last = c
            filled.append(tuple(out))
        return Sheet(name=self.name, rows=tuple(filled))


@dataclass(frozen=True)
class Workbook:
    source: str
    sheets: tuple[Sheet, ...] = ()

    @property
    def sheet_names(self) -> list[str]:
        return [s.name for s in self.sheets]


# ============================================================================
# DETECTION
# ============================================================================

Verdict = Literal["rate", "uncertain", "skipped"]


@dataclass(frozen=True)
class DetectionResult:
    """
    Classifier verdict for one sheet.

    `rate` sheets are extracted automatically, `uncertain` sheets are extracted
    but need manual confirmation, `skipped` sheets are not rate cards.
    """
    verdict: Verdict
    score: int = 0
    confidence: int = 0
    channel_code: str | None = None
    effective_date: str | None = None
    reason_log: tuple[str, ...] = ()
    detector: str = ""

    @property
    def is_authoritative(self) -> bool:
        return self.verdict != "uncertain"


# ============================================================================
# RATE ITEMS
# ============================================================================

@dataclass(frozen=True)
class WeightRange:
    weight_from: float
    weight_to: float
    weight_raw: str


@dataclass(frozen=True)
class RateItem:
    """One normalized price line of a rate card."""
    country: str
    country_raw: str
    zone: str = ""
    zone_raw: str = ""
    eta_text: str = ""
    eta_min_days: int | None = None
    weight_from: float | None = None
    weight_to: float | None = None
    weight_raw: str = ""
    min_chargeable_weight: float | None = None
    price: float | None = None
    register_fee: float | None = None
    rounding_step: float | None = None
    currency: str = "CNY"
    row_index: int | None = None

    @property
    def identity(self) -> tuple[str, str, float | None, float | None]:
        return (self.country, self.zone, self.weight_from, self.weight_to)


# ============================================================================
# STRUCTURE SIGNATURE
# ============================================================================

StructureChangeLevel = Literal["NONE", "MINOR", "MAJOR"]


@dataclass(frozen=True, order=True)
class WeightBracket:
    lower: float
    upper: float

    @classmethod
    def of(cls, lower: float, upper: float) -> WeightBracket:
        lo, hi = round(float(lower), 3), round(float(upper), 3)
        if hi < lo:
            lo, hi = hi, lo
        return cls(lower=max(lo, 0.0), upper=max(hi, 0.0))


@dataclass(frozen=True)
class StructureSignature:
    hash: str
    brackets: tuple[WeightBracket, ...] = ()

    def to_dict(self) -> dict:
        return {"hash": self.hash, "brackets": [[b.lower, b.upper] for b in self.brackets]}

    @classmethod
    def from_dict(cls, data: dict) -> StructureSignature:
        brackets = tuple(WeightBracket.of(lo, hi) for lo, hi in data.get("brackets", []))
        return cls(hash=str(data.get("hash", "")), brackets=brackets)


@dataclass(frozen=True)
class StructureChange:
    level: StructureChangeLevel
    message: str
    max_shift: float | None = None


# ============================================================================
# WORKBOOK IMPORT OUTPUT
# ============================================================================

SheetType = Literal["RATE_CARD", "DIRECTORY", "SURCHARGE", "OTHER"]


@dataclass(frozen=True)
class SheetImportResult:
    sheet_name: str
    sheet_type: SheetType
    detection: DetectionResult
    channel_code: str | None = None
    structure_change_level: StructureChangeLevel | None = None
    structure_change_message: str | None = None
    signature: StructureSignature | None = None
    items: tuple[RateItem, ...] = ()
    notes: str = ""


# ============================================================================
# CHANNEL RULE SETS
# ============================================================================

def _require_positive(name: str, value: float) -> None:
    if value is None or not math.isfinite(value) or value <= 0:
        raise RuleSetError(f"{name} must be a positive number, got {value!r}")


@dataclass(frozen=True)
class SimpleRuleSet:
    divisor: float = 5000.0

    def __post_init__(self) -> None:
        _require_positive("divisor", self.divisor)


@dataclass(frozen=True)
class ConditionalRule:
    """
    Applies when actual weight <= weight_max.

    volume_ratio = volume / base_divisor / actual_weight; above the threshold the
    volumetric weight uses exceeds_divisor, otherwise the parcel is billed at
    actual weight (or via not_exceeds_divisor when one is configured).
    """
    weight_max: float
    base_divisor: float = 6000.0
    volume_ratio_threshold: float = 2.0
    exceeds_divisor: float = 8000.0
    not_exceeds_divisor: float | None = None

    def __post_init__(self) -> None:
        _require_positive("weight_max", self.weight_max)
        _require_positive("base_divisor", self.base_divisor)
        _require_positive("volume_ratio_threshold", self.volume_ratio_threshold)
        _require_positive("exceeds_divisor", self.exceeds_divisor)
        if self.not_exceeds_divisor is not None:
            _require_positive("not_exceeds_divisor", self.not_exceeds_divisor)


@dataclass(frozen=True)
class ConditionalRuleSet:
    rules: tuple[ConditionalRule, ...]
    default_divisor: float = 5000.0

    def __post_init__(self) -> None:
        if not self.rules:
            raise RuleSetError("conditional rule set needs at least one rule")
        _require_positive("default_divisor", self.default_divisor)
        previous = None
        for idx, rule in enumerate(self.rules):
            if previous is not None and rule.weight_max <= previous:
                raise RuleSetError(
                    f"rule {idx + 1}: weight_max {rule.weight_max} must be greater than "
                    f"the previous rule's {previous} (rules are matched in ascending order)"
                )
            previous = rule.weight_max


ChannelRuleSet = Union[SimpleRuleSet, ConditionalRuleSet]


@dataclass(frozen=True)
class ChannelLimits:
    max_length: float | None = None
    max_width: float | None = None
    max_height: float | None = None
    max_weight: float | None = None
    max_single_side: float | None = None
    notes: str | None = None


# ============================================================================
# WEIGHT CALCULATION
# ============================================================================

@dataclass(frozen=True)
class CalculationResult:
    actual_weight: float
    volumetric_weight: float
    chargeable_weight: float
    derivation_text: str
    rule_applied: str | None = None
    volume_ratio: float | None = None
    used_default_rule: bool = False
    note: str | None = None
    limit_violations: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return True


CalculationErrorCode = Literal["missing_input", "invalid_input"]


@dataclass(frozen=True)
class CalculationError:
    code: CalculationErrorCode
    message: str
    fields: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return False


# ============================================================================
# RATE COMPARISON
# ============================================================================

@dataclass(frozen=True)
class RateDiff:
    country: str
    zone: str
    weight_from: float | None
    weight_to: float | None
    old_price: float
    new_price: float
    delta: float
    delta_pct: float | None


@dataclass(frozen=True)
class ChannelOffer:
    """A channel's current rate items, as input to cross-channel comparison."""
    channel_code: str
    items: tuple[RateItem, ...]
    channel_name: str = ""
    vendor_name: str = ""


@dataclass(frozen=True)
class RateComparison:
    channel_code: str
    channel_name: str
    vendor_name: str
    country: str
    matched_bracket: str
    billable_weight: float
    price: float
    register_fee: float
    total_price: float
    currency: str
    eta_text: str = ""
    eta_min_days: int | None = None
    is_best: bool = False
