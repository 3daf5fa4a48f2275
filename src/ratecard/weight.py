"""
Chargeable weight evaluation.

Chargeable weight is the greater of actual weight and volumetric weight
(l × w × h / divisor). Channels either use one divisor, or a list of
conditional rules that switch divisor depending on how bulky the parcel is
relative to its weight.

Bad input never raises: `evaluate` returns a CalculationError instead, so API
and CLI callers can branch on `.ok`.

Usage:
    from ratecard.weight import evaluate
    from ratecard.models import SimpleRuleSet

    result = evaluate(30, 20, 10, 1.5, SimpleRuleSet(divisor=5000))
    print(result.chargeable_weight)  # 1.5
"""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Protocol

from ratecard.errors import RuleSetError
from ratecard.models import (
    CalculationError,
    CalculationResult,
    ChannelLimits,
    ChannelRuleSet,
    ConditionalRule,
    ConditionalRuleSet,
    SimpleRuleSet,
)
from ratecard.normalize import normalize_text


logger = logging.getLogger(__name__)

DEFAULT_DIVISOR = 5000.0
INPUT_FIELDS = ("length", "width", "height", "actual_weight")


def _r(value: float) -> float:
    return round(value, 3) if math.isfinite(value) else value


def _n(value: float) -> str:
    """Compact display: 30.0 -> "30", 1.25 -> "1.25", inf -> "inf"."""
    if not math.isfinite(value):
        return "inf"
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _w(value: float) -> str:
    return f"{value:.3f}kg"


# ============================================================================
# INPUT VALIDATION
# ============================================================================

def _coerce_inputs(values: dict[str, Any]) -> dict[str, float] | CalculationError:
    missing = []
    invalid = []
    parsed: dict[str, float] = {}
    for name, value in values.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
            continue
        if isinstance(value, bool):
            invalid.append(name)
            continue
        if isinstance(value, (int, float)):
            number = float(value)
        else:
            try:
                number = float(normalize_text(value))
            except ValueError:
                invalid.append(name)
                continue
        if not math.isfinite(number) or number < 0:
            invalid.append(name)
            continue
        parsed[name] = number

    if missing:
        return CalculationError(
            code="missing_input",
            message=f"missing required input: {', '.join(missing)}",
            fields=tuple(missing),
        )
    if invalid:
        return CalculationError(
            code="invalid_input",
            message=f"inputs must be non-negative numbers: {', '.join(invalid)}",
            fields=tuple(invalid),
        )
    return parsed


# ============================================================================
# LIMITS
# ============================================================================

def check_limits(length: float, width: float, height: float, actual_weight: float, limits: ChannelLimits | None) -> list[str]:
    if limits is None:
        return []
    violations = []
    for label, value, limit in (
        ("length", length, limits.max_length),
        ("width", width, limits.max_width),
        ("height", height, limits.max_height),
    ):
        if limit is not None and value > limit:
            violations.append(f"{label} {_n(value)}cm exceeds max {_n(limit)}cm")
    longest = max(length, width, height)
    if limits.max_single_side is not None and longest > limits.max_single_side:
        violations.append(f"longest side {_n(longest)}cm exceeds single side max {_n(limits.max_single_side)}cm")
    if limits.max_weight is not None and actual_weight > limits.max_weight:
        violations.append(f"actual weight {_n(actual_weight)}kg exceeds max {_n(limits.max_weight)}kg")
    return violations


# ============================================================================
# EVALUATION
# ============================================================================

def _simple(l: float, w: float, h: float, actual: float, divisor: float, header: str = "") -> CalculationResult:
    volumetric = l * w * h / divisor
    chargeable = max(actual, volumetric)
    derivation = (
        f"{header}"
        f"volumetric weight = ({_n(l)} × {_n(w)} × {_n(h)}) / {_n(divisor)} = {_w(volumetric)}\n"
        f"chargeable weight = max(actual {_w(actual)}, volumetric {_w(volumetric)}) = {_w(chargeable)}"
    )
    return CalculationResult(
        actual_weight=_r(actual),
        volumetric_weight=_r(volumetric),
        chargeable_weight=_r(chargeable),
        derivation_text=derivation,
        rule_applied=f"divisor /{_n(divisor)}",
    )


def _volume_ratio(volume: float, base_divisor: float, actual: float) -> float:
    if actual == 0:
        return math.inf if volume > 0 else 0.0
    return volume / base_divisor / actual


def _conditional(l: float, w: float, h: float, actual: float, rule_set: ConditionalRuleSet) -> CalculationResult:
    volume = l * w * h
    for idx, rule in enumerate(rule_set.rules, start=1):
        if actual > rule.weight_max:
            continue

        ratio = _volume_ratio(volume, rule.base_divisor, actual)
        lines = [
            f"rule {idx}: actual {_w(actual)} <= {_n(rule.weight_max)}kg",
            f"volume ratio = ({_n(l)} × {_n(w)} × {_n(h)}) / {_n(rule.base_divisor)} / {_n(actual)} = {_n(ratio)}",
        ]

        if ratio > rule.volume_ratio_threshold:
            volumetric = volume / rule.exceeds_divisor
            chargeable = max(actual, volumetric)
            lines += [
                f"volume ratio {_n(ratio)} > threshold {_n(rule.volume_ratio_threshold)}",
                f"volumetric weight = {_n(volume)} / {_n(rule.exceeds_divisor)} = {_w(volumetric)}",
                f"chargeable weight = max(actual {_w(actual)}, volumetric {_w(volumetric)}) = {_w(chargeable)}",
            ]
            applied = (
                f"rule {idx}: volume ratio exceeded threshold {_n(rule.volume_ratio_threshold)}, "
                f"divisor /{_n(rule.exceeds_divisor)}"
            )
            return CalculationResult(
                actual_weight=_r(actual),
                volumetric_weight=_r(volumetric),
                chargeable_weight=_r(chargeable),
                derivation_text="\n".join(lines),
                rule_applied=applied,
                volume_ratio=_r(ratio),
            )

        lines.append(f"volume ratio {_n(ratio)} <= threshold {_n(rule.volume_ratio_threshold)}")
        if rule.not_exceeds_divisor is not None:
            volumetric = volume / rule.not_exceeds_divisor
            chargeable = max(actual, volumetric)
            lines += [
                f"volumetric weight = {_n(volume)} / {_n(rule.not_exceeds_divisor)} = {_w(volumetric)}",
                f"chargeable weight = max(actual {_w(actual)}, volumetric {_w(volumetric)}) = {_w(chargeable)}",
            ]
            applied = (
                f"rule {idx}: volume ratio not exceeded (threshold {_n(rule.volume_ratio_threshold)}), "
                f"divisor /{_n(rule.not_exceeds_divisor)}"
            )
            return CalculationResult(
                actual_weight=_r(actual),
                volumetric_weight=_r(volumetric),
                chargeable_weight=_r(chargeable),
                derivation_text="\n".join(lines),
                rule_applied=applied,
                volume_ratio=_r(ratio),
            )

        # Billed at actual weight; volumetric is reported no higher than actual.
        base_volumetric = volume / rule.base_divisor
        lines += [
            f"volumetric weight = {_n(volume)} / {_n(rule.base_divisor)} = {_w(base_volumetric)} (not billed)",
            f"chargeable weight = actual {_w(actual)}",
        ]
        return CalculationResult(
            actual_weight=_r(actual),
            volumetric_weight=min(_r(base_volumetric), _r(actual)),
            chargeable_weight=_r(actual),
            derivation_text="\n".join(lines),
            rule_applied=(
                f"rule {idx}: volume ratio not exceeded (threshold {_n(rule.volume_ratio_threshold)}), "
                "billed at actual weight"
            ),
            volume_ratio=_r(ratio),
        )

    result = _simple(
        l, w, h, actual, rule_set.default_divisor,
        header=f"no conditional rule applies to actual {_w(actual)}, using default divisor\n",
    )
    return CalculationResult(
        actual_weight=result.actual_weight,
        volumetric_weight=result.volumetric_weight,
        chargeable_weight=result.chargeable_weight,
        derivation_text=result.derivation_text,
        rule_applied=f"default divisor /{_n(rule_set.default_divisor)}",
        used_default_rule=True,
        note="no conditional rule matched; default divisor used",
    )


def evaluate(
    length: Any,
    width: Any,
    height: Any,
    actual_weight: Any,
    rule_set: ChannelRuleSet,
    limits: ChannelLimits | None = None,
) -> CalculationResult | CalculationError:
    inputs = _coerce_inputs(dict(zip(INPUT_FIELDS, (length, width, height, actual_weight))))
    if isinstance(inputs, CalculationError):
        logger.debug("Weight evaluation rejected: %s", inputs.message)
        return inputs

    l, w, h, actual = (inputs[f] for f in INPUT_FIELDS)
    if isinstance(rule_set, ConditionalRuleSet):
        result = _conditional(l, w, h, actual, rule_set)
    else:
        result = _simple(l, w, h, actual, rule_set.divisor)

    violations = check_limits(l, w, h, actual, limits)
    if violations:
        result = CalculationResult(
            actual_weight=result.actual_weight,
            volumetric_weight=result.volumetric_weight,
            chargeable_weight=result.chargeable_weight,
            derivation_text=result.derivation_text,
            rule_applied=result.rule_applied,
            volume_ratio=result.volume_ratio,
            used_default_rule=result.used_default_rule,
            note=result.note,
            limit_violations=tuple(violations),
        )
    return result


# ============================================================================
# STORED CHANNEL CONFIGURATION
# ============================================================================

def _as_float(value: Any, name: str, default: float | None = None) -> float | None:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise RuleSetError(f"{name} must be a number, got {value!r}") from e


def _rule_from_config(idx: int, raw: dict) -> ConditionalRule:
    if not isinstance(raw, dict):
        raise RuleSetError(f"rule {idx}: expected an object, got {type(raw).__name__}")
    condition = raw.get("condition") or {}
    actions = raw.get("actions") or {}
    if_exceeds = actions.get("if_exceeds") or {}
    if_not_exceeds = actions.get("if_not_exceeds") or {}

    weight_max = _as_float(condition.get("weight_max"), f"rule {idx} weight_max")
    if weight_max is None:
        raise RuleSetError(f"rule {idx}: condition.weight_max is required")

    not_exceeds_divisor = None
    if if_not_exceeds.get("use", "actual_weight") != "actual_weight" or if_not_exceeds.get("divisor") is not None:
        not_exceeds_divisor = _as_float(if_not_exceeds.get("divisor"), f"rule {idx} if_not_exceeds.divisor")
        if not_exceeds_divisor is None:
            raise RuleSetError(f"rule {idx}: if_not_exceeds needs a divisor unless it uses actual_weight")

    return ConditionalRule(
        weight_max=weight_max,
        base_divisor=_as_float(condition.get("base_divisor"), f"rule {idx} base_divisor", 6000.0),
        volume_ratio_threshold=_as_float(condition.get("volume_ratio_threshold"), f"rule {idx} volume_ratio_threshold", 2.0),
        exceeds_divisor=_as_float(if_exceeds.get("divisor"), f"rule {idx} if_exceeds.divisor", 8000.0),
        not_exceeds_divisor=not_exceeds_divisor,
    )


def rule_set_from_config(
    volume_weight_divisor: Any = None,
    conditional_rules: dict | str | None = None,
    default_divisor: float = DEFAULT_DIVISOR,
) -> ChannelRuleSet:
    """
    Build a rule set from a channel's stored configuration.

    conditional_rules shape (dict or JSON string):
        {"type": "conditional_divisor",
         "rules": [{"condition": {"weight_max": 2, "base_divisor": 6000, "volume_ratio_threshold": 2},
                    "actions": {"if_exceeds": {"divisor": 8000},
                                "if_not_exceeds": {"use": "actual_weight"}}}]}
    """
    if isinstance(conditional_rules, str):
        try:
            conditional_rules = json.loads(conditional_rules) if conditional_rules.strip() else None
        except json.JSONDecodeError as e:
            raise RuleSetError(f"conditional rules are not valid JSON: {e}") from e

    if conditional_rules:
        if not isinstance(conditional_rules, dict):
            raise RuleSetError("conditional rules must be an object with a 'rules' list")
        rule_type = conditional_rules.get("type", "conditional_divisor")
        if rule_type != "conditional_divisor":
            raise RuleSetError(f"unsupported conditional rule type {rule_type!r}")
        raw_rules = conditional_rules.get("rules") or []
        if raw_rules:
            rules = tuple(_rule_from_config(i, r) for i, r in enumerate(raw_rules, start=1))
            return ConditionalRuleSet(
                rules=rules,
                default_divisor=_as_float(conditional_rules.get("default_divisor"), "default_divisor", default_divisor),
            )

    return SimpleRuleSet(divisor=_as_float(volume_weight_divisor, "volume_weight_divisor", default_divisor))


def rule_set_to_config(rule_set: ChannelRuleSet) -> dict:
    """Inverse of rule_set_from_config, in the stored channel shape."""
    if isinstance(rule_set, SimpleRuleSet):
        return {"volume_weight_divisor": rule_set.divisor, "conditional_rules": None}
    rules = []
    for rule in rule_set.rules:
        if_not_exceeds = (
            {"use": "actual_weight"} if rule.not_exceeds_divisor is None else {"divisor": rule.not_exceeds_divisor}
        )
        rules.append({
            "condition": {
                "weight_max": rule.weight_max,
                "base_divisor": rule.base_divisor,
                "volume_ratio_threshold": rule.volume_ratio_threshold,
            },
            "actions": {"if_exceeds": {"divisor": rule.exceeds_divisor}, "if_not_exceeds": if_not_exceeds},
        })
    return {
        "volume_weight_divisor": rule_set.default_divisor,
        "conditional_rules": {
            "type": "conditional_divisor",
            "default_divisor": rule_set.default_divisor,
            "rules": rules,
        },
    }


# ============================================================================
# CHANNEL PROVIDER
# ============================================================================

class ChannelRuleProvider(Protocol):
    def get_rule_set(self, channel_id: str) -> ChannelRuleSet: ...


class InMemoryRuleProvider:
    def __init__(self, rule_sets: dict[str, ChannelRuleSet] | None = None, default_divisor: float = DEFAULT_DIVISOR):
        self.rule_sets = dict(rule_sets or {})
        self.default_divisor = default_divisor

    def get_rule_set(self, channel_id: str) -> ChannelRuleSet:
        return self.rule_sets.get(channel_id) or SimpleRuleSet(divisor=self.default_divisor)


def evaluate_for_channel(
    provider: ChannelRuleProvider,
    channel_id: str,
    length: Any,
    width: Any,
    height: Any,
    actual_weight: Any,
    limits: ChannelLimits | None = None,
) -> CalculationResult | CalculationError:
    rule_set = provider.get_rule_set(channel_id)
    return evaluate(length, width, height, actual_weight, rule_set, limits)
