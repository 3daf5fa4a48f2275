"""
Weight bracket signatures and structure change detection.

A channel's rate card is summarized by the sorted set of weight brackets it
prices. When a new version of the card arrives, its signature is compared with
the last recorded one:
- NONE: identical brackets
- MINOR: at most one bracket added/removed and boundaries moved by <= tolerance
- MAJOR: anything else (new bracket layout, overlaps, large shifts)
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Protocol

from ratecard.models import Sheet, StructureChange, StructureSignature, WeightBracket
from ratecard.normalize import find_weight_ranges


logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.01


# ============================================================================
# SIGNATURES
# ============================================================================

def djb2(text: str) -> str:
    h = 5381
    for ch in text:
        h = ((h << 5) + h + ord(ch)) & 0xFFFFFFFF
    return f"{h:08x}"


def _fmt(value: float) -> str:
    return f"{value:.3f}"


def signature_from_brackets(pairs: Iterable[tuple[float, float]]) -> StructureSignature:
    brackets = sorted({WeightBracket.of(lo, hi) for lo, hi in pairs})
    canonical = "|".join(f"{_fmt(b.lower)}-{_fmt(b.upper)}" for b in brackets)
    return StructureSignature(hash=djb2(canonical), brackets=tuple(brackets))


def compute_signature(sheet: Sheet, max_rows: int = 500) -> StructureSignature:
    pairs: list[tuple[float, float]] = []
    for row in range(min(max_rows, sheet.row_count)):
        for text in sheet.row_texts(row):
            if text:
                pairs.extend(find_weight_ranges(text))
    return signature_from_brackets(pairs)


# ============================================================================
# COMPARISON
# ============================================================================

def _has_overlaps(brackets: tuple[WeightBracket, ...]) -> bool:
    return any(brackets[i].upper > brackets[i + 1].lower for i in range(len(brackets) - 1))


def compare_structure(
    previous: StructureSignature,
    current: StructureSignature,
    tolerance: float = DEFAULT_TOLERANCE,
) -> StructureChange:
    prev, curr = previous.brackets, current.brackets
    if prev == curr:
        return StructureChange(level="NONE", message="weight brackets unchanged", max_shift=0.0)

    length_diff = abs(len(prev) - len(curr))
    overlap = min(len(prev), len(curr))
    max_shift = max(
        (max(abs(p.lower - c.lower), abs(p.upper - c.upper)) for p, c in zip(prev[:overlap], curr[:overlap])),
        default=0.0,
    )
    max_shift = round(max_shift, 3)

    if _has_overlaps(curr):
        return StructureChange(level="MAJOR", message="new weight brackets overlap", max_shift=max_shift)
    if length_diff > 1:
        return StructureChange(
            level="MAJOR",
            message=f"bracket count changed from {len(prev)} to {len(curr)}",
            max_shift=max_shift,
        )
    if max_shift > tolerance:
        return StructureChange(
            level="MAJOR",
            message=f"bracket boundaries shifted by up to {max_shift}",
            max_shift=max_shift,
        )
    if length_diff == 1:
        message = f"bracket count changed from {len(prev)} to {len(curr)}"
    else:
        message = f"bracket boundaries shifted by up to {max_shift}"
    return StructureChange(level="MINOR", message=message, max_shift=max_shift)


# ============================================================================
# BASELINE STORES
# ============================================================================

class BaselineStore(Protocol):
    def get(self, channel_code: str) -> StructureSignature | None: ...

    def put(self, channel_code: str, signature: StructureSignature) -> None: ...


class InMemoryBaselineStore:
    def __init__(self, initial: dict[str, StructureSignature] | None = None):
        self._signatures: dict[str, StructureSignature] = dict(initial or {})

    def get(self, channel_code: str) -> StructureSignature | None:
        return self._signatures.get(channel_code)

    def put(self, channel_code: str, signature: StructureSignature) -> None:
        self._signatures[channel_code] = signature


class JsonFileBaselineStore:
    """All channel signatures in one JSON document, rewritten on every put."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def get(self, channel_code: str) -> StructureSignature | None:
        data = self._load().get(channel_code)
        return StructureSignature.from_dict(data) if data else None

    def put(self, channel_code: str, signature: StructureSignature) -> None:
        data = self._load()
        data[channel_code] = signature.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, sort_keys=True)
        tmp.replace(self.path)


# ============================================================================
# VALIDATOR
# ============================================================================

class StructureValidator:
    def __init__(self, store: BaselineStore, tolerance: float = DEFAULT_TOLERANCE):
        self.store = store
        self.tolerance = tolerance

    def check(self, channel_code: str, signature: StructureSignature, has_history: bool) -> StructureChange | None:
        """
        Compare against the channel's baseline, then record the new signature.

        Returns None on a first import (nothing to compare against).
        """
        if not has_history:
            self.store.put(channel_code, signature)
            logger.info("Channel %s: first import, baseline %s recorded", channel_code, signature.hash)
            return None

        previous = self.store.get(channel_code)
        if previous is None:
            change = StructureChange(level="MINOR", message="no baseline signature on record for this channel")
        else:
            change = compare_structure(previous, signature, self.tolerance)
        self.store.put(channel_code, signature)
        logger.info("Channel %s: structure change %s (%s)", channel_code, change.level, change.message)
        return change
