"""
Rate diffs between versions and cross-channel price comparison.
"""
from __future__ import annotations

from dataclasses import replace
import logging
from typing import Iterable, Literal

from ratecard.models import ChannelOffer, RateComparison, RateDiff, RateItem
from ratecard.normalize import OPEN_UPPER_BOUND


logger = logging.getLogger(__name__)

SortKey = Literal["price", "eta"]


def diff_rates(old_items: Iterable[RateItem], new_items: Iterable[RateItem]) -> list[RateDiff]:
    """Price changes for lines present in both versions, in new-version order."""
    old_by_identity = {}
    for item in old_items:
        old_by_identity.setdefault(item.identity, item)

    diffs = []
    for item in new_items:
        old = old_by_identity.get(item.identity)
        if old is None or old.price is None or item.price is None:
            continue
        if old.price == item.price:
            continue
        delta = round(item.price - old.price, 4)
        delta_pct = round(delta / old.price * 100, 2) if old.price else None
        diffs.append(
            RateDiff(
                country=item.country,
                zone=item.zone,
                weight_from=item.weight_from,
                weight_to=item.weight_to,
                old_price=old.price,
                new_price=item.price,
                delta=delta,
                delta_pct=delta_pct,
            )
        )
    return diffs


def _bracket_label(item: RateItem) -> str:
    if item.weight_raw:
        return item.weight_raw
    lo = item.weight_from or 0.0
    if item.weight_to is None or item.weight_to >= OPEN_UPPER_BOUND:
        return f">{lo:g}kg"
    return f"{lo:g}-{item.weight_to:g}kg"


def matches_bracket(item: RateItem, weight: float) -> bool:
    """weight_from < weight <= weight_to; a bracket starting at 0 includes 0."""
    if item.weight_to is None:
        return False
    lo = item.weight_from or 0.0
    if weight > item.weight_to:
        return False
    return weight > lo or (lo == 0 and weight == 0)


def find_rate(items: Iterable[RateItem], country: str, weight: float) -> RateItem | None:
    for item in items:
        if item.country == country and item.price is not None and matches_bracket(item, weight):
            return item
    return None


def compare_rates(
    offers: Iterable[ChannelOffer],
    country: str,
    target_weight: float,
    sort_by: SortKey = "price",
) -> list[RateComparison]:
    if sort_by not in ("price", "eta"):
        raise ValueError(f"sort_by must be 'price' or 'eta', got {sort_by!r}")

    rows: list[RateComparison] = []
    for offer in offers:
        item = find_rate(offer.items, country, target_weight)
        if item is None:
            logger.debug("Channel %s has no %s bracket for %.3fkg", offer.channel_code, country, target_weight)
            continue
        billable = max(target_weight, item.min_chargeable_weight or 0.0)
        register_fee = item.register_fee or 0.0
        total = round(item.price * billable + register_fee, 2)
        rows.append(
            RateComparison(
                channel_code=offer.channel_code,
                channel_name=offer.channel_name,
                vendor_name=offer.vendor_name,
                country=country,
                matched_bracket=_bracket_label(item),
                billable_weight=round(billable, 3),
                price=item.price,
                register_fee=register_fee,
                total_price=total,
                currency=item.currency,
                eta_text=item.eta_text,
                eta_min_days=item.eta_min_days,
            )
        )

    if not rows:
        return rows

    if sort_by == "price":
        best = min(r.total_price for r in rows)
        rows = [_mark(r, r.total_price == best) for r in rows]
        rows.sort(key=lambda r: r.total_price)
    else:
        etas = [r.eta_min_days for r in rows if r.eta_min_days is not None]
        best_eta = min(etas) if etas else None
        rows = [_mark(r, best_eta is not None and r.eta_min_days == best_eta) for r in rows]
        rows.sort(key=lambda r: (r.eta_min_days is None, r.eta_min_days or 0, r.total_price))
    return rows


def _mark(row: RateComparison, is_best: bool) -> RateComparison:
    return row if row.is_best == is_best else replace(row, is_best=is_best)
