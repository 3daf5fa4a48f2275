"""Version diffs and cross-channel comparison."""
import pytest

from ratecard.compare import compare_rates, diff_rates, matches_bracket
from ratecard.models import ChannelOffer, RateItem


def item(price, lo=0.0, hi=0.5, **kw):
    return RateItem(country="US", country_raw="美国", weight_from=lo, weight_to=hi, price=price, **kw)


def test_diff_rates_reports_changed_prices_only():
    old = [item(50), item(45, 0.5, 1.0), item(40, 1.0, 2.0)]
    new = [item(55), item(45, 0.5, 1.0), item(30, 2.0, 3.0)]
    diffs = diff_rates(old, new)
    assert len(diffs) == 1
    d = diffs[0]
    assert (d.old_price, d.new_price, d.delta, d.delta_pct) == (50, 55, 5, 10.0)
    assert (d.weight_from, d.weight_to) == (0.0, 0.5)


def test_bracket_match_is_lower_exclusive_upper_inclusive():
    assert matches_bracket(item(1), 0)
    assert matches_bracket(item(1), 0.5)
    assert not matches_bracket(item(1, 0.5, 1.0), 0.5)
    assert matches_bracket(item(1, 0.5, 1.0), 1.0)


def test_compare_marks_cheapest_total():
    a = ChannelOffer(
        channel_code="A",
        items=(item(60, register_fee=10, eta_min_days=5), item(50, 0.5, 1.0, register_fee=10)),
    )
    b = ChannelOffer(
        channel_code="B",
        items=(item(55, 0.0, 1.0, register_fee=5, min_chargeable_weight=0.5, eta_min_days=3),),
    )
    rows = compare_rates([a, b], "US", 0.4)
    assert [r.channel_code for r in rows] == ["B", "A"]
    assert rows[0].billable_weight == 0.5
    assert rows[0].total_price == 32.5
    assert rows[1].total_price == 34.0
    assert [r.is_best for r in rows] == [True, False]


def test_compare_by_eta():
    a = ChannelOffer(channel_code="A", items=(item(10, eta_min_days=9),))
    b = ChannelOffer(channel_code="B", items=(item(20, eta_min_days=3),))
    rows = compare_rates([a, b], "US", 0.3, sort_by="eta")
    assert rows[0].channel_code == "B"
    assert rows[0].is_best
    assert not rows[1].is_best


def test_compare_skips_channels_without_bracket():
    a = ChannelOffer(channel_code="A", items=(item(10),))
    assert compare_rates([a], "US", 5) == []
    assert compare_rates([a], "GB", 0.3) == []


def test_compare_rejects_unknown_sort_key():
    with pytest.raises(ValueError):
        compare_rates([], "US", 1, sort_by="name")
