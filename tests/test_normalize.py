"""Text, number, country and weight range normalization."""
import pytest

from ratecard.normalize import (
    OPEN_UPPER_BOUND,
    find_weight_ranges,
    normalize_country,
    normalize_currency,
    normalize_text,
    normalize_zone,
    parse_date,
    parse_eta,
    parse_number,
    parse_weight_range,
)


def test_normalize_text_folds_full_width_and_cjk_brackets():
    assert normalize_text("（ＵＳ）【A】") == "(US)[A]"
    assert normalize_text("  a \t  b ") == "a b"
    assert normalize_text("") == ""
    assert normalize_text(None) == ""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0<W<=0.3", (0.0, 0.3)),
        ("0.3<重量≤0.5", (0.3, 0.5)),
        ("[0.5,1.0)", (0.5, 1.0)),
        ("0.5-1.0", (0.5, 1.0)),
        ("0.5~1KG", (0.5, 1.0)),
        ("<0.3", (0.0, 0.3)),
        ("≤0.3", (0.0, 0.3)),
        ("5<", (5.0, OPEN_UPPER_BOUND)),
        (">5", (5.0, OPEN_UPPER_BOUND)),
        ("5+", (5.0, OPEN_UPPER_BOUND)),
        ("5kg以上", (5.0, OPEN_UPPER_BOUND)),
        ("1.0-0.5", (0.5, 1.0)),
    ],
)
def test_parse_weight_range_shapes(raw, expected):
    parsed = parse_weight_range(raw)
    assert parsed is not None
    assert (parsed.weight_from, parsed.weight_to) == expected
    assert parsed.weight_raw == raw


@pytest.mark.parametrize("half, full", [("0.5-1.0", "０．５－１．０"), ("[0.5,1.0)", "［０．５，１．０）")])
def test_full_width_ranges_parse_like_half_width(half, full):
    a, b = parse_weight_range(half), parse_weight_range(full)
    assert (a.weight_from, a.weight_to) == (b.weight_from, b.weight_to)


def test_parse_weight_range_rejects_text():
    assert parse_weight_range("续重") is None
    assert parse_weight_range("") is None
    assert parse_weight_range(None) is None


def test_find_weight_ranges_skips_dates_and_day_counts():
    assert find_weight_ranges("0-0.5kg, 0.5-1kg") == [(0.0, 0.5), (0.5, 1.0)]
    assert find_weight_ranges("5-10工作日") == []
    assert find_weight_ranges("7-12 days") == []
    assert find_weight_ranges("2024-01-01") == []
    assert find_weight_ranges("美国") == []
    assert find_weight_ranges("电话: 0755-23456789") == []
    assert find_weight_ranges("30-2000000") == []


def test_parse_number_is_defensive():
    assert parse_number("¥12.5元") == 12.5
    assert parse_number(" 1,200 ") == 1200.0
    assert parse_number("-3") == -3.0
    assert parse_number(7) == 7.0
    assert parse_number(float("nan")) is None
    assert parse_number("abc") is None
    assert parse_number(None) is None


def test_parse_date_formats():
    assert parse_date("2024年3月1日") == "2024-03-01"
    assert parse_date("生效日期: 2024/03/01") == "2024-03-01"
    assert parse_date("2024.3.1") == "2024-03-01"
    assert parse_date("no date") is None


def test_normalize_currency():
    assert normalize_currency("RMB") == "CNY"
    assert normalize_currency("美元") == "USD"
    assert normalize_currency("价格(USD)") == "USD"
    assert normalize_currency("运费(元/kg)") == "CNY"
    assert normalize_currency("欧元") == "EUR"
    assert normalize_currency("重量") is None


@pytest.mark.parametrize(
    "raw, code",
    [("美国", "US"), ("United States", "US"), ("USA", "US"), ("美国 US", "US"), ("Germany (DE)", "DE"), ("英国", "GB")],
)
def test_normalize_country_known_names(raw, code):
    result = normalize_country(raw)
    assert result.matched
    assert result.normalized == code
    assert result.raw == raw


def test_normalize_country_exclusion_region_passes_through():
    result = normalize_country("欧盟（除德国外）")
    assert not result.matched
    assert result.normalized == "欧盟(除德国外)"


def test_normalize_country_unknown_falls_back_to_text():
    result = normalize_country(" Atlantis ")
    assert result == type(result)(normalized="Atlantis", raw="Atlantis", matched=False)


@pytest.mark.parametrize(
    "raw, zone",
    [("1区", "1"), ("第5区", "5"), ("A区", "A"), ("Zone-2", "2"), ("zone 3", "3"), ("Z4", "4"), ("b", "B"), ("", "")],
)
def test_normalize_zone(raw, zone):
    assert normalize_zone(raw).normalized == zone


def test_parse_eta():
    assert parse_eta("5-7工作日").eta_min_days == 5
    assert parse_eta("7~5天").eta_min_days == 5
    assert parse_eta("10天").eta_min_days == 10
    eta = parse_eta("看情况")
    assert eta.eta_min_days is None
    assert eta.eta_raw == "看情况"
