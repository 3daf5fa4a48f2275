from __future__ import annotations

from dataclasses import dataclass
import math
import re
import unicodedata

from ratecard.models import WeightRange


OPEN_UPPER_BOUND = 999999.0

_NUM = r"(\d+(?:\.\d+)?)"

# NFKC leaves these alone, or maps them to something other than the ASCII form.
_PUNCT_MAP = str.maketrans(
    {
        "【": "[",
        "】": "]",
        "〔": "[",
        "〕": "]",
        "〖": "[",
        "〗": "]",
        "「": "[",
        "」": "]",
        "『": "[",
        "』": "]",
        "（": "(",
        "）": ")",
        "：": ":",
        "，": ",",
        "、": ",",
        "；": ";",
        "—": "-",
        "–": "-",
        "―": "-",
        "‐": "-",
        "‑": "-",
        "−": "-",
        "－": "-",
        "～": "~",
        "〜": "~",
        "　": " ",
        "\xa0": " ",
    }
)


def normalize_text(raw: object) -> str:
    if raw is None:
        return ""
    text = str(raw)
    if not text:
        return text
    text = unicodedata.normalize("NFKC", text).translate(_PUNCT_MAP)
    return re.sub(r"\s+", " ", text).strip()


def clean_key(text: object) -> str:
    """Lower-cased, punctuation-free form used for alias and name matching."""
    return re.sub(r"[\s\-_:/\\()\[\],.]+", "", normalize_text(text).casefold())


# ============================================================================
# NUMBERS & DATES
# ============================================================================

def parse_number(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    text = normalize_text(value)
    if not text:
        return None
    negative = text.startswith("-")
    cleaned = re.sub(r"[^0-9.]", "", text)
    m = re.search(r"\d+(?:\.\d+)?|\.\d+", cleaned)
    if not m:
        return None
    try:
        number = float(m.group(0))
    except ValueError:
        return None
    return -number if negative else number


_DATE_RE = re.compile(r"(\d{4})\s*[-/.年]\s*(\d{1,2})\s*[-/.月]\s*(\d{1,2})\s*日?")


def parse_date(text: object) -> str | None:
    m = _DATE_RE.search(normalize_text(text))
    if not m:
        return None
    year, month, day = (int(g) for g in m.groups())
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


_CURRENCIES = {
    "CNY": ("cny", "rmb", "人民币", "元", "¥", "￥"),
    "USD": ("usd", "美元", "美金", "us$", "$"),
    "EUR": ("eur", "欧元", "€"),
    "GBP": ("gbp", "英镑", "£"),
    "HKD": ("hkd", "港币", "港元"),
    "JPY": ("jpy", "日元"),
}


def normalize_currency(raw: object) -> str | None:
    text = normalize_text(raw).casefold()
    if not text:
        return None
    for code, aliases in _CURRENCIES.items():
        if text == code.casefold() or text in aliases:
            return code
    # Embedded in a header such as "价格(USD)" or "运费 RMB/KG".
    # Longer aliases first so "美元" is not read as "元".
    candidates = sorted(
        ((alias, code) for code, aliases in _CURRENCIES.items() for alias in (code.casefold(), *aliases)),
        key=lambda pair: -len(pair[0]),
    )
    for alias, code in candidates:
        if alias.isascii() and alias.isalpha():
            if re.search(rf"(?<![a-z]){re.escape(alias)}(?![a-z])", text):
                return code
        elif alias in text:
            return code
    return None


# ============================================================================
# COUNTRY / ZONE / ETA
# ============================================================================

@dataclass(frozen=True)
class CountryResult:
    normalized: str
    raw: str
    matched: bool = False


_COUNTRY_NAMES: dict[str, tuple[str, ...]] = {
    "US": ("美国", "united states", "usa", "america", "united states of america"),
    "GB": ("英国", "united kingdom", "uk", "great britain", "england"),
    "DE": ("德国", "germany", "deu"),
    "FR": ("法国", "france", "fra"),
    "IT": ("意大利", "italy", "ita"),
    "ES": ("西班牙", "spain", "esp"),
    "NL": ("荷兰", "netherlands", "holland", "nld"),
    "BE": ("比利时", "belgium", "bel"),
    "AT": ("奥地利", "austria", "aut"),
    "PL": ("波兰", "poland", "pol"),
    "SE": ("瑞典", "sweden", "swe"),
    "CH": ("瑞士", "switzerland", "che"),
    "IE": ("爱尔兰", "ireland", "irl"),
    "PT": ("葡萄牙", "portugal", "prt"),
    "DK": ("丹麦", "denmark", "dnk"),
    "FI": ("芬兰", "finland", "fin"),
    "NO": ("挪威", "norway", "nor"),
    "CZ": ("捷克", "czech republic", "czechia", "cze"),
    "GR": ("希腊", "greece", "grc"),
    "HU": ("匈牙利", "hungary", "hun"),
    "RO": ("罗马尼亚", "romania", "rou"),
    "RU": ("俄罗斯", "russia", "russian federation", "rus"),
    "UA": ("乌克兰", "ukraine", "ukr"),
    "TR": ("土耳其", "turkey", "türkiye", "tur"),
    "CA": ("加拿大", "canada", "can"),
    "MX": ("墨西哥", "mexico", "mex"),
    "BR": ("巴西", "brazil", "bra"),
    "CL": ("智利", "chile", "chl"),
    "AR": ("阿根廷", "argentina", "arg"),
    "CO": ("哥伦比亚", "colombia", "col"),
    "PE": ("秘鲁", "peru", "per"),
    "AU": ("澳大利亚", "澳洲", "australia", "aus"),
    "NZ": ("新西兰", "new zealand", "nzl"),
    "JP": ("日本", "japan", "jpn"),
    "KR": ("韩国", "south korea", "korea", "kor"),
    "SG": ("新加坡", "singapore", "sgp"),
    "MY": ("马来西亚", "malaysia", "mys"),
    "TH": ("泰国", "thailand", "tha"),
    "VN": ("越南", "vietnam", "viet nam", "vnm"),
    "PH": ("菲律宾", "philippines", "phl"),
    "ID": ("印度尼西亚", "印尼", "indonesia", "idn"),
    "IN": ("印度", "india", "ind"),
    "IL": ("以色列", "israel", "isr"),
    "SA": ("沙特阿拉伯", "沙特", "saudi arabia", "sau"),
    "AE": ("阿联酋", "阿拉伯联合酋长国", "united arab emirates", "uae", "are"),
    "ZA": ("南非", "south africa", "zaf"),
    "HK": ("香港", "中国香港", "hong kong", "hkg"),
    "TW": ("台湾", "中国台湾", "taiwan", "twn"),
    "CN": ("中国", "china", "chn"),
}

_COUNTRY_LOOKUP: dict[str, str] = {}
for _code, _names in _COUNTRY_NAMES.items():
    _COUNTRY_LOOKUP[_code.casefold()] = _code
    for _name in _names:
        _COUNTRY_LOOKUP[_name.casefold()] = _code

_EXCLUSION_RE = re.compile(r"\([^)]*(除|不含|不包括|except|excl)[^)]*\)", re.IGNORECASE)
_PAREN_RE = re.compile(r"\(([^)]*)\)")


def _lookup_country(text: str) -> str | None:
    key = re.sub(r"\s+", " ", text.casefold()).strip(" .-")
    if not key:
        return None
    return _COUNTRY_LOOKUP.get(key)


def normalize_country(raw: object) -> CountryResult:
    raw_text = "" if raw is None else str(raw).strip()
    text = normalize_text(raw_text)
    if not text:
        return CountryResult(normalized="", raw=raw_text)

    # "欧盟(除德国外)" style region labels stay as written.
    if _EXCLUSION_RE.search(text):
        return CountryResult(normalized=text, raw=raw_text)

    code = _lookup_country(text)
    if code:
        return CountryResult(normalized=code, raw=raw_text, matched=True)

    outside = _PAREN_RE.sub(" ", text).strip()
    code = _lookup_country(outside)
    if code:
        return CountryResult(normalized=code, raw=raw_text, matched=True)

    for inner in _PAREN_RE.findall(text):
        code = _lookup_country(inner)
        if code:
            return CountryResult(normalized=code, raw=raw_text, matched=True)

    # "US 美国" / "美国 US"
    tokens = [t for t in re.split(r"[\s/,]+", text) if t]
    for token in tokens if len(tokens) <= 3 else ():
        if len(token) >= 2:
            code = _lookup_country(token)
            if code:
                return CountryResult(normalized=code, raw=raw_text, matched=True)

    return CountryResult(normalized=text, raw=raw_text)


@dataclass(frozen=True)
class ZoneResult:
    normalized: str
    raw: str


_ZONE_PATTERNS = [
    re.compile(r"^第?\s*([A-Za-z0-9]+)\s*(?:区|分区)$"),
    re.compile(r"^(?:zone|区域|分区|区)\s*[-_:#]?\s*([A-Za-z0-9]+)$", re.IGNORECASE),
    re.compile(r"^Z\s*[-_]?\s*(\d+)$", re.IGNORECASE),
    re.compile(r"^([A-Za-z0-9]{1,4})$"),
]


def normalize_zone(raw: object) -> ZoneResult:
    raw_text = "" if raw is None else str(raw).strip()
    text = normalize_text(raw_text)
    if not text:
        return ZoneResult(normalized="", raw=raw_text)
    for pattern in _ZONE_PATTERNS:
        m = pattern.match(text)
        if m:
            return ZoneResult(normalized=m.group(1).upper(), raw=raw_text)
    return ZoneResult(normalized=text.upper(), raw=raw_text)


@dataclass(frozen=True)
class EtaResult:
    eta_min_days: int | None
    eta_raw: str


_ETA_RANGE_RE = re.compile(r"(\d+)\s*(?:-|~|至|到|—)\s*(\d+)")


def parse_eta(raw: object) -> EtaResult:
    text = normalize_text(raw)
    m = _ETA_RANGE_RE.search(text)
    if m:
        return EtaResult(eta_min_days=min(int(m.group(1)), int(m.group(2))), eta_raw=text)
    m = re.search(r"\d+", text)
    if m:
        return EtaResult(eta_min_days=int(m.group(0)), eta_raw=text)
    return EtaResult(eta_min_days=None, eta_raw=text)


# ============================================================================
# WEIGHT RANGES
# ============================================================================

_LT = r"(?:<=|<|≤)"
_GT = r"(?:>=|>|≥)"
_UNIT = r"\s*(?:kgs?|千克|公斤)?\s*"

_INEQUALITY_RE = re.compile(rf"^{_NUM}{_UNIT}{_LT}\s*[^\d<≤]*?\s*{_LT}\s*{_NUM}", re.IGNORECASE)
_INTERVAL_RE = re.compile(rf"^[\[(]\s*{_NUM}\s*,\s*{_NUM}\s*[\])]")
_DASH_RE = re.compile(rf"^{_NUM}{_UNIT}[-~]\s*{_NUM}", re.IGNORECASE)
_OPEN_LOW_RE = re.compile(rf"^(?:[^\d<≤]*?){_LT}\s*{_NUM}", re.IGNORECASE)
_OPEN_HIGH_PATTERNS = [
    re.compile(rf"^{_NUM}{_UNIT}{_LT}\s*[^\d]*$", re.IGNORECASE),
    re.compile(rf"^(?:[^\d>≥]*?){_GT}\s*{_NUM}", re.IGNORECASE),
    re.compile(rf"^{_NUM}{_UNIT}(?:\+|以上|及以上)", re.IGNORECASE),
]


def _weight_range(lo: float, hi: float, raw: str) -> WeightRange:
    lo, hi = round(lo, 3), round(hi, 3)
    if hi < lo:
        lo, hi = hi, lo
    return WeightRange(weight_from=lo, weight_to=hi, weight_raw=raw)


def parse_weight_range(raw: object) -> WeightRange | None:
    """
    Parse a weight bracket label.

    Shapes, tried in order: inequality (0<W<=0.3), bracket interval
    ([0.5,1.0)), dash range (0.5-1.0), open-low (<0.3), open-high (5<, >5, 5+).
    """
    raw_text = "" if raw is None else str(raw).strip()
    text = normalize_text(raw_text)
    if not text:
        return None

    m = _INEQUALITY_RE.match(text)
    if m:
        return _weight_range(float(m.group(1)), float(m.group(2)), raw_text)

    m = _INTERVAL_RE.match(text)
    if m:
        return _weight_range(float(m.group(1)), float(m.group(2)), raw_text)

    m = _DASH_RE.match(text)
    if m:
        return _weight_range(float(m.group(1)), float(m.group(2)), raw_text)

    m = _OPEN_LOW_RE.match(text)
    if m:
        return _weight_range(0.0, float(m.group(1)), raw_text)

    for pattern in _OPEN_HIGH_PATTERNS:
        m = pattern.match(text)
        if m:
            return _weight_range(float(m.group(1)), OPEN_UPPER_BOUND, raw_text)

    return None


_DATE_SHAPE_RE = re.compile(r"\d{4}\s*[-/.年]\s*\d{1,2}\s*[-/.月]\s*\d{1,2}")
_FREE_DASH_RE = re.compile(rf"(?<![\d.\-]){_NUM}{_UNIT}[-~]\s*{_NUM}(?![\d.\-])(\s*(?:个)?(?:工作日|天|日|days?|d\b))?", re.IGNORECASE)
_FREE_INEQUALITY_RE = re.compile(rf"(?<![\d.]){_NUM}{_UNIT}{_LT}\s*[^\d<≤]{{0,6}}?\s*{_LT}\s*{_NUM}", re.IGNORECASE)


_ZERO_PADDED_RE = re.compile(r"^0\d")


def _is_weight_pair(lo: str, hi: str) -> bool:
    # Phone numbers ("0755-23456789") and other id-like runs are not brackets.
    if _ZERO_PADDED_RE.match(lo) or _ZERO_PADDED_RE.match(hi):
        return False
    return max(float(lo), float(hi)) <= OPEN_UPPER_BOUND


def find_weight_ranges(text: object) -> list[tuple[float, float]]:
    """Every weight-range-like substring in free text, as (lower, upper) pairs."""
    normalized = normalize_text(text)
    if not normalized or not any(ch.isdigit() for ch in normalized):
        return []
    if _DATE_SHAPE_RE.search(normalized):
        return []

    found: list[tuple[float, float]] = []
    for m in _FREE_INEQUALITY_RE.finditer(normalized):
        if not _is_weight_pair(m.group(1), m.group(2)):
            continue
        wr = _weight_range(float(m.group(1)), float(m.group(2)), m.group(0))
        found.append((wr.weight_from, wr.weight_to))
    for m in _FREE_DASH_RE.finditer(normalized):
        if m.group(3):
            continue  # day-count range such as "5-10工作日"
        if not _is_weight_pair(m.group(1), m.group(2)):
            continue
        wr = _weight_range(float(m.group(1)), float(m.group(2)), m.group(0))
        found.append((wr.weight_from, wr.weight_to))
    return found
