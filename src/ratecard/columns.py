"""
Canonical rate card fields and the header aliases vendors use for them.

Shared by the column-header detection signal and the rate table extractor so
both agree on what a header row looks like.
"""
from __future__ import annotations

import re

from ratecard.models import Sheet
from ratecard.normalize import clean_key, normalize_text


# Ordered most-specific first: a header cell maps to the first field it matches,
# so "最低计费重量" becomes min_chargeable_weight rather than weight_range.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "min_chargeable_weight": (
        "最低计费重", "最低收费重", "最低计重", "最低重量", "起重",
        "min chargeable weight", "minimum chargeable weight", "min chargeable", "minimum weight", "min weight",
    ),
    "register_fee": (
        "挂号费", "处理费", "操作费", "元/票", "每票",
        "register fee", "registration fee", "registered fee", "handling fee", "reg fee", "per parcel",
    ),
    "rounding_step": (
        "进位", "计重单位", "续重单位",
        "rounding", "weight increment", "weight step",
    ),
    "weight_from": (
        "起始重量", "重量下限", "重量起", "开始重量",
        "weight from", "from weight", "lower weight", "min kg",
    ),
    "weight_to": (
        "截止重量", "结束重量", "重量上限", "重量止",
        "weight to", "to weight", "upper weight", "max kg",
    ),
    "weight_range": (
        "重量段", "重量区间", "重量范围", "计费重量", "重量",
        "weight range", "weight band", "weight bracket", "weight",
    ),
    "price": (
        "运费", "单价", "价格", "资费", "费率", "公斤价", "元/kg",
        "price", "rate", "freight", "per kg", "tariff",
    ),
    "currency": (
        "币种", "币别", "货币",
        "currency", "ccy",
    ),
    "eta": (
        "参考时效", "妥投时效", "运输时效", "时效",
        "eta", "transit time", "delivery time", "transit days", "lead time", "transit",
    ),
    "zone": (
        "分区", "区域", "区号",
        "zone",
    ),
    "country": (
        "目的国家", "国家/地区", "国家", "目的地", "地区",
        "country", "destination", "dest",
    ),
}

WEIGHT_FIELDS = ("weight_range", "weight_from", "weight_to")

MAX_HEADER_CELL_LENGTH = 40


def _compile_alias(alias: str):
    if alias.isascii():
        return re.compile(rf"(?<![a-z]){re.escape(alias)}(?![a-z])")
    return clean_key(alias)


_COMPILED: list[tuple[str, list]] = [
    (field, [_compile_alias(a) for a in aliases]) for field, aliases in FIELD_ALIASES.items()
]


def match_header_cell(text: str) -> str | None:
    """Return the canonical field a header cell names, or None."""
    normalized = normalize_text(text).casefold()
    if not normalized or len(normalized) > MAX_HEADER_CELL_LENGTH:
        return None
    key = clean_key(normalized)
    for field, patterns in _COMPILED:
        for pattern in patterns:
            if isinstance(pattern, str):
                if pattern and pattern in key:
                    return field
            elif pattern.search(normalized):
                return field
    return None


def map_header_row(sheet: Sheet, row: int) -> dict[str, int]:
    """Map canonical field -> column index for one row; first column wins."""
    column_map: dict[str, int] = {}
    for col, text in enumerate(sheet.row_texts(row)):
        field = match_header_cell(text)
        if field and field not in column_map:
            column_map[field] = col
    return column_map


def has_key_columns(column_map: dict[str, int]) -> bool:
    return (
        "country" in column_map
        and "price" in column_map
        and any(f in column_map for f in WEIGHT_FIELDS)
    )
