"""
Extract normalized rate items from a rate card sheet.

Vendor sheets put a banner, contact details and an effective date above the
table and free-text remarks below it. The extractor finds the header row by
alias hits, maps columns to canonical fields, and reads rows until the table
runs out. Anything after the last price row is kept as notes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging

from ratecard.columns import map_header_row
from ratecard.models import RateItem, Sheet
from ratecard.normalize import (
    CountryResult,
    normalize_country,
    normalize_currency,
    normalize_zone,
    parse_eta,
    parse_number,
    parse_weight_range,
)


logger = logging.getLogger(__name__)

MIN_HEADER_MATCHES = 3


@dataclass(frozen=True)
class ExtractionResult:
    items: tuple[RateItem, ...] = ()
    notes: str = ""
    header_row: int | None = None
    column_map: dict[str, int] = field(default_factory=dict)
    currency: str | None = None


def find_header_row(sheet: Sheet, scan_rows: int = 8) -> tuple[int | None, dict[str, int]]:
    best_row, best_map = None, {}
    for row in range(min(scan_rows, sheet.row_count)):
        column_map = map_header_row(sheet, row)
        if len(column_map) > len(best_map):
            best_row, best_map = row, column_map
    if len(best_map) < MIN_HEADER_MATCHES:
        return None, {}
    return best_row, best_map


def is_valid_rate_row(country: CountryResult, weight_from: float | None, weight_to: float | None, price: float | None) -> bool:
    """A data row needs a known country, a parseable weight, or a positive price."""
    if country.matched:
        return True
    if weight_from is not None or weight_to is not None:
        return True
    return price is not None and price > 0


def _is_repeated_header(sheet: Sheet, row: int) -> bool:
    return len(map_header_row(sheet, row)) >= MIN_HEADER_MATCHES


def _sheet_currency(sheet: Sheet, header_row: int, column_map: dict[str, int]) -> str | None:
    # "价格(USD)" / "运费 RMB/KG"
    if "price" not in column_map:
        return None
    return normalize_currency(sheet.text(header_row, column_map["price"]))


def _read_weight(sheet: Sheet, row: int, column_map: dict[str, int]) -> tuple[float | None, float | None, str]:
    if "weight_range" in column_map:
        raw = sheet.text(row, column_map["weight_range"])
        parsed = parse_weight_range(raw)
        if parsed is not None:
            return parsed.weight_from, parsed.weight_to, parsed.weight_raw
        if "weight_from" not in column_map and "weight_to" not in column_map:
            return None, None, raw

    lo = parse_number(sheet.text(row, column_map["weight_from"])) if "weight_from" in column_map else None
    hi = parse_number(sheet.text(row, column_map["weight_to"])) if "weight_to" in column_map else None
    if lo is not None and hi is not None and hi < lo:
        lo, hi = hi, lo
    raw = "-".join(t for t in (
        sheet.text(row, column_map["weight_from"]) if "weight_from" in column_map else "",
        sheet.text(row, column_map["weight_to"]) if "weight_to" in column_map else "",
    ) if t)
    return (
        round(lo, 3) if lo is not None else None,
        round(hi, 3) if hi is not None else None,
        raw,
    )


def _number(sheet: Sheet, row: int, column_map: dict[str, int], name: str) -> float | None:
    if name not in column_map:
        return None
    return parse_number(sheet.text(row, column_map[name]))


def _collect_notes(sheet: Sheet, start_row: int) -> str:
    lines = []
    for row in range(start_row, sheet.row_count):
        if sheet.is_blank_row(row) or _is_repeated_header(sheet, row):
            continue
        lines.append(" ".join(t for t in sheet.row_texts(row) if t))
    return "\n".join(lines)


def extract_rates(
    sheet: Sheet,
    default_currency: str = "CNY",
    header_scan_rows: int = 8,
    max_data_rows: int = 150,
) -> ExtractionResult:
    header_row, column_map = find_header_row(sheet, header_scan_rows)
    if header_row is None:
        logger.debug("Sheet %r: no header row with %d+ known columns", sheet.name, MIN_HEADER_MATCHES)
        return ExtractionResult()

    sheet_currency = _sheet_currency(sheet, header_row, column_map)
    items: list[RateItem] = []
    seen: set[tuple] = set()
    last_accepted = header_row
    carried_country: CountryResult | None = None
    carried_zone = None

    end = min(sheet.row_count, header_row + 1 + max_data_rows)
    for row in range(header_row + 1, end):
        if sheet.is_blank_row(row):
            continue
        if _is_repeated_header(sheet, row):
            logger.debug("Sheet %r row %d: repeated header skipped", sheet.name, row + 1)
            continue

        country_text = sheet.text(row, column_map["country"]) if "country" in column_map else ""
        weight_from, weight_to, weight_raw = _read_weight(sheet, row, column_map)
        price = _number(sheet, row, column_map, "price")

        # Merged country cells only carry their value on the first row.
        if not country_text and carried_country is not None and (weight_raw or price is not None):
            country = carried_country
            zone = carried_zone
        else:
            country = normalize_country(country_text)
            zone = normalize_zone(sheet.text(row, column_map["zone"])) if "zone" in column_map else None

        if not is_valid_rate_row(country, weight_from, weight_to, price):
            logger.debug("Sheet %r row %d: not a rate row", sheet.name, row + 1)
            continue

        currency = None
        if "currency" in column_map:
            currency = normalize_currency(sheet.text(row, column_map["currency"]))
        eta = parse_eta(sheet.text(row, column_map["eta"])) if "eta" in column_map else None

        item = RateItem(
            country=country.normalized,
            country_raw=country.raw,
            zone=zone.normalized if zone else "",
            zone_raw=zone.raw if zone else "",
            eta_text=eta.eta_raw if eta else "",
            eta_min_days=eta.eta_min_days if eta else None,
            weight_from=weight_from,
            weight_to=weight_to,
            weight_raw=weight_raw,
            min_chargeable_weight=_number(sheet, row, column_map, "min_chargeable_weight"),
            price=price,
            register_fee=_number(sheet, row, column_map, "register_fee"),
            rounding_step=_number(sheet, row, column_map, "rounding_step"),
            currency=currency or sheet_currency or default_currency,
            row_index=row,
        )
        last_accepted = row
        carried_country, carried_zone = country, zone

        if item.identity in seen:
            logger.debug("Sheet %r row %d: duplicate of %s dropped", sheet.name, row + 1, item.identity)
            continue
        seen.add(item.identity)
        items.append(item)

    notes = _collect_notes(sheet, last_accepted + 1) if items else ""
    logger.debug("Sheet %r: %d rate items from header row %d", sheet.name, len(items), header_row + 1)
    return ExtractionResult(
        items=tuple(items),
        notes=notes,
        header_row=header_row,
        column_map=column_map,
        currency=sheet_currency,
    )
