"""
Command line entry point.

    ratecard parse vendor.xlsx --history YE123 --baseline baselines.json
    ratecard weight --length 30 --width 20 --height 10 --weight 1.5 --divisor 5000
    ratecard rules channel_rules.xlsx --json
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from ratecard.config import AppConfig, load_app_config
from ratecard.data_loader import read_workbook
from ratecard.errors import RateCardError, RuleSetError
from ratecard.models import CalculationError, SheetImportResult
from ratecard.parsers.channel_rules import parse_channel_rules
from ratecard.serialize import to_jsonable
from ratecard.service import RateImportService
from ratecard.structure import JsonFileBaselineStore
from ratecard.weight import evaluate, rule_set_from_config


logger = logging.getLogger("ratecard")


def _print_json(payload: object) -> None:
    print(json.dumps(to_jsonable(payload), ensure_ascii=False, indent=2))


def _print_sheet(result: SheetImportResult) -> None:
    d = result.detection
    print(f"\n[{result.sheet_type}] {result.sheet_name}")
    print(f"  verdict: {d.verdict} (score {d.score}, confidence {d.confidence}, via {d.detector})")
    if result.channel_code:
        print(f"  channel: {result.channel_code}")
    if d.effective_date:
        print(f"  effective: {d.effective_date}")
    for reason in d.reason_log:
        print(f"  - {reason}")
    if result.structure_change_level:
        print(f"  structure: {result.structure_change_level} ({result.structure_change_message})")
    if result.items:
        print(f"  items: {len(result.items)}")
        for item in result.items[:5]:
            print(
                f"    {item.country:<6} {item.zone:<4} {item.weight_raw or '-':<14} "
                f"{item.price if item.price is not None else '-'} {item.currency}"
            )
        if len(result.items) > 5:
            print(f"    ... {len(result.items) - 5} more")
    if result.notes:
        print("  notes:")
        for line in result.notes.splitlines():
            print(f"    {line}")


def cmd_parse(args: argparse.Namespace, config: AppConfig) -> int:
    known = set(args.history or [])
    baseline_path = args.baseline or config.storage.baseline_path
    store = JsonFileBaselineStore(baseline_path) if baseline_path else None
    service = RateImportService(history=lambda code: code in known, baseline_store=store, config=config)

    results = service.import_workbook_sync(read_workbook(args.file))
    if args.json:
        _print_json(results)
    else:
        for result in results:
            _print_sheet(result)
    return 0


def cmd_weight(args: argparse.Namespace, config: AppConfig) -> int:
    if args.rules:
        with Path(args.rules).open("r", encoding="utf-8") as f:
            try:
                stored = json.load(f)
            except json.JSONDecodeError as e:
                raise RuleSetError(f"{args.rules} is not valid JSON: {e}") from e
        if not isinstance(stored, dict):
            raise RuleSetError(f"{args.rules} must hold a JSON object")
        rule_set = rule_set_from_config(
            stored.get("volume_weight_divisor"),
            stored.get("conditional_rules"),
            default_divisor=config.weight.default_divisor,
        )
    else:
        rule_set = rule_set_from_config(args.divisor, None, default_divisor=config.weight.default_divisor)

    result = evaluate(args.length, args.width, args.height, args.weight, rule_set)
    if args.json:
        _print_json(result)
    elif isinstance(result, CalculationError):
        print(f"error ({result.code}): {result.message}", file=sys.stderr)
    else:
        print(result.derivation_text)
        if result.rule_applied:
            print(f"rule: {result.rule_applied}")
        if result.note:
            print(f"note: {result.note}")
        print(f"chargeable weight: {result.chargeable_weight:.3f}kg")
    return 0 if result.ok else 2


def cmd_rules(args: argparse.Namespace, config: AppConfig) -> int:
    workbook = read_workbook(args.file)
    if args.sheet:
        sheet = next((s for s in workbook.sheets if s.name == args.sheet), None)
    else:
        sheet = next(iter(workbook.sheets), None)
    if sheet is None:
        print(f"sheet not found: {args.sheet}", file=sys.stderr)
        return 1

    result = parse_channel_rules(sheet, known_codes=set(args.known) if args.known else None)
    if args.json:
        _print_json(result)
    else:
        for row in result.rows:
            print(f"row {row.row_number}: {row.channel_code} {type(row.rule_set).__name__} {row.rule_set}")
        for error in result.errors:
            print(error, file=sys.stderr)
    return 0 if result.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ratecard", description="Rate card ingestion and chargeable weight tools")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("parse", help="Classify and extract every sheet of a rate card workbook")
    p.add_argument("file", type=Path)
    p.add_argument("--baseline", type=Path, default=None, help="JSON file holding structure baselines")
    p.add_argument("--history", nargs="*", metavar="CODE", help="Channel codes that already have a rate version")
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_parse)

    w = sub.add_parser("weight", help="Compute chargeable weight")
    w.add_argument("--length", required=True)
    w.add_argument("--width", required=True)
    w.add_argument("--height", required=True)
    w.add_argument("--weight", required=True, help="Actual weight in kg")
    group = w.add_mutually_exclusive_group()
    group.add_argument("--divisor", type=float, default=None)
    group.add_argument("--rules", type=Path, default=None, help="JSON channel rule configuration")
    w.add_argument("--json", action="store_true")
    w.set_defaults(func=cmd_weight)

    r = sub.add_parser("rules", help="Validate a channel rule import sheet")
    r.add_argument("file", type=Path)
    r.add_argument("--sheet", default=None)
    r.add_argument("--known", nargs="*", metavar="CODE", help="Reject channel codes not in this list")
    r.add_argument("--json", action="store_true")
    r.set_defaults(func=cmd_rules)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_app_config(args.config)
    except RateCardError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        return args.func(args, config)
    except RateCardError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
