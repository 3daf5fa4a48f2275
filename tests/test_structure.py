"""Weight bracket signatures, structure comparison and baseline stores."""
import random

from ratecard.models import StructureSignature
from ratecard.structure import (
    InMemoryBaselineStore,
    JsonFileBaselineStore,
    StructureValidator,
    compare_structure,
    compute_signature,
    djb2,
    signature_from_brackets,
)


BRACKET_ROWS = [["美国", "0-0.5", 50], ["美国", "0.5-1", 45], ["美国", "1-2", 40], ["英国", "0-0.5", 30]]


def test_signature_is_independent_of_row_order(make_sheet):
    shuffled = list(BRACKET_ROWS)
    random.Random(7).shuffle(shuffled)
    a = compute_signature(make_sheet("a", BRACKET_ROWS))
    b = compute_signature(make_sheet("b", shuffled))
    assert a == b
    assert [(x.lower, x.upper) for x in a.brackets] == [(0.0, 0.5), (0.5, 1.0), (1.0, 2.0)]
    assert len(a.hash) == 8


def test_signature_ignores_dates_and_transit_days(make_sheet):
    sheet = make_sheet("x", [["生效日期", "2024-01-01"], ["时效", "5-7天"], ["重量", "0-1"]])
    assert [(b.lower, b.upper) for b in compute_signature(sheet).brackets] == [(0.0, 1.0)]


def test_signature_ignores_phone_numbers(make_sheet):
    sheet = make_sheet(
        "x",
        [["电话: 0755-23456789"], ["客服 400-8888888"], ["国家", "重量", "价格"], ["美国", "0-0.5", 50], ["美国", "0.5-1", 45]],
    )
    assert [(b.lower, b.upper) for b in compute_signature(sheet).brackets] == [(0.0, 0.5), (0.5, 1.0)]


def test_signature_hash_is_djb2_of_canonical_text():
    sig = signature_from_brackets([(0.5, 1), (0, 0.5)])
    assert sig.hash == djb2("0.000-0.500|0.500-1.000")
    assert djb2("") == "00001505"


def test_signature_dict_round_trip():
    sig = signature_from_brackets([(0, 0.5), (0.5, 1)])
    assert StructureSignature.from_dict(sig.to_dict()) == sig


def test_compare_identical_is_none():
    sig = signature_from_brackets([(0, 0.5), (0.5, 1)])
    assert compare_structure(sig, sig).level == "NONE"


def test_compare_two_extra_brackets_is_major():
    prev = signature_from_brackets([(0, 1)])
    curr = signature_from_brackets([(0, 1), (1, 2), (2, 3)])
    assert compare_structure(prev, curr).level == "MAJOR"


def test_compare_small_shift_is_minor():
    prev = signature_from_brackets([(0, 0.5), (0.5, 1)])
    curr = signature_from_brackets([(0, 0.505), (0.505, 1)])
    change = compare_structure(prev, curr)
    assert change.level == "MINOR"
    assert change.max_shift == 0.005


def test_compare_one_added_bracket_is_minor():
    prev = signature_from_brackets([(0, 0.5), (0.5, 1)])
    curr = signature_from_brackets([(0, 0.5), (0.5, 1), (1, 2)])
    assert compare_structure(prev, curr).level == "MINOR"


def test_compare_large_shift_is_major():
    prev = signature_from_brackets([(0, 0.5)])
    curr = signature_from_brackets([(0, 0.6)])
    assert compare_structure(prev, curr).level == "MAJOR"


def test_compare_overlapping_brackets_is_major():
    prev = signature_from_brackets([(0, 1), (1, 2)])
    curr = signature_from_brackets([(0, 1), (0.995, 2)])
    change = compare_structure(prev, curr)
    assert change.level == "MAJOR"
    assert "overlap" in change.message


def test_first_import_records_without_change_level():
    store = InMemoryBaselineStore()
    sig = signature_from_brackets([(0, 0.5)])
    assert StructureValidator(store).check("YE001", sig, has_history=False) is None
    assert store.get("YE001") == sig


def test_history_without_baseline_is_minor():
    store = InMemoryBaselineStore()
    sig = signature_from_brackets([(0, 0.5)])
    change = StructureValidator(store).check("YE001", sig, has_history=True)
    assert change.level == "MINOR"
    assert "no baseline" in change.message
    assert store.get("YE001") == sig


def test_history_with_baseline_compares_then_records():
    old = signature_from_brackets([(0, 1)])
    new = signature_from_brackets([(0, 1), (1, 2), (2, 3)])
    store = InMemoryBaselineStore({"YE001": old})
    change = StructureValidator(store).check("YE001", new, has_history=True)
    assert change.level == "MAJOR"
    assert store.get("YE001") == new


def test_json_file_store_persists(tmp_path):
    path = tmp_path / "baselines" / "signatures.json"
    sig = signature_from_brackets([(0, 0.5), (0.5, 1)])
    JsonFileBaselineStore(path).put("YE001", sig)
    reopened = JsonFileBaselineStore(path)
    assert reopened.get("YE001") == sig
    assert reopened.get("YE002") is None
