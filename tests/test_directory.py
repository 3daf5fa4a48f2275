"""Directory sheet parsing and sheet name lookup."""
from ratecard.models import Workbook
from ratecard.parsers.directory import ChannelDirectory, find_directory_sheet, parse_directory


def test_find_directory_sheet_by_name(make_sheet):
    wb = Workbook(source="x", sheets=(make_sheet("YE001", []), make_sheet("产品目录", []), make_sheet("Index", [])))
    assert find_directory_sheet(wb).name == "产品目录"
    assert find_directory_sheet(Workbook(source="x", sheets=(make_sheet("YE001", []),))) is None


def test_parse_directory_with_header(make_sheet):
    sheet = make_sheet(
        "目录",
        [
            ["云途物流 产品目录"],
            ["序号", "产品名称", "渠道代码", "备注"],
            [1, "美国专线", "YE001", ""],
            [2, "英国专线", "ye002", ""],
            [3, "说明", "", ""],
        ],
    )
    directory = parse_directory(sheet)
    assert len(directory) == 2
    assert directory.lookup("美国专线").code == "YE001"
    assert directory.lookup("英国专线").code == "YE002"


def test_parse_directory_without_header(make_sheet):
    sheet = make_sheet("Index", [["US Standard", "USSTD1"], ["UK Standard", "UKSTD1"], ["random text"]])
    directory = parse_directory(sheet)
    assert directory.lookup("US Standard").code == "USSTD1"
    assert directory.lookup("UK Standard").code == "UKSTD1"


def test_parse_directory_none_is_empty():
    directory = parse_directory(None)
    assert len(directory) == 0
    assert directory.lookup("anything") is None


def test_lookup_methods():
    directory = ChannelDirectory(
        entries={"美国专线": "YE001", "yunexpressusstandard": "YEUS01"},
        names={"美国专线": "美国专线", "yunexpressusstandard": "YunExpress US Standard"},
    )
    exact = directory.lookup("美国 专线")
    assert (exact.method, exact.score) == ("exact", 1.0)

    substring = directory.lookup("美国专线(2024)")
    assert substring.method == "substring"
    assert substring.code == "YE001"

    fuzzy = directory.lookup("Yunexpres US Standard")
    assert fuzzy.method == "fuzzy"
    assert fuzzy.code == "YEUS01"
    assert fuzzy.score >= 0.8

    assert directory.lookup("Completely Different") is None


def test_substring_lookup_prefers_closest_name():
    directory = ChannelDirectory(
        entries={"美国专线": "YE001", "美国专线经济": "YE003"},
        names={"美国专线": "美国专线", "美国专线经济": "美国专线经济"},
    )
    match = directory.lookup("美国专线经济(2024)")
    assert (match.method, match.code, match.product_name) == ("substring", "YE003", "美国专线经济")
    assert directory.lookup("美国专线(2024)").code == "YE001"
