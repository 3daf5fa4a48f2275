"""Sheet classification: detector strategies, fold order and directory fallback."""
from ratecard.config import DetectionConfig
from ratecard.detector import SheetClassifier, classify_sheet, find_effective_date, find_header_code
from ratecard.models import Sheet
from ratecard.parsers.directory import ChannelDirectory, parse_directory


HEADER = ["国家", "重量", "价格"]


def test_vendor_whitelist_name_is_rate_without_code(make_sheet):
    result = classify_sheet(make_sheet("云途挂号大货", [HEADER]))
    assert result.verdict == "rate"
    assert result.score == 100
    assert result.confidence == 100
    assert result.channel_code is None
    assert result.detector == "vendor_whitelist"


def test_vendor_whitelist_takes_code_from_header(make_sheet):
    sheet = make_sheet("云途挂号大货", [["渠道代码: YE123"], HEADER, ["美国", "0-0.5", 50]])
    directory = ChannelDirectory(entries={"云途挂号大货": "YT0001"}, names={"云途挂号大货": "云途挂号大货"})
    result = classify_sheet(sheet, directory=directory)
    assert (result.verdict, result.score, result.confidence) == ("rate", 100, 100)
    assert result.detector == "vendor_whitelist"
    assert result.channel_code == "YE123"
    assert "channel code 'YE123' found at row 1, column 1" in result.reason_log


def test_header_code_inline_label_stops_the_fold(make_sheet):
    sheet = make_sheet("Sheet1", [["渠道代码: YE123", "", ""], HEADER, ["美国", "0-0.5", 50]])
    result = classify_sheet(sheet)
    assert result.verdict == "rate"
    assert result.channel_code == "YE123"
    assert result.detector == "header_code"
    assert result.score == 50
    assert result.confidence == 70


def test_header_code_adjacent_value_and_effective_date_bonus(make_sheet):
    sheet = make_sheet("报价", [["渠道代码", "YE12345"], ["生效日期", "2024-03-01"], HEADER])
    result = classify_sheet(sheet)
    assert result.channel_code == "YE12345"
    assert result.effective_date == "2024-03-01"
    assert result.score == 70
    assert result.confidence == 95


def test_header_code_below_label(make_sheet):
    sheet = make_sheet("报价", [["产品代码"], ["ABC9"]])
    assert find_header_code(sheet, 15, 10) == ("ABC9", 1, 0)


def test_lowercase_value_is_not_a_code(make_sheet):
    sheet = make_sheet("报价", [["渠道代码", "ye123"]])
    assert find_header_code(sheet, 15, 10) is None


def test_pure_code_sheet_name(make_sheet):
    result = classify_sheet(make_sheet("YE123", [HEADER]))
    assert (result.verdict, result.score, result.confidence) == ("rate", 100, 95)
    assert result.channel_code == "YE123"


def test_blacklisted_name_is_skipped_before_anything_else(make_sheet):
    sheet = make_sheet("偏远地区附加费", [["渠道代码: YE123"], HEADER])
    directory = ChannelDirectory(entries={"偏远地区附加费": "YE999"}, names={"偏远地区附加费": "偏远地区附加费"})
    result = classify_sheet(sheet, directory=directory)
    assert result.verdict == "skipped"
    assert result.detector == "name_blacklist"
    assert result.channel_code is None


def test_column_headers_only_give_uncertain(make_sheet):
    sheet = make_sheet("Sheet2", [["国家", "重量(kg)", "价格", "时效"], ["美国", "0-0.5", 50, "5-7天"]])
    result = classify_sheet(sheet)
    assert result.verdict == "uncertain"
    assert result.detector == "column_header"
    assert result.score == 20
    assert result.confidence == 38


def test_column_headers_without_key_columns_give_nothing(make_sheet):
    sheet = make_sheet("Misc", [["分区", "时效", "币种", "挂号费"]])
    assert classify_sheet(sheet).verdict == "skipped"


def test_unmatched_sheet_policy_is_configurable(make_sheet):
    sheet = make_sheet("Misc", [["hello"]])
    skipped = classify_sheet(sheet)
    assert skipped.verdict == "skipped"
    assert skipped.score == 0
    assert skipped.reason_log == ("no channel/transport code found",)

    review = classify_sheet(sheet, config=DetectionConfig(unmatched_verdict="uncertain"))
    assert review.verdict == "uncertain"


def test_directory_fallback_upgrades_column_match(make_sheet):
    directory = parse_directory(make_sheet("目录", [["产品名称", "渠道代码"], ["美国专线", "YE001"]]))
    result = SheetClassifier(directory=directory).classify(make_sheet("美国专线", [HEADER]))
    assert result.verdict == "rate"
    assert result.score == 100
    assert result.channel_code == "YE001"
    assert "directory exact match" in result.reason_log[-1]


def test_directory_fallback_keeps_whitelist_confidence(make_sheet):
    directory = ChannelDirectory(entries={"云途挂号大货": "YT0001"}, names={"云途挂号大货": "云途挂号大货"})
    result = classify_sheet(make_sheet("云途挂号大货", [HEADER]), directory=directory)
    assert result.channel_code == "YT0001"
    assert result.confidence == 100


def test_merged_header_cells_are_forward_filled(make_sheet):
    # The label is merged across three cells; only the first one carries the text.
    sheet = make_sheet("报价", [["运输代码:", None, None, "AB1234"]])
    assert find_header_code(sheet, 15, 10) is None
    result = classify_sheet(sheet)
    assert result.channel_code == "AB1234"


def test_effective_date_from_sheet_name():
    assert find_effective_date(Sheet(name="报价 2024.05.01"), "报价 2024.05.01") == "2024-05-01"
