"""Command line entry point."""
import json

import pytest

from ratecard.cli import main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("RATECARD_BASELINE_PATH", "RATECARD_DEFAULT_CURRENCY", "RATECARD_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_weight_command_prints_derivation(capsys):
    code = main(["weight", "--length", "30", "--width", "20", "--height", "10", "--weight", "1.5", "--divisor", "5000"])
    out = capsys.readouterr().out
    assert code == 0
    assert "volumetric weight" in out
    assert out.strip().endswith("chargeable weight: 1.500kg")


def test_weight_command_with_rules_file(tmp_path, capsys):
    rules = tmp_path / "rules.json"
    rules.write_text(
        json.dumps({
            "conditional_rules": {
                "type": "conditional_divisor",
                "rules": [{
                    "condition": {"weight_max": 2, "base_divisor": 6000, "volume_ratio_threshold": 2},
                    "actions": {"if_exceeds": {"divisor": 8000}, "if_not_exceeds": {"use": "actual_weight"}},
                }],
            }
        }),
        encoding="utf-8",
    )
    code = main(["weight", "--length", "60", "--width", "40", "--height", "40", "--weight", "1", "--rules", str(rules), "--json"])
    assert code == 0
    body = json.loads(capsys.readouterr().out)
    assert body["chargeable_weight"] == 12.0


def test_weight_command_rejects_bad_input(capsys):
    code = main(["weight", "--length", "abc", "--width", "20", "--height", "10", "--weight", "1"])
    assert code == 2
    assert "invalid_input" in capsys.readouterr().err


def test_parse_command_json(tmp_path, xlsx_bytes, rate_rows, capsys):
    path = tmp_path / "vendor.xlsx"
    path.write_bytes(xlsx_bytes({"YE123": rate_rows}))
    baseline = tmp_path / "baselines.json"

    assert main(["parse", str(path), "--baseline", str(baseline), "--json"]) == 0
    sheets = json.loads(capsys.readouterr().out)
    assert sheets[0]["channel_code"] == "YE123"
    assert "YE123" in json.loads(baseline.read_text(encoding="utf-8"))

    assert main(["parse", str(path), "--baseline", str(baseline), "--history", "YE123"]) == 0
    out = capsys.readouterr().out
    assert "[RATE_CARD] YE123" in out
    assert "structure: NONE" in out


def test_rules_command_reports_errors(tmp_path, xlsx_bytes, capsys):
    path = tmp_path / "rules.xlsx"
    path.write_bytes(xlsx_bytes({"导入": [["渠道代码", "泡比"], ["YE001", 6000], ["YE002", "abc"]]}))
    assert main(["rules", str(path)]) == 1
    captured = capsys.readouterr()
    assert "YE001" in captured.out
    assert "row 3: invalid rule set" in captured.err


def test_weight_command_with_malformed_rules_file(tmp_path, caplog):
    rules = tmp_path / "rules.json"
    rules.write_text("{not json", encoding="utf-8")
    code = main(["weight", "--length", "30", "--width", "20", "--height", "10", "--weight", "1", "--rules", str(rules)])
    assert code == 1
    assert "is not valid JSON" in caplog.text


def test_missing_config_file_exits_1(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "nope.toml"), "weight", "--length", "1", "--width", "1", "--height", "1", "--weight", "1"]) == 1
    assert "not found" in capsys.readouterr().err
