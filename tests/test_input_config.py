from __future__ import annotations

import json
from pathlib import Path

from app.landrecords.input_config import InputConfig, load_input, parse_input
from app.landrecords.models import SearchRange


def test_parse_input_is_case_insensitive_and_unwraps():
    assert parse_input({"StartDate": " 01/01/2024 ", "ENDDATE": "01/31/2024"}) == InputConfig(
        "01/01/2024", "01/31/2024"
    )
    assert parse_input({"input": {"startDate": "2024-01-01", "endDate": "2024-01-02"}}) == InputConfig(
        "2024-01-01", "2024-01-02"
    )
    assert parse_input(["not", "a", "dict"]) == InputConfig()


def test_env_input_takes_precedence(tmp_path: Path, data_dir, monkeypatch):
    (tmp_path / "input.json").write_text(json.dumps({"startDate": "from-file"}), encoding="utf-8")
    monkeypatch.setenv("APIFY_INPUT_VALUE", json.dumps({"startDate": "01/02/2024", "endDate": "01/03/2024"}))

    assert load_input([tmp_path]) == InputConfig("01/02/2024", "01/03/2024")


def test_local_files_are_searched_in_order(tmp_path: Path, data_dir):
    kv = tmp_path / "apify_storage" / "key_value_stores" / "default"
    kv.mkdir(parents=True)
    (kv / "INPUT.json").write_text(json.dumps({"startDate": "kv", "endDate": "kv-end"}), encoding="utf-8")
    (tmp_path / "input.json").write_text(json.dumps({"startDate": "plain"}), encoding="utf-8")

    assert load_input([tmp_path]) == InputConfig("kv", "kv-end")


def test_missing_input_yields_empty_dates(tmp_path: Path, data_dir):
    assert load_input([tmp_path]) == InputConfig("", "")


def test_invalid_env_json_yields_empty_dates(tmp_path: Path, data_dir, monkeypatch):
    monkeypatch.setenv("APIFY_INPUT_VALUE", "{oops")
    assert load_input([tmp_path]) == InputConfig()


def test_override_and_range():
    config = InputConfig("01/01/2024", "01/31/2024").override(end_date="02/01/2024")
    assert config.to_range() == SearchRange("01/01/2024", "02/01/2024")
