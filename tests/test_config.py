from __future__ import annotations

from pathlib import Path

from taskflow_engine.config import (
    get_defaults_config,
    get_limits_config,
    get_logging_config,
    load_engine_config,
)


def _write_config(tmp_path: Path, text: str) -> None:
    state = tmp_path / ".taskflow"
    state.mkdir(exist_ok=True)
    (state / "config.yaml").write_text(text, encoding="utf-8")


def test_missing_config(tmp_path: Path) -> None:
    assert load_engine_config(tmp_path) == ({}, None)


def test_invalid_yaml_reports_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "logging: [oops\n")
    config, err = load_engine_config(tmp_path)
    assert config == {}
    assert err is not None and "config.yaml" in err


def test_non_mapping_reports_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "- just\n- a list\n")
    config, err = load_engine_config(tmp_path)
    assert config == {}
    assert "expected mapping" in err


def test_getters_read_sections(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        "logging:\n  level: debug\n"
        "defaults:\n  user_priority: 7\n  timezone: Asia/Tokyo\n  due_date_calculation: from_completion\n"
        "limits:\n  title: 80\n",
    )
    config, err = load_engine_config(tmp_path)
    assert err is None
    assert get_logging_config(config)["level"] == "DEBUG"
    assert get_defaults_config(config) == {
        "user_priority": 7,
        "timezone": "Asia/Tokyo",
        "due_date_calculation": "from_completion",
    }
    assert get_limits_config(config) == {"title": 80, "description": 2000, "category": 50, "context": 500}


def test_getters_fall_back_on_bad_values() -> None:
    config = {
        "logging": {"level": "chatty"},
        "defaults": {"user_priority": 42, "timezone": "", "due_date_calculation": "sometimes"},
        "limits": {"title": -1, "context": "wide"},
    }
    assert get_logging_config(config)["level"] == "INFO"
    assert get_defaults_config(config) == {
        "user_priority": 5,
        "timezone": "UTC",
        "due_date_calculation": "from_original",
    }
    limits = get_limits_config(config)
    assert limits["title"] == 200
    assert limits["context"] == 500


def test_empty_config_defaults() -> None:
    assert get_logging_config({}) == {"level": "INFO"}
    assert get_defaults_config({})["user_priority"] == 5
