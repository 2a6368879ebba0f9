"""Tests for configuration precedence and value coercion."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from config import Config

_KEYS = (
    "SCANNER_LOG_LEVEL",
    "LOG_LEVEL",
    "BINANCE_API_BASE_URL",
    "BINANCE_TIMEOUT",
    "SCANNER_RETRY_ATTEMPTS",
    "SCANNER_RETRY_INITIAL_DELAY",
    "SCANNER_RETRY_BACKOFF",
    "SCANNER_DEFAULT_SYMBOL",
    "SCANNER_DEFAULT_INTERVAL",
    "SCANNER_KLINE_LIMIT",
    "SCANNER_REFRESH_SECONDS",
    "SCANNER_EXPORT_DIR",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in _KEYS:
        monkeypatch.setenv(key, "")


def test_defaults_apply_without_sources(tmp_path: Path) -> None:
    config = Config(config_file=tmp_path / "missing.json")

    assert config.log_level == "INFO"
    assert config.get_api_url() == "https://fapi.binance.com"
    assert config.get_timeout() == 30
    assert config.get_retry_attempts() == 3
    assert config.get_retry_initial_delay() == 1.0
    assert config.get_retry_backoff() == 1.5
    assert config.default_symbol == "BTCUSDT"
    assert config.default_interval == "5m"
    assert config.kline_limit == 500
    assert config.get_refresh_seconds() == 20
    assert config.export_dir == Path("exports/signals")


def test_config_file_overrides_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"symbol": "ethusdt", "refresh_seconds": 45, "api_base_url": "https://mirror.test/"}),
        encoding="utf-8",
    )
    config = Config(config_file=config_path)

    assert config.default_symbol == "ETHUSDT"
    assert config.get_refresh_seconds() == 45
    assert config.get_api_url() == "https://mirror.test"


def test_environment_wins_over_config_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"interval": "1h", "kline_limit": 200}), encoding="utf-8")
    monkeypatch.setenv("SCANNER_DEFAULT_INTERVAL", "15m")

    config = Config(config_file=config_path)
    assert config.default_interval == "15m"
    assert config.kline_limit == 200


def test_invalid_values_fall_back(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BINANCE_TIMEOUT", "soon")
    monkeypatch.setenv("SCANNER_RETRY_ATTEMPTS", "0")
    monkeypatch.setenv("SCANNER_RETRY_BACKOFF", "0.2")
    monkeypatch.setenv("SCANNER_REFRESH_SECONDS", "-5")

    config = Config(config_file=tmp_path / "missing.json")
    assert config.get_timeout() == 30
    assert config.get_retry_attempts() == 1
    assert config.get_retry_backoff() == 1.0
    assert config.get_refresh_seconds() == 1


def test_malformed_config_file_is_ignored(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2, 3]", encoding="utf-8")
    config = Config(config_file=config_path)
    assert config.default_symbol == "BTCUSDT"

    config_path.write_text("{broken", encoding="utf-8")
    config = Config(config_file=config_path)
    assert config.kline_limit == 500
