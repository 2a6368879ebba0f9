"""
Configuration management for the reversal signal scanner.

Updates: v0.2.0 - 2026-09-21 - Replaced exchange credentials with market data,
    scan defaults, and export settings.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class Config:
    """Load configuration with Env → .env → config.json → defaults precedence."""

    _CONFIG_KEY_MAPPING: Dict[str, tuple[str, ...]] = {
        "SCANNER_LOG_LEVEL": ("SCANNER_LOG_LEVEL", "LOG_LEVEL", "log_level"),
        "BINANCE_API_BASE_URL": ("BINANCE_API_BASE_URL", "api_base_url"),
        "BINANCE_TIMEOUT": ("BINANCE_TIMEOUT", "timeout"),
        "SCANNER_RETRY_ATTEMPTS": ("SCANNER_RETRY_ATTEMPTS", "retry_attempts"),
        "SCANNER_RETRY_INITIAL_DELAY": ("SCANNER_RETRY_INITIAL_DELAY", "retry_initial_delay"),
        "SCANNER_RETRY_BACKOFF": ("SCANNER_RETRY_BACKOFF", "retry_backoff"),
        "SCANNER_DEFAULT_SYMBOL": ("SCANNER_DEFAULT_SYMBOL", "symbol"),
        "SCANNER_DEFAULT_INTERVAL": ("SCANNER_DEFAULT_INTERVAL", "interval"),
        "SCANNER_KLINE_LIMIT": ("SCANNER_KLINE_LIMIT", "kline_limit"),
        "SCANNER_REFRESH_SECONDS": ("SCANNER_REFRESH_SECONDS", "refresh_seconds"),
        "SCANNER_EXPORT_DIR": ("SCANNER_EXPORT_DIR", "export_dir"),
    }

    _DEFAULTS: Dict[str, Any] = {
        "SCANNER_LOG_LEVEL": "INFO",
        "BINANCE_API_BASE_URL": "https://fapi.binance.com",
        "BINANCE_TIMEOUT": 30,
        "SCANNER_RETRY_ATTEMPTS": 3,
        "SCANNER_RETRY_INITIAL_DELAY": 1.0,
        "SCANNER_RETRY_BACKOFF": 1.5,
        "SCANNER_DEFAULT_SYMBOL": "BTCUSDT",
        "SCANNER_DEFAULT_INTERVAL": "5m",
        "SCANNER_KLINE_LIMIT": 500,
        "SCANNER_REFRESH_SECONDS": 20,
        "SCANNER_EXPORT_DIR": "exports/signals",
    }

    def __init__(self, config_file: Optional[Path] = None) -> None:
        load_dotenv()
        self.config_file: Path = config_file or Path(__file__).parent / "config.json"
        self._config_data: Dict[str, Any] = self._load_config_file()

        log_level_value = self._get_setting("SCANNER_LOG_LEVEL")
        base_url_value = self._get_setting("BINANCE_API_BASE_URL")
        timeout_value = self._get_setting("BINANCE_TIMEOUT")
        retry_attempts_value = self._get_setting("SCANNER_RETRY_ATTEMPTS")
        retry_initial_delay_value = self._get_setting("SCANNER_RETRY_INITIAL_DELAY")
        retry_backoff_value = self._get_setting("SCANNER_RETRY_BACKOFF")
        symbol_value = self._get_setting("SCANNER_DEFAULT_SYMBOL")
        interval_value = self._get_setting("SCANNER_DEFAULT_INTERVAL")
        kline_limit_value = self._get_setting("SCANNER_KLINE_LIMIT")
        refresh_value = self._get_setting("SCANNER_REFRESH_SECONDS")
        export_dir_value = self._get_setting("SCANNER_EXPORT_DIR")

        self.log_level: str = str(log_level_value or self._DEFAULTS["SCANNER_LOG_LEVEL"]).upper()
        self.api_base_url: str = str(base_url_value or self._DEFAULTS["BINANCE_API_BASE_URL"]).rstrip("/")
        self.timeout: int = self._to_int(timeout_value, self._DEFAULTS["BINANCE_TIMEOUT"])
        self.retry_attempts: int = self._to_int(retry_attempts_value, self._DEFAULTS["SCANNER_RETRY_ATTEMPTS"])
        self.retry_initial_delay: float = self._to_float(retry_initial_delay_value, self._DEFAULTS["SCANNER_RETRY_INITIAL_DELAY"])
        self.retry_backoff: float = self._to_float(retry_backoff_value, self._DEFAULTS["SCANNER_RETRY_BACKOFF"])
        self.default_symbol: str = str(symbol_value or self._DEFAULTS["SCANNER_DEFAULT_SYMBOL"]).strip().upper()
        self.default_interval: str = str(interval_value or self._DEFAULTS["SCANNER_DEFAULT_INTERVAL"]).strip()
        self.kline_limit: int = self._to_int(kline_limit_value, self._DEFAULTS["SCANNER_KLINE_LIMIT"])
        self.refresh_seconds: int = self._to_int(refresh_value, self._DEFAULTS["SCANNER_REFRESH_SECONDS"])
        self.export_dir: Path = Path(str(export_dir_value or self._DEFAULTS["SCANNER_EXPORT_DIR"]))

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration values from config.json if available."""
        if not self.config_file.exists():
            return {}
        try:
            with self.config_file.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
                if isinstance(data, dict):
                    return data
                logger.warning("config.json must contain a JSON object; ignoring content.")
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read config.json: %s", exc)
        return {}

    def _get_setting(self, env_key: str) -> Any:
        """Resolve a configuration value using the configured precedence."""
        env_value = os.getenv(env_key)
        if env_value not in (None, ""):
            return env_value

        keys_to_check = self._CONFIG_KEY_MAPPING.get(env_key, (env_key,))
        for key in keys_to_check:
            config_value = self._config_data.get(key)
            if config_value not in (None, ""):
                return config_value

        return self._DEFAULTS.get(env_key)

    @staticmethod
    def _to_int(value: Any, default: int) -> int:
        """Convert a configuration value to integer with fallback."""
        try:
            if value is None or value == "":
                return default
            return int(value)
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _to_float(value: Any, default: float) -> float:
        """Convert a configuration value to float with fallback."""

        try:
            if value is None or value == "":
                return default
            return float(value)
        except (TypeError, ValueError):
            return default

    def get_retry_attempts(self) -> int:
        """Return configured retry attempts for market data requests."""

        return max(1, self.retry_attempts)

    def get_retry_initial_delay(self) -> float:
        """Return initial retry delay in seconds."""

        return max(0.1, self.retry_initial_delay)

    def get_retry_backoff(self) -> float:
        """Return exponential backoff factor for retries."""

        return max(1.0, self.retry_backoff)

    def get_timeout(self) -> int:
        """Get request timeout in seconds."""
        return self.timeout

    def get_api_url(self) -> str:
        """Get the Binance futures REST base URL."""
        return self.api_base_url

    def get_refresh_seconds(self) -> int:
        """Return the polling interval used by the watch command."""
        return max(1, self.refresh_seconds)
