"""
Binance USDⓈ-M futures public market data client.

Only the two public endpoints needed by the scanner are wrapped: klines
(OHLCV bars) and the last traded price.

Updates: v0.2.0 - 2026-09-21 - Added klines and ticker price requests.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from config import Config

logger = logging.getLogger(__name__)

SUPPORTED_INTERVALS = ("1m", "3m", "5m", "15m", "30m", "1h", "4h", "1d")
MAX_KLINE_LIMIT = 1500


class MarketDataError(RuntimeError):
    """Error raised when market data cannot be retrieved or decoded."""


class BinanceFuturesClient:
    """Public Binance futures REST client with error normalisation."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.base_url = self.config.get_api_url()
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': 'Reversal Signal Scanner/0.3'
        })

    def _make_request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Perform a public GET request and return the decoded JSON payload.

        Binance reports failures as {"code": <negative int>, "msg": "..."}.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(
                url,
                params=params,
                timeout=self.config.get_timeout()
            )
            payload = response.json()
        except requests.exceptions.RequestException as e:
            raise MarketDataError(f"Request failed: {str(e)}") from e
        except (json.JSONDecodeError, ValueError) as e:
            raise MarketDataError(f"Invalid JSON response: {str(e)}") from e

        if isinstance(payload, dict) and "code" in payload and "msg" in payload:
            raise MarketDataError(f"Binance API Error {payload['code']}: {payload['msg']}")

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise MarketDataError(f"Request failed: {str(e)}") from e

        return payload

    def get_klines(self, symbol: str, interval: str = "5m", limit: int = 100) -> List[List[Any]]:
        """Get raw kline rows ([open_time, open, high, low, close, volume, ...])."""
        if interval not in SUPPORTED_INTERVALS:
            raise ValueError(f"Unsupported interval {interval!r}; expected one of {', '.join(SUPPORTED_INTERVALS)}")
        params = {
            'symbol': symbol.upper(),
            'interval': interval,
            'limit': max(1, min(int(limit), MAX_KLINE_LIMIT)),
        }
        payload = self._make_request("/fapi/v1/klines", params)
        if not isinstance(payload, list):
            raise MarketDataError("Unexpected klines payload: expected a list of rows")
        logger.debug("Fetched %d klines for %s %s", len(payload), symbol, interval)
        return payload

    def get_ticker_price(self, symbol: str) -> float:
        """Get last traded price for the symbol."""
        payload = self._make_request("/fapi/v2/ticker/price", {'symbol': symbol.upper()})
        try:
            return float(payload["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise MarketDataError(f"Unexpected ticker payload: {payload!r}") from e
