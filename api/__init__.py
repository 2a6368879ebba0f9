"""
Market data API clients.

Updates: v0.2.0 - 2026-09-21 - Added Binance futures client export surface.
"""

from api.binance_client import BinanceFuturesClient, MarketDataError

__all__ = ["BinanceFuturesClient", "MarketDataError"]
