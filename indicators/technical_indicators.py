"""
Windowed indicator calculations evaluated at a single bar position.

Every function recomputes its full window on each call so results depend only
on the bar sequence and the index. Positions with too little history return a
neutral value (RSI, Stochastic-RSI) or ``None`` (Bollinger Bands).

Updates:
    v0.2.2 - 2026-10-02 - Added indicator snapshot helper for the CLI.
    v0.2.0 - 2026-09-21 - Replaced series-based indicators with per-index RSI,
        Stochastic-RSI, and Bollinger calculations.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from analysis.models import Bar

logger = logging.getLogger(__name__)

RSI_PERIOD = 14
STOCH_PERIOD = 14
BB_PERIOD = 20
BB_STD_DEV = 2.0

NEUTRAL_RSI = 50.0
NEUTRAL_STOCH_RSI = 50.0


@dataclass(frozen=True, slots=True)
class BollingerBands:
    """Bollinger envelope around a simple moving average."""

    middle: float
    upper: float
    lower: float


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    """Indicator values computed for one bar position."""

    index: int
    rsi: float
    stoch_rsi: float
    bands: Optional[BollingerBands]


class TechnicalIndicators:
    """Collection of stateless indicator calculations."""

    @staticmethod
    def _check_index(bars: Sequence[Bar], index: int, name: str) -> None:
        if index < 0 or index >= len(bars):
            raise IndexError(f"{name} index {index} outside bar sequence of length {len(bars)}.")

    @staticmethod
    def rsi(bars: Sequence[Bar], index: int, period: int = RSI_PERIOD) -> float:
        """Return the Relative Strength Index at ``index``.

        Gains and losses are summed over the ``period`` close-to-close deltas
        ending at ``index``; a zero delta counts toward gains. With no losses
        at all the result is pinned to 100.
        """
        TechnicalIndicators._check_index(bars, index, "RSI")
        if index < period:
            return NEUTRAL_RSI

        gains = 0.0
        losses = 0.0
        for position in range(index - period + 1, index + 1):
            change = bars[position].close - bars[position - 1].close
            if change >= 0:
                gains += change
            else:
                losses -= change

        if losses == 0:
            return 100.0
        rs = (gains / period) / (losses / period)
        return 100.0 - (100.0 / (1.0 + rs))

    @staticmethod
    def stoch_rsi(
        bars: Sequence[Bar],
        index: int,
        rsi_period: int = RSI_PERIOD,
        stoch_period: int = STOCH_PERIOD,
    ) -> float:
        """Return the Stochastic-RSI (0-100) at ``index``.

        The RSI at ``index`` is rescaled against the min/max of the last
        ``stoch_period`` RSI values. A flat RSI window yields 0.
        """
        TechnicalIndicators._check_index(bars, index, "Stochastic-RSI")
        if index < rsi_period + stoch_period:
            return NEUTRAL_STOCH_RSI

        rsi_values = [
            TechnicalIndicators.rsi(bars, position, rsi_period)
            for position in range(index - stoch_period + 1, index + 1)
        ]
        current = rsi_values[-1]
        lowest = min(rsi_values)
        highest = max(rsi_values)
        if highest == lowest:
            return 0.0
        return (current - lowest) / (highest - lowest) * 100.0

    @staticmethod
    def bollinger(
        bars: Sequence[Bar],
        index: int,
        period: int = BB_PERIOD,
        stddev: float = BB_STD_DEV,
    ) -> Optional[BollingerBands]:
        """Return Bollinger Bands at ``index`` or ``None`` without enough history.

        Uses the population standard deviation of the closing prices.
        """
        TechnicalIndicators._check_index(bars, index, "Bollinger")
        if index < period - 1:
            return None

        closes = [bar.close for bar in bars[index - period + 1:index + 1]]
        mean = sum(closes) / period
        variance = sum((close - mean) ** 2 for close in closes) / period
        deviation = math.sqrt(variance)
        return BollingerBands(
            middle=mean,
            upper=mean + stddev * deviation,
            lower=mean - stddev * deviation,
        )

    @staticmethod
    def snapshot(bars: Sequence[Bar], index: int) -> IndicatorSnapshot:
        """Return RSI, Stochastic-RSI, and Bollinger values for ``index``."""
        return IndicatorSnapshot(
            index=index,
            rsi=TechnicalIndicators.rsi(bars, index),
            stoch_rsi=TechnicalIndicators.stoch_rsi(bars, index),
            bands=TechnicalIndicators.bollinger(bars, index),
        )
