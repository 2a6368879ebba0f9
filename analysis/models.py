"""Core data models shared by the indicator, matcher, and scanner layers.

Bars are produced outside the engine (Binance klines, CSV files) and are
treated as read-only. Signals are created by the scanner and never mutated;
callers derive updated copies when merging confirmation verdicts.

Updates:
    v0.3.2 - 2026-10-18 - Rejected non-finite prices and volume in validation.
    v0.2.1 - 2026-09-28 - Added bar sequence validation for loaders.
    v0.2.0 - 2026-09-21 - Initial bar, pattern kind, and signal models.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence


class InvalidBarSequenceError(ValueError):
    """Raised when a bar sequence violates the ordering or OHLC contract."""


class PatternKind(str, Enum):
    """Closed catalogue of reversal patterns recognised by the matcher."""

    INSTITUTIONAL_SPRING = "INSTITUTIONAL_SPRING"
    INSTITUTIONAL_UPTHRUST = "INSTITUTIONAL_UPTHRUST"
    TWEEZERS_TOP = "TWEEZERS_TOP"
    TWEEZERS_BOTTOM = "TWEEZERS_BOTTOM"
    SUDDEN_REVERSAL_UP = "SUDDEN_REVERSAL_UP"
    SUDDEN_REVERSAL_DOWN = "SUDDEN_REVERSAL_DOWN"
    BULLISH_ENGULFING = "BULLISH_ENGULFING"
    BEARISH_ENGULFING = "BEARISH_ENGULFING"
    HAMMER = "HAMMER"
    SHOOTING_STAR = "SHOOTING_STAR"
    DOJI = "DOJI"
    NONE = "NONE"

    @classmethod
    def detectable(cls) -> list["PatternKind"]:
        """Return every kind except ``NONE`` in catalogue order."""
        return [kind for kind in cls if kind is not cls.NONE]


@dataclass(frozen=True, slots=True)
class Bar:
    """Single OHLCV observation; ``time`` is a millisecond epoch."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True, slots=True)
class Detection:
    """Matcher verdict for a single bar position."""

    kind: PatternKind
    stoch_rsi: float
    score: int

    @property
    def is_empty(self) -> bool:
        return self.kind is PatternKind.NONE


@dataclass(frozen=True, slots=True)
class Signal:
    """Detected pattern occurrence anchored to the bar that triggered it.

    ``timestamp`` always equals ``bar.time`` and serves as the external
    identifier when reconciling repeated scans of the same market.
    """

    bar: Bar
    kind: PatternKind
    timestamp: int
    score: int
    stoch_rsi: float
    confirmed: bool = False
    confirmation_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON/YAML friendly mapping of the signal."""
        return {
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "score": self.score,
            "stoch_rsi": round(float(self.stoch_rsi), 4),
            "confirmed": self.confirmed,
            "confirmation_text": self.confirmation_text,
            "bar": self.bar.to_dict(),
        }


def validate_bars(bars: Sequence[Bar]) -> None:
    """Check that ``bars`` honours the bar sequence contract.

    Raises:
        InvalidBarSequenceError: On the first violation found (non-finite values,
            non-increasing timestamps, non-positive prices, an OHLC envelope
            breach, or negative volume).
    """
    previous_time: Optional[int] = None
    for position, bar in enumerate(bars):
        values = (bar.open, bar.high, bar.low, bar.close, bar.volume)
        if not all(math.isfinite(value) for value in values):
            raise InvalidBarSequenceError(
                f"invalid bar sequence: non-finite value at position {position}"
            )

        if previous_time is not None and bar.time <= previous_time:
            raise InvalidBarSequenceError(
                f"invalid bar sequence: time {bar.time} at position {position} "
                f"is not after {previous_time}"
            )
        previous_time = bar.time

        if min(bar.open, bar.high, bar.low, bar.close) <= 0.0:
            raise InvalidBarSequenceError(
                f"invalid bar sequence: non-positive price at position {position}"
            )
        if bar.high < max(bar.open, bar.close) or bar.low > min(bar.open, bar.close):
            raise InvalidBarSequenceError(
                f"invalid bar sequence: OHLC envelope broken at position {position}"
            )
        if bar.volume < 0.0:
            raise InvalidBarSequenceError(
                f"invalid bar sequence: negative volume at position {position}"
            )
