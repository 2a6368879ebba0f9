"""Shared bar-sequence fixtures for scanner tests."""

from __future__ import annotations

from typing import Callable, List, Sequence

import pytest

from analysis.models import Bar

BASE_TIME = 1_700_000_000_000
STEP_MS = 60_000


def _bar(index: int, open_: float, high: float, low: float, close: float, volume: float = 100.0) -> Bar:
    return Bar(
        time=BASE_TIME + index * STEP_MS,
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def _flat_bars(count: int, price: float = 100.0) -> List[Bar]:
    return [_bar(i, price, price + 0.2, price - 0.2, price) for i in range(count)]


def _bars_from_closes(closes: Sequence[float], volume: float = 100.0) -> List[Bar]:
    """Chain closes into bars: open is the previous close, wicks are 0.1 wide."""
    bars: List[Bar] = []
    previous_close = closes[0]
    for index, close in enumerate(closes):
        open_ = previous_close
        bars.append(
            _bar(index, open_, max(open_, close) + 0.1, min(open_, close) - 0.1, close, volume),
        )
        previous_close = close
    return bars


@pytest.fixture
def bar_factory() -> Callable[..., Bar]:
    """Return a builder for a bar at a given position."""
    return _bar


@pytest.fixture
def closes_to_bars() -> Callable[..., List[Bar]]:
    return _bars_from_closes


@pytest.fixture
def flat_bars() -> Callable[..., List[Bar]]:
    return _flat_bars


@pytest.fixture
def doji_bars() -> List[Bar]:
    """Sixty flat bars, a tiny-bodied doji at index 60, then a flat bar."""
    bars = _flat_bars(60)
    bars.append(_bar(60, 100.0, 100.5, 99.5, 99.99))
    bars.append(_bar(61, 99.99, 100.09, 99.89, 99.99))
    return bars


@pytest.fixture
def spring_bars() -> List[Bar]:
    """Flat history, a climactic long-lower-wick bar at 60, then recovery."""
    bars = _flat_bars(60)
    bars.append(_bar(60, 100.0, 100.0, 97.0, 99.9, volume=400.0))
    bars.append(_bar(61, 99.9, 99.95, 99.4, 99.5))
    return bars


@pytest.fixture
def tweezers_top_bars() -> List[Bar]:
    """Rally into matching highs at 59/60 with a bearish bar at 60."""
    closes: List[float] = [100.0] * 33
    for index in range(33, 60):
        if index == 46:
            closes.append(closes[-1] - 5)
        else:
            closes.append(closes[-1] + 1)
    closes.append(closes[-1] - 0.05)
    closes.append(closes[-1] - 0.45)
    return _bars_from_closes(closes)
