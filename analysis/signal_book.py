"""Caller-side bookkeeping for detected signals.

Signals are identified by the timestamp of the bar that triggered them.
Repeated scans of the same market produce fresh Signal objects; reconciling
them against the previously held list keeps confirmation verdicts that were
attached in between.

Updates:
    v0.3.0 - 2026-10-06 - Added reconciliation, filtering, and display helpers.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from analysis.models import PatternKind, Signal

BULLISH_KINDS = frozenset(
    {
        PatternKind.INSTITUTIONAL_SPRING,
        PatternKind.TWEEZERS_BOTTOM,
        PatternKind.SUDDEN_REVERSAL_UP,
        PatternKind.BULLISH_ENGULFING,
        PatternKind.HAMMER,
    }
)

HIGH_CONVICTION_KINDS = frozenset(
    {
        PatternKind.INSTITUTIONAL_SPRING,
        PatternKind.INSTITUTIONAL_UPTHRUST,
        PatternKind.SUDDEN_REVERSAL_UP,
        PatternKind.SUDDEN_REVERSAL_DOWN,
        PatternKind.TWEEZERS_TOP,
        PatternKind.TWEEZERS_BOTTOM,
    }
)

_LABELS: Dict[PatternKind, str] = {
    PatternKind.INSTITUTIONAL_SPRING: "Washout (spring)",
    PatternKind.INSTITUTIONAL_UPTHRUST: "Upthrust",
    PatternKind.TWEEZERS_TOP: "Tweezers Top",
    PatternKind.TWEEZERS_BOTTOM: "Tweezers Bottom",
    PatternKind.SUDDEN_REVERSAL_UP: "Sudden Reversal Up",
    PatternKind.SUDDEN_REVERSAL_DOWN: "Sudden Reversal Down",
    PatternKind.BULLISH_ENGULFING: "Bullish Engulfing",
    PatternKind.BEARISH_ENGULFING: "Bearish Engulfing",
    PatternKind.HAMMER: "Hammer Setup",
    PatternKind.SHOOTING_STAR: "Shooting Star Setup",
    PatternKind.DOJI: "Doji Star",
}


def reconcile_signals(previous: Sequence[Signal], current: Sequence[Signal]) -> List[Signal]:
    """Merge a fresh scan into previously held signals.

    For every signal in ``current`` the previously held record with the same
    timestamp wins, so confirmations survive a rescan. Signals that no longer
    appear in ``current`` are dropped. The result is ordered newest first.
    """
    held = {signal.timestamp: signal for signal in previous}
    merged = [held.get(signal.timestamp, signal) for signal in current]
    return sorted(merged, key=lambda signal: signal.timestamp, reverse=True)


def filter_signals(
    signals: Iterable[Signal],
    kinds: Optional[Iterable[PatternKind]] = None,
    min_score: int = 0,
) -> List[Signal]:
    """Return signals whose kind is in ``kinds`` (all when None) and score >= ``min_score``."""
    allowed = set(kinds) if kinds is not None else None
    return [
        signal
        for signal in signals
        if (allowed is None or signal.kind in allowed) and signal.score >= min_score
    ]


def signal_direction(signal: Signal) -> str:
    """Return ``"bullish"`` or ``"bearish"``; a doji leans on its Stochastic-RSI."""
    if signal.kind is PatternKind.DOJI:
        return "bullish" if signal.stoch_rsi <= 50 else "bearish"
    return "bullish" if signal.kind in BULLISH_KINDS else "bearish"


def is_high_conviction(kind: PatternKind) -> bool:
    return kind in HIGH_CONVICTION_KINDS


def signal_label(kind: PatternKind) -> str:
    return _LABELS.get(kind, kind.value.replace("_", " ").title())
