"""Reversal pattern matching for a single bar position.

The catalogue is an ordered list of ``PatternRule`` entries, ranked from the
rarest, highest-conviction setups (institutional stop-hunts) down to the most
common ones (doji). ``evaluate_rules`` returns the first rule whose predicate
holds, so a bar is classified at most once.

Updates:
    v0.2.3 - 2026-10-04 - Exposed PatternContext so rules can be evaluated
        against hand-built contexts.
    v0.2.0 - 2026-09-21 - Initial rule catalogue and detect entry point.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from analysis.models import Bar, Detection, PatternKind
from indicators.technical_indicators import (
    NEUTRAL_STOCH_RSI,
    BollingerBands,
    TechnicalIndicators,
)

RECENT_LOOKBACK = 50
MIN_BODY = 0.0001

PIN_BAR_WICK_RATIO = 0.5
ULTRA_WICK_RATIO = 3.0
CLIMATIC_VOLUME_MULT = 3.0
REVERSAL_VOLUME_MULT = 2.0
DOJI_BODY_THRESHOLD = 0.05
TWEEZER_TOLERANCE = 0.0001
TWEEZER_EXACT_TOLERANCE = 0.00005

OVERSOLD = 20.0
OVERBOUGHT = 80.0
INSTITUTIONAL_SCORE_CAP = 95


@dataclass(frozen=True, slots=True)
class PatternContext:
    """Derived quantities for the bar under evaluation."""

    current: Bar
    previous: Bar
    before_previous: Bar
    following: Bar
    stoch_rsi: float
    bands: Optional[BollingerBands]
    bar_range: float
    body: float
    upper_wick: float
    lower_wick: float
    avg_volume: float
    recent_low: float
    recent_high: float
    volume_multiple: float

    @property
    def previous_body(self) -> float:
        return abs(self.previous.close - self.previous.open)

    @property
    def highs_diff(self) -> float:
        return _relative_diff(self.current.high, self.previous.high)

    @property
    def lows_diff(self) -> float:
        return _relative_diff(self.current.low, self.previous.low)


@dataclass(frozen=True, slots=True)
class PatternRule:
    """Predicate and scorer pair for one pattern kind."""

    kind: PatternKind
    matches: Callable[[PatternContext], bool]
    score: Callable[[PatternContext], float]
    cap: int = 100

    def final_score(self, context: PatternContext) -> int:
        raw = min(float(self.cap), self.score(context))
        return max(0, min(100, int(round(raw))))


def _relative_diff(value: float, reference: float) -> float:
    if value <= 0.0:
        return math.inf
    return abs(value - reference) / value


def build_context(bars: Sequence[Bar], index: int) -> PatternContext:
    """Compute the derived quantities used by the rule catalogue.

    Args:
        bars: Chronological bar sequence.
        index: Position to evaluate; needs ``RECENT_LOOKBACK`` preceding bars
            and one following bar.

    Raises:
        ValueError: If ``index`` lacks the required history or lookahead.
    """
    if index < RECENT_LOOKBACK or index > len(bars) - 2:
        raise ValueError(
            f"Index {index} needs {RECENT_LOOKBACK} prior bars and one following bar "
            f"(sequence length {len(bars)})."
        )

    current = bars[index]
    recent = bars[index - RECENT_LOOKBACK:index]
    avg_volume = sum(bar.volume for bar in recent) / RECENT_LOOKBACK
    if avg_volume > 0.0:
        volume_multiple = current.volume / avg_volume
    else:
        volume_multiple = math.inf if current.volume > 0.0 else 0.0

    return PatternContext(
        current=current,
        previous=bars[index - 1],
        before_previous=bars[index - 2],
        following=bars[index + 1],
        stoch_rsi=TechnicalIndicators.stoch_rsi(bars, index),
        bands=TechnicalIndicators.bollinger(bars, index),
        bar_range=current.high - current.low,
        body=max(MIN_BODY, abs(current.close - current.open)),
        upper_wick=current.high - max(current.open, current.close),
        lower_wick=min(current.open, current.close) - current.low,
        avg_volume=avg_volume,
        recent_low=min(bar.low for bar in recent),
        recent_high=max(bar.high for bar in recent),
        volume_multiple=volume_multiple,
    )


# Institutional stop-hunts ---------------------------------------------------

def _is_spring(ctx: PatternContext) -> bool:
    return (
        ctx.bands is not None
        and ctx.lower_wick > ctx.body * ULTRA_WICK_RATIO
        and ctx.stoch_rsi < OVERSOLD
        and ctx.volume_multiple > CLIMATIC_VOLUME_MULT
        and ctx.current.low < ctx.recent_low
        and ctx.current.low < ctx.bands.lower
        and ctx.following.close > ctx.current.low
    )


def _score_spring(ctx: PatternContext) -> float:
    deep_sweep = ctx.current.low < ctx.recent_low
    return (
        60
        + min(20.0, (ctx.volume_multiple - 2) * 10)
        + (10 if deep_sweep else 0)
        + (10 if ctx.stoch_rsi < 15 else 0)
    )


def _is_upthrust(ctx: PatternContext) -> bool:
    return (
        ctx.bands is not None
        and ctx.upper_wick > ctx.body * ULTRA_WICK_RATIO
        and ctx.stoch_rsi > OVERBOUGHT
        and ctx.volume_multiple > CLIMATIC_VOLUME_MULT
        and ctx.current.high > ctx.recent_high
        and ctx.current.high > ctx.bands.upper
        and ctx.following.close < ctx.current.high
    )


def _score_upthrust(ctx: PatternContext) -> float:
    deep_sweep = ctx.current.high > ctx.recent_high
    return (
        60
        + min(20.0, (ctx.volume_multiple - 2) * 10)
        + (10 if deep_sweep else 0)
        + (10 if ctx.stoch_rsi > 85 else 0)
    )


# Tweezers ---------------------------------------------------------------------

def _volume_spike_bonus(ctx: PatternContext) -> int:
    return 15 if ctx.current.volume > ctx.avg_volume * 1.5 else 0


def _is_tweezers_top(ctx: PatternContext) -> bool:
    return (
        ctx.highs_diff < TWEEZER_TOLERANCE
        and ctx.previous.is_bullish
        and ctx.current.is_bearish
        and ctx.stoch_rsi > 85
        and ctx.current.high >= ctx.recent_high
    )


def _score_tweezers_top(ctx: PatternContext) -> float:
    return (
        50
        + (15 if ctx.stoch_rsi > 90 else 5)
        + _volume_spike_bonus(ctx)
        + (10 if ctx.highs_diff < TWEEZER_EXACT_TOLERANCE else 0)
    )


def _is_tweezers_bottom(ctx: PatternContext) -> bool:
    return (
        ctx.lows_diff < TWEEZER_TOLERANCE
        and ctx.previous.is_bearish
        and ctx.current.is_bullish
        and ctx.stoch_rsi < 15
        and ctx.current.low <= ctx.recent_low
    )


def _score_tweezers_bottom(ctx: PatternContext) -> float:
    return (
        50
        + (15 if ctx.stoch_rsi < 10 else 5)
        + _volume_spike_bonus(ctx)
        + (10 if ctx.lows_diff < TWEEZER_EXACT_TOLERANCE else 0)
    )


# Sudden reversals -------------------------------------------------------------

def _is_sudden_reversal_up(ctx: PatternContext) -> bool:
    return (
        ctx.previous.is_bearish
        and ctx.before_previous.is_bearish
        and ctx.stoch_rsi < OVERSOLD
        and ctx.current.is_bullish
        and ctx.current.close > ctx.previous.open
        and ctx.volume_multiple > REVERSAL_VOLUME_MULT
    )


def _score_sudden_reversal_up(ctx: PatternContext) -> float:
    return (
        45
        + min(25.0, (ctx.volume_multiple - 1) * 15)
        + (15 if ctx.current.close > ctx.before_previous.open else 5)
    )


def _is_sudden_reversal_down(ctx: PatternContext) -> bool:
    return (
        ctx.previous.is_bullish
        and ctx.before_previous.is_bullish
        and ctx.stoch_rsi > OVERBOUGHT
        and ctx.current.is_bearish
        and ctx.current.close < ctx.previous.open
        and ctx.volume_multiple > REVERSAL_VOLUME_MULT
    )


def _score_sudden_reversal_down(ctx: PatternContext) -> float:
    return (
        45
        + min(25.0, (ctx.volume_multiple - 1) * 15)
        + (15 if ctx.current.close < ctx.before_previous.open else 5)
    )


# Engulfing --------------------------------------------------------------------

def _score_engulfing(ctx: PatternContext) -> float:
    return (
        40
        + (15 if ctx.volume_multiple > 1.2 else 0)
        + (20 if ctx.body / ctx.previous_body > 1.5 else 10)
    )


def _is_bullish_engulfing(ctx: PatternContext) -> bool:
    return (
        ctx.current.is_bullish
        and ctx.previous.is_bearish
        and ctx.body > ctx.previous_body
        and ctx.stoch_rsi < OVERSOLD
        and ctx.current.low <= ctx.recent_low
    )


def _is_bearish_engulfing(ctx: PatternContext) -> bool:
    return (
        ctx.current.is_bearish
        and ctx.previous.is_bullish
        and ctx.body > ctx.previous_body
        and ctx.stoch_rsi > OVERBOUGHT
        and ctx.current.high >= ctx.recent_high
    )


# Pin bars ---------------------------------------------------------------------

def _is_hammer(ctx: PatternContext) -> bool:
    return (
        ctx.lower_wick >= ctx.bar_range * PIN_BAR_WICK_RATIO
        and ctx.stoch_rsi <= OVERSOLD
        and ctx.current.low <= ctx.recent_low
        and ctx.following.is_bullish
    )


def _score_hammer(ctx: PatternContext) -> float:
    return (
        35
        + (20 if ctx.lower_wick / ctx.body > 2 else 10)
        + (15 if ctx.volume_multiple > 1.2 else 0)
    )


def _is_shooting_star(ctx: PatternContext) -> bool:
    return (
        ctx.upper_wick >= ctx.bar_range * PIN_BAR_WICK_RATIO
        and ctx.stoch_rsi >= OVERBOUGHT
        and ctx.current.high >= ctx.recent_high
        and ctx.following.is_bearish
    )


def _score_shooting_star(ctx: PatternContext) -> float:
    return (
        35
        + (20 if ctx.upper_wick / ctx.body > 2 else 10)
        + (15 if ctx.volume_multiple > 1.2 else 0)
    )


# Doji -------------------------------------------------------------------------

def _is_doji(ctx: PatternContext) -> bool:
    at_extreme = ctx.current.low <= ctx.recent_low or ctx.current.high >= ctx.recent_high
    return ctx.body / ctx.bar_range < DOJI_BODY_THRESHOLD and at_extreme


def _score_doji(ctx: PatternContext) -> float:
    stoch_extreme = ctx.stoch_rsi < OVERSOLD or ctx.stoch_rsi > OVERBOUGHT
    return (
        30
        + (30 if stoch_extreme else 0)
        + (15 if ctx.volume_multiple > 1.5 else 0)
    )


PATTERN_RULES: Tuple[PatternRule, ...] = (
    PatternRule(PatternKind.INSTITUTIONAL_SPRING, _is_spring, _score_spring, INSTITUTIONAL_SCORE_CAP),
    PatternRule(PatternKind.INSTITUTIONAL_UPTHRUST, _is_upthrust, _score_upthrust, INSTITUTIONAL_SCORE_CAP),
    PatternRule(PatternKind.TWEEZERS_TOP, _is_tweezers_top, _score_tweezers_top),
    PatternRule(PatternKind.TWEEZERS_BOTTOM, _is_tweezers_bottom, _score_tweezers_bottom),
    PatternRule(PatternKind.SUDDEN_REVERSAL_UP, _is_sudden_reversal_up, _score_sudden_reversal_up),
    PatternRule(PatternKind.SUDDEN_REVERSAL_DOWN, _is_sudden_reversal_down, _score_sudden_reversal_down),
    PatternRule(PatternKind.BULLISH_ENGULFING, _is_bullish_engulfing, _score_engulfing),
    PatternRule(PatternKind.BEARISH_ENGULFING, _is_bearish_engulfing, _score_engulfing),
    PatternRule(PatternKind.HAMMER, _is_hammer, _score_hammer),
    PatternRule(PatternKind.SHOOTING_STAR, _is_shooting_star, _score_shooting_star),
    PatternRule(PatternKind.DOJI, _is_doji, _score_doji),
)


def evaluate_rules(
    context: PatternContext,
    rules: Sequence[PatternRule] = PATTERN_RULES,
) -> Detection:
    """Return the first matching rule's detection, or ``NONE`` with score 0."""
    if context.bar_range == 0:
        return Detection(PatternKind.NONE, context.stoch_rsi, 0)

    for rule in rules:
        if rule.matches(context):
            return Detection(rule.kind, context.stoch_rsi, rule.final_score(context))
    return Detection(PatternKind.NONE, context.stoch_rsi, 0)


def detect(bars: Sequence[Bar], index: int) -> Detection:
    """Classify the bar at ``index`` against the pattern catalogue.

    Positions without ``RECENT_LOOKBACK`` bars of history or without a
    following bar yield ``NONE`` with a neutral Stochastic-RSI and score 0.
    """
    if index < RECENT_LOOKBACK or index > len(bars) - 2:
        return Detection(PatternKind.NONE, NEUTRAL_STOCH_RSI, 0)
    return evaluate_rules(build_context(bars, index))
