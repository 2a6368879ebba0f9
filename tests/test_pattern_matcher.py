"""Tests for the reversal pattern catalogue and single-bar detection."""

from __future__ import annotations

import dataclasses
import random

import pytest

from analysis.models import Detection, PatternKind
from analysis.pattern_matcher import (
    INSTITUTIONAL_SCORE_CAP,
    MIN_BODY,
    PATTERN_RULES,
    PatternContext,
    PatternRule,
    build_context,
    detect,
    evaluate_rules,
)
from indicators.technical_indicators import BollingerBands


def _random_walk(bar_factory, count: int, seed: int):
    rng = random.Random(seed)
    bars = []
    price = 100.0
    for index in range(count):
        open_ = price
        close = max(1.0, open_ + rng.uniform(-2.0, 2.0))
        high = max(open_, close) + rng.uniform(0.0, 1.5)
        low = max(0.5, min(open_, close) - rng.uniform(0.0, 1.5))
        volume = rng.uniform(10.0, 500.0)
        bars.append(bar_factory(index, open_, high, low, close, volume))
        price = close
    return bars


def test_doji_scenario(doji_bars) -> None:
    detection = detect(doji_bars, 60)
    assert detection.kind is PatternKind.DOJI
    assert detection.score == 60
    assert detection.stoch_rsi == pytest.approx(0.0)


def test_spring_scenario_is_capped(spring_bars) -> None:
    detection = detect(spring_bars, 60)
    assert detection.kind is PatternKind.INSTITUTIONAL_SPRING
    assert detection.score == INSTITUTIONAL_SCORE_CAP == 95


def test_spring_wins_over_doji(spring_bars) -> None:
    context = build_context(spring_bars, 60)
    doji_rule = next(rule for rule in PATTERN_RULES if rule.kind is PatternKind.DOJI)

    # The spring bar also has a doji-sized body; the earlier rule takes it.
    assert doji_rule.matches(context)
    assert evaluate_rules(context).kind is PatternKind.INSTITUTIONAL_SPRING


def test_tweezers_top_scenario(tweezers_top_bars) -> None:
    context = build_context(tweezers_top_bars, 60)
    assert context.highs_diff == 0.0

    detection = detect(tweezers_top_bars, 60)
    assert detection.kind is PatternKind.TWEEZERS_TOP
    assert detection.score == 75


@pytest.mark.parametrize("index", [-5, 0, 25, 49])
def test_insufficient_history_is_neutral(doji_bars, index: int) -> None:
    detection = detect(doji_bars, index)
    assert detection.kind is PatternKind.NONE
    assert detection.stoch_rsi == 50
    assert detection.score == 0


def test_last_bar_has_no_lookahead(doji_bars) -> None:
    detection = detect(doji_bars, len(doji_bars) - 1)
    assert detection.kind is PatternKind.NONE
    assert detection.stoch_rsi == 50
    assert detection.score == 0

    assert detect(doji_bars, len(doji_bars) + 3).kind is PatternKind.NONE


def test_build_context_rejects_out_of_range(doji_bars) -> None:
    with pytest.raises(ValueError):
        build_context(doji_bars, 10)
    with pytest.raises(ValueError):
        build_context(doji_bars, len(doji_bars) - 1)


def test_zero_range_bar_is_not_classified(flat_bars, bar_factory) -> None:
    bars = flat_bars(60)
    bars.append(bar_factory(60, 100.0, 100.0, 100.0, 100.0))
    bars.append(bar_factory(61, 100.0, 100.1, 99.9, 100.0))

    detection = detect(bars, 60)
    assert detection.kind is PatternKind.NONE
    assert detection.score == 0
    assert detection.stoch_rsi == 0.0


def test_context_derived_quantities(spring_bars) -> None:
    context = build_context(spring_bars, 60)
    assert context.avg_volume == pytest.approx(100.0)
    assert context.volume_multiple == pytest.approx(4.0)
    assert context.recent_low == pytest.approx(99.8)
    assert context.recent_high == pytest.approx(100.2)
    assert context.lower_wick == pytest.approx(2.9)
    assert context.upper_wick == pytest.approx(0.0)
    assert context.bar_range == pytest.approx(3.0)


def test_zero_average_volume_gives_infinite_multiple(bar_factory) -> None:
    bars = [bar_factory(i, 100.0, 100.2, 99.8, 100.0, volume=0.0) for i in range(60)]
    bars.append(bar_factory(60, 100.0, 100.5, 99.5, 99.99, volume=5.0))
    bars.append(bar_factory(61, 99.99, 100.1, 99.9, 99.99, volume=0.0))
    assert build_context(bars, 60).volume_multiple == float("inf")

    quiet = bars[:60] + [bar_factory(60, 100.0, 100.5, 99.5, 99.99, volume=0.0), bars[61]]
    assert build_context(quiet, 60).volume_multiple == 0.0


def test_rule_scores_follow_stoch_bonus(tweezers_top_bars) -> None:
    context = build_context(tweezers_top_bars, 60)
    rule = next(rule for rule in PATTERN_RULES if rule.kind is PatternKind.TWEEZERS_TOP)

    assert rule.final_score(dataclasses.replace(context, stoch_rsi=95.0)) == 75
    assert rule.final_score(dataclasses.replace(context, stoch_rsi=88.0)) == 65
    assert not rule.matches(dataclasses.replace(context, stoch_rsi=85.0))


def test_hammer_scoring(spring_bars) -> None:
    context = build_context(spring_bars, 60)
    hammer = next(rule for rule in PATTERN_RULES if rule.kind is PatternKind.HAMMER)

    # Next bar is bearish, so the hammer predicate fails on this sequence.
    assert not hammer.matches(context)
    # lower wick / body = 29 > 2 and volume multiple 4 > 1.2
    assert hammer.final_score(context) == 70


def test_engulfing_body_ratio_bonus(spring_bars, bar_factory) -> None:
    context = build_context(spring_bars, 60)
    engulfing = next(rule for rule in PATTERN_RULES if rule.kind is PatternKind.BULLISH_ENGULFING)
    context = dataclasses.replace(context, previous=bar_factory(59, 100.05, 100.1, 99.9, 100.0))

    # Current bar is bearish so the predicate fails; body ratio 2 earns the top bonus.
    assert not engulfing.matches(context)
    assert engulfing.final_score(context) == 75


def _context(current, previous, before_previous, following, **overrides) -> PatternContext:
    """Build a context from four bars, deriving the candle geometry like build_context."""
    fields = {
        "current": current,
        "previous": previous,
        "before_previous": before_previous,
        "following": following,
        "stoch_rsi": 50.0,
        "bands": None,
        "bar_range": current.high - current.low,
        "body": max(MIN_BODY, abs(current.close - current.open)),
        "upper_wick": current.high - max(current.open, current.close),
        "lower_wick": min(current.open, current.close) - current.low,
        "avg_volume": 100.0,
        "recent_low": 99.0,
        "recent_high": 101.0,
        "volume_multiple": current.volume / 100.0,
    }
    fields.update(overrides)
    return PatternContext(**fields)


def test_upthrust_detection_is_capped(bar_factory) -> None:
    flat = bar_factory(58, 100.0, 100.2, 99.8, 100.0)
    context = _context(
        bar_factory(60, 100.0, 103.0, 100.0, 100.1, 400.0),
        flat,
        flat,
        bar_factory(61, 100.1, 100.6, 100.0, 100.5),
        stoch_rsi=90.0,
        bands=BollingerBands(middle=100.0, upper=100.05, lower=99.95),
        recent_low=99.8,
        recent_high=100.2,
    )

    # 60 + 20 volume + 10 sweep + 10 stoch = 100, capped
    assert evaluate_rules(context) == Detection(PatternKind.INSTITUTIONAL_UPTHRUST, 90.0, 95)


def test_tweezers_bottom_detection(bar_factory) -> None:
    context = _context(
        bar_factory(60, 100.0, 101.1, 99.9, 101.0, 200.0),
        bar_factory(59, 101.0, 101.1, 99.9, 100.0),
        bar_factory(58, 100.0, 100.2, 99.8, 100.0),
        bar_factory(61, 101.0, 101.5, 100.9, 101.4),
        stoch_rsi=5.0,
        recent_low=99.9,
    )

    # 50 + 15 deep oversold + 15 volume spike + 10 exact lows
    assert evaluate_rules(context) == Detection(PatternKind.TWEEZERS_BOTTOM, 5.0, 90)


def _sudden_up_context(bar_factory, before_previous_open: float) -> PatternContext:
    return _context(
        bar_factory(60, 101.0, 103.6, 100.9, 103.5, 300.0),
        bar_factory(59, 102.0, 102.1, 100.9, 101.0),
        bar_factory(58, before_previous_open, before_previous_open + 0.1, 101.9, 102.0),
        bar_factory(61, 103.5, 104.0, 103.4, 103.8),
        stoch_rsi=10.0,
        recent_low=100.5,
        recent_high=105.0,
    )


def test_sudden_reversal_up_detection(bar_factory) -> None:
    # Matching lows with the previous bar, but above the recent low, so no tweezers bottom.
    context = _sudden_up_context(bar_factory, before_previous_open=103.0)

    # 45 + min(25, 30) volume + 15 for closing above the open two bars back
    assert evaluate_rules(context) == Detection(PatternKind.SUDDEN_REVERSAL_UP, 10.0, 85)


def test_sudden_reversal_bonus_needs_close_above_earlier_open(bar_factory) -> None:
    context = _sudden_up_context(bar_factory, before_previous_open=103.5)
    detection = evaluate_rules(context)

    assert detection.kind is PatternKind.SUDDEN_REVERSAL_UP
    assert detection.score == 75


def test_sudden_reversal_down_detection(bar_factory) -> None:
    context = _context(
        bar_factory(60, 99.0, 99.1, 96.4, 96.5, 300.0),
        bar_factory(59, 98.0, 99.1, 97.9, 99.0),
        bar_factory(58, 97.0, 98.1, 96.9, 98.0),
        bar_factory(61, 96.5, 96.6, 96.0, 96.2),
        stoch_rsi=90.0,
        recent_low=95.0,
        recent_high=99.5,
    )

    assert evaluate_rules(context) == Detection(PatternKind.SUDDEN_REVERSAL_DOWN, 90.0, 85)


def test_bullish_engulfing_detection(bar_factory) -> None:
    context = _context(
        bar_factory(60, 99.9, 101.1, 99.8, 101.0, 150.0),
        bar_factory(59, 100.5, 100.6, 99.9, 100.0),
        bar_factory(58, 100.0, 100.6, 99.9, 100.5),
        bar_factory(61, 101.0, 101.4, 100.9, 101.3),
        stoch_rsi=10.0,
        recent_low=99.8,
        recent_high=101.5,
    )

    # 40 + 15 volume + 20 for a body 2.2x the previous one
    assert evaluate_rules(context) == Detection(PatternKind.BULLISH_ENGULFING, 10.0, 75)


def test_bearish_engulfing_detection(bar_factory) -> None:
    context = _context(
        bar_factory(60, 100.6, 100.7, 99.4, 99.5, 150.0),
        bar_factory(59, 100.0, 100.6, 99.9, 100.5),
        bar_factory(58, 100.5, 100.6, 99.9, 100.0),
        bar_factory(61, 99.5, 99.6, 99.0, 99.1),
        stoch_rsi=90.0,
        recent_high=100.7,
    )

    assert evaluate_rules(context) == Detection(PatternKind.BEARISH_ENGULFING, 90.0, 75)


def test_hammer_detection_includes_oversold_boundary(bar_factory) -> None:
    context = _context(
        bar_factory(60, 100.0, 100.25, 99.0, 100.2),
        bar_factory(59, 100.3, 100.4, 99.9, 100.0),
        bar_factory(58, 100.2, 100.4, 100.1, 100.3),
        bar_factory(61, 100.2, 100.7, 100.1, 100.6),
        stoch_rsi=20.0,
        recent_low=99.5,
    )

    # 35 + 20 for a wick five times the body, average volume earns nothing
    assert evaluate_rules(context) == Detection(PatternKind.HAMMER, 20.0, 55)
    assert evaluate_rules(dataclasses.replace(context, stoch_rsi=20.01)).kind is PatternKind.NONE


def test_shooting_star_detection_includes_overbought_boundary(bar_factory) -> None:
    context = _context(
        bar_factory(60, 100.0, 101.0, 99.75, 99.8, 130.0),
        bar_factory(59, 99.7, 100.1, 99.6, 100.0),
        bar_factory(58, 99.8, 99.9, 99.6, 99.7),
        bar_factory(61, 99.8, 99.9, 99.4, 99.5),
        stoch_rsi=80.0,
        recent_high=100.5,
    )

    # 35 + 20 wick ratio + 15 volume
    assert evaluate_rules(context) == Detection(PatternKind.SHOOTING_STAR, 80.0, 70)
    assert evaluate_rules(dataclasses.replace(context, stoch_rsi=79.99)).kind is PatternKind.NONE


def test_spring_needs_strict_oversold_but_hammer_does_not(spring_bars, bar_factory) -> None:
    context = dataclasses.replace(
        build_context(spring_bars, 60),
        following=bar_factory(61, 99.9, 100.3, 99.8, 100.2),
    )

    spring = evaluate_rules(dataclasses.replace(context, stoch_rsi=19.99))
    assert (spring.kind, spring.score) == (PatternKind.INSTITUTIONAL_SPRING, 90)

    hammer = evaluate_rules(dataclasses.replace(context, stoch_rsi=20.0))
    assert (hammer.kind, hammer.score) == (PatternKind.HAMMER, 70)


def test_spring_bar_at_oversold_boundary_falls_through_to_doji(spring_bars) -> None:
    # The following bar is bearish, so the hammer cannot match either.
    detection = evaluate_rules(dataclasses.replace(build_context(spring_bars, 60), stoch_rsi=20.0))
    assert (detection.kind, detection.score) == (PatternKind.DOJI, 45)


def test_tweezers_top_needs_stoch_above_85(tweezers_top_bars) -> None:
    context = build_context(tweezers_top_bars, 60)

    assert evaluate_rules(dataclasses.replace(context, stoch_rsi=85.0)).kind is not PatternKind.TWEEZERS_TOP
    detection = evaluate_rules(dataclasses.replace(context, stoch_rsi=85.01))
    assert (detection.kind, detection.score) == (PatternKind.TWEEZERS_TOP, 65)


def test_final_score_rounds_and_clamps(spring_bars) -> None:
    context = build_context(spring_bars, 60)
    assert PatternRule(PatternKind.DOJI, lambda ctx: True, lambda ctx: 72.4).final_score(context) == 72
    assert PatternRule(PatternKind.DOJI, lambda ctx: True, lambda ctx: 72.6).final_score(context) == 73
    assert PatternRule(PatternKind.DOJI, lambda ctx: True, lambda ctx: 140.0).final_score(context) == 100
    assert PatternRule(PatternKind.DOJI, lambda ctx: True, lambda ctx: -3.0).final_score(context) == 0
    assert PatternRule(PatternKind.DOJI, lambda ctx: True, lambda ctx: 99.0, cap=95).final_score(context) == 95


def test_custom_rule_list_is_evaluated_in_order(spring_bars) -> None:
    context = build_context(spring_bars, 60)
    rules = (
        PatternRule(PatternKind.HAMMER, lambda ctx: False, lambda ctx: 10.0),
        PatternRule(PatternKind.SHOOTING_STAR, lambda ctx: True, lambda ctx: 41.0),
        PatternRule(PatternKind.DOJI, lambda ctx: True, lambda ctx: 90.0),
    )
    detection = evaluate_rules(context, rules)
    assert detection.kind is PatternKind.SHOOTING_STAR
    assert detection.score == 41


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_random_walk_scores_are_integral_and_bounded(bar_factory, seed: int) -> None:
    bars = _random_walk(bar_factory, 300, seed)
    for index in range(len(bars)):
        detection = detect(bars, index)
        assert isinstance(detection.score, int)
        assert 0 <= detection.score <= 100
        assert 0.0 <= detection.stoch_rsi <= 100.0
        if detection.kind is PatternKind.NONE:
            assert detection.score == 0
