"""Fuzzy difficulty inference with a discrete struggle override on top.

The base decision comes from a small Mamdani-style rule system over two
noisy struggle proxies (response time and wrong-answer count). Callers then
apply :func:`apply_struggle_override`, which pins the result to EASY or HARD
whenever the distress or confidence signal is unambiguous.
"""
from __future__ import annotations

import math
from typing import Callable, Dict, Optional, Tuple

from .domain import DifficultyLevel, EmotionLabel, PerformanceSignal, canonicalize
from .metrics import METRICS


LEVEL_SCORES: Dict[DifficultyLevel, int] = {
    DifficultyLevel.EASY: 1,
    DifficultyLevel.MEDIUM: 2,
    DifficultyLevel.HARD: 3,
}
SCORE_LEVELS = {score: level for level, score in LEVEL_SCORES.items()}

STRUGGLE_WRONG_COUNT = 2
STRUGGLE_DURATION_SECONDS = 60.0


def _ramp_down(value: float, full_until: float, zero_at: float) -> float:
    if value <= full_until:
        return 1.0
    if value >= zero_at:
        return 0.0
    return (zero_at - value) / (zero_at - full_until)


def _ramp_up(value: float, zero_until: float, full_at: float) -> float:
    if value <= zero_until:
        return 0.0
    if value >= full_at:
        return 1.0
    return (value - zero_until) / (full_at - zero_until)


def _triangle(value: float, left: float, peak: float, right: float) -> float:
    if value <= left or value >= right:
        return 1.0 if value == peak else 0.0
    if value <= peak:
        return (value - left) / (peak - left)
    return (right - value) / (right - peak)


# Duration terms (seconds)
def duration_fast(seconds: float) -> float:
    return _ramp_down(seconds, 20.0, 60.0)


def duration_normal(seconds: float) -> float:
    return _triangle(seconds, 10.0, 40.0, 90.0)


def duration_slow(seconds: float) -> float:
    return _ramp_up(seconds, 60.0, 150.0)


# Wrong-answer terms
def wrong_low(count: float) -> float:
    return _ramp_down(count, 0.0, 2.0)


def wrong_medium(count: float) -> float:
    return _triangle(count, 0.0, 2.0, 5.0)


def wrong_high(count: float) -> float:
    return _ramp_up(count, 3.0, 6.0)


def _any(_: float) -> float:
    return 1.0


DURATION_TERMS: Dict[str, Callable[[float], float]] = {
    "fast": duration_fast,
    "normal": duration_normal,
    "slow": duration_slow,
    "any": _any,
}
WRONG_TERMS: Dict[str, Callable[[float], float]] = {
    "low": wrong_low,
    "medium": wrong_medium,
    "high": wrong_high,
    "any": _any,
}

# (duration term, wrong-count term) -> consequent level
RULES: Tuple[Tuple[str, str, DifficultyLevel], ...] = (
    ("fast", "low", DifficultyLevel.HARD),
    ("normal", "low", DifficultyLevel.MEDIUM),
    ("fast", "medium", DifficultyLevel.MEDIUM),
    ("any", "high", DifficultyLevel.EASY),
    ("slow", "any", DifficultyLevel.EASY),
    ("normal", "medium", DifficultyLevel.MEDIUM),
)


def rule_strengths(duration_seconds: float, wrong_count: float) -> Dict[DifficultyLevel, float]:
    """Fire every rule (min-conjunction) and aggregate per consequent (max)."""

    strengths = {level: 0.0 for level in LEVEL_SCORES}
    for duration_term, wrong_term, level in RULES:
        truth = min(
            DURATION_TERMS[duration_term](duration_seconds),
            WRONG_TERMS[wrong_term](wrong_count),
        )
        strengths[level] = max(strengths[level], truth)
    return strengths


def defuzzify(strengths: Dict[DifficultyLevel, float]) -> DifficultyLevel:
    total = sum(strengths.values())
    if total <= 0:
        return DifficultyLevel.MEDIUM
    score = sum(LEVEL_SCORES[level] * truth for level, truth in strengths.items()) / total
    # round half down so ties land on the easier level
    rounded = int(math.ceil(score - 0.5))
    rounded = min(max(rounded, 1), 3)
    return SCORE_LEVELS[rounded]


def decide_difficulty(duration_seconds: float, wrong_count: int) -> DifficultyLevel:
    """Base difficulty from the fuzzy rule base. Pure and total over clamped inputs."""

    signal = PerformanceSignal.clamped(duration_seconds, wrong_count)
    return defuzzify(rule_strengths(signal.duration_seconds, signal.wrong_count))


def is_struggling(signal: PerformanceSignal, emotion: EmotionLabel) -> bool:
    return (
        signal.wrong_count >= STRUGGLE_WRONG_COUNT
        or signal.duration_seconds >= STRUGGLE_DURATION_SECONDS
        or emotion is EmotionLabel.NEGATIVE
    )


def apply_struggle_override(
    base: DifficultyLevel, signal: PerformanceSignal, emotion: EmotionLabel
) -> DifficultyLevel:
    if is_struggling(signal, emotion):
        return DifficultyLevel.EASY
    if emotion is EmotionLabel.POSITIVE:
        return DifficultyLevel.HARD
    return base


def effective_difficulty(
    duration_seconds: Optional[float],
    wrong_count: Optional[int],
    emotion: object = EmotionLabel.NEUTRAL,
) -> DifficultyLevel:
    """Base fuzzy decision followed by the struggle override."""

    signal = PerformanceSignal.clamped(duration_seconds, wrong_count)
    canonical = canonicalize(emotion)
    base = defuzzify(rule_strengths(signal.duration_seconds, signal.wrong_count))
    level = apply_struggle_override(base, signal, canonical)
    METRICS.record_difficulty_decision(level.value)
    return level


__all__ = [
    "RULES",
    "apply_struggle_override",
    "decide_difficulty",
    "defuzzify",
    "effective_difficulty",
    "is_struggling",
    "rule_strengths",
]
