import pytest

from adaptlearn.difficulty import (
    LEVEL_SCORES,
    RULES,
    decide_difficulty,
    defuzzify,
    duration_fast,
    duration_normal,
    duration_slow,
    effective_difficulty,
    rule_strengths,
    wrong_high,
    wrong_low,
    wrong_medium,
)
from adaptlearn.domain import DifficultyLevel, EmotionLabel
from adaptlearn.metrics import METRICS


EASY, MEDIUM, HARD = DifficultyLevel.EASY, DifficultyLevel.MEDIUM, DifficultyLevel.HARD


class TestMembership:
    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, 1.0), (20, 1.0), (40, 0.5), (60, 0.0), (200, 0.0)],
    )
    def test_fast(self, seconds, expected):
        assert duration_fast(seconds) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "seconds,expected",
        [(5, 0.0), (10, 0.0), (25, 0.5), (40, 1.0), (65, 0.5), (90, 0.0)],
    )
    def test_normal(self, seconds, expected):
        assert duration_normal(seconds) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "seconds,expected",
        [(30, 0.0), (60, 0.0), (105, 0.5), (150, 1.0), (300, 1.0)],
    )
    def test_slow(self, seconds, expected):
        assert duration_slow(seconds) == pytest.approx(expected)

    def test_wrong_count_terms(self):
        assert [wrong_low(n) for n in (0, 1, 2)] == [1.0, 0.5, 0.0]
        assert wrong_medium(0) == 0.0
        assert wrong_medium(2) == 1.0
        assert wrong_medium(5) == 0.0
        assert [wrong_high(n) for n in (3, 6, 10)] == [0.0, 1.0, 1.0]


class TestRuleBase:
    def test_rules_are_data(self):
        assert len(RULES) == 6
        assert ("fast", "low", HARD) in RULES
        assert ("any", "high", EASY) in RULES
        assert ("slow", "any", EASY) in RULES

    def test_fast_and_low_fires_hard_only(self):
        assert rule_strengths(10, 0) == {EASY: 0.0, MEDIUM: 0.0, HARD: 1.0}

    def test_normal_and_low_fires_medium(self):
        strengths = rule_strengths(40, 0)
        assert strengths[MEDIUM] == 1.0
        assert strengths[HARD] == pytest.approx(0.5)

    def test_fast_and_medium_fires_medium(self):
        assert rule_strengths(20, 2)[MEDIUM] == 1.0

    def test_high_wrong_count_fires_easy_regardless_of_duration(self):
        assert rule_strengths(5, 6)[EASY] == 1.0

    def test_slow_fires_easy_regardless_of_wrong_count(self):
        assert rule_strengths(150, 0)[EASY] == 1.0

    def test_max_aggregation_per_level(self):
        # normal∧medium and fast∧medium both conclude MEDIUM
        strengths = rule_strengths(30, 2)
        assert strengths[MEDIUM] == pytest.approx(max(duration_fast(30), duration_normal(30)))


class TestDefuzzify:
    def test_weighted_average(self):
        assert defuzzify({EASY: 0.0, MEDIUM: 1.0, HARD: 0.5}) is MEDIUM
        assert defuzzify({EASY: 0.0, MEDIUM: 0.1, HARD: 1.0}) is HARD

    def test_ties_round_toward_easier(self):
        assert defuzzify({EASY: 1.0, MEDIUM: 1.0, HARD: 0.0}) is EASY
        assert defuzzify({EASY: 0.0, MEDIUM: 1.0, HARD: 1.0}) is MEDIUM
        assert defuzzify({EASY: 1.0, MEDIUM: 0.0, HARD: 1.0}) is MEDIUM

    def test_no_rule_fired_defaults_to_medium(self):
        assert defuzzify({level: 0.0 for level in LEVEL_SCORES}) is MEDIUM


class TestDecideDifficulty:
    def test_quick_and_accurate_is_hard(self):
        assert decide_difficulty(10, 0) is HARD

    def test_normal_pace_is_medium(self):
        assert decide_difficulty(40, 0) is MEDIUM
        assert decide_difficulty(30, 2) is MEDIUM

    def test_slow_and_many_wrong_is_easy(self):
        assert decide_difficulty(200, 8) is EASY

    def test_inputs_are_clamped(self):
        assert decide_difficulty(-20, -3) is decide_difficulty(0, 0)
        assert decide_difficulty(10_000, 99) is decide_difficulty(300, 10)


class TestEffectiveDifficulty:
    def test_override_forces_easy_when_struggling(self):
        assert effective_difficulty(200, 8, "Neutral") is EASY
        assert effective_difficulty(10, 2, "Neutral") is EASY
        assert effective_difficulty(60, 0, "Positive") is EASY
        assert effective_difficulty(10, 0, "frustrated") is EASY

    def test_positive_emotion_forces_hard(self):
        assert effective_difficulty(45, 1, "happy") is HARD

    def test_neutral_keeps_base_decision(self):
        assert effective_difficulty(10, 0, "surprised") is HARD
        assert effective_difficulty(40, 0, None) is MEDIUM

    def test_records_decision_metric(self):
        effective_difficulty(10, 0, EmotionLabel.NEGATIVE)
        assert METRICS.difficulty_decisions["EASY"] == 1

    @pytest.mark.parametrize("emotion", ["Negative", "Neutral", "Positive"])
    def test_monotonic_in_duration_and_wrong_count(self, emotion):
        durations = [float(seconds) for seconds in range(0, 301, 5)]
        for wrong in range(0, 11):
            levels = [LEVEL_SCORES[effective_difficulty(d, wrong, emotion)] for d in durations]
            assert levels == sorted(levels, reverse=True), (emotion, wrong)
        for duration in durations:
            levels = [LEVEL_SCORES[effective_difficulty(duration, w, emotion)] for w in range(0, 11)]
            assert levels == sorted(levels, reverse=True), (emotion, duration)
