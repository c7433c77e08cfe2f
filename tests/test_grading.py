import pytest

from adaptlearn.domain import EmotionLabel, QuestionKind
from adaptlearn.generation import ContentGenerator, GenerationError
from adaptlearn.grading import (
    FEEDBACK_NEEDS_NUMBER,
    GradingEngine,
    encouragement_for,
    grade_calc,
    grade_recap,
    merge_grading,
    parse_number,
    pick_keywords,
)
from adaptlearn.metrics import METRICS
from adaptlearn.models import AiVerdict, GradingResult

from conftest import MATERIAL_TEXT, FakeBackend, as_json


RECAP_ANSWER = (
    "To solve a linear equation you subtract the constant from both sides, "
    "then divide by the coefficient."
)


class TestParseNumber:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("5", 5.0),
            (" 3,5 ", 3.5),
            ("x = -2", -2.0),
            ("12 cm", 12.0),
            ("0.25", 0.25),
            (".5", 0.5),
        ],
    )
    def test_parses_loose_numbers(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", None, "-", "."])
    def test_rejects_non_numeric(self, raw):
        assert parse_number(raw) is None


class TestGradeCalc:
    def test_exact_match(self):
        result = grade_calc("42", "42")
        assert result.is_correct is True
        assert result.score == 100

    def test_within_tolerance_is_correct(self):
        assert grade_calc("5.0000001", "5").is_correct is True

    def test_at_tolerance_boundary_is_incorrect(self):
        result = grade_calc("5", "5.000001")
        assert result.is_correct is False
        assert result.score == 0

    def test_comma_decimal_separator(self):
        assert grade_calc("2,5", "2.5").is_correct is True

    def test_non_numeric_answer(self):
        result = grade_calc("abc", "5")
        assert result.is_correct is False
        assert result.score == 0
        assert result.feedback == FEEDBACK_NEEDS_NUMBER

    def test_wrong_answer_mentions_expected(self):
        result = grade_calc("4", "5")
        assert result.is_correct is False
        assert "5" in result.feedback


class TestGradeRecap:
    def test_keywords_skip_short_and_stop_words(self):
        keywords = pick_keywords(MATERIAL_TEXT)
        assert len(keywords) <= 8
        assert "linear" in keywords
        assert "equation" in keywords
        assert "the" not in keywords
        assert "both" not in keywords
        assert all(len(word) >= 4 for word in keywords)

    def test_keywords_ranked_by_frequency(self):
        assert pick_keywords("gamma beta beta alpha alpha alpha", 2) == ["alpha", "beta"]

    def test_good_summary_is_correct(self):
        result = grade_recap(RECAP_ANSWER, MATERIAL_TEXT)
        assert result.is_correct is True
        assert result.score == 100

    def test_one_hit_long_enough_scores_seventy(self):
        answer = "It is about the linear stuff we saw in class today, I think."
        result = grade_recap(answer, MATERIAL_TEXT)
        assert result.is_correct is False
        assert result.score == 70

    def test_long_enough_without_hits_scores_fifty(self):
        answer = "I am not really sure what this lesson was about, sorry."
        assert grade_recap(answer, MATERIAL_TEXT).score == 50

    def test_short_answer_always_scores_zero(self):
        answer = "linear equation variable"
        assert len(answer) < 40
        result = grade_recap(answer, MATERIAL_TEXT)
        assert result.score == 0
        assert result.is_correct is False


class TestMergeGrading:
    wrong_calc = GradingResult(is_correct=False, score=0, feedback="local")
    right_calc = GradingResult(is_correct=True, score=100, feedback="local")

    def test_no_verdict_keeps_local(self):
        assert merge_grading(self.wrong_calc, None, QuestionKind.CALC) == self.wrong_calc

    def test_recap_verdict_is_authoritative(self):
        local = GradingResult(is_correct=True, score=100, feedback="local")
        verdict = AiVerdict(is_correct=False, score=40, feedback="Missing the key step.")
        merged = merge_grading(local, verdict, QuestionKind.RECAP)
        assert (merged.is_correct, merged.score, merged.feedback) == (False, 40, "Missing the key step.")

    def test_recap_verdict_without_score_keeps_local_grade(self):
        local = GradingResult(is_correct=False, score=50, feedback="local")
        merged = merge_grading(local, AiVerdict(is_correct=True, feedback="Nice"), QuestionKind.RECAP)
        assert (merged.is_correct, merged.score, merged.feedback) == (False, 50, "Nice")

    def test_calc_correct_is_never_overridden(self):
        verdict = AiVerdict(is_correct=False, score=0, feedback="Looks wrong")
        merged = merge_grading(self.right_calc, verdict, QuestionKind.CALC)
        assert merged.is_correct is True
        assert merged.score == 100
        assert merged.feedback == "Looks wrong"

    def test_calc_incorrect_can_be_rescued(self):
        verdict = AiVerdict(is_correct=True, score=80, feedback="Equivalent fraction")
        merged = merge_grading(self.wrong_calc, verdict, QuestionKind.CALC)
        assert (merged.is_correct, merged.score) == (True, 80)

    def test_blank_feedback_is_ignored_and_score_clamped(self):
        verdict = AiVerdict(is_correct=True, score=140.6, feedback="   ")
        merged = merge_grading(self.wrong_calc, verdict, QuestionKind.CALC)
        assert merged.score == 100
        assert merged.feedback == "local"


    def test_non_finite_score_keeps_local_grade(self):
        local = GradingResult(is_correct=False, score=50, feedback="local")
        merged = merge_grading(local, AiVerdict(is_correct=True, score=float("nan")), QuestionKind.RECAP)
        assert (merged.is_correct, merged.score) == (False, 50)

class TestGradingEngine:
    def test_backend_failure_keeps_local_result(self, offline_generator):
        engine = GradingEngine(offline_generator)
        result = engine.grade(QuestionKind.CALC, "2+2?", "4", "4", EmotionLabel.NEUTRAL)
        assert result.is_correct is True
        assert result.score == 100

    def test_malformed_verdict_keeps_local_result(self, config):
        engine = GradingEngine(ContentGenerator(FakeBackend("not json at all"), config))
        result = engine.grade(QuestionKind.CALC, "2+2?", "5", "4", EmotionLabel.NEUTRAL)
        assert (result.is_correct, result.score) == (False, 0)

    def test_recap_override_is_recorded(self, config):
        backend = FakeBackend(as_json({"isCorrect": True, "score": 90, "feedback": "Well summarised."}))
        engine = GradingEngine(ContentGenerator(backend, config))
        result = engine.grade(
            QuestionKind.RECAP,
            "Summarise the lesson",
            "short",
            None,
            EmotionLabel.POSITIVE,
            material_text=MATERIAL_TEXT,
        )
        assert (result.is_correct, result.score, result.feedback) == (True, 90, "Well summarised.")
        assert METRICS.grading_overrides["RECAP"] == 1
        assert "Material (for judging the summary)" in backend.prompts[0]

    def test_nan_verdict_keeps_local_result(self, config):
        backend = FakeBackend('{"isCorrect": true, "score": NaN, "feedback": "Close enough."}')
        engine = GradingEngine(ContentGenerator(backend, config))
        result = engine.grade(QuestionKind.CALC, "2+2?", "5", "4", EmotionLabel.NEUTRAL)
        assert (result.is_correct, result.score) == (False, 0)
        assert result.feedback == "Close enough."

    def test_without_generator_grades_locally(self):
        engine = GradingEngine()
        assert engine.grade(QuestionKind.CALC, "q", "7", "7", EmotionLabel.NEUTRAL).score == 100

    def test_backend_error_does_not_raise(self, config):
        engine = GradingEngine(ContentGenerator(FakeBackend(GenerationError("timeout")), config))
        engine.grade(QuestionKind.RECAP, "q", RECAP_ANSWER, None, EmotionLabel.NEUTRAL, MATERIAL_TEXT)
        assert METRICS.generation_failure_reasons["feedback"] == 1


def test_encouragement_depends_on_emotion():
    messages = {encouragement_for(label) for label in EmotionLabel}
    assert len(messages) == 3
