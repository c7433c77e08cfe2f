"""Answer grading: deterministic local graders plus an AI second-opinion overlay.

Calculation answers have an unambiguous ground truth, so the AI verdict may
only rescue an answer the exact matcher rejected. Recap answers are
open-ended, so the AI verdict is authoritative whenever it carries a score.
"""
from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import List, Optional

from .domain import EmotionLabel, QuestionKind
from .generation import ContentGenerator, GenerationError
from .metrics import METRICS
from .models import AiVerdict, GradingResult


logger = logging.getLogger(__name__)

CALC_TOLERANCE = 1e-6
RECAP_MIN_LENGTH = 40
RECAP_KEYWORD_COUNT = 8
KEYWORD_MIN_LENGTH = 4

STOP_WORDS = frozenset(
    {
        # English
        "about", "after", "also", "because", "been", "before", "being", "both",
        "each", "from", "have", "here", "into", "just", "like", "make", "more",
        "most", "only", "other", "over", "same", "should", "some", "such",
        "than", "that", "their", "them", "then", "there", "these", "they",
        "this", "those", "very", "what", "when", "where", "which", "while",
        "will", "with", "would", "your",
        # Indonesian
        "adalah", "atau", "dalam", "dari", "dengan", "jadi", "jika", "maka",
        "pada", "sebagai", "untuk", "yang",
    }
)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")

FEEDBACK_NEEDS_NUMBER = "Your answer must be a number."
FEEDBACK_CALC_CORRECT = "Correct."
FEEDBACK_RECAP_CORRECT = "Good, your summary covers the important points."
FEEDBACK_RECAP_RETRY = "Try to mention 2-3 main points (definition or formula) and one short example."


def parse_number(text: Optional[str]) -> Optional[float]:
    """Parse a loosely formatted numeric answer; ``None`` when nothing numeric remains."""

    cleaned = _NON_NUMERIC.sub("", (text or "").strip().replace(",", "."))
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return None
    value = float(match.group(0))
    if value != value or value in (float("inf"), float("-inf")):
        return None
    return value


def grade_calc(user_answer: str, expected_answer: Optional[str], tolerance: float = CALC_TOLERANCE) -> GradingResult:
    user = parse_number(user_answer)
    expected = parse_number(expected_answer)
    if user is None or expected is None:
        return GradingResult(is_correct=False, score=0, feedback=FEEDBACK_NEEDS_NUMBER)
    is_correct = abs(user - expected) <= tolerance
    return GradingResult(
        is_correct=is_correct,
        score=100 if is_correct else 0,
        feedback=FEEDBACK_CALC_CORRECT if is_correct else f"Incorrect. The expected answer is {expected_answer}.",
    )


def pick_keywords(material_text: str, max_keywords: int = RECAP_KEYWORD_COUNT) -> List[str]:
    """Top ``max_keywords`` content words by frequency; ties keep first-seen order."""

    words = _NON_ALNUM.sub(" ", (material_text or "").lower()).split()
    candidates = [word for word in words if len(word) >= KEYWORD_MIN_LENGTH and word not in STOP_WORDS]
    return [word for word, _ in Counter(candidates).most_common(max_keywords)]


def grade_recap(
    user_answer: str,
    material_text: str,
    min_length: int = RECAP_MIN_LENGTH,
    keyword_count: int = RECAP_KEYWORD_COUNT,
) -> GradingResult:
    answer = (user_answer or "").lower()
    keywords = pick_keywords(material_text, keyword_count)
    hits = sum(1 for keyword in keywords if keyword in answer)
    long_enough = len((user_answer or "").strip()) >= min_length

    is_correct = hits >= 2 and long_enough
    if is_correct:
        score = 100
    elif hits >= 1 and long_enough:
        score = 70
    elif long_enough:
        score = 50
    else:
        score = 0
    return GradingResult(
        is_correct=is_correct,
        score=score,
        feedback=FEEDBACK_RECAP_CORRECT if is_correct else FEEDBACK_RECAP_RETRY,
    )


def merge_grading(local: GradingResult, ai: Optional[AiVerdict], kind: QuestionKind) -> GradingResult:
    """Combine the local grade with an optional AI verdict.

    RECAP: a numeric AI score replaces correctness and score.
    CALC: a locally correct answer is never overridden; otherwise a numeric AI
    score may award correctness and partial credit.
    Non-empty AI feedback text is adopted for both kinds.
    """

    if ai is None:
        return local

    is_correct, score = local.is_correct, local.score
    ai_has_score = ai.score is not None and math.isfinite(ai.score)
    if ai_has_score and (kind is QuestionKind.RECAP or not local.is_correct):
        is_correct = bool(ai.is_correct)
        score = int(round(min(max(float(ai.score), 0.0), 100.0)))

    feedback = ai.feedback.strip() if ai.feedback and ai.feedback.strip() else local.feedback
    return GradingResult(is_correct=is_correct, score=score, feedback=feedback)


ENCOURAGEMENT = {
    EmotionLabel.NEGATIVE: "Take it easy, work through it slowly.",
    EmotionLabel.POSITIVE: "Great work! Keep going.",
    EmotionLabel.NEUTRAL: "Keep going!",
}


def encouragement_for(emotion: EmotionLabel) -> str:
    return ENCOURAGEMENT.get(emotion, ENCOURAGEMENT[EmotionLabel.NEUTRAL])


class GradingEngine:
    """Grades one answer locally, then asks the backend for a second opinion."""

    def __init__(
        self,
        generator: Optional[ContentGenerator] = None,
        tolerance: float = CALC_TOLERANCE,
        recap_min_length: int = RECAP_MIN_LENGTH,
        recap_keyword_count: int = RECAP_KEYWORD_COUNT,
    ) -> None:
        self._generator = generator
        self._tolerance = tolerance
        self._recap_min_length = recap_min_length
        self._recap_keyword_count = recap_keyword_count

    def grade_locally(
        self,
        kind: QuestionKind,
        user_answer: str,
        expected_answer: Optional[str],
        material_text: str = "",
    ) -> GradingResult:
        if kind is QuestionKind.RECAP:
            return grade_recap(user_answer, material_text, self._recap_min_length, self._recap_keyword_count)
        return grade_calc(user_answer, expected_answer, self._tolerance)

    def grade(
        self,
        kind: QuestionKind,
        question: str,
        user_answer: str,
        expected_answer: Optional[str],
        emotion: EmotionLabel,
        material_text: str = "",
    ) -> GradingResult:
        local = self.grade_locally(kind, user_answer, expected_answer, material_text)
        if self._generator is None:
            return local
        try:
            verdict = self._generator.generate_feedback(
                question,
                user_answer,
                expected_answer,
                emotion,
                kind,
                material_text=material_text if kind is QuestionKind.RECAP else None,
            )
        except GenerationError as exc:
            logger.warning("AI grading unavailable, keeping local %s grade: %s", kind.value, exc)
            return local

        merged = merge_grading(local, verdict, kind)
        if (merged.is_correct, merged.score) != (local.is_correct, local.score):
            METRICS.record_grading_override(kind.value)
        return merged


__all__ = [
    "GradingEngine",
    "encouragement_for",
    "grade_calc",
    "grade_recap",
    "merge_grading",
    "parse_number",
    "pick_keywords",
]
