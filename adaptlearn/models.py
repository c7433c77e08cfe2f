"""Pydantic models for the adaptive learning engine."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from .domain import ArtifactKind, ArtifactSource, DifficultyLevel, EmotionLabel, QuestionKind


LearningStyle = Literal["VISUAL", "AUDITORY", "KINESTHETIC"]
ArTemplate = Literal[
    "balance_scale",
    "number_line",
    "graph_2d",
    "fraction_blocks",
    "algebra_tiles",
    "generic_overlay",
]


def _utcnow() -> datetime:
    return datetime.utcnow()


def _number_to_str(value: Any) -> Any:
    # numeric answers arrive as JSON numbers; bool is an int subclass and stays rejected
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class Material(BaseModel):
    """Authored learning material; ``content_version`` is the fingerprint of ``content``."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    content: str
    content_version: str = ""
    updated_at: datetime = Field(default_factory=_utcnow)


class ArRecipe(BaseModel):
    """Template-based AR activity derived from a material."""

    version: Literal[1] = 1
    template: ArTemplate = "generic_overlay"
    title: str
    short_goal: str = Field(alias="shortGoal")
    steps: List[str]
    overlay: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @field_validator("steps")
    @classmethod
    def validate_steps(cls, value: List[str]) -> List[str]:
        steps = [step.strip() for step in value if isinstance(step, str) and step.strip()]
        if not steps:
            raise ValueError("AR recipes require at least one step")
        return steps[:6]


class EmotionEvent(BaseModel):
    """Append-only record of a detected emotion."""

    id: UUID = Field(default_factory=uuid4)
    subject_id: str
    material_id: Optional[str] = None
    raw_label: str
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=_utcnow)


class QuizQuestion(BaseModel):
    question: str
    expected_answer: str = Field(alias="expectedAnswer")
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    hint: Optional[str] = None
    kind: QuestionKind = QuestionKind.CALC

    model_config = {"populate_by_name": True}

    @field_validator("expected_answer", mode="before")
    @classmethod
    def coerce_numeric_answer(cls, value: Any) -> Any:
        return _number_to_str(value)

    @field_validator("question", "expected_answer")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not str(value).strip():
            raise ValueError("Quiz questions require non-empty question and expected answer")
        return str(value).strip()

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalize_difficulty(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class GradingResult(BaseModel):
    is_correct: bool
    score: int = Field(ge=0, le=100)
    feedback: str


class AiVerdict(BaseModel):
    """Second opinion returned by the generation backend; every field may be absent."""

    is_correct: Optional[bool] = None
    score: Optional[float] = None
    feedback: Optional[str] = None


class QuizAttempt(BaseModel):
    """Immutable log of one graded answer."""

    id: UUID = Field(default_factory=uuid4)
    subject_id: str
    material_id: str
    question: str
    user_answer: str
    expected_answer: Optional[str] = None
    detected_emotion: EmotionLabel = EmotionLabel.NEUTRAL
    score: int = Field(ge=0, le=100)
    feedback: str = ""
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}


class LastAttempt(BaseModel):
    question: str
    user_answer: str
    expected_answer: Optional[str] = None
    feedback: Optional[str] = None
    score: Optional[float] = None


class PerformanceSummary(BaseModel):
    wrong_count: int = 0
    avg_score: float = 0.0


class RemedialBasis(BaseModel):
    material_version: str
    generated_at: datetime = Field(default_factory=_utcnow)
    last_attempt: Optional[LastAttempt] = None
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)


class RemedialDocument(BaseModel):
    """At most one per (subject, material); regeneration overwrites it."""

    subject_id: str
    material_id: str
    content: str
    emotion: EmotionLabel
    basis: RemedialBasis
    updated_at: datetime = Field(default_factory=_utcnow)


class ArtifactResponse(BaseModel):
    material_id: str
    kind: ArtifactKind
    version: str
    source: ArtifactSource
    payload: Any


# --- request / response bodies -------------------------------------------------


class MaterialCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)


class MaterialUpdateRequest(BaseModel):
    content: str = Field(min_length=1)
    title: Optional[str] = None


class DifficultyRequest(BaseModel):
    duration_seconds: float = Field(default=0.0, ge=0.0, le=300.0)
    wrong_count: int = Field(default=0, ge=0, le=10)
    emotion: str = "Neutral"


class DifficultyResponse(BaseModel):
    base: DifficultyLevel
    effective: DifficultyLevel
    emotion: EmotionLabel


class EmotionLogRequest(BaseModel):
    subject_id: str = Field(min_length=1)
    material_id: Optional[str] = None
    emotion_label: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)


class EmotionOverview(BaseModel):
    subject_id: str
    recent_labels: List[EmotionLabel]
    counts: Dict[str, int]
    has_sustained_distress: bool


class QuizGenerateRequest(BaseModel):
    subject_id: str = Field(min_length=1)
    material_id: str = Field(min_length=1)
    current_emotion: str = "Neutral"
    learning_style: LearningStyle = "VISUAL"
    duration_seconds: float = Field(default=0.0, ge=0.0, le=300.0)
    wrong_count: int = Field(default=0, ge=0, le=10)
    question_index: int = Field(default=1, ge=1, le=6)
    avoid_questions: List[str] = Field(default_factory=list)


class QuizFeedbackRequest(BaseModel):
    subject_id: str = Field(min_length=1)
    material_id: str = Field(min_length=1)
    question: str = Field(min_length=1)
    user_answer: str = Field(min_length=1)
    expected_answer: Optional[str] = None
    question_index: Optional[int] = Field(default=None, ge=1, le=6)
    question_type: Optional[QuestionKind] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0.0, le=300.0)
    current_emotion: str = "Neutral"

    @field_validator("user_answer", "expected_answer", mode="before")
    @classmethod
    def coerce_numeric_answer(cls, value: Any) -> Any:
        return _number_to_str(value)

    @model_validator(mode="after")
    def validate_expected_answer(self) -> "QuizFeedbackRequest":
        is_recap = self.question_type is QuestionKind.RECAP or (
            self.question_type is None and self.question_index == 1
        )
        if not is_recap and not (self.expected_answer or "").strip():
            raise ValueError("Calculation questions require an expected_answer")
        return self


class QuizFeedbackResponse(BaseModel):
    attempt_id: UUID
    kind: QuestionKind
    is_correct: bool
    score: int
    feedback: str
    encouragement: str


class RemedialRequest(BaseModel):
    subject_id: str = Field(min_length=1)
    learning_style: LearningStyle = "VISUAL"
    emotion_label: Optional[str] = None
    last_attempt: Optional[LastAttempt] = None
    wrong_count: Optional[int] = Field(default=None, ge=0, le=50)
    avg_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class LearningStyleRequest(BaseModel):
    answers: Dict[int, LearningStyle]


class LearningStyleResponse(BaseModel):
    style: LearningStyle
    percentages: Dict[str, int]
    description: str


__all__ = [
    "AiVerdict",
    "ArRecipe",
    "ArtifactResponse",
    "DifficultyRequest",
    "DifficultyResponse",
    "EmotionEvent",
    "EmotionLogRequest",
    "EmotionOverview",
    "GradingResult",
    "LastAttempt",
    "LearningStyle",
    "LearningStyleRequest",
    "LearningStyleResponse",
    "Material",
    "MaterialCreateRequest",
    "MaterialUpdateRequest",
    "PerformanceSummary",
    "QuizAttempt",
    "QuizFeedbackRequest",
    "QuizFeedbackResponse",
    "QuizGenerateRequest",
    "QuizQuestion",
    "RemedialBasis",
    "RemedialDocument",
    "RemedialRequest",
]
