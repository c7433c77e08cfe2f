"""Service facades wiring the decision engines, cache and repositories together."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from .artifacts import ArtifactCache, fingerprint
from .config import EngineConfig
from .difficulty import effective_difficulty
from .domain import ArtifactKind, EmotionWindow, QuestionKind, canonicalize
from .generation import ContentGenerator
from .grading import GradingEngine, encouragement_for
from .metrics import METRICS
from .models import (
    ArtifactResponse,
    EmotionEvent,
    EmotionLogRequest,
    EmotionOverview,
    LastAttempt,
    Material,
    PerformanceSummary,
    QuizAttempt,
    QuizFeedbackRequest,
    QuizFeedbackResponse,
    QuizGenerateRequest,
    QuizQuestion,
    RemedialDocument,
    RemedialRequest,
)
from .remedial import RemedialComposer
from .repositories import LearningRepository


logger = logging.getLogger(__name__)


class MaterialService:
    """Authoring and artifact access for learning materials."""

    def __init__(self, repository: LearningRepository, cache: ArtifactCache) -> None:
        self._repository = repository
        self._cache = cache

    def author(self, title: str, content: str) -> Material:
        material = Material(title=title, content=content, content_version=fingerprint(content))
        self._repository.save_material(material)
        logger.info("Authored material %s (version %s)", material.id, material.content_version[:12])
        return material

    def update_content(self, material_id: str, content: str, title: Optional[str] = None) -> Material:
        """Replace the content; the new fingerprint invalidates every cached artifact."""

        material = self._repository.get_material(material_id)
        updated = material.model_copy(
            update={
                "title": title or material.title,
                "content": content,
                "content_version": fingerprint(content),
                "updated_at": datetime.utcnow(),
            }
        )
        self._repository.save_material(updated)
        self._cache.invalidate_locks(material_id)
        logger.info("Updated material %s to version %s", material_id, updated.content_version[:12])
        return updated

    def get_artifact(self, material_id: str, kind: ArtifactKind, force: bool = False) -> ArtifactResponse:
        material = self._repository.get_material(material_id)
        result = self._cache.get_or_generate(material, kind, force=force)
        return ArtifactResponse(
            material_id=result.material_id,
            kind=result.kind,
            version=result.version,
            source=result.source,
            payload=result.payload,
        )


class EmotionService:
    """Append-only emotion log plus the teacher-facing distress overview."""

    def __init__(self, repository: LearningRepository, config: Optional[EngineConfig] = None) -> None:
        self._repository = repository
        self._config = config or EngineConfig()

    def log_event(self, request: EmotionLogRequest) -> EmotionEvent:
        event = EmotionEvent(
            subject_id=request.subject_id,
            material_id=request.material_id,
            raw_label=request.emotion_label.strip(),
            confidence=request.confidence,
        )
        self._repository.append_event(event)
        logger.debug("Logged %s emotion for %s", event.raw_label, event.subject_id)
        return event

    def overview(self, subject_id: str) -> EmotionOverview:
        events = self._repository.recent_events(subject_id, limit=self._config.distress_window)
        window = EmotionWindow.from_labels(
            (event.raw_label for event in events),
            window_size=self._config.distress_window,
            threshold=self._config.distress_threshold,
        )
        distressed = window.has_sustained_distress()
        if distressed:
            METRICS.record_distress_flag()
            logger.info("Sustained distress detected for %s", subject_id)
        return EmotionOverview(
            subject_id=subject_id,
            recent_labels=list(window.recent_labels),
            counts=window.label_counts(),
            has_sustained_distress=distressed,
        )


class QuizService:
    """Adaptive question selection and answer grading."""

    def __init__(
        self,
        repository: LearningRepository,
        generator: ContentGenerator,
        grading: GradingEngine,
    ) -> None:
        self._repository = repository
        self._generator = generator
        self._grading = grading

    def next_question(self, request: QuizGenerateRequest) -> QuizQuestion:
        material = self._repository.get_material(request.material_id)
        emotion = canonicalize(request.current_emotion)
        level = effective_difficulty(request.duration_seconds, request.wrong_count, emotion)
        question = self._generator.generate_quiz_question(
            material.content,
            emotion,
            request.learning_style,
            level,
            index=request.question_index,
            avoid_questions=request.avoid_questions,
        )
        return question.model_copy(update={"difficulty": level})

    def submit_answer(self, request: QuizFeedbackRequest) -> QuizFeedbackResponse:
        material = self._repository.get_material(request.material_id)
        emotion = canonicalize(request.current_emotion)
        kind = request.question_type or (
            QuestionKind.RECAP if request.question_index == 1 else QuestionKind.CALC
        )
        result = self._grading.grade(
            kind,
            request.question,
            request.user_answer,
            request.expected_answer,
            emotion,
            material_text=material.content,
        )
        attempt = QuizAttempt(
            subject_id=request.subject_id,
            material_id=material.id,
            question=request.question,
            user_answer=request.user_answer,
            expected_answer=request.expected_answer,
            detected_emotion=emotion,
            score=result.score,
            feedback=result.feedback,
        )
        self._repository.append_attempt(attempt)
        logger.info(
            "Recorded %s attempt %s for %s (score %s)", kind.value, attempt.id, request.subject_id, result.score
        )
        return QuizFeedbackResponse(
            attempt_id=attempt.id,
            kind=kind,
            is_correct=result.is_correct,
            score=result.score,
            feedback=result.feedback,
            encouragement=encouragement_for(emotion),
        )


class RemedialService:
    def __init__(self, repository: LearningRepository, composer: RemedialComposer) -> None:
        self._repository = repository
        self._composer = composer

    def compose(self, material_id: str, request: RemedialRequest) -> RemedialDocument:
        material = self._repository.get_material(material_id)
        performance: Optional[PerformanceSummary] = None
        if request.wrong_count is not None or request.avg_score is not None:
            measured = self._composer.summarize_performance(request.subject_id, material_id)
            performance = PerformanceSummary(
                wrong_count=request.wrong_count if request.wrong_count is not None else measured.wrong_count,
                avg_score=request.avg_score if request.avg_score is not None else measured.avg_score,
            )
        last_attempt = request.last_attempt or self._latest_attempt(request.subject_id, material_id)
        return self._composer.compose(
            request.subject_id,
            material,
            learning_style=request.learning_style,
            emotion=request.emotion_label,
            last_attempt=last_attempt,
            performance=performance,
        )

    def get(self, subject_id: str, material_id: str) -> Optional[RemedialDocument]:
        self._repository.get_material(material_id)
        return self._repository.get_remedial(subject_id, material_id)

    def _latest_attempt(self, subject_id: str, material_id: str) -> Optional[LastAttempt]:
        recent = self._repository.recent_attempts(subject_id, material_id, 1)
        if not recent:
            return None
        attempt = recent[0]
        return LastAttempt(
            question=attempt.question,
            user_answer=attempt.user_answer,
            expected_answer=attempt.expected_answer,
            feedback=attempt.feedback,
            score=attempt.score,
        )


__all__ = ["EmotionService", "MaterialService", "QuizService", "RemedialService"]
