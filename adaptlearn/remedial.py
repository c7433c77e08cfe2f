"""Remedial document composition, one upserted document per (student, material)."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from .artifacts import fingerprint
from .config import EngineConfig
from .domain import EmotionLabel, canonicalize
from .generation import ContentGenerator, GenerationError
from .metrics import METRICS
from .models import LastAttempt, Material, PerformanceSummary, RemedialBasis, RemedialDocument
from .repositories import EmotionEventRepository, QuizAttemptRepository, RemedialRepository


logger = logging.getLogger(__name__)


def placeholder_document(title: str) -> str:
    return "\n".join(
        [
            f"# Remedial: {title}",
            "",
            "Remedial material could not be generated automatically right now. "
            "Please try again later or ask your teacher for help.",
        ]
    )


class RemedialComposer:
    """Gathers emotion and performance context and writes the remedial document."""

    def __init__(
        self,
        generator: ContentGenerator,
        attempts: QuizAttemptRepository,
        emotions: EmotionEventRepository,
        remedials: RemedialRepository,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._generator = generator
        self._attempts = attempts
        self._emotions = emotions
        self._remedials = remedials
        self._config = config or EngineConfig()

    def resolve_emotion(
        self, subject_id: str, material_id: str, explicit: Optional[str] = None, now: Optional[datetime] = None
    ) -> EmotionLabel:
        """Explicit label, else the latest event in the look-back window, else Neutral."""

        if explicit is not None and str(explicit).strip():
            return canonicalize(explicit)
        since = (now or datetime.utcnow()) - timedelta(minutes=self._config.emotion_lookback_minutes)
        events = self._emotions.recent_events(subject_id, material_id=material_id, since=since, limit=1)
        if not events:
            return EmotionLabel.NEUTRAL
        return canonicalize(events[0].raw_label)

    def summarize_performance(self, subject_id: str, material_id: str) -> PerformanceSummary:
        recent = self._attempts.recent_attempts(subject_id, material_id, self._config.performance_window)
        if not recent:
            return PerformanceSummary()
        scores = [attempt.score for attempt in recent]
        return PerformanceSummary(
            wrong_count=sum(1 for score in scores if score < self._config.pass_score),
            avg_score=sum(scores) / len(scores),
        )

    def compose(
        self,
        subject_id: str,
        material: Material,
        learning_style: str = "VISUAL",
        emotion: Optional[str] = None,
        last_attempt: Optional[LastAttempt] = None,
        performance: Optional[PerformanceSummary] = None,
    ) -> RemedialDocument:
        emotion_label = self.resolve_emotion(subject_id, material.id, emotion)
        summary = performance or self.summarize_performance(subject_id, material.id)

        try:
            content = self._generator.generate_remedial(
                material.title,
                material.content,
                learning_style,
                emotion_label,
                summary.wrong_count,
                summary.avg_score,
                last_attempt.model_dump() if last_attempt else None,
            )
        except GenerationError as exc:
            logger.warning("Remedial generation failed for %s/%s: %s", subject_id, material.id, exc)
            content = ""

        if len(content) < self._config.remedial_min_length:
            METRICS.record_remedial_placeholder()
            content = placeholder_document(material.title)

        document = RemedialDocument(
            subject_id=subject_id,
            material_id=material.id,
            content=content,
            emotion=emotion_label,
            basis=RemedialBasis(
                material_version=material.content_version or fingerprint(material.content),
                last_attempt=last_attempt,
                performance=summary,
            ),
        )
        saved = self._remedials.upsert_remedial(document)
        logger.info("Upserted remedial document for %s/%s", subject_id, material.id)
        return saved


__all__ = ["RemedialComposer", "placeholder_document"]
