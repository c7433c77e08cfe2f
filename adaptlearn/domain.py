"""Domain types shared across the decision engines, cache and repositories."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Iterable, Optional


class EmotionLabel(str, Enum):
    """Reduced emotion taxonomy every decision operates on."""

    NEGATIVE = "Negative"
    NEUTRAL = "Neutral"
    POSITIVE = "Positive"


class DifficultyLevel(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class QuestionKind(str, Enum):
    RECAP = "RECAP"
    CALC = "CALC"


class ArtifactKind(str, Enum):
    """Derived artifacts cached per material against its content fingerprint."""

    AR_RECIPE = "ar_recipe"
    AR_EXPLANATION = "ar_explanation"
    AUDIO_SCRIPT = "audio_script"
    REFINED_TEXT = "refined_text"


class ArtifactSource(str, Enum):
    CACHE = "cache"
    GENERATED = "generated"
    FORCED = "forced"


_POSITIVE_LABELS = frozenset({"positive", "happy"})
_NEGATIVE_LABELS = frozenset(
    {
        "negative",
        "anxious",
        "confused",
        "frustrated",
        "sad",
        "angry",
        "fearful",
        "disgusted",
    }
)


def canonicalize(raw_label: Any) -> EmotionLabel:
    """Map any raw or legacy emotion label onto the canonical taxonomy.

    Unknown input (including ``None``) degrades to ``Neutral``; this never raises.
    """

    if isinstance(raw_label, EmotionLabel):
        return raw_label
    normalized = str(raw_label if raw_label is not None else "").strip().lower()
    if normalized in _POSITIVE_LABELS:
        return EmotionLabel.POSITIVE
    if normalized in _NEGATIVE_LABELS:
        return EmotionLabel.NEGATIVE
    return EmotionLabel.NEUTRAL


DISTRESS_WINDOW = 20
DISTRESS_THRESHOLD = 0.60


@dataclass
class EmotionWindow:
    """Keeps the most recent canonical emotion labels for a single student.

    Labels are stored most recent first. Every entry inside the window carries
    equal weight; recency only decides membership.
    """

    window_size: int = DISTRESS_WINDOW
    threshold: float = DISTRESS_THRESHOLD
    recent_labels: Deque[EmotionLabel] = field(init=False)

    def __post_init__(self) -> None:
        self.recent_labels = deque(maxlen=self.window_size)

    @classmethod
    def from_labels(
        cls,
        labels_most_recent_first: Iterable[Any],
        window_size: int = DISTRESS_WINDOW,
        threshold: float = DISTRESS_THRESHOLD,
    ) -> "EmotionWindow":
        window = cls(window_size=window_size, threshold=threshold)
        for label in labels_most_recent_first:
            if len(window.recent_labels) >= window_size:
                break
            window.recent_labels.append(canonicalize(label))
        return window

    def register(self, label: Any) -> None:
        """Push a newly observed label in front of the window."""

        self.recent_labels.appendleft(canonicalize(label))

    def negative_ratio(self) -> float:
        total = len(self.recent_labels)
        if not total:
            return 0.0
        negatives = sum(1 for label in self.recent_labels if label is EmotionLabel.NEGATIVE)
        return negatives / total

    def has_sustained_distress(self) -> bool:
        if not self.recent_labels:
            return False
        return self.negative_ratio() > self.threshold

    def label_counts(self) -> Dict[str, int]:
        counts = {label.value: 0 for label in EmotionLabel}
        for label in self.recent_labels:
            counts[label.value] += 1
        return counts


def has_sustained_distress(
    recent_labels: Iterable[Any],
    window_size: int = DISTRESS_WINDOW,
    threshold: float = DISTRESS_THRESHOLD,
) -> bool:
    """Return True when more than ``threshold`` of the last ``window_size`` labels are Negative."""

    return EmotionWindow.from_labels(recent_labels, window_size, threshold).has_sustained_distress()


MAX_DURATION_SECONDS = 300.0
MAX_WRONG_COUNT = 10


@dataclass(frozen=True)
class PerformanceSignal:
    """Per-turn struggle proxies, clamped to their documented domains."""

    duration_seconds: float
    wrong_count: int

    @classmethod
    def clamped(cls, duration_seconds: Optional[float], wrong_count: Optional[int]) -> "PerformanceSignal":
        try:
            duration = float(duration_seconds or 0.0)
        except (TypeError, ValueError):
            duration = 0.0
        if duration != duration:  # NaN
            duration = 0.0
        try:
            wrong = int(wrong_count or 0)
        except (TypeError, ValueError):
            wrong = 0
        return cls(
            duration_seconds=min(max(duration, 0.0), MAX_DURATION_SECONDS),
            wrong_count=min(max(wrong, 0), MAX_WRONG_COUNT),
        )


@dataclass(frozen=True)
class CachedArtifact:
    """An artifact payload paired with the content version it was generated against."""

    payload: Any
    version: str

    def is_valid_for(self, content_version: str) -> bool:
        return self.payload is not None and self.payload != "" and self.version == content_version


__all__ = [
    "ArtifactKind",
    "ArtifactSource",
    "CachedArtifact",
    "DifficultyLevel",
    "EmotionLabel",
    "EmotionWindow",
    "PerformanceSignal",
    "QuestionKind",
    "canonicalize",
    "has_sustained_distress",
]
