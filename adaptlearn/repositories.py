"""Repository interfaces for adaptive learning persistent state."""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .domain import ArtifactKind, CachedArtifact
from .models import EmotionEvent, Material, QuizAttempt, RemedialDocument


class PersistenceError(RuntimeError):
    """Raised when the backing store is unavailable or rejects a write."""


class MaterialNotFoundError(KeyError):
    """Raised when a material id does not exist."""

    def __init__(self, material_id: str) -> None:
        super().__init__(material_id)
        self.material_id = material_id

    def __str__(self) -> str:
        return f"Material {self.material_id} does not exist"


class MaterialRepository(ABC):
    """Persist authored materials together with their content fingerprint."""

    @abstractmethod
    def get_material(self, material_id: str) -> Material:
        """Return the material or raise ``MaterialNotFoundError``."""

    @abstractmethod
    def save_material(self, material: Material) -> None:
        """Insert or replace a material record, content and version together."""


class ArtifactStore(ABC):
    """Cached derived artifacts, one (payload, version) pair per material and kind."""

    @abstractmethod
    def get_artifact(self, material_id: str, kind: ArtifactKind) -> Optional[CachedArtifact]:
        """Return the stored pair, if present."""

    @abstractmethod
    def compare_and_swap(
        self,
        material_id: str,
        kind: ArtifactKind,
        expected_version: Optional[str],
        artifact: CachedArtifact,
    ) -> bool:
        """Atomically replace the stored pair if its version still equals ``expected_version``.

        ``expected_version`` of ``None`` means "nothing stored yet". Returns False
        without writing when another writer got there first.
        """


class QuizAttemptRepository(ABC):
    @abstractmethod
    def append_attempt(self, attempt: QuizAttempt) -> None:
        """Append a graded attempt; attempts are never updated."""

    @abstractmethod
    def recent_attempts(self, subject_id: str, material_id: str, limit: int) -> List[QuizAttempt]:
        """Return up to ``limit`` attempts, most recent first."""


class EmotionEventRepository(ABC):
    @abstractmethod
    def append_event(self, event: EmotionEvent) -> None:
        """Append an emotion event; events are never updated."""

    @abstractmethod
    def recent_events(
        self,
        subject_id: str,
        material_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[EmotionEvent]:
        """Return events ordered by timestamp, most recent first."""


class RemedialRepository(ABC):
    @abstractmethod
    def get_remedial(self, subject_id: str, material_id: str) -> Optional[RemedialDocument]:
        """Return the remedial document for the pair, if any."""

    @abstractmethod
    def upsert_remedial(self, document: RemedialDocument) -> RemedialDocument:
        """Insert or overwrite the single document for (subject, material)."""


class LearningRepository(
    MaterialRepository,
    ArtifactStore,
    QuizAttemptRepository,
    EmotionEventRepository,
    RemedialRepository,
    ABC,
):
    """Convenience union implemented by the concrete stores."""


__all__ = [
    "ArtifactStore",
    "EmotionEventRepository",
    "LearningRepository",
    "MaterialNotFoundError",
    "MaterialRepository",
    "PersistenceError",
    "QuizAttemptRepository",
    "RemedialRepository",
]
