"""Concrete repository implementations backed by SQLite or process memory."""
from __future__ import annotations

import copy
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from uuid import UUID

from .domain import ArtifactKind, CachedArtifact
from .models import EmotionEvent, Material, QuizAttempt, RemedialDocument
from .repositories import LearningRepository, MaterialNotFoundError, PersistenceError


def _json_default(value):
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value)!r} is not JSON serialisable")


class InMemoryRepository(LearningRepository):
    """Process-local repository used by tests and single-instance deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._materials: Dict[str, Material] = {}
        self._artifacts: Dict[Tuple[str, ArtifactKind], CachedArtifact] = {}
        self._attempts: List[QuizAttempt] = []
        self._events: List[EmotionEvent] = []
        self._remedials: Dict[Tuple[str, str], RemedialDocument] = {}

    # region Materials
    def get_material(self, material_id: str) -> Material:
        with self._lock:
            material = self._materials.get(material_id)
        if material is None:
            raise MaterialNotFoundError(material_id)
        return material.model_copy()

    def save_material(self, material: Material) -> None:
        with self._lock:
            self._materials[material.id] = material.model_copy()

    # endregion

    # region Artifacts
    def get_artifact(self, material_id: str, kind: ArtifactKind) -> Optional[CachedArtifact]:
        with self._lock:
            artifact = self._artifacts.get((material_id, kind))
        if artifact is None:
            return None
        return CachedArtifact(payload=copy.deepcopy(artifact.payload), version=artifact.version)

    def compare_and_swap(
        self,
        material_id: str,
        kind: ArtifactKind,
        expected_version: Optional[str],
        artifact: CachedArtifact,
    ) -> bool:
        key = (material_id, kind)
        with self._lock:
            if material_id not in self._materials:
                raise MaterialNotFoundError(material_id)
            current = self._artifacts.get(key)
            current_version = current.version if current is not None else None
            if current_version != expected_version:
                return False
            self._artifacts[key] = CachedArtifact(payload=copy.deepcopy(artifact.payload), version=artifact.version)
            return True

    # endregion

    # region Attempts and emotions
    def append_attempt(self, attempt: QuizAttempt) -> None:
        with self._lock:
            self._attempts.append(attempt)

    def recent_attempts(self, subject_id: str, material_id: str, limit: int) -> List[QuizAttempt]:
        with self._lock:
            matching = [
                attempt
                for attempt in self._attempts
                if attempt.subject_id == subject_id and attempt.material_id == material_id
            ]
        matching.sort(key=lambda attempt: attempt.created_at, reverse=True)
        return matching[:limit]

    def append_event(self, event: EmotionEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent_events(
        self,
        subject_id: str,
        material_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[EmotionEvent]:
        with self._lock:
            matching = [
                event
                for event in self._events
                if event.subject_id == subject_id
                and (material_id is None or event.material_id == material_id)
                and (since is None or event.timestamp >= since)
            ]
        matching.sort(key=lambda event: event.timestamp, reverse=True)
        return matching[:limit] if limit is not None else matching

    # endregion

    # region Remedial
    def get_remedial(self, subject_id: str, material_id: str) -> Optional[RemedialDocument]:
        with self._lock:
            return self._remedials.get((subject_id, material_id))

    def upsert_remedial(self, document: RemedialDocument) -> RemedialDocument:
        with self._lock:
            self._remedials[(document.subject_id, document.material_id)] = document
        return document

    def count_remedials(self, subject_id: str, material_id: str) -> int:
        with self._lock:
            return sum(1 for key in self._remedials if key == (subject_id, material_id))

    # endregion


class SqliteRepository(LearningRepository):
    """Stores materials, artifacts, logs and remedial documents in a SQLite database."""

    def __init__(self, db_path: Union[Path, str]) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Unable to open database {db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._initialise_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self._conn.cursor()
            cursor.execute(sql, params)
            return cursor
        except sqlite3.Error as exc:
            try:
                self._conn.rollback()
            except sqlite3.Error:
                pass
            raise PersistenceError(f"Database operation failed: {exc}") from exc

    def _commit(self) -> None:
        try:
            self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Database commit failed: {exc}") from exc

    def _initialise_schema(self) -> None:
        with self._lock:
            try:
                self._conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS materials (
                        material_id TEXT PRIMARY KEY,
                        title TEXT NOT NULL,
                        content TEXT NOT NULL,
                        content_version TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS material_artifacts (
                        material_id TEXT NOT NULL,
                        kind TEXT NOT NULL,
                        payload_json TEXT NOT NULL,
                        version TEXT NOT NULL,
                        PRIMARY KEY (material_id, kind)
                    );

                    CREATE TABLE IF NOT EXISTS quiz_attempts (
                        attempt_id TEXT PRIMARY KEY,
                        subject_id TEXT NOT NULL,
                        material_id TEXT NOT NULL,
                        payload_json TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_attempts_subject_material
                        ON quiz_attempts (subject_id, material_id, created_at);

                    CREATE TABLE IF NOT EXISTS emotion_events (
                        event_id TEXT PRIMARY KEY,
                        subject_id TEXT NOT NULL,
                        material_id TEXT,
                        payload_json TEXT NOT NULL,
                        timestamp TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_events_subject_time
                        ON emotion_events (subject_id, timestamp);

                    CREATE TABLE IF NOT EXISTS remedial_documents (
                        subject_id TEXT NOT NULL,
                        material_id TEXT NOT NULL,
                        payload_json TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        PRIMARY KEY (subject_id, material_id)
                    );
                    """
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Unable to initialise schema: {exc}") from exc

    # MaterialRepository -------------------------------------------------
    def get_material(self, material_id: str) -> Material:
        with self._lock:
            row = self._execute(
                """
                SELECT material_id, title, content, content_version, updated_at
                  FROM materials
                 WHERE material_id = ?
                """,
                (material_id,),
            ).fetchone()
        if not row:
            raise MaterialNotFoundError(material_id)
        return Material(
            id=row["material_id"],
            title=row["title"],
            content=row["content"],
            content_version=row["content_version"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def save_material(self, material: Material) -> None:
        with self._lock:
            self._execute(
                """
                INSERT OR REPLACE INTO materials (material_id, title, content, content_version, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    material.id,
                    material.title,
                    material.content,
                    material.content_version,
                    material.updated_at.isoformat(),
                ),
            )
            self._commit()

    # ArtifactStore ------------------------------------------------------
    def get_artifact(self, material_id: str, kind: ArtifactKind) -> Optional[CachedArtifact]:
        with self._lock:
            row = self._execute(
                "SELECT payload_json, version FROM material_artifacts WHERE material_id = ? AND kind = ?",
                (material_id, kind.value),
            ).fetchone()
        if not row:
            return None
        return CachedArtifact(payload=json.loads(row["payload_json"]), version=row["version"])

    def compare_and_swap(
        self,
        material_id: str,
        kind: ArtifactKind,
        expected_version: Optional[str],
        artifact: CachedArtifact,
    ) -> bool:
        payload = json.dumps(artifact.payload, default=_json_default)
        with self._lock:
            exists = self._execute(
                "SELECT 1 FROM materials WHERE material_id = ?", (material_id,)
            ).fetchone()
            if not exists:
                raise MaterialNotFoundError(material_id)
            if expected_version is None:
                cursor = self._execute(
                    """
                    INSERT OR IGNORE INTO material_artifacts (material_id, kind, payload_json, version)
                    VALUES (?, ?, ?, ?)
                    """,
                    (material_id, kind.value, payload, artifact.version),
                )
            else:
                cursor = self._execute(
                    """
                    UPDATE material_artifacts
                       SET payload_json = ?, version = ?
                     WHERE material_id = ? AND kind = ? AND version = ?
                    """,
                    (payload, artifact.version, material_id, kind.value, expected_version),
                )
            swapped = cursor.rowcount == 1
            self._commit()
        return swapped

    # QuizAttemptRepository ----------------------------------------------
    def append_attempt(self, attempt: QuizAttempt) -> None:
        with self._lock:
            self._execute(
                """
                INSERT INTO quiz_attempts (attempt_id, subject_id, material_id, payload_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(attempt.id),
                    attempt.subject_id,
                    attempt.material_id,
                    json.dumps(attempt.model_dump(mode="json")),
                    attempt.created_at.isoformat(),
                ),
            )
            self._commit()

    def recent_attempts(self, subject_id: str, material_id: str, limit: int) -> List[QuizAttempt]:
        with self._lock:
            rows = self._execute(
                """
                SELECT payload_json FROM quiz_attempts
                 WHERE subject_id = ? AND material_id = ?
                 ORDER BY created_at DESC
                 LIMIT ?
                """,
                (subject_id, material_id, limit),
            ).fetchall()
        return [QuizAttempt.model_validate(json.loads(row["payload_json"])) for row in rows]

    # EmotionEventRepository ---------------------------------------------
    def append_event(self, event: EmotionEvent) -> None:
        with self._lock:
            self._execute(
                """
                INSERT INTO emotion_events (event_id, subject_id, material_id, payload_json, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(event.id),
                    event.subject_id,
                    event.material_id,
                    json.dumps(event.model_dump(mode="json")),
                    event.timestamp.isoformat(),
                ),
            )
            self._commit()

    def recent_events(
        self,
        subject_id: str,
        material_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[EmotionEvent]:
        clauses = ["subject_id = ?"]
        params: list = [subject_id]
        if material_id is not None:
            clauses.append("material_id = ?")
            params.append(material_id)
        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(since.isoformat())
        sql = (
            "SELECT payload_json FROM emotion_events WHERE "
            + " AND ".join(clauses)
            + " ORDER BY timestamp DESC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._lock:
            rows = self._execute(sql, tuple(params)).fetchall()
        return [EmotionEvent.model_validate(json.loads(row["payload_json"])) for row in rows]

    # RemedialRepository -------------------------------------------------
    def get_remedial(self, subject_id: str, material_id: str) -> Optional[RemedialDocument]:
        with self._lock:
            row = self._execute(
                "SELECT payload_json FROM remedial_documents WHERE subject_id = ? AND material_id = ?",
                (subject_id, material_id),
            ).fetchone()
        if not row:
            return None
        return RemedialDocument.model_validate(json.loads(row["payload_json"]))

    def upsert_remedial(self, document: RemedialDocument) -> RemedialDocument:
        with self._lock:
            self._execute(
                """
                INSERT OR REPLACE INTO remedial_documents (subject_id, material_id, payload_json, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    document.subject_id,
                    document.material_id,
                    json.dumps(document.model_dump(mode="json")),
                    document.updated_at.isoformat(),
                ),
            )
            self._commit()
        return document

    def count_remedials(self, subject_id: str, material_id: str) -> int:
        with self._lock:
            row = self._execute(
                "SELECT COUNT(*) AS total FROM remedial_documents WHERE subject_id = ? AND material_id = ?",
                (subject_id, material_id),
            ).fetchone()
        return int(row["total"])


__all__ = ["InMemoryRepository", "SqliteRepository"]
