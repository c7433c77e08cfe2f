"""Content fingerprinting and the get-or-generate artifact cache.

A cached artifact is valid iff its stored version equals the SHA-256
fingerprint of the material's current content. Payload and version are only
ever written together through :meth:`ArtifactStore.compare_and_swap`.
"""
from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .domain import ArtifactKind, ArtifactSource, CachedArtifact
from .generation import ContentGenerator
from .metrics import METRICS
from .models import Material
from .repositories import ArtifactStore, PersistenceError


logger = logging.getLogger(__name__)

MAX_SWAP_ATTEMPTS = 3


def fingerprint(text: Optional[str]) -> str:
    """SHA-256 of the UTF-8 text as a 64-character hex string."""

    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ArtifactResult:
    material_id: str
    kind: ArtifactKind
    version: str
    source: ArtifactSource
    payload: Any


class ArtifactCache:
    """Serves valid cached artifacts or regenerates and persists fresh ones.

    Concurrent callers asking for the same (material, kind) are coalesced by a
    per-key lock: the first caller generates, the rest re-check the store after
    acquiring the lock and receive the freshly cached payload.
    """

    def __init__(self, store: ArtifactStore, generator: ContentGenerator) -> None:
        self._store = store
        self._generator = generator
        self._locks: Dict[Tuple[str, ArtifactKind], threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._generators: Dict[ArtifactKind, Callable[[Material], Any]] = {
            ArtifactKind.AR_RECIPE: lambda m: self._generator.generate_ar_recipe(m.title, m.content),
            ArtifactKind.AUDIO_SCRIPT: lambda m: self._generator.generate_audio_script(m.title, m.content),
            ArtifactKind.REFINED_TEXT: lambda m: self._generator.generate_refined_text(m.title, m.content),
            ArtifactKind.AR_EXPLANATION: self._generate_explanation,
        }

    def _lock_for(self, material_id: str, kind: ArtifactKind) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault((material_id, kind), threading.Lock())

    def get_or_generate(self, material: Material, kind: ArtifactKind, force: bool = False) -> ArtifactResult:
        current_version = fingerprint(material.content)
        if material.content_version and material.content_version != current_version:
            logger.warning(
                "Material %s stored version %s does not match its content; using %s",
                material.id,
                material.content_version[:12],
                current_version[:12],
            )

        if not force:
            cached = self._cached(material.id, kind, current_version)
            if cached is not None:
                return cached

        with self._lock_for(material.id, kind):
            if not force:
                cached = self._cached(material.id, kind, current_version)
                if cached is not None:
                    return cached
                METRICS.record_cache_miss(kind.value)
            else:
                METRICS.record_forced_refresh(kind.value)

            payload = self._generators[kind](material)
            stored = self._write(material.id, kind, CachedArtifact(payload=payload, version=current_version))
            logger.info("Generated %s for material %s (version %s)", kind.value, material.id, current_version[:12])
            return ArtifactResult(
                material_id=material.id,
                kind=kind,
                version=stored.version,
                source=ArtifactSource.FORCED if force else ArtifactSource.GENERATED,
                payload=stored.payload,
            )

    def _cached(self, material_id: str, kind: ArtifactKind, current_version: str) -> Optional[ArtifactResult]:
        existing = self._store.get_artifact(material_id, kind)
        if existing is None or not existing.is_valid_for(current_version):
            return None
        METRICS.record_cache_hit(kind.value)
        logger.debug("Cache hit for %s on material %s", kind.value, material_id)
        return ArtifactResult(
            material_id=material_id,
            kind=kind,
            version=existing.version,
            source=ArtifactSource.CACHE,
            payload=existing.payload,
        )

    def _write(self, material_id: str, kind: ArtifactKind, artifact: CachedArtifact) -> CachedArtifact:
        for _ in range(MAX_SWAP_ATTEMPTS):
            existing = self._store.get_artifact(material_id, kind)
            expected = existing.version if existing is not None else None
            if self._store.compare_and_swap(material_id, kind, expected, artifact):
                return artifact
        raise PersistenceError(
            f"Could not persist {kind.value} for material {material_id} after {MAX_SWAP_ATTEMPTS} attempts"
        )

    def _generate_explanation(self, material: Material) -> str:
        # the recipe must be current before the explanation can be derived from it
        recipe = self.get_or_generate(material, ArtifactKind.AR_RECIPE).payload
        return self._generator.generate_ar_explanation(material.title, material.content, recipe)

    def invalidate_locks(self, material_id: str) -> None:
        """Forget per-key locks for a material (e.g. after its content changes)."""

        with self._locks_guard:
            for key in [key for key in self._locks if key[0] == material_id]:
                lock = self._locks[key]
                if not lock.locked():
                    del self._locks[key]


__all__ = ["ArtifactCache", "ArtifactResult", "fingerprint"]
