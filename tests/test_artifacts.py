import threading
import time

import pytest

from adaptlearn.artifacts import ArtifactCache, fingerprint
from adaptlearn.domain import ArtifactKind, ArtifactSource, CachedArtifact
from adaptlearn.generation import ContentGenerator
from adaptlearn.metrics import METRICS
from adaptlearn.models import Material
from adaptlearn.repositories import MaterialNotFoundError, PersistenceError

from conftest import MATERIAL_TEXT, RECIPE_REPLY, FakeBackend


def authored(repository, content=MATERIAL_TEXT, title="Linear equations") -> Material:
    material = Material(title=title, content=content, content_version=fingerprint(content))
    repository.save_material(material)
    return material


class TestFingerprint:
    def test_stable_hex_digest(self):
        assert fingerprint("abc") == fingerprint("abc")
        assert len(fingerprint("abc")) == 64
        assert fingerprint("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_any_mutation_changes_it(self):
        assert fingerprint("abc") != fingerprint("abd")
        assert fingerprint("abc") != fingerprint("abc ")
        assert fingerprint(None) == fingerprint("")


class TestGetOrGenerate:
    def test_cache_round_trip(self, repository, config):
        backend = FakeBackend("An audio script about linear equations.")
        cache = ArtifactCache(repository, ContentGenerator(backend, config))
        material = authored(repository)

        first = cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT)
        second = cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT)

        assert first.source is ArtifactSource.GENERATED
        assert second.source is ArtifactSource.CACHE
        assert second.payload == first.payload
        assert second.version == material.content_version
        assert backend.calls == 1
        assert METRICS.cache_hits["audio_script"] == 1
        assert METRICS.cache_misses["audio_script"] == 1

    def test_content_change_regenerates(self, repository, config):
        backend = FakeBackend("First script.", "Second script.")
        cache = ArtifactCache(repository, ContentGenerator(backend, config))
        material = authored(repository)
        first = cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT)

        changed_content = MATERIAL_TEXT + " Always check your work."
        changed = material.model_copy(
            update={"content": changed_content, "content_version": fingerprint(changed_content)}
        )
        repository.save_material(changed)
        second = cache.get_or_generate(changed, ArtifactKind.AUDIO_SCRIPT)

        assert second.source is ArtifactSource.GENERATED
        assert second.version != first.version
        assert second.version == fingerprint(changed_content)
        assert second.payload == "Second script."

    def test_forced_fetch_always_regenerates(self, repository, config):
        backend = FakeBackend("First script.", "Second script.")
        cache = ArtifactCache(repository, ContentGenerator(backend, config))
        material = authored(repository)
        cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT)

        forced = cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT, force=True)

        assert forced.source is ArtifactSource.FORCED
        assert forced.payload == "Second script."
        assert forced.version == material.content_version
        assert repository.get_artifact(material.id, ArtifactKind.AUDIO_SCRIPT).payload == "Second script."
        assert METRICS.forced_refreshes["audio_script"] == 1

    def test_stale_stored_version_is_ignored(self, repository, config):
        backend = FakeBackend("Fresh script.")
        cache = ArtifactCache(repository, ContentGenerator(backend, config))
        material = authored(repository)
        repository.compare_and_swap(
            material.id, ArtifactKind.AUDIO_SCRIPT, None, CachedArtifact(payload="Old script.", version="stale")
        )

        result = cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT)

        assert result.source is ArtifactSource.GENERATED
        assert result.payload == "Fresh script."

    def test_fingerprint_is_recomputed_from_content(self, repository, config):
        cache = ArtifactCache(repository, ContentGenerator(FakeBackend("Script."), config))
        material = authored(repository)
        drifted = material.model_copy(update={"content_version": "0" * 64})
        result = cache.get_or_generate(drifted, ArtifactKind.AUDIO_SCRIPT)
        assert result.version == fingerprint(MATERIAL_TEXT)

    def test_fallback_payload_is_cached(self, repository, offline_generator, failing_backend):
        cache = ArtifactCache(repository, offline_generator)
        material = authored(repository)

        first = cache.get_or_generate(material, ArtifactKind.AR_RECIPE)
        second = cache.get_or_generate(material, ArtifactKind.AR_RECIPE)

        assert first.payload["template"] == "balance_scale"
        assert second.source is ArtifactSource.CACHE
        assert failing_backend.calls == 1

    def test_unknown_material_cannot_be_written(self, repository, offline_generator):
        cache = ArtifactCache(repository, offline_generator)
        ghost = Material(title="Ghost", content="Nothing here at all.")
        with pytest.raises(MaterialNotFoundError):
            cache.get_or_generate(ghost, ArtifactKind.AUDIO_SCRIPT)


class TestDependentExplanation:
    def test_explanation_regenerates_missing_recipe_first(self, repository, config):
        backend = FakeBackend(RECIPE_REPLY, "Each step balances the equation.")
        cache = ArtifactCache(repository, ContentGenerator(backend, config))
        material = authored(repository)

        explanation = cache.get_or_generate(material, ArtifactKind.AR_EXPLANATION)

        recipe = repository.get_artifact(material.id, ArtifactKind.AR_RECIPE)
        assert recipe is not None and recipe.version == material.content_version
        assert explanation.payload == "Each step balances the equation."
        assert explanation.version == material.content_version
        assert backend.calls == 2
        assert "Place the weights" in backend.prompts[1]

    def test_explanation_reuses_current_recipe(self, repository, config):
        backend = FakeBackend(RECIPE_REPLY, "Explanation one.")
        cache = ArtifactCache(repository, ContentGenerator(backend, config))
        material = authored(repository)
        cache.get_or_generate(material, ArtifactKind.AR_RECIPE)

        cache.get_or_generate(material, ArtifactKind.AR_EXPLANATION)

        assert backend.calls == 2
        assert METRICS.cache_hits["ar_recipe"] == 1


class SlowStore:
    """Wraps a store and slows down reads so concurrent callers overlap."""

    def __init__(self, inner):
        self._inner = inner

    def get_artifact(self, material_id, kind):
        time.sleep(0.01)
        return self._inner.get_artifact(material_id, kind)

    def compare_and_swap(self, material_id, kind, expected_version, artifact):
        return self._inner.compare_and_swap(material_id, kind, expected_version, artifact)


class ContendedStore:
    def __init__(self, inner):
        self._inner = inner

    def get_artifact(self, material_id, kind):
        return self._inner.get_artifact(material_id, kind)

    def compare_and_swap(self, material_id, kind, expected_version, artifact):
        return False


class TestConcurrency:
    def test_concurrent_requests_coalesce_into_one_generation(self, repository, config):
        def slow_reply(prompt):
            time.sleep(0.05)
            return "Shared script."

        backend = FakeBackend(slow_reply)
        cache = ArtifactCache(SlowStore(repository), ContentGenerator(backend, config))
        material = authored(repository)
        results = []

        def fetch():
            results.append(cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT))

        threads = [threading.Thread(target=fetch) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert backend.calls == 1
        assert len(results) == 5
        assert {result.payload for result in results} == {"Shared script."}
        assert sum(result.source is ArtifactSource.GENERATED for result in results) == 1

    def test_persistent_swap_conflict_raises(self, repository, config):
        cache = ArtifactCache(ContendedStore(repository), ContentGenerator(FakeBackend("Script."), config))
        material = authored(repository)
        with pytest.raises(PersistenceError):
            cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT)

    def test_invalidate_locks_forgets_idle_keys(self, repository, offline_generator):
        cache = ArtifactCache(repository, offline_generator)
        material = authored(repository)
        cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT)
        cache.invalidate_locks(material.id)
        assert cache.get_or_generate(material, ArtifactKind.AUDIO_SCRIPT).source is ArtifactSource.CACHE
