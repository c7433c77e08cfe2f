"""Simple in-process metrics registry for engine instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class MetricsRegistry:
    """Holds counters exposed by the application."""

    generation_attempts: int = 0
    generation_successes: int = 0
    generation_failures: int = 0
    generation_failure_reasons: Counter = field(default_factory=Counter)
    cache_hits: Counter = field(default_factory=Counter)
    cache_misses: Counter = field(default_factory=Counter)
    forced_refreshes: Counter = field(default_factory=Counter)
    difficulty_decisions: Counter = field(default_factory=Counter)
    grading_overrides: Counter = field(default_factory=Counter)
    distress_flags: int = 0
    remedial_placeholders: int = 0

    def record_generation_attempt(self) -> None:
        self.generation_attempts += 1

    def record_generation_success(self) -> None:
        self.generation_successes += 1

    def record_generation_failure(self, reason: str) -> None:
        self.generation_failures += 1
        self.generation_failure_reasons[reason] += 1

    def record_cache_hit(self, kind: str) -> None:
        self.cache_hits[kind] += 1

    def record_cache_miss(self, kind: str) -> None:
        self.cache_misses[kind] += 1

    def record_forced_refresh(self, kind: str) -> None:
        self.forced_refreshes[kind] += 1

    def record_difficulty_decision(self, level: str) -> None:
        self.difficulty_decisions[level] += 1

    def record_grading_override(self, kind: str) -> None:
        """Count turns where the AI verdict replaced the local correctness/score."""

        self.grading_overrides[kind] += 1

    def record_distress_flag(self) -> None:
        self.distress_flags += 1

    def record_remedial_placeholder(self) -> None:
        self.remedial_placeholders += 1

    def reset(self) -> None:
        self.__init__()

    @property
    def generation_success_rate(self) -> float:
        if self.generation_attempts == 0:
            return 0.0
        return self.generation_successes / self.generation_attempts

    def snapshot(self) -> Dict[str, object]:
        return {
            "generation_attempts": self.generation_attempts,
            "generation_successes": self.generation_successes,
            "generation_failures": self.generation_failures,
            "generation_success_rate": self.generation_success_rate,
            "generation_failure_reasons": dict(self.generation_failure_reasons),
            "cache_hits": dict(self.cache_hits),
            "cache_misses": dict(self.cache_misses),
            "forced_refreshes": dict(self.forced_refreshes),
            "difficulty_decisions": dict(self.difficulty_decisions),
            "grading_overrides": dict(self.grading_overrides),
            "distress_flags": self.distress_flags,
            "remedial_placeholders": self.remedial_placeholders,
        }


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
