"""Shared fixtures: an in-memory repository and a scripted generation backend."""

import json
from typing import Callable, List, Optional, Union

import pytest

from adaptlearn.config import EngineConfig
from adaptlearn.generation import ContentGenerator, GenerationError, GenerationOptions
from adaptlearn.metrics import METRICS
from adaptlearn.storage import InMemoryRepository


Reply = Union[str, Exception, Callable[[str], str]]


class FakeBackend:
    """Replays scripted replies in order; the last reply repeats once the script runs out."""

    def __init__(self, *replies: Reply) -> None:
        self.replies: List[Reply] = list(replies) or [GenerationError("no reply scripted")]
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


def as_json(payload) -> str:
    return json.dumps(payload)


RECIPE_REPLY = as_json(
    {
        "version": 1,
        "template": "balance_scale",
        "title": "Linear equations",
        "shortGoal": "Balance both sides",
        "steps": ["Place the weights", "Remove equal amounts", "Read the value of x"],
        "overlay": {"left": "2x + 3", "right": "11"},
    }
)

MATERIAL_TEXT = (
    "A linear equation keeps both sides balanced. To solve a linear equation, "
    "subtract the same constant from both sides. Then divide both sides by the "
    "coefficient of the variable. Check the solution by substituting the variable "
    "back into the equation."
)


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def failing_backend() -> FakeBackend:
    return FakeBackend(GenerationError("backend down"))


@pytest.fixture
def offline_generator(failing_backend, config) -> ContentGenerator:
    return ContentGenerator(failing_backend, config)
