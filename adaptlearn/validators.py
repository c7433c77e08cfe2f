"""Validation utilities for generated content prior to caching."""
from __future__ import annotations

import re
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from .models import ArRecipe, QuizQuestion


FORBIDDEN_PATTERNS = (
    re.compile(r"\bTODO\b", re.IGNORECASE),
    re.compile(r"\bTBD\b", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"\?{3,}"),
)
AR_TEMPLATES = (
    "balance_scale",
    "number_line",
    "graph_2d",
    "fraction_blocks",
    "algebra_tiles",
    "generic_overlay",
)
MIN_RECIPE_STEPS = 3
MAX_RECIPE_STEPS = 6


class ValidationError(ValueError):
    """Raised when generated artefacts fail validation."""


def _assert_forbidden_patterns(text: str, context: str) -> None:
    for pattern in FORBIDDEN_PATTERNS:
        if pattern.search(text):
            raise ValidationError(f"Forbidden pattern detected in {context}: '{pattern.pattern}'")


def validate_text_artifact(text: str, context: str, max_chars: int = 0) -> str:
    """Validate free-text generator output and return it stripped."""

    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError(f"Generated {context} is empty")
    _assert_forbidden_patterns(cleaned, context)
    if max_chars and len(cleaned) > max_chars:
        cleaned = cleaned[:max_chars].rstrip()
    return cleaned


def validate_ar_recipe(payload: Dict[str, Any], fallback_title: str) -> ArRecipe:
    """Coerce a parsed generator payload into a recipe, rejecting unusable ones."""

    if not isinstance(payload, dict):
        raise ValidationError("AR recipe payload must be a JSON object")
    template = payload.get("template")
    if template not in AR_TEMPLATES:
        raise ValidationError(f"Unknown AR template: {template!r}")
    raw_steps = payload.get("steps")
    if not isinstance(raw_steps, list):
        raise ValidationError("AR recipe steps must be a list")
    steps = [step.strip() for step in raw_steps if isinstance(step, str) and step.strip()]
    if len(steps) < MIN_RECIPE_STEPS:
        raise ValidationError(f"AR recipes require at least {MIN_RECIPE_STEPS} steps")
    for step in steps:
        _assert_forbidden_patterns(step, "AR recipe step")

    title = payload.get("title")
    short_goal = payload.get("shortGoal")
    overlay = payload.get("overlay")
    try:
        return ArRecipe(
            template=template,
            title=title if isinstance(title, str) and title.strip() else fallback_title,
            short_goal=short_goal if isinstance(short_goal, str) and short_goal.strip() else "Short interactive practice.",
            steps=steps[:MAX_RECIPE_STEPS],
            overlay=overlay if isinstance(overlay, dict) and overlay else {"template": template},
        )
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc


def validate_quiz_question(payload: Dict[str, Any]) -> QuizQuestion:
    if not isinstance(payload, dict):
        raise ValidationError("Quiz question payload must be a JSON object")
    try:
        question = QuizQuestion.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc
    _assert_forbidden_patterns(question.question, "quiz question")
    _assert_forbidden_patterns(question.expected_answer, "quiz expected answer")
    return question


__all__ = [
    "AR_TEMPLATES",
    "ValidationError",
    "validate_ar_recipe",
    "validate_quiz_question",
    "validate_text_artifact",
]
