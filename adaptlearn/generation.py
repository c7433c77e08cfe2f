"""Generation backends and the structured generators built on top of them.

Every generator except the quiz-question one degrades to a deterministic
local fallback when the backend fails; the quiz generator raises
:class:`QuizGenerationError` because a question cannot be faked locally.
"""
from __future__ import annotations

import json
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from openai import OpenAI

from . import prompts
from .config import EngineConfig
from .domain import DifficultyLevel, EmotionLabel, QuestionKind
from .metrics import METRICS
from .models import AiVerdict, ArRecipe, QuizQuestion
from .validators import ValidationError, validate_ar_recipe, validate_quiz_question, validate_text_artifact


logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """The backend was unreachable, failed, timed out or returned unusable output."""


class QuizGenerationError(GenerationError):
    """A quiz question could not be generated; there is no safe local substitute."""


@dataclass(frozen=True)
class GenerationOptions:
    max_output_tokens: Optional[int] = None
    temperature: Optional[float] = None


class GenerationBackend(Protocol):
    def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str: ...


# ─── Backends ────────────────────────────────────────────────────────────────


class OpenAIBackend:
    """Chat-completions backend; every failure surfaces as ``GenerationError``."""

    def __init__(self, config: EngineConfig, client: Optional[OpenAI] = None) -> None:
        self._config = config
        self._client = client or OpenAI(api_key=config.llm_api_key, timeout=config.llm_timeout_seconds)

    def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        max_tokens = options.max_output_tokens or self._config.llm_max_output_tokens
        temperature = (
            options.temperature if options.temperature is not None else self._config.llm_temperature
        )
        start = time.perf_counter()
        try:
            response = self._client.chat.completions.create(
                model=self._config.llm_model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as exc:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.error("LLM error after %sms: %s", elapsed, exc)
            raise GenerationError(str(exc)) from exc
        elapsed = int((time.perf_counter() - start) * 1000)
        content = response.choices[0].message.content if response.choices else None
        text = (content or "").strip()
        if not text:
            raise GenerationError("Empty response from generation backend")
        logger.info("LLM response: %sms, %s chars", elapsed, len(text))
        return text


class OfflineBackend:
    """Backend used when no provider is configured; every call fails fast."""

    def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        raise GenerationError("Generation backend is not configured")


_backends = {
    "openai": OpenAIBackend,
}


def build_backend(config: EngineConfig) -> GenerationBackend:
    if config.llm_provider == "offline":
        return OfflineBackend()
    backend_cls = _backends.get(config.llm_provider)
    if backend_cls is None:
        raise ValueError(f"Unknown LLM provider: {config.llm_provider}")
    return backend_cls(config)


# ─── Text helpers ────────────────────────────────────────────────────────────

_FENCED_BLOCK = re.compile(r"```[\s\S]*?```")
_MARKDOWN_LINK = re.compile(r"\[(.*?)\]\((.*?)\)")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def strip_text(text: str) -> str:
    """Flatten markdown-ish text into a single line of prose."""

    cleaned = _FENCED_BLOCK.sub(" ", text or "")
    cleaned = _MARKDOWN_LINK.sub(r"\1", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def extract_json(text: str) -> Any:
    cleaned = re.sub(r"```(?:json)?\n?", "", str(text or "")).strip()
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first >= 0 and last > first:
        cleaned = cleaned[first : last + 1]
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Backend returned malformed JSON: {exc}") from exc


def sanitize_markdown(text: str) -> str:
    """Drop code-fence wrappers and rewrite LaTeX delimiters to dollar form."""

    cleaned = str(text or "").strip()
    cleaned = re.sub(r"^```\s*markdown\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"^```\s*", "", cleaned)
    cleaned = re.sub(r"```\s*$", "", cleaned)
    cleaned = re.sub(r"\\\[([\s\S]*?)\\\]", lambda m: f"\n\n$$\n{m.group(1)}\n$$\n\n", cleaned)
    cleaned = re.sub(r"\\\(([\s\S]*?)\\\)", lambda m: f"${m.group(1)}$", cleaned)
    return cleaned.strip()


def split_sentences(text: str) -> List[str]:
    return [sentence.strip() for sentence in _SENTENCE_SPLIT.split(strip_text(text)) if sentence.strip()]


# ─── Deterministic fallbacks ─────────────────────────────────────────────────

_TEMPLATE_KEYWORDS = (
    ("fraction_blocks", re.compile(r"fraction|ratio|pecahan|perbandingan|rasio")),
    ("graph_2d", re.compile(r"graph|coordinate|cartesian|gradient|slope|straight line|grafik|koordinat")),
    ("balance_scale", re.compile(r"equation|linear|persamaan")),
    ("number_line", re.compile(r"number line|integer|positive|negative|bilangan|arithmetic")),
    ("algebra_tiles", re.compile(r"algebra|variable|factori[sz]|aljabar|variabel|\bx\b|\by\b")),
)
DEFAULT_RECIPE_STEPS = [
    "Observe: read the core concept in the text.",
    "Try: work through one example problem.",
    "Continue: change the numbers in the example and watch what happens.",
]


def infer_ar_template(content: str) -> str:
    lowered = strip_text(content).lower()
    for template, pattern in _TEMPLATE_KEYWORDS:
        if pattern.search(lowered):
            return template
    return "generic_overlay"


def ar_recipe_fallback(title: str, content: str) -> ArRecipe:
    template = infer_ar_template(content)
    sentences = [sentence for sentence in split_sentences(content) if len(sentence) >= 12][:5]
    leads = ("Observe", "Try")
    steps = [
        f"{leads[index] if index < len(leads) else 'Continue'}: {sentence}"
        for index, sentence in enumerate(sentences)
    ]
    for default_step in DEFAULT_RECIPE_STEPS[len(steps) :]:
        steps.append(default_step)
    return ArRecipe(
        template=template,
        title=title,
        short_goal="Short interactive practice with the camera and an overlay.",
        steps=steps,
        overlay={"template": template},
    )


def ar_explanation_fallback(title: str, recipe: Dict[str, Any]) -> str:
    steps = recipe.get("steps") or []
    goal = recipe.get("shortGoal") or "Practise the idea interactively."
    numbered = " ".join(f"{index}. {step}" for index, step in enumerate(steps, start=1))
    return f"{recipe.get('title') or title}: {goal} {numbered}".strip()


def audio_script_fallback(title: str, content: str, max_chars: int) -> str:
    clean = strip_text(content)
    return (clean or title)[:max_chars]


# ─── Structured generators ───────────────────────────────────────────────────


class ContentGenerator:
    """Builds prompts, calls the backend and validates or replaces its output."""

    def __init__(self, backend: GenerationBackend, config: Optional[EngineConfig] = None) -> None:
        self._backend = backend
        self._config = config or EngineConfig()

    def _call(self, prompt: str, reason: str, options: Optional[GenerationOptions] = None) -> str:
        METRICS.record_generation_attempt()
        try:
            text = self._backend.generate_text(prompt, options)
        except GenerationError as exc:
            METRICS.record_generation_failure(reason)
            logger.warning("Generation failed for %s: %s", reason, exc)
            raise
        METRICS.record_generation_success()
        return text

    def generate_ar_recipe(self, title: str, content: str) -> Dict[str, Any]:
        try:
            raw = self._call(prompts.ar_recipe_prompt(title, strip_text(content)), "ar_recipe")
            recipe = validate_ar_recipe(extract_json(raw), title)
        except (GenerationError, ValidationError) as exc:
            logger.warning("Using fallback AR recipe for %r: %s", title, exc)
            recipe = ar_recipe_fallback(title, content)
        return recipe.model_dump(by_alias=True)

    def generate_ar_explanation(self, title: str, content: str, recipe: Dict[str, Any]) -> str:
        prompt = prompts.ar_explanation_prompt(title, strip_text(content), json.dumps(recipe))
        try:
            return validate_text_artifact(strip_text(self._call(prompt, "ar_explanation")), "AR explanation")
        except (GenerationError, ValidationError) as exc:
            logger.warning("Using fallback AR explanation for %r: %s", title, exc)
            return ar_explanation_fallback(title, recipe)

    def generate_audio_script(self, title: str, content: str) -> str:
        max_chars = self._config.audio_script_max_chars
        prompt = prompts.audio_script_prompt(title, strip_text(content), max_chars)
        try:
            return validate_text_artifact(
                strip_text(self._call(prompt, "audio_script")), "audio script", max_chars=max_chars
            )
        except (GenerationError, ValidationError) as exc:
            logger.warning("Using fallback audio script for %r: %s", title, exc)
            return audio_script_fallback(title, content, max_chars)

    def generate_refined_text(self, title: str, content: str) -> str:
        prompt = prompts.refine_prompt(title, content)
        options = GenerationOptions(max_output_tokens=1536, temperature=0.2)
        try:
            refined = sanitize_markdown(self._call(prompt, "refined_text", options))
        except GenerationError as exc:
            logger.warning("Using original content as refined text for %r: %s", title, exc)
            return content
        if len(refined) < self._config.refined_min_length:
            logger.info("Refined text for %r too short (%s chars); keeping original", title, len(refined))
            return content
        return refined

    def generate_quiz_question(
        self,
        content: str,
        emotion: EmotionLabel,
        learning_style: str,
        difficulty: DifficultyLevel,
        index: int = 1,
        avoid_questions: Iterable[str] = (),
    ) -> QuizQuestion:
        kind = QuestionKind.RECAP if index == 1 else QuestionKind.CALC
        prompt = prompts.quiz_question_prompt(
            strip_text(content),
            emotion.value,
            learning_style,
            difficulty.value,
            index,
            kind.value,
            avoid_questions,
        )
        try:
            payload = extract_json(self._call(prompt, "quiz_question"))
            question = validate_quiz_question(payload)
        except (GenerationError, ValidationError) as exc:
            raise QuizGenerationError(f"Unable to generate quiz question: {exc}") from exc
        return question.model_copy(update={"kind": kind})

    def generate_feedback(
        self,
        question: str,
        user_answer: str,
        expected_answer: Optional[str],
        emotion: EmotionLabel,
        kind: QuestionKind,
        material_text: Optional[str] = None,
    ) -> AiVerdict:
        prompt = prompts.feedback_prompt(
            question, user_answer, expected_answer, emotion.value, kind.value, material_text
        )
        payload = extract_json(self._call(prompt, "feedback"))
        if not isinstance(payload, dict):
            raise GenerationError("Feedback payload must be a JSON object")
        score = payload.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
            score = None
        is_correct = payload.get("isCorrect")
        feedback = payload.get("feedback")
        return AiVerdict(
            is_correct=bool(is_correct) if is_correct is not None else None,
            score=score,
            feedback=feedback if isinstance(feedback, str) else None,
        )

    def generate_remedial(
        self,
        title: str,
        content: str,
        learning_style: str,
        emotion: EmotionLabel,
        wrong_count: int,
        avg_score: float,
        last_attempt: Optional[Dict[str, Any]] = None,
    ) -> str:
        prompt = prompts.remedial_prompt(
            title, content, learning_style, emotion.value, wrong_count, avg_score, last_attempt
        )
        options = GenerationOptions(max_output_tokens=768, temperature=0.2)
        return sanitize_markdown(self._call(prompt, "remedial", options))


__all__ = [
    "ContentGenerator",
    "GenerationBackend",
    "GenerationError",
    "GenerationOptions",
    "OfflineBackend",
    "OpenAIBackend",
    "QuizGenerationError",
    "build_backend",
    "extract_json",
    "infer_ar_template",
    "sanitize_markdown",
    "strip_text",
]
