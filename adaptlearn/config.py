"""Environment-driven configuration for the adaptive learning engine."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

ENV_PREFIX = "ADAPTLEARN_"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s%s=%r", ENV_PREFIX, name, raw)
        return default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s%s=%r", ENV_PREFIX, name, raw)
        return default


@dataclass
class EngineConfig:
    """Tunable thresholds and integration settings."""

    distress_window: int = 20
    distress_threshold: float = 0.60
    emotion_lookback_minutes: int = 10
    performance_window: int = 6
    pass_score: int = 80
    remedial_min_length: int = 200
    audio_script_max_chars: int = 1400
    refined_min_length: int = 400
    calc_tolerance: float = 1e-6
    recap_min_length: int = 40
    recap_keyword_count: int = 8

    llm_provider: str = "offline"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str = ""
    llm_max_output_tokens: int = 256
    llm_temperature: float = 0.2
    llm_timeout_seconds: float = 30.0

    database_path: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, load_dotenv_file: bool = True) -> "EngineConfig":
        if env is None:
            if load_dotenv_file:
                load_dotenv()
            env = os.environ
        defaults = cls()
        api_key = env.get("OPENAI_API_KEY", "").strip()
        provider = env.get(ENV_PREFIX + "LLM_PROVIDER", "").strip().lower()
        if not provider:
            provider = "openai" if api_key else "offline"
        return cls(
            distress_window=_env_int(env, "DISTRESS_WINDOW", defaults.distress_window),
            distress_threshold=_env_float(env, "DISTRESS_THRESHOLD", defaults.distress_threshold),
            emotion_lookback_minutes=_env_int(
                env, "EMOTION_LOOKBACK_MINUTES", defaults.emotion_lookback_minutes
            ),
            performance_window=_env_int(env, "PERFORMANCE_WINDOW", defaults.performance_window),
            pass_score=_env_int(env, "PASS_SCORE", defaults.pass_score),
            remedial_min_length=_env_int(env, "REMEDIAL_MIN_LENGTH", defaults.remedial_min_length),
            audio_script_max_chars=_env_int(
                env, "AUDIO_SCRIPT_MAX_CHARS", defaults.audio_script_max_chars
            ),
            refined_min_length=_env_int(env, "REFINED_MIN_LENGTH", defaults.refined_min_length),
            calc_tolerance=_env_float(env, "CALC_TOLERANCE", defaults.calc_tolerance),
            recap_min_length=_env_int(env, "RECAP_MIN_LENGTH", defaults.recap_min_length),
            recap_keyword_count=_env_int(env, "RECAP_KEYWORD_COUNT", defaults.recap_keyword_count),
            llm_provider=provider,
            llm_model=env.get(ENV_PREFIX + "LLM_MODEL", defaults.llm_model).strip() or defaults.llm_model,
            llm_api_key=api_key,
            llm_max_output_tokens=min(
                max(_env_int(env, "LLM_MAX_OUTPUT_TOKENS", defaults.llm_max_output_tokens), 64), 2048
            ),
            llm_temperature=min(max(_env_float(env, "LLM_TEMPERATURE", defaults.llm_temperature), 0.0), 1.0),
            llm_timeout_seconds=_env_float(env, "LLM_TIMEOUT_SECONDS", defaults.llm_timeout_seconds),
            database_path=env.get(ENV_PREFIX + "DATABASE_PATH", defaults.database_path).strip(),
            log_level=env.get(ENV_PREFIX + "LOG_LEVEL", defaults.log_level).strip().upper() or "INFO",
        )


__all__ = ["EngineConfig"]
