"""Environment driven configuration for the exam generation service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_MAX_TOKENS_PER_CHUNK = 30000


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_from_env(name: str, default: int, *, minimum: int | None = None) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default
    if minimum is not None and parsed < minimum:
        LOGGER.warning("%s must be >= %s (got %s); using default %s", name, minimum, parsed, default)
        return default
    return parsed


def _float_from_env(name: str, default: float, *, minimum: float | None = None) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default
    if minimum is not None and parsed < minimum:
        LOGGER.warning("%s must be >= %s (got %s); using default %s", name, minimum, parsed, default)
        return default
    return parsed


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime settings resolved from ``EXAMGEN_*`` environment variables."""

    llm_api_key: Optional[str] = None
    llm_base_url: str = DEFAULT_BASE_URL
    llm_model: str = DEFAULT_MODEL
    llm_temperature: float = 0.7
    llm_timeout: float = 120.0
    exam_language: str = "Hebrew"
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK
    retry_attempts: int = 1
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0
    allow_partial: bool = False
    upload_dir: str = "uploads"
    upload_ttl_seconds: float = 3600.0
    upload_capacity: int = 128
    doc_extractor: str = "antiword"
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    cors_origins: tuple[str, ...] = ("*",)


def load_settings() -> Settings:
    """Build :class:`Settings` from the current process environment."""

    api_key = os.getenv("EXAMGEN_LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
    return Settings(
        llm_api_key=api_key.strip() if api_key and api_key.strip() else None,
        llm_base_url=_env_str("EXAMGEN_LLM_BASE_URL", DEFAULT_BASE_URL),
        llm_model=_env_str("EXAMGEN_LLM_MODEL", DEFAULT_MODEL),
        llm_temperature=_float_from_env("EXAMGEN_LLM_TEMPERATURE", 0.7, minimum=0.0),
        llm_timeout=_float_from_env("EXAMGEN_LLM_TIMEOUT", 120.0, minimum=1.0),
        exam_language=_env_str("EXAMGEN_EXAM_LANGUAGE", "Hebrew"),
        max_tokens_per_chunk=_int_from_env(
            "EXAMGEN_MAX_TOKENS_PER_CHUNK", DEFAULT_MAX_TOKENS_PER_CHUNK, minimum=1
        ),
        retry_attempts=_int_from_env("EXAMGEN_RETRY_ATTEMPTS", 1, minimum=1),
        retry_base_delay=_float_from_env("EXAMGEN_RETRY_BASE_DELAY", 1.0, minimum=0.0),
        retry_max_delay=_float_from_env("EXAMGEN_RETRY_MAX_DELAY", 8.0, minimum=0.0),
        allow_partial=_env_flag("EXAMGEN_ALLOW_PARTIAL"),
        upload_dir=_env_str("EXAMGEN_UPLOAD_DIR", "uploads"),
        upload_ttl_seconds=_float_from_env("EXAMGEN_UPLOAD_TTL", 3600.0, minimum=1.0),
        upload_capacity=_int_from_env("EXAMGEN_UPLOAD_CAPACITY", 128, minimum=1),
        doc_extractor=_env_str("EXAMGEN_DOC_EXTRACTOR", "antiword"),
        log_level=_env_str("EXAMGEN_LOG_LEVEL", "INFO").upper(),
        log_dir=os.getenv("EXAMGEN_LOG_DIR") or None,
        cors_origins=tuple(
            origin.strip()
            for origin in _env_str("EXAMGEN_CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""

    return load_settings()


__all__ = ["Settings", "get_settings", "load_settings"]
