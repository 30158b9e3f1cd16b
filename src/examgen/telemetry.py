"""Structured lifecycle logging for the exam generation pipeline."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional


LOGGER = logging.getLogger("examgen.telemetry")
AUDIT_LOGGER = logging.getLogger("examgen.generation.audit")

PREVIEW_CHARS = 120

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "EXAMGEN_LLM_BASE_URL",
    "EXAMGEN_LLM_MODEL",
    "EXAMGEN_LLM_TEMPERATURE",
    "EXAMGEN_LLM_TIMEOUT",
    "EXAMGEN_EXAM_LANGUAGE",
    "EXAMGEN_MAX_TOKENS_PER_CHUNK",
    "EXAMGEN_RETRY_ATTEMPTS",
    "EXAMGEN_ALLOW_PARTIAL",
    "EXAMGEN_UPLOAD_DIR",
    "EXAMGEN_UPLOAD_TTL",
    "EXAMGEN_DOC_EXTRACTOR",
    "EXAMGEN_LOG_LEVEL",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def preview(text: str | None, limit: int = PREVIEW_CHARS) -> str:
    """Return at most ``limit`` characters of ``text`` for log payloads."""

    if not text:
        return ""
    return text if len(text) <= limit else f"{text[:limit]}..."


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_extraction_event(
    *,
    extension: str,
    size_bytes: int | None,
    chars: int | None,
    duration_ms: float,
    error: BaseException | None = None,
) -> None:
    details = {"extension": extension, "size_bytes": size_bytes, "chars": chars}
    step = "extract.error" if error else "extract.complete"
    log_event(
        LOGGER,
        step,
        level="error" if error else "info",
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_chunking_event(*, chars: int, chunks: int, max_tokens_per_chunk: int) -> None:
    details = {"chars": chars, "chunks": chunks, "max_tokens_per_chunk": max_tokens_per_chunk}
    log_event(LOGGER, "chunk.split", details=details)


def emit_generation_request(
    *,
    req_id: str,
    model: str,
    prompt_preview: str,
    prompt_len: int,
    chunk_index: int | None = None,
    total_chunks: int | None = None,
) -> None:
    details = {
        "model": model,
        "prompt_preview": preview(prompt_preview),
        "prompt_len": prompt_len,
        "chunk_index": chunk_index,
        "total_chunks": total_chunks,
    }
    log_event(LOGGER, "generation.request", req_id=req_id, details=details)


def emit_generation_result(
    *,
    req_id: str,
    model: str,
    duration_ms: float,
    response_preview: str,
    response_len: int,
    error: BaseException | None = None,
) -> None:
    details = {
        "model": model,
        "response_preview": preview(response_preview),
        "response_len": response_len,
    }
    log_event(
        LOGGER,
        "generation.error" if error else "generation.result",
        level="error" if error else "info",
        req_id=req_id,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_orchestration_event(
    *,
    total_chunks: int,
    succeeded: int,
    failed_chunks: list[int],
    sections: int,
    duration_ms: float,
) -> None:
    details = {
        "total_chunks": total_chunks,
        "succeeded": succeeded,
        "failed_chunks": failed_chunks,
        "sections": sections,
    }
    level = "warning" if failed_chunks else "info"
    log_event(LOGGER, "orchestrate.complete", level=level, duration_ms=duration_ms, details=details)
    AUDIT_LOGGER.info(
        {
            "event": "exam.generated" if succeeded else "exam.failed",
            "total_chunks": total_chunks,
            "failed_chunks": failed_chunks,
            "sections": sections,
        }
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_chunking_event",
    "emit_exception",
    "emit_extraction_event",
    "emit_generation_request",
    "emit_generation_result",
    "emit_orchestration_event",
    "log_event",
    "preview",
    "traced_duration",
]
