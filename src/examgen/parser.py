"""Parsing and validation of semi-structured model output.

Model responses are untrusted. Each ``parse_*`` function strips code-fence
framing, decodes the remainder as JSON into a loosely-typed value and then
validates it into a pydantic model. Any decoding or validation problem raises
:class:`~examgen.errors.MalformedResponse` carrying a bounded snippet of the
raw text; missing required fields are never filled with defaults.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import MalformedResponse
from .models import Evaluation, ExamFragment, ExamMetadata

LOGGER = logging.getLogger(__name__)

SNIPPET_LIMIT = 500
DEFAULT_ALIAS = "מבחן חדש"

_FENCE_JSON_RE = re.compile(r"```json\n?", re.IGNORECASE)
_FENCE_RE = re.compile(r"```\n?")

ModelT = TypeVar("ModelT", bound=BaseModel)


def strip_code_fences(raw: str) -> str:
    """Remove Markdown code-fence markers and surrounding whitespace."""

    cleaned = _FENCE_JSON_RE.sub("", raw)
    cleaned = _FENCE_RE.sub("", cleaned)
    return cleaned.strip()


def _snippet(text: str) -> str:
    if len(text) <= SNIPPET_LIMIT:
        return text
    return f"{text[:SNIPPET_LIMIT]}... [{len(text) - SNIPPET_LIMIT} more chars]"


def _load_json(raw: str) -> tuple[Any, str]:
    cleaned = strip_code_fences(raw or "")
    try:
        return json.loads(cleaned), cleaned
    except json.JSONDecodeError as error:
        LOGGER.warning("Model response is not valid JSON: %s", error)
        raise MalformedResponse(error, _snippet(cleaned)) from error


def _validate(model: Type[ModelT], raw: str) -> ModelT:
    data, cleaned = _load_json(raw)
    if not isinstance(data, dict):
        raise MalformedResponse(
            f"expected a JSON object, got {type(data).__name__}", _snippet(cleaned)
        )
    try:
        return model.model_validate(data)
    except ValidationError as error:
        LOGGER.warning("Model response failed %s validation: %s", model.__name__, error)
        raise MalformedResponse(error, _snippet(cleaned)) from error


def parse_exam_fragment(raw: str) -> ExamFragment:
    """Parse one chunk's exam output: ``{title, sections: [...]}``."""

    return _validate(ExamFragment, raw)


def parse_metadata(raw: str) -> ExamMetadata:
    """Parse ``{title, description}``; both keys are required."""

    return _validate(ExamMetadata, raw)


def parse_evaluation(raw: str) -> Evaluation:
    return _validate(Evaluation, raw)


def parse_alias(raw: str) -> str:
    """Return the alias from ``{alias}`` JSON or from a plain-text response.

    Blank output falls back to :data:`DEFAULT_ALIAS`, the label shown to users
    when no alias could be generated. JSON that is an object but lacks a string
    ``alias`` key is malformed.
    """

    cleaned = strip_code_fences(raw or "")
    if not cleaned:
        return DEFAULT_ALIAS
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return cleaned.strip().strip('"').strip() or DEFAULT_ALIAS

    if isinstance(data, str):
        return data.strip() or DEFAULT_ALIAS
    if not isinstance(data, dict) or not isinstance(data.get("alias"), str):
        raise MalformedResponse("response is missing the 'alias' field", _snippet(cleaned))
    return data["alias"].strip() or DEFAULT_ALIAS


__all__ = [
    "DEFAULT_ALIAS",
    "SNIPPET_LIMIT",
    "parse_alias",
    "parse_evaluation",
    "parse_exam_fragment",
    "parse_metadata",
    "strip_code_fences",
]
