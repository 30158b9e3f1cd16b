from __future__ import annotations

import logging
import math
from typing import List

from .models import Chunk

LOGGER = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"


def _tokens_for_length(length: int) -> int:
    return math.ceil(length / 4)


def estimate_tokens(text: str) -> int:
    """Cheap token estimate: one token per four characters, rounded up."""

    return _tokens_for_length(len(text))


def split_text(text: str, max_tokens_per_chunk: int = 30000) -> List[Chunk]:
    """Split *text* into paragraph-aligned chunks under a token budget.

    Paragraphs are accumulated greedily while the estimate of the joined chunk
    stays within ``max_tokens_per_chunk``. A paragraph that alone exceeds the
    budget becomes its own chunk; paragraphs are never split or dropped, so
    joining the chunk texts with :data:`PARAGRAPH_SEPARATOR` gives back *text*.
    """

    if max_tokens_per_chunk <= 0:
        raise ValueError("max_tokens_per_chunk must be a positive integer")
    if not text.strip():
        return []

    groups: List[List[str]] = []
    current: List[str] = []
    current_length = 0

    for paragraph in text.split(PARAGRAPH_SEPARATOR):
        candidate_length = (
            current_length + len(PARAGRAPH_SEPARATOR) + len(paragraph) if current else len(paragraph)
        )
        if current and _tokens_for_length(candidate_length) > max_tokens_per_chunk:
            groups.append(current)
            current = [paragraph]
            current_length = len(paragraph)
        else:
            current.append(paragraph)
            current_length = candidate_length

    if current:
        groups.append(current)

    total = len(groups)
    chunks = [
        Chunk(text=PARAGRAPH_SEPARATOR.join(group), index=index, total=total)
        for index, group in enumerate(groups)
    ]
    LOGGER.debug(
        "Split %s characters into %s chunks (budget %s tokens)", len(text), total, max_tokens_per_chunk
    )
    return chunks


__all__ = ["PARAGRAPH_SEPARATOR", "estimate_tokens", "split_text"]
