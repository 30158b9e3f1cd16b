"""Fan-out/fan-in of per-chunk generation pipelines."""
from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from .config import Settings
from .errors import GenerationFailure, MalformedResponse, OrchestrationFailure
from .generation import GenerationClient
from .models import Chunk, ExamDocument, ExamFragment, GenerationOptions
from .parser import parse_exam_fragment
from .telemetry import emit_exception, emit_orchestration_event

LOGGER = logging.getLogger(__name__)

EXAM_TITLE = "מבחן"

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry with exponential backoff and jitter for one chunk pipeline.

    ``max_attempts=1`` disables retries.
    """

    max_attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 8.0
    jitter: float = 0.1
    retry_on: tuple[type[BaseException], ...] = (GenerationFailure, MalformedResponse)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays and jitter must be non-negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )

    def delay_for(self, failed_attempt: int, rng: Optional[random.Random] = None) -> float:
        """Delay before the attempt following ``failed_attempt`` (1-based)."""

        delay = min(self.max_delay, self.base_delay * (2 ** (failed_attempt - 1)))
        if self.jitter and delay:
            delay += (rng or random).uniform(0.0, delay * self.jitter)
        return delay


ChunkOutcome = Union[ExamFragment, BaseException]


class ChunkOrchestrator:
    """Run generate-then-parse for every chunk concurrently and merge in order."""

    def __init__(
        self,
        client: GenerationClient,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        allow_partial: bool = False,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.allow_partial = allow_partial
        self._sleep = sleep

    async def orchestrate(self, chunks: Sequence[Chunk], options: GenerationOptions) -> ExamDocument:
        """Produce one :class:`ExamDocument` from all ``chunks``.

        Every chunk pipeline runs to completion or failure. By default any
        failure fails the whole orchestration with a single
        :class:`OrchestrationFailure`; with ``allow_partial`` the successful
        fragments are merged and the failed chunk indices reported, unless
        every chunk failed.
        """

        if not chunks:
            raise ValueError("orchestrate() requires at least one chunk")

        started = time.perf_counter()
        outcomes: List[ChunkOutcome] = await asyncio.gather(
            *(self._run_chunk(chunk, options) for chunk in chunks),
            return_exceptions=True,
        )

        fragments: List[ExamFragment] = []
        failures: List[tuple[int, BaseException]] = []
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, ExamFragment):
                fragments.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            emit_exception(module=__name__, error=outcome, req_id=f"chunk-{chunk.index}")
            failures.append((chunk.index, outcome))

        failed_indices = [index for index, _ in failures]
        sections = [section for fragment in fragments for section in fragment.sections]
        emit_orchestration_event(
            total_chunks=len(chunks),
            succeeded=len(fragments),
            failed_chunks=failed_indices,
            sections=len(sections),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

        if failures and (not self.allow_partial or not fragments):
            raise OrchestrationFailure(failures, total=len(chunks))

        return ExamDocument(
            title=EXAM_TITLE,
            sections=sections,
            failed_chunks=failed_indices or None,
        )

    async def _run_chunk(self, chunk: Chunk, options: GenerationOptions) -> ExamFragment:
        policy = self.retry_policy
        attempt = 1
        while True:
            try:
                raw = await self.client.generate(chunk.text, options, chunk.index, chunk.total)
                return parse_exam_fragment(raw)
            except policy.retry_on as error:
                if attempt >= policy.max_attempts:
                    raise
                delay = policy.delay_for(attempt)
                LOGGER.warning(
                    "Chunk %s/%s attempt %s/%s failed (%s); retrying in %.2fs",
                    chunk.index + 1,
                    chunk.total,
                    attempt,
                    policy.max_attempts,
                    error,
                    delay,
                )
                await self._sleep(delay)
                attempt += 1


__all__ = ["ChunkOrchestrator", "EXAM_TITLE", "RetryPolicy"]
