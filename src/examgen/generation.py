"""Single request/response exchanges with the generative text model."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from openai import AsyncOpenAI

from .config import Settings, get_settings
from .errors import GenerationFailure
from .models import GenerationOptions
from .prompt_builder import Prompt, build_exam_prompt
from .telemetry import emit_generation_request, emit_generation_result

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class LLMStatus:
    """Structured status information about the configured model backend."""

    configured: bool
    model_name: str
    base_url: Optional[str] = None
    error: Optional[str] = None


class LLM:
    """Common interface exposed by model transports."""

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the raw text of one completion for the given prompts."""

        raise NotImplementedError

    @property
    def model_name(self) -> str:
        return "stub"

    def status(self) -> LLMStatus:
        return LLMStatus(configured=True, model_name=self.model_name)


class OpenAIChatLLM(LLM):
    """Chat-completions transport for OpenAI-compatible endpoints."""

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        temperature: float = 0.7,
        timeout: float = 120.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._temperature = temperature
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIChatLLM":
        return cls(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        )

    @property
    def model_name(self) -> str:
        return self._model

    def status(self) -> LLMStatus:
        configured = self._client is not None or bool(self._api_key)
        return LLMStatus(
            configured=configured,
            model_name=self._model,
            base_url=self._base_url,
            error=None if configured else "No API key configured (set EXAMGEN_LLM_API_KEY)",
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError("No API key configured (set EXAMGEN_LLM_API_KEY)")
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self._temperature,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class GenerationClient:
    """Builds prompts and performs exactly one model request per call."""

    def __init__(self, llm: LLM, *, language: str = "Hebrew") -> None:
        self.llm = llm
        self.language = language

    async def generate(
        self,
        chunk_text: str,
        options: GenerationOptions,
        chunk_index: int,
        total_chunks: int,
    ) -> str:
        """Request exam content for one chunk and return the raw model text."""

        prompt = build_exam_prompt(
            chunk_text, options, chunk_index, total_chunks, language=self.language
        )
        return await self.ask(prompt, chunk_index=chunk_index, total_chunks=total_chunks)

    async def ask(
        self,
        prompt: Prompt,
        *,
        chunk_index: int | None = None,
        total_chunks: int | None = None,
    ) -> str:
        """Send one prompt pair and return the non-empty raw response text.

        Raises :class:`GenerationFailure` when the transport errors or the
        response carries no usable content. No retries happen here.
        """

        req_id = uuid.uuid4().hex
        emit_generation_request(
            req_id=req_id,
            model=self.llm.model_name,
            prompt_preview=prompt.user,
            prompt_len=len(prompt.system) + len(prompt.user),
            chunk_index=chunk_index,
            total_chunks=total_chunks,
        )
        started = time.perf_counter()
        try:
            content = await self.llm.complete(prompt.system, prompt.user)
        except Exception as error:
            emit_generation_result(
                req_id=req_id,
                model=self.llm.model_name,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                response_preview="",
                response_len=0,
                error=error,
            )
            raise GenerationFailure(error) from error

        duration_ms = (time.perf_counter() - started) * 1000.0
        if not content or not content.strip():
            failure = GenerationFailure("No content received from API")
            emit_generation_result(
                req_id=req_id,
                model=self.llm.model_name,
                duration_ms=duration_ms,
                response_preview="",
                response_len=0,
                error=failure,
            )
            raise failure

        emit_generation_result(
            req_id=req_id,
            model=self.llm.model_name,
            duration_ms=duration_ms,
            response_preview=content,
            response_len=len(content),
        )
        return content


@lru_cache(maxsize=1)
def get_llm() -> LLM:
    """Return the process-wide model transport built from settings."""

    return OpenAIChatLLM.from_settings(get_settings())


def get_llm_status() -> LLMStatus:
    return get_llm().status()


__all__ = [
    "GenerationClient",
    "LLM",
    "LLMStatus",
    "OpenAIChatLLM",
    "get_llm",
    "get_llm_status",
]
