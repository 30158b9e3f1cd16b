from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Callable, Union

import pytest

from examgen.config import Settings
from examgen.generation import LLM

Responder = Callable[[str, str], Union[str, BaseException]]


class ScriptedLLM(LLM):
    """In-memory model transport driven by a responder callable.

    The responder receives the system and user prompt; returning an exception
    instance makes ``complete`` raise it. An optional per-call delay lets tests
    force completions to finish out of dispatch order.
    """

    def __init__(
        self,
        responder: Responder,
        *,
        delay_for: Callable[[str], float] | None = None,
    ) -> None:
        self._responder = responder
        self._delay_for = delay_for
        self.calls: list[tuple[str, str]] = []

    @property
    def model_name(self) -> str:
        return "scripted"

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self._delay_for is not None:
            await asyncio.sleep(self._delay_for(user_prompt))
        result = self._responder(system_prompt, user_prompt)
        if isinstance(result, BaseException):
            raise result
        return result


def fragment_json(title: str, question_text: str, *, points: int = 30) -> str:
    return json.dumps(
        {
            "title": title,
            "sections": [
                {
                    "title": f"{title} section",
                    "instructions": "Answer the following questions",
                    "questions": [
                        {"text": question_text, "type": "open-ended", "points": points}
                    ],
                }
            ],
        },
        ensure_ascii=False,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        llm_api_key="test-key",
        upload_dir=str(tmp_path / "uploads"),
        max_tokens_per_chunk=30000,
    )
