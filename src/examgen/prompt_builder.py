"""Utilities for constructing the prompts sent to the generative model."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

from .models import GenerationOptions, QuestionType

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

POINTS_BY_TYPE: dict[QuestionType, int] = {
    QuestionType.OPEN_ENDED: 30,
    QuestionType.MULTIPLE_CHOICE: 20,
    QuestionType.SINGLE_CHOICE: 10,
}
ANSWERS_PER_CHOICE_QUESTION = 4


def _load_template(name: str) -> str:
    """Read and trim the contents of a template file."""
    return (_PROMPTS_DIR / name).read_text(encoding="utf-8").strip()


_EXAM_SYSTEM = _load_template("exam_system.txt")
_EXAM_USER = _load_template("exam_user.md")
_METADATA_SYSTEM = _load_template("metadata_system.txt")
_METADATA_USER = _load_template("metadata_user.md")
_ALIAS_SYSTEM = _load_template("alias_system.txt")
_ALIAS_USER = _load_template("alias_user.md")
_EVALUATION_SYSTEM = _load_template("evaluation_system.txt")
_EVALUATION_USER = _load_template("evaluation_user.md")


@dataclass(frozen=True, slots=True)
class Prompt:
    """A system/user prompt pair for one model exchange."""

    system: str
    user: str


def _requirement_line(question_type: QuestionType, count: int) -> str:
    points = POINTS_BY_TYPE[question_type]
    if question_type is QuestionType.OPEN_ENDED:
        return f"- {count} open-ended questions ({points} points each)"
    if question_type is QuestionType.MULTIPLE_CHOICE:
        return (
            f"- {count} multiple-choice questions ({points} points each, "
            f"exactly {ANSWERS_PER_CHOICE_QUESTION} possible answers, one or more correct)"
        )
    return (
        f"- {count} single-choice questions ({points} points each, "
        f"exactly {ANSWERS_PER_CHOICE_QUESTION} possible answers, exactly one correct)"
    )


def build_exam_prompt(
    chunk_text: str,
    options: GenerationOptions,
    chunk_index: int,
    total_chunks: int,
    *,
    language: str,
) -> Prompt:
    """Compose the exam-generation prompt for one chunk (``chunk_index`` is 0-based)."""

    if not 0 <= chunk_index < total_chunks:
        raise ValueError(f"chunk_index {chunk_index} out of range for {total_chunks} chunks")

    count = options.questions_per_chunk(total_chunks)
    requirements = "\n".join(_requirement_line(kind, count) for kind in options.enabled_types)
    user = _EXAM_USER.format(
        language=language,
        part=chunk_index + 1,
        total=total_chunks,
        content=chunk_text,
        requirements=requirements,
        answer_count=ANSWERS_PER_CHOICE_QUESTION,
        open_points=POINTS_BY_TYPE[QuestionType.OPEN_ENDED],
        multiple_points=POINTS_BY_TYPE[QuestionType.MULTIPLE_CHOICE],
        single_points=POINTS_BY_TYPE[QuestionType.SINGLE_CHOICE],
    )
    return Prompt(system=_EXAM_SYSTEM.format(language=language), user=user)


def build_metadata_prompt(content: str, *, language: str) -> Prompt:
    return Prompt(
        system=_METADATA_SYSTEM.format(language=language),
        user=_METADATA_USER.format(language=language, content=content.strip()),
    )


def build_alias_prompt(content: str, *, language: str) -> Prompt:
    return Prompt(
        system=_ALIAS_SYSTEM.format(language=language),
        user=_ALIAS_USER.format(language=language, content=content.strip()),
    )


def build_evaluation_prompt(
    question_text: str,
    question_type: QuestionType,
    points: float,
    answer: Union[str, Iterable[str]],
    *,
    language: str,
) -> Prompt:
    answer_text = answer if isinstance(answer, str) else ", ".join(answer)
    return Prompt(
        system=_EVALUATION_SYSTEM.format(language=language),
        user=_EVALUATION_USER.format(
            question=question_text,
            answer=answer_text,
            question_type=question_type.value,
            points=f"{points:g}",
            language=language,
        ),
    )


__all__ = [
    "ANSWERS_PER_CHOICE_QUESTION",
    "POINTS_BY_TYPE",
    "Prompt",
    "build_alias_prompt",
    "build_evaluation_prompt",
    "build_exam_prompt",
    "build_metadata_prompt",
]
