"""Data models used by the exam generation pipeline."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, Strict, model_validator


@dataclass(frozen=True, slots=True)
class Chunk:
    """A paragraph-aligned slice of extracted text and its ordinal position."""

    text: str
    index: int
    total: int


class QuestionType(str, Enum):
    """Question kinds the model may produce."""

    SINGLE_CHOICE = "single-choice"
    MULTIPLE_CHOICE = "multiple-choice"
    OPEN_ENDED = "open-ended"

    @property
    def is_choice(self) -> bool:
        return self is not QuestionType.OPEN_ENDED


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerationOptions(_CamelModel):
    """Which question kinds to request, and how many per section."""

    open_questions: bool = Field(False, alias="openQuestions")
    multiple_choice: bool = Field(False, alias="multipleChoice")
    single_choice: bool = Field(False, alias="singleChoice")
    questions_per_section: int = Field(..., alias="questionsPerSection", ge=1)

    @model_validator(mode="before")
    @classmethod
    def _flatten_question_types(cls, data: Any) -> Any:
        # One client variant nests the flags: {"questionTypes": {...}, "questionsPerSection": n}
        if isinstance(data, dict) and isinstance(data.get("questionTypes"), dict):
            merged = dict(data["questionTypes"])
            merged.update({key: value for key, value in data.items() if key != "questionTypes"})
            return merged
        return data

    @model_validator(mode="after")
    def _require_a_question_type(self) -> "GenerationOptions":
        if not self.enabled_types:
            raise ValueError("at least one question type must be enabled")
        return self

    @property
    def enabled_types(self) -> list[QuestionType]:
        enabled: list[QuestionType] = []
        if self.open_questions:
            enabled.append(QuestionType.OPEN_ENDED)
        if self.multiple_choice:
            enabled.append(QuestionType.MULTIPLE_CHOICE)
        if self.single_choice:
            enabled.append(QuestionType.SINGLE_CHOICE)
        return enabled

    def questions_per_chunk(self, total_chunks: int) -> int:
        """Per-type question count requested from each of ``total_chunks`` chunks."""

        if total_chunks < 1:
            raise ValueError("total_chunks must be a positive integer")
        return math.ceil(self.questions_per_section / total_chunks)


# Points are taken as the model wrote them: JSON numbers only, integers stay integers.
Points = Union[
    Annotated[int, Strict(), Field(ge=0)],
    Annotated[float, Strict(), Field(ge=0)],
]


class Question(_CamelModel):
    text: str = Field(..., min_length=1)
    type: QuestionType
    points: Points
    answers: Optional[List[str]] = None
    correct_answers: Optional[List[str]] = Field(None, alias="correctAnswers")

    @model_validator(mode="after")
    def _check_choice_shape(self) -> "Question":
        if not self.type.is_choice:
            return self
        if not self.answers:
            raise ValueError(f"{self.type.value} question requires 'answers'")
        if not self.correct_answers:
            raise ValueError(f"{self.type.value} question requires 'correctAnswers'")
        unknown = [answer for answer in self.correct_answers if answer not in self.answers]
        if unknown:
            raise ValueError(f"correctAnswers not among answers: {unknown}")
        if self.type is QuestionType.SINGLE_CHOICE and len(self.correct_answers) != 1:
            raise ValueError("single-choice question requires exactly one correct answer")
        return self


class Section(_CamelModel):
    title: str
    instructions: Optional[str] = None
    questions: List[Question]


class ExamFragment(_CamelModel):
    """Parsed output of one chunk's generation call."""

    title: str
    sections: List[Section]


class ExamDocument(_CamelModel):
    """Final merged exam: all fragment sections in chunk order."""

    title: str
    sections: List[Section]
    failed_chunks: Optional[List[int]] = Field(None, alias="failedChunks")


class ExamMetadata(_CamelModel):
    title: str
    description: str


class EvaluationQuestion(_CamelModel):
    """Question payload accepted by the evaluation endpoint."""

    id: Optional[str] = None
    text: str
    type: QuestionType
    points: float = 0
    answers: Optional[List[str]] = None
    correct_answers: Optional[List[str]] = Field(None, alias="correctAnswers")


class Evaluation(_CamelModel):
    score: float = Field(..., ge=0, le=100)
    feedback: str
    correct_answer: Optional[Union[str, List[str]]] = Field(None, alias="correctAnswer")


__all__ = [
    "Chunk",
    "Evaluation",
    "EvaluationQuestion",
    "ExamDocument",
    "ExamFragment",
    "ExamMetadata",
    "GenerationOptions",
    "Question",
    "QuestionType",
    "Section",
]
