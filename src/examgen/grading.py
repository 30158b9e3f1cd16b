"""Local scoring for closed-form (choice) questions."""
from __future__ import annotations

import math
from typing import Iterable, Sequence, Union

from .models import Evaluation, QuestionType

Answer = Union[str, Sequence[str]]


def _as_set(answer: Answer) -> set[str]:
    if isinstance(answer, str):
        return {answer.strip()} if answer.strip() else set()
    return {item.strip() for item in answer if item and item.strip()}


def score_single_choice(answer: Answer, correct_answer: str) -> Evaluation:
    selected = _as_set(answer)
    if selected == {correct_answer.strip()}:
        return Evaluation(score=100, feedback="Correct answer.", correct_answer=correct_answer)
    return Evaluation(score=0, feedback="Incorrect answer.", correct_answer=correct_answer)


def score_multiple_choice(answer: Answer, correct_answers: Iterable[str]) -> Evaluation:
    """Score proportionally to the correct answers selected (wrong picks earn nothing)."""

    correct = [item.strip() for item in correct_answers]
    if not correct:
        raise ValueError("multiple-choice scoring requires at least one correct answer")
    selected = _as_set(answer)
    hits = len(selected & set(correct))
    score = math.floor(100 * hits / len(set(correct)))
    feedback = f"{hits} of {len(set(correct))} correct answers selected."
    wrong = len(selected - set(correct))
    if wrong:
        feedback += f" {wrong} incorrect answer(s) selected."
    return Evaluation(score=score, feedback=feedback, correct_answer=correct)


def score_closed_form(
    question_type: QuestionType, answer: Answer, correct_answers: Sequence[str]
) -> Evaluation:
    if question_type is QuestionType.SINGLE_CHOICE:
        if len(correct_answers) != 1:
            raise ValueError("single-choice scoring requires exactly one correct answer")
        return score_single_choice(answer, correct_answers[0])
    if question_type is QuestionType.MULTIPLE_CHOICE:
        return score_multiple_choice(answer, correct_answers)
    raise ValueError(f"{question_type.value} questions cannot be scored locally")


__all__ = ["score_closed_form", "score_multiple_choice", "score_single_choice"]
