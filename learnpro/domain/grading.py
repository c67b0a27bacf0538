"""Exam grading.

Questions are auto-graded:
- single_choice / true_false: exact match after normalization
- multiple_select: the selected set must equal the correct set
- short_text: case- and whitespace-insensitive match

The attempt passes when the rounded percentage reaches the exam's
passing score.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Protocol

QUESTION_TYPES = ("single_choice", "true_false", "multiple_select", "short_text")


class GradableQuestion(Protocol):
    id: int
    question_type: str
    correct_answer: Any
    points: int


@dataclass
class QuestionResult:
    question_id: int
    correct: bool
    points_awarded: int
    points_possible: int


@dataclass
class ExamGrade:
    score: int
    max_score: int
    percentage: int
    passed: bool
    results: list[QuestionResult] = field(default_factory=list)


def _normalize_text(value: Any) -> str:
    return " ".join(str(value).split()).casefold()


def _normalize_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    text = _normalize_text(value)
    if text in ("true", "verdadero", "1", "yes"):
        return True
    if text in ("false", "falso", "0", "no"):
        return False
    return None


def is_answer_correct(question_type: str, correct_answer: Any, answer: Any) -> bool:
    if answer is None or correct_answer is None:
        return False
    if question_type == "multiple_select":
        expected = correct_answer if isinstance(correct_answer, list) else [correct_answer]
        given = answer if isinstance(answer, list) else [answer]
        return {_normalize_text(a) for a in given} == {_normalize_text(a) for a in expected}
    if question_type == "true_false":
        given = _normalize_bool(answer)
        return given is not None and given == _normalize_bool(correct_answer)
    if isinstance(answer, list):
        return False
    return _normalize_text(answer) == _normalize_text(correct_answer)


def percentage_of(score: int, max_score: int) -> int:
    if max_score <= 0:
        return 0
    ratio = Decimal(score) * 100 / Decimal(max_score)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def grade_exam(
    questions: Iterable[GradableQuestion],
    answers: Mapping[int, Any],
    passing_score: int,
) -> ExamGrade:
    results: list[QuestionResult] = []
    score = 0
    max_score = 0
    for question in questions:
        points = max(question.points or 0, 0)
        max_score += points
        correct = is_answer_correct(
            question.question_type, question.correct_answer, answers.get(question.id)
        )
        awarded = points if correct else 0
        score += awarded
        results.append(
            QuestionResult(
                question_id=question.id,
                correct=correct,
                points_awarded=awarded,
                points_possible=points,
            )
        )
    percentage = percentage_of(score, max_score)
    return ExamGrade(
        score=score,
        max_score=max_score,
        percentage=percentage,
        passed=max_score > 0 and percentage >= passing_score,
        results=results,
    )
