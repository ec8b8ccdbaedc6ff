"""
Answer validation and time-based scoring.
"""
import math
from dataclasses import dataclass
from typing import Optional

from .models import (
    MatchType,
    MultipleChoiceQuestion,
    OpinionQuestion,
    Question,
    ShortAnswerQuestion,
)

BASE_POINTS = 100
MIN_POINTS_RATIO = 0.3
OPINION_POINTS = 50


@dataclass(frozen=True)
class ValidationResult:
    is_correct: bool
    points: int


def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def is_answer_correct(question: Question, answer_index: Optional[int] = None,
                      answer_text: Optional[str] = None) -> bool:
    """Check a single answer against its question definition."""
    if isinstance(question, MultipleChoiceQuestion):
        return answer_index is not None and answer_index == question.correct_index

    if isinstance(question, ShortAnswerQuestion):
        user_answer = _normalize(answer_text)
        if not user_answer:
            return False
        accepted = [_normalize(question.correct_text)]
        accepted.extend(_normalize(a) for a in question.additional_answers)
        accepted = [a for a in accepted if a]
        if question.match_type is MatchType.CONTAINS:
            return any(a in user_answer for a in accepted)
        return user_answer in accepted

    if isinstance(question, OpinionQuestion):
        if answer_index is not None:
            return True
        return bool(_normalize(answer_text))

    return False


def calculate_points(time_left: float, time_limit: float, base: int = BASE_POINTS) -> int:
    """
    Time-decay score for a graded question.

    Full time left earns ``base``, the curve falls linearly to half of
    ``base`` at zero, and nothing ever earns less than 30% of ``base``.
    """
    minimum = math.floor(base * MIN_POINTS_RATIO)
    if time_left <= 0 or time_limit <= 0:
        return minimum
    ratio = max(0.0, time_left / time_limit)
    return max(minimum, math.floor(base * (0.5 + 0.5 * ratio)))


def validate_answer(question: Question, answer_index: Optional[int] = None,
                    answer_text: Optional[str] = None, time_left: float = 0,
                    time_limit: float = 30) -> ValidationResult:
    """Validate an answer and compute its candidate score."""
    is_correct = is_answer_correct(question, answer_index, answer_text)
    if not is_correct:
        return ValidationResult(False, 0)
    if isinstance(question, OpinionQuestion):
        return ValidationResult(True, OPINION_POINTS)
    return ValidationResult(True, calculate_points(time_left, time_limit))
