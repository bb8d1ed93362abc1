"""Answer comparison and attempt scoring."""
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from kioku.models.enums import QuestionType
from kioku.models.quiz import Question


def split_choice_ids(submitted: str) -> List[str]:
    """Comma-separated choice ids from a submission, trimmed and sorted"""
    return sorted(part.strip() for part in submitted.split(","))


def grade_answer(question: Question, submitted: str) -> bool:
    """
    Grade one submitted answer.

    Fill-in-blank answers must equal the stored answer exactly (no trimming or
    case folding). Multiple-choice answers are comma-separated choice ids and
    must name exactly the set of correct choices, in any order.
    """
    if question.question_type == QuestionType.FILL_IN_BLANK:
        return question.correct_answer is not None and submitted == question.correct_answer

    if question.question_type == QuestionType.MULTIPLE_CHOICE:
        correct_ids = sorted(choice.id for choice in question.choices if choice.is_correct)
        return split_choice_ids(submitted) == correct_ids

    return False


def score_percentage(correct: int, total: int) -> int:
    """Whole-number percentage in 0..100, rounding halves up; 0 for an empty attempt"""
    if total <= 0:
        return 0
    correct = max(0, min(correct, total))
    ratio = Decimal(correct) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))
