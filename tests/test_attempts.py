"""
Tests for quiz attempts

Tests cover:
- Starting an attempt snapshots the question count
- Grading fill-in-blank and multiple-choice answers on submission
- Duration from the clock, score from correct answers over total questions
- Rejected submissions: completed, unknown attempt, foreign question, duplicate answers
"""

from datetime import datetime, timedelta

import pytest

from kioku.core import clock
from kioku.models.enums import QuestionType
from kioku.schemas.quiz_schema import QuizCreate, QuestionCreate, ChoiceCreate, AnswerSubmission
from kioku.services.attempt_service import AttemptService
from kioku.services.quiz_service import QuizService
from kioku.utils.exceptions import NotFoundError, ValidationError


class FrozenClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def frozen_clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 3, 1, 9, 0, 0))
    monkeypatch.setattr(clock, "utc_now", frozen)
    return frozen


@pytest.fixture
def quiz_service(database):
    return QuizService(database)


@pytest.fixture
def attempt_service(database):
    return AttemptService(database)


async def make_geography_quiz(quiz_service, ctx):
    quiz = await quiz_service.create_quiz(ctx, QuizCreate(name="Geography"))
    capital = await quiz_service.create_question(quiz.id, QuestionCreate(
        question_type=QuestionType.FILL_IN_BLANK,
        content="Capital of France?",
        correct_answer="Paris"
    ))
    primes = await quiz_service.create_question(quiz.id, QuestionCreate(
        question_type=QuestionType.MULTIPLE_CHOICE,
        content="Which are prime?",
        multiple_answers=True,
        choices=[
            ChoiceCreate(text="2", is_correct=True),
            ChoiceCreate(text="4"),
            ChoiceCreate(text="5", is_correct=True),
        ]
    ))
    return quiz, capital, primes


def correct_choice_ids(question):
    return [choice.id for choice in question.choices if choice.is_correct]


class TestStartAttempt:
    async def test_snapshots_question_count(self, quiz_service, attempt_service, ctx):
        quiz, _, _ = await make_geography_quiz(quiz_service, ctx)

        attempt = await attempt_service.start_attempt(quiz.id)

        assert attempt.total_questions == 2
        assert attempt.completed_at is None
        assert attempt.question_results == []

    async def test_later_questions_do_not_change_the_snapshot(self, quiz_service, attempt_service, ctx):
        quiz, _, _ = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)

        await quiz_service.create_question(quiz.id, QuestionCreate(
            question_type=QuestionType.FILL_IN_BLANK, content="Capital of Spain?", correct_answer="Madrid"
        ))

        assert (await attempt_service.get_attempt(attempt.id)).total_questions == 2

    async def test_unknown_quiz(self, attempt_service):
        with pytest.raises(NotFoundError):
            await attempt_service.start_attempt("no-such-quiz")


class TestSubmitAttempt:
    async def test_paris_scenario(self, quiz_service, attempt_service, ctx, frozen_clock):
        quiz, capital, primes = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)
        frozen_clock.advance(42)

        first, second = correct_choice_ids(primes)
        result = await attempt_service.submit_attempt(attempt.id, [
            AnswerSubmission(question_id=capital.id, answer="Paris"),
            AnswerSubmission(question_id=primes.id, answer=f"{second},{first}"),
        ])

        assert result.correct_answers == 2
        assert result.score_percentage == 100
        assert result.duration_seconds == 42
        assert result.completed_at == frozen_clock.now
        assert [r.is_correct for r in result.question_results] == [True, True]

    async def test_partial_multiple_choice_is_wrong(self, quiz_service, attempt_service, ctx):
        quiz, capital, primes = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)

        result = await attempt_service.submit_attempt(attempt.id, [
            AnswerSubmission(question_id=capital.id, answer="paris"),
            AnswerSubmission(question_id=primes.id, answer=correct_choice_ids(primes)[0]),
        ])

        assert result.correct_answers == 0
        assert result.score_percentage == 0

    async def test_unanswered_questions_count_against_the_score(self, quiz_service, attempt_service, ctx):
        quiz, capital, _ = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)

        result = await attempt_service.submit_attempt(attempt.id, [
            AnswerSubmission(question_id=capital.id, answer="Paris"),
        ])

        assert result.correct_answers == 1
        assert result.total_questions == 2
        assert result.score_percentage == 50
        assert len(result.question_results) == 1

    async def test_results_keep_submission_order(self, quiz_service, attempt_service, ctx):
        quiz, capital, primes = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)

        await attempt_service.submit_attempt(attempt.id, [
            AnswerSubmission(question_id=primes.id, answer="x"),
            AnswerSubmission(question_id=capital.id, answer="Paris"),
        ])

        stored = await attempt_service.get_attempt(attempt.id)
        assert [r.question_id for r in stored.question_results] == [primes.id, capital.id]

    async def test_empty_quiz_scores_zero(self, quiz_service, attempt_service, ctx):
        quiz = await quiz_service.create_quiz(ctx, QuizCreate(name="Empty"))
        attempt = await attempt_service.start_attempt(quiz.id)

        result = await attempt_service.submit_attempt(attempt.id, [])

        assert result.total_questions == 0
        assert result.score_percentage == 0
        assert result.completed_at is not None

    async def test_resubmission_is_rejected(self, quiz_service, attempt_service, ctx):
        quiz, capital, _ = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)
        answers = [AnswerSubmission(question_id=capital.id, answer="Paris")]
        await attempt_service.submit_attempt(attempt.id, answers)

        with pytest.raises(ValidationError):
            await attempt_service.submit_attempt(attempt.id, answers)

    async def test_unknown_attempt(self, attempt_service):
        with pytest.raises(NotFoundError):
            await attempt_service.submit_attempt("no-such-attempt", [])

    async def test_question_from_another_quiz(self, quiz_service, attempt_service, ctx):
        quiz, _, _ = await make_geography_quiz(quiz_service, ctx)
        _, foreign, _ = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)

        with pytest.raises(NotFoundError):
            await attempt_service.submit_attempt(attempt.id, [
                AnswerSubmission(question_id=foreign.id, answer="Paris"),
            ])
        assert (await attempt_service.get_attempt(attempt.id)).completed_at is None

    async def test_duplicate_answers_are_rejected(self, quiz_service, attempt_service, ctx):
        quiz, capital, _ = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)

        with pytest.raises(ValidationError):
            await attempt_service.submit_attempt(attempt.id, [
                AnswerSubmission(question_id=capital.id, answer="Paris"),
                AnswerSubmission(question_id=capital.id, answer="Paris"),
            ])

    async def test_clock_moving_backwards_is_rejected(self, quiz_service, attempt_service, ctx, frozen_clock):
        quiz, capital, _ = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)
        frozen_clock.advance(-60)

        with pytest.raises(ValidationError):
            await attempt_service.submit_attempt(attempt.id, [
                AnswerSubmission(question_id=capital.id, answer="Paris"),
            ])


class TestListAttempts:
    async def test_newest_first(self, quiz_service, attempt_service, ctx, frozen_clock):
        quiz, _, _ = await make_geography_quiz(quiz_service, ctx)
        first = await attempt_service.start_attempt(quiz.id)
        frozen_clock.advance(10)
        second = await attempt_service.start_attempt(quiz.id)

        attempts = await attempt_service.list_attempts(quiz.id)

        assert [a.id for a in attempts] == [second.id, first.id]

    async def test_deleting_the_quiz_removes_attempts(self, quiz_service, attempt_service, ctx):
        quiz, _, _ = await make_geography_quiz(quiz_service, ctx)
        attempt = await attempt_service.start_attempt(quiz.id)

        await quiz_service.delete_quiz(quiz.id)

        with pytest.raises(NotFoundError):
            await attempt_service.get_attempt(attempt.id)
