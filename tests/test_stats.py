"""
Tests for statistics rollups

Tests cover:
- Quiz stats over completed attempts only, zeroed when there are none
- Recent scores capped and newest first
- Study session lifecycle and deck study totals
"""

from datetime import datetime, timedelta

import pytest

from kioku.core import clock
from kioku.models.enums import QuestionType
from kioku.schemas.deck_schema import DeckCreate
from kioku.schemas.quiz_schema import QuizCreate, QuestionCreate, AnswerSubmission
from kioku.services.attempt_service import AttemptService
from kioku.services.deck_service import DeckService
from kioku.services.quiz_service import QuizService
from kioku.services.stats_service import StatsService, RECENT_SCORES_LIMIT
from kioku.utils.exceptions import NotFoundError, ValidationError


@pytest.fixture
def now(monkeypatch):
    state = {"now": datetime(2026, 5, 10, 18, 0, 0)}
    monkeypatch.setattr(clock, "utc_now", lambda: state["now"])
    return state


def advance(state, seconds):
    state["now"] += timedelta(seconds=seconds)


@pytest.fixture
def stats(database):
    return StatsService(database)


async def make_quiz(database, ctx, question_count=4):
    quiz_service = QuizService(database)
    quiz = await quiz_service.create_quiz(ctx, QuizCreate(name="Capitals"))
    questions = []
    for index in range(question_count):
        questions.append(await quiz_service.create_question(quiz.id, QuestionCreate(
            question_type=QuestionType.FILL_IN_BLANK, content=f"Q{index}", correct_answer="yes"
        )))
    return quiz, questions


async def take_attempt(database, quiz, questions, correct, now, seconds=30):
    """Complete an attempt answering the first `correct` questions right"""
    attempts = AttemptService(database)
    attempt = await attempts.start_attempt(quiz.id)
    advance(now, seconds)
    answers = [
        AnswerSubmission(question_id=q.id, answer="yes" if index < correct else "no")
        for index, q in enumerate(questions)
    ]
    return await attempts.submit_attempt(attempt.id, answers)


class TestQuizStats:
    async def test_no_attempts_yields_zeroes(self, database, stats, ctx):
        quiz, _ = await make_quiz(database, ctx)

        result = await stats.quiz_stats(quiz.id)

        assert result.total_attempts == 0
        assert result.average_score == 0.0
        assert result.best_score == 0
        assert result.average_duration_seconds is None
        assert result.last_attempt_at is None
        assert result.recent_scores == []

    async def test_aggregates_completed_attempts(self, database, stats, ctx, now):
        quiz, questions = await make_quiz(database, ctx)
        await take_attempt(database, quiz, questions, correct=2, now=now, seconds=20)
        await take_attempt(database, quiz, questions, correct=4, now=now, seconds=40)

        result = await stats.quiz_stats(quiz.id)

        assert result.total_attempts == 2
        assert result.average_score == pytest.approx(75.0)
        assert result.best_score == 100
        assert result.average_duration_seconds == pytest.approx(30.0)
        assert result.last_attempt_at == now["now"]
        assert result.recent_scores == [100, 50]

    async def test_open_attempts_are_ignored(self, database, stats, ctx, now):
        quiz, questions = await make_quiz(database, ctx)
        await take_attempt(database, quiz, questions, correct=1, now=now)
        await AttemptService(database).start_attempt(quiz.id)

        result = await stats.quiz_stats(quiz.id)

        assert result.total_attempts == 1
        assert result.recent_scores == [25]

    async def test_recent_scores_are_capped(self, database, stats, ctx, now):
        quiz, questions = await make_quiz(database, ctx)
        for correct in [0, 1, 2, 3, 4, 4, 1]:
            await take_attempt(database, quiz, questions, correct=correct, now=now)

        result = await stats.quiz_stats(quiz.id)

        assert result.total_attempts == 7
        assert len(result.recent_scores) == RECENT_SCORES_LIMIT
        assert result.recent_scores == [25, 100, 100, 75, 50]

    async def test_unknown_quiz(self, stats):
        with pytest.raises(NotFoundError):
            await stats.quiz_stats("no-such-quiz")


class TestStudySessions:
    async def test_session_lifecycle(self, database, stats, ctx, now):
        deck = await DeckService(database).create_deck(ctx, DeckCreate(name="Spanish"))

        session = await stats.start_study_session(deck.id)
        assert session.ended_at is None
        advance(now, 125)
        ended = await stats.end_study_session(session.id, cards_studied=12)

        assert ended.duration_seconds == 125
        assert ended.cards_studied == 12
        assert ended.ended_at == now["now"]

    async def test_session_cannot_end_twice(self, database, stats, ctx):
        deck = await DeckService(database).create_deck(ctx, DeckCreate(name="Spanish"))
        session = await stats.start_study_session(deck.id)
        await stats.end_study_session(session.id, cards_studied=1)

        with pytest.raises(ValidationError):
            await stats.end_study_session(session.id, cards_studied=1)

    async def test_negative_card_count_is_rejected(self, database, stats, ctx):
        deck = await DeckService(database).create_deck(ctx, DeckCreate(name="Spanish"))
        session = await stats.start_study_session(deck.id)

        with pytest.raises(ValidationError):
            await stats.end_study_session(session.id, cards_studied=-1)

    async def test_deck_totals_cover_ended_sessions(self, database, stats, ctx, now):
        deck = await DeckService(database).create_deck(ctx, DeckCreate(name="Spanish"))
        for seconds, cards in [(60, 10), (90, 5)]:
            session = await stats.start_study_session(deck.id)
            advance(now, seconds)
            await stats.end_study_session(session.id, cards_studied=cards)
        await stats.start_study_session(deck.id)

        totals = await stats.deck_study_stats(deck.id)

        assert totals.total_sessions == 2
        assert totals.total_study_time_seconds == 150
        assert totals.total_cards_studied == 15
        assert totals.last_studied_at == now["now"]

    async def test_deck_without_sessions(self, database, stats, ctx):
        deck = await DeckService(database).create_deck(ctx, DeckCreate(name="Spanish"))

        totals = await stats.deck_study_stats(deck.id)

        assert totals.total_sessions == 0
        assert totals.total_study_time_seconds == 0
        assert totals.last_studied_at is None

    async def test_unknown_deck(self, stats):
        with pytest.raises(NotFoundError):
            await stats.start_study_session("no-such-deck")
