from sqlalchemy import select, func

from kioku.core import clock
from kioku.core.logging import get_logger
from kioku.db.session import Database
from kioku.db.utils import BaseRepository
from kioku.models.attempt import QuizAttempt
from kioku.models.deck import Deck
from kioku.models.quiz import Quiz
from kioku.models.study_session import StudySession
from kioku.schemas.deck_schema import DeckStudyStats, StudySessionResponse
from kioku.schemas.quiz_schema import QuizStats
from kioku.utils.exceptions import NotFoundError, ValidationError

logger = get_logger(__name__)

RECENT_SCORES_LIMIT = 5


class StudySessionRepository(BaseRepository[StudySession]):
    def __init__(self):
        super().__init__(StudySession)


class StatsService:
    """Read-side rollups over attempts and study sessions, recomputed on every call"""

    def __init__(self, database: Database):
        self.database = database
        self.session_repo = StudySessionRepository()

    async def quiz_stats(self, quiz_id: str) -> QuizStats:
        """
        Aggregate completed attempts of a quiz.

        A quiz without completed attempts yields zeroed stats rather than an error.
        """
        async with self.database.session() as db:
            if await db.get(Quiz, quiz_id) is None:
                raise NotFoundError(f"Quiz {quiz_id} not found")

            completed = QuizAttempt.completed_at.is_not(None)
            totals = (await db.execute(
                select(
                    func.count(QuizAttempt.id),
                    func.avg(QuizAttempt.score_percentage),
                    func.max(QuizAttempt.score_percentage),
                    func.avg(QuizAttempt.duration_seconds),
                    func.max(QuizAttempt.completed_at)
                ).where(QuizAttempt.quiz_id == quiz_id, completed)
            )).one()

            recent = await db.execute(
                select(QuizAttempt.score_percentage)
                .where(QuizAttempt.quiz_id == quiz_id, completed)
                .order_by(QuizAttempt.completed_at.desc(), QuizAttempt.started_at.desc())
                .limit(RECENT_SCORES_LIMIT)
            )
            recent_scores = list(recent.scalars().all())

        total_attempts, average_score, best_score, average_duration, last_attempt_at = totals
        return QuizStats(
            quiz_id=quiz_id,
            total_attempts=total_attempts or 0,
            average_score=float(average_score) if average_score is not None else 0.0,
            best_score=best_score or 0,
            average_duration_seconds=float(average_duration) if average_duration is not None else None,
            last_attempt_at=last_attempt_at,
            recent_scores=recent_scores
        )

    async def start_study_session(self, deck_id: str) -> StudySessionResponse:
        async with self.database.session() as db:
            if await db.get(Deck, deck_id) is None:
                raise NotFoundError(f"Deck {deck_id} not found")
            session = await self.session_repo.create(db, deck_id=deck_id, started_at=clock.utc_now())
        logger.info(f"Started study session {session.id}", extra={"deck_id": deck_id})
        return StudySessionResponse.model_validate(session)

    async def end_study_session(self, session_id: str, cards_studied: int) -> StudySessionResponse:
        if cards_studied < 0:
            raise ValidationError("cards_studied must not be negative")

        async with self.database.session() as db:
            session = await self.session_repo.get_by_id_or_404(db, session_id)
            if session.ended_at is not None:
                raise ValidationError("Study session has already ended", details={"session_id": session_id})

            now = clock.utc_now()
            duration = clock.seconds_between(session.started_at, now)
            if duration < 0:
                raise ValidationError("Session end precedes its start", details={"session_id": session_id})

            session = await self.session_repo.update(
                db, session, ended_at=now, duration_seconds=duration, cards_studied=cards_studied
            )
        logger.info(f"Ended study session {session_id} after {duration}s", extra={"deck_id": session.deck_id})
        return StudySessionResponse.model_validate(session)

    async def deck_study_stats(self, deck_id: str) -> DeckStudyStats:
        """Totals over ended study sessions of a deck"""
        async with self.database.session() as db:
            if await db.get(Deck, deck_id) is None:
                raise NotFoundError(f"Deck {deck_id} not found")

            total_sessions, total_time, total_cards, last_studied_at = (await db.execute(
                select(
                    func.count(StudySession.id),
                    func.sum(StudySession.duration_seconds),
                    func.sum(StudySession.cards_studied),
                    func.max(StudySession.ended_at)
                ).where(StudySession.deck_id == deck_id, StudySession.ended_at.is_not(None))
            )).one()

        return DeckStudyStats(
            deck_id=deck_id,
            total_sessions=total_sessions or 0,
            total_study_time_seconds=total_time or 0,
            total_cards_studied=total_cards or 0,
            last_studied_at=last_studied_at
        )
