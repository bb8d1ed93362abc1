from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from kioku.core import clock
from kioku.core.logging import get_logger
from kioku.db.session import Database
from kioku.db.utils import BaseRepository
from kioku.models.attempt import QuizAttempt, QuestionResult
from kioku.models.quiz import Quiz, Question
from kioku.schemas.quiz_schema import AnswerSubmission, QuizAttemptResponse
from kioku.services import grading
from kioku.utils.exceptions import NotFoundError, ValidationError

logger = get_logger(__name__)


class AttemptRepository(BaseRepository[QuizAttempt]):
    def __init__(self):
        super().__init__(QuizAttempt)

    async def list_for_quiz(self, db: AsyncSession, quiz_id: str) -> List[QuizAttempt]:
        result = await db.execute(
            select(QuizAttempt)
            .where(QuizAttempt.quiz_id == quiz_id)
            .order_by(QuizAttempt.started_at.desc(), QuizAttempt.id)
        )
        return list(result.scalars().all())


class AttemptService:
    """Quiz attempts: start, grade on submission, read back"""

    def __init__(self, database: Database):
        self.database = database
        self.attempt_repo = AttemptRepository()

    async def start_attempt(self, quiz_id: str) -> QuizAttemptResponse:
        """Open an attempt, snapshotting the quiz's current question count"""
        async with self.database.session() as db:
            if await db.get(Quiz, quiz_id) is None:
                raise NotFoundError(f"Quiz {quiz_id} not found")
            total = await db.execute(select(func.count(Question.id)).where(Question.quiz_id == quiz_id))
            attempt = await self.attempt_repo.create(
                db,
                quiz_id=quiz_id,
                started_at=clock.utc_now(),
                total_questions=total.scalar() or 0,
                question_results=[]
            )
            response = QuizAttemptResponse.model_validate(attempt)
        logger.info(f"Started attempt {attempt.id}", extra={"quiz_id": quiz_id, "attempt_id": attempt.id})
        return response

    async def submit_attempt(self, attempt_id: str, answers: List[AnswerSubmission]) -> QuizAttemptResponse:
        """
        Grade the answers and complete the attempt.

        Args:
            attempt_id: Attempt to complete
            answers: One answer per question; questions left out count as wrong

        Returns:
            The completed attempt with its per-question results
        """
        async with self.database.session() as db:
            attempt = await self.attempt_repo.get_by_id(db, attempt_id)
            if attempt is None:
                raise NotFoundError(f"Attempt {attempt_id} not found")
            if attempt.is_completed:
                raise ValidationError("Quiz attempt has already been completed", details={"attempt_id": attempt_id})

            now = clock.utc_now()
            duration = clock.seconds_between(attempt.started_at, now)
            if duration < 0:
                raise ValidationError("Attempt completion precedes its start", details={"attempt_id": attempt_id})

            result = await db.execute(select(Question).where(Question.quiz_id == attempt.quiz_id))
            questions = {question.id: question for question in result.scalars().all()}

            answered = [answer.question_id for answer in answers]
            if len(set(answered)) != len(answered):
                raise ValidationError("Each question may be answered only once", details={"attempt_id": attempt_id})

            correct = 0
            for position, answer in enumerate(answers):
                question = questions.get(answer.question_id)
                if question is None:
                    raise NotFoundError(f"Question {answer.question_id} is not part of this quiz")

                is_correct = grading.grade_answer(question, answer.answer)
                if is_correct:
                    correct += 1
                attempt.question_results.append(QuestionResult(
                    question_id=question.id,
                    user_answer=answer.answer,
                    is_correct=is_correct,
                    position=position
                ))

            attempt.completed_at = now
            attempt.duration_seconds = duration
            attempt.correct_answers = correct
            attempt.score_percentage = grading.score_percentage(correct, attempt.total_questions)
            await db.flush()
            response = QuizAttemptResponse.model_validate(attempt)

        logger.info(
            f"Completed attempt {attempt_id}: {correct}/{attempt.total_questions} ({response.score_percentage}%)",
            extra={"quiz_id": attempt.quiz_id, "attempt_id": attempt_id}
        )
        return response

    async def get_attempt(self, attempt_id: str) -> QuizAttemptResponse:
        async with self.database.session() as db:
            attempt = await self.attempt_repo.get_by_id_or_404(db, attempt_id)
            return QuizAttemptResponse.model_validate(attempt)

    async def list_attempts(self, quiz_id: str) -> List[QuizAttemptResponse]:
        """Attempts of a quiz, most recently started first"""
        async with self.database.session() as db:
            attempts = await self.attempt_repo.list_for_quiz(db, quiz_id)
            return [QuizAttemptResponse.model_validate(attempt) for attempt in attempts]
