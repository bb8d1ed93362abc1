from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from kioku.core import clock
from kioku.core.logging import get_logger
from kioku.db.session import Database
from kioku.db.utils import BaseRepository
from kioku.models.quiz import Quiz, Question, Choice, QuizTag
from kioku.schemas.quiz_schema import (
    QuizCreate, QuizUpdate, QuizResponse, QuestionCreate, QuestionUpdate, QuestionResponse,
    ChoiceCreate, QuizTagResponse
)
from kioku.services.user_service import SessionContext
from kioku.utils.exceptions import NotFoundError, ConflictError, ValidationError

logger = get_logger(__name__)


class QuizRepository(BaseRepository[Quiz]):
    def __init__(self):
        super().__init__(Quiz)

    async def get_with_questions(self, db: AsyncSession, quiz_id: str) -> Quiz:
        return await self.get_by_id_or_404(db, quiz_id, options=[selectinload(Quiz.questions)])

    async def list_with_question_counts(self, db: AsyncSession, user_id: Optional[str]):
        owner = Quiz.user_id == user_id if user_id is not None else Quiz.user_id.is_(None)
        result = await db.execute(
            select(Quiz, func.count(Question.id))
            .outerjoin(Question, Question.quiz_id == Quiz.id)
            .where(owner)
            .group_by(Quiz.id)
            .order_by(Quiz.created_at.desc())
        )
        return result.all()


class QuestionRepository(BaseRepository[Question]):
    def __init__(self):
        super().__init__(Question)

    async def list_for_quiz(self, db: AsyncSession, quiz_id: str) -> List[Question]:
        result = await db.execute(
            select(Question).where(Question.quiz_id == quiz_id).order_by(Question.position, Question.created_at)
        )
        return list(result.scalars().all())

    async def next_position(self, db: AsyncSession, quiz_id: str) -> int:
        result = await db.execute(select(func.max(Question.position)).where(Question.quiz_id == quiz_id))
        current = result.scalar()
        return 0 if current is None else current + 1


class QuizTagRepository(BaseRepository[QuizTag]):
    def __init__(self):
        super().__init__(QuizTag)

    async def get_by_name(self, db: AsyncSession, quiz_id: str, name: str) -> Optional[QuizTag]:
        result = await db.execute(select(QuizTag).where(QuizTag.quiz_id == quiz_id, QuizTag.name == name))
        return result.scalar_one_or_none()


class QuizService:
    """Quizzes with their questions, choices and tags"""

    def __init__(self, database: Database):
        self.database = database
        self.quiz_repo = QuizRepository()
        self.question_repo = QuestionRepository()
        self.tag_repo = QuizTagRepository()

    @staticmethod
    def _quiz_response(quiz: Quiz, question_count: int = 0, with_questions: bool = False) -> QuizResponse:
        if with_questions:
            response = QuizResponse.model_validate(quiz)
            response.question_count = len(quiz.questions)
            return response
        response = QuizResponse(
            id=quiz.id,
            user_id=quiz.user_id,
            name=quiz.name,
            description=quiz.description,
            shuffle_questions=quiz.shuffle_questions,
            created_at=quiz.created_at,
            updated_at=quiz.updated_at,
            question_count=question_count
        )
        return response

    @staticmethod
    def _build_choices(choices: List[ChoiceCreate]) -> List[Choice]:
        return [
            Choice(text=choice.text, is_correct=choice.is_correct, position=index)
            for index, choice in enumerate(choices)
        ]

    async def _touch_quiz(self, db: AsyncSession, quiz_id: str) -> None:
        quiz = await self.quiz_repo.get_by_id_or_404(db, quiz_id)
        quiz.updated_at = clock.utc_now()

    # Quizzes

    async def create_quiz(self, ctx: SessionContext, quiz_data: QuizCreate) -> QuizResponse:
        now = clock.utc_now()
        async with self.database.session() as db:
            quiz = await self.quiz_repo.create(
                db, user_id=ctx.user_id, created_at=now, updated_at=now, **quiz_data.model_dump()
            )
        logger.info(f"Created quiz {quiz.id}", extra={"quiz_id": quiz.id, "user_id": ctx.user_id})
        return self._quiz_response(quiz)

    async def list_quizzes(self, ctx: SessionContext) -> List[QuizResponse]:
        """Quizzes of the session user, newest first"""
        async with self.database.session() as db:
            rows = await self.quiz_repo.list_with_question_counts(db, ctx.user_id)
        return [self._quiz_response(quiz, count) for quiz, count in rows]

    async def get_quiz(self, quiz_id: str) -> QuizResponse:
        """Quiz with its questions ordered by position"""
        async with self.database.session() as db:
            quiz = await self.quiz_repo.get_with_questions(db, quiz_id)
            return self._quiz_response(quiz, with_questions=True)

    async def update_quiz(self, quiz_id: str, quiz_data: QuizUpdate) -> QuizResponse:
        update_data = {k: v for k, v in quiz_data.model_dump(exclude_unset=True).items()
                       if v is not None or k == "description"}

        async with self.database.session() as db:
            quiz = await self.quiz_repo.get_with_questions(db, quiz_id)
            if update_data:
                quiz = await self.quiz_repo.update(db, quiz, updated_at=clock.utc_now(), **update_data)
            response = self._quiz_response(quiz, with_questions=True)
        logger.info(f"Updated quiz {quiz_id}", extra={"quiz_id": quiz_id})
        return response

    async def delete_quiz(self, quiz_id: str) -> None:
        async with self.database.session() as db:
            if not await self.quiz_repo.delete(db, quiz_id):
                raise NotFoundError(f"Quiz {quiz_id} not found")
        logger.info(f"Deleted quiz {quiz_id}", extra={"quiz_id": quiz_id})

    # Questions

    async def create_question(self, quiz_id: str, question_data: QuestionCreate) -> QuestionResponse:
        """Append a question after the quiz's last one"""
        now = clock.utc_now()
        async with self.database.session() as db:
            await self._touch_quiz(db, quiz_id)
            position = await self.question_repo.next_position(db, quiz_id)
            question = await self.question_repo.create(
                db,
                quiz_id=quiz_id,
                position=position,
                choices=self._build_choices(question_data.choices),
                tags=[],
                created_at=now,
                updated_at=now,
                **question_data.model_dump(mode="json", exclude={"choices"})
            )
            response = QuestionResponse.model_validate(question)
        logger.info(f"Created question {question.id}", extra={"quiz_id": quiz_id, "entity_id": question.id})
        return response

    async def get_question(self, question_id: str) -> QuestionResponse:
        async with self.database.session() as db:
            question = await self.question_repo.get_by_id_or_404(db, question_id)
            return QuestionResponse.model_validate(question)

    async def list_questions(self, quiz_id: str) -> List[QuestionResponse]:
        async with self.database.session() as db:
            await self.quiz_repo.get_by_id_or_404(db, quiz_id)
            questions = await self.question_repo.list_for_quiz(db, quiz_id)
            return [QuestionResponse.model_validate(q) for q in questions]

    async def update_question(self, question_id: str, question_data: QuestionUpdate) -> QuestionResponse:
        nullable = {"content_language", "correct_answer", "explanation"}
        update_data = {k: v for k, v in question_data.model_dump(mode="json", exclude_unset=True).items()
                       if v is not None or k in nullable}

        async with self.database.session() as db:
            question = await self.question_repo.get_by_id_or_404(db, question_id)
            if update_data:
                question = await self.question_repo.update(db, question, updated_at=clock.utc_now(), **update_data)
                await self._touch_quiz(db, question.quiz_id)
            return QuestionResponse.model_validate(question)

    async def delete_question(self, question_id: str) -> None:
        async with self.database.session() as db:
            question = await self.question_repo.get_by_id_or_404(db, question_id)
            await self._touch_quiz(db, question.quiz_id)
            await self.question_repo.delete(db, question_id)

    async def reorder_questions(self, quiz_id: str, question_ids: List[str]) -> List[QuestionResponse]:
        """Set each question's position to its index in question_ids"""
        async with self.database.session() as db:
            await self._touch_quiz(db, quiz_id)
            questions = {q.id: q for q in await self.question_repo.list_for_quiz(db, quiz_id)}

            unknown = [qid for qid in question_ids if qid not in questions]
            if unknown:
                raise ValidationError("Questions do not belong to this quiz", details={"question_ids": unknown})
            if len(set(question_ids)) != len(question_ids):
                raise ValidationError("Duplicate question ids in ordering")

            for index, question_id in enumerate(question_ids):
                questions[question_id].position = index
            await db.flush()

            ordered = sorted(questions.values(), key=lambda q: (q.position, q.created_at))
            return [QuestionResponse.model_validate(q) for q in ordered]

    async def replace_choices(self, question_id: str, choices: List[ChoiceCreate]) -> QuestionResponse:
        async with self.database.session() as db:
            question = await self.question_repo.get_by_id_or_404(db, question_id)
            question.choices = self._build_choices(choices)
            question.updated_at = clock.utc_now()
            await db.flush()
            return QuestionResponse.model_validate(question)

    # Quiz tags

    async def create_tag(self, quiz_id: str, name: str) -> QuizTagResponse:
        async with self.database.session() as db:
            await self.quiz_repo.get_by_id_or_404(db, quiz_id)
            if await self.tag_repo.get_by_name(db, quiz_id, name):
                raise ConflictError(f"Tag '{name}' already exists in quiz {quiz_id}", resource_type="tag")
            tag = await self.tag_repo.create(db, quiz_id=quiz_id, name=name)
        logger.info(f"Created tag {tag.id} in quiz {quiz_id}", extra={"quiz_id": quiz_id, "entity_id": tag.id})
        return QuizTagResponse.model_validate(tag)

    async def list_tags(self, quiz_id: str) -> List[QuizTagResponse]:
        async with self.database.session() as db:
            tags = await self.tag_repo.get_multi(db, filters={"quiz_id": quiz_id}, order_by=[QuizTag.name])
        return [QuizTagResponse.model_validate(tag) for tag in tags]

    async def get_tag_by_name(self, quiz_id: str, name: str) -> QuizTagResponse:
        async with self.database.session() as db:
            tag = await self.tag_repo.get_by_name(db, quiz_id, name)
        if tag is None:
            raise NotFoundError(f"Tag '{name}' not found in quiz {quiz_id}")
        return QuizTagResponse.model_validate(tag)

    async def list_question_tags(self, question_id: str) -> List[QuizTagResponse]:
        async with self.database.session() as db:
            question = await self.question_repo.get_by_id_or_404(db, question_id)
            return [QuizTagResponse.model_validate(tag) for tag in question.tags]

    async def delete_tag(self, quiz_id: str, tag_id: str) -> None:
        async with self.database.session() as db:
            tag = await self.tag_repo.get_by_id(db, tag_id)
            if tag is None or tag.quiz_id != quiz_id:
                raise NotFoundError(f"Tag {tag_id} not found")
            await self.tag_repo.delete(db, tag_id)
        logger.info(f"Deleted tag {tag_id} from quiz {quiz_id}", extra={"quiz_id": quiz_id, "entity_id": tag_id})

    async def add_tag_to_question(self, question_id: str, tag_id: str) -> QuestionResponse:
        async with self.database.session() as db:
            question = await self.question_repo.get_by_id_or_404(db, question_id)
            tag = await self.tag_repo.get_by_id_or_404(db, tag_id)
            if tag.quiz_id != question.quiz_id:
                raise ValidationError("Tag belongs to a different quiz", details={"tag_id": tag_id})
            if tag not in question.tags:
                question.tags.append(tag)
                await db.flush()
            return QuestionResponse.model_validate(question)

    async def remove_tag_from_question(self, question_id: str, tag_id: str) -> QuestionResponse:
        async with self.database.session() as db:
            question = await self.question_repo.get_by_id_or_404(db, question_id)
            tag = next((t for t in question.tags if t.id == tag_id), None)
            if tag is not None:
                question.tags.remove(tag)
                await db.flush()
            return QuestionResponse.model_validate(question)
