from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import String, Integer, Boolean, Text, ForeignKey, Table, Column, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kioku.db.base import Base, BaseModel, TimestampedModel
from kioku.models.enums import ContentType

if TYPE_CHECKING:
    from kioku.models.attempt import QuizAttempt


question_tags = Table(
    "question_tags",
    Base.metadata,
    Column("question_id", String(36), ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("quiz_tags.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Quiz(TimestampedModel):
    __tablename__ = "quizzes"

    user_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    shuffle_questions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    questions: Mapped[List["Question"]] = relationship(
        "Question", back_populates="quiz", cascade="all, delete-orphan",
        passive_deletes=True, order_by="Question.position"
    )
    tags: Mapped[List["QuizTag"]] = relationship("QuizTag", back_populates="quiz", cascade="all, delete-orphan", passive_deletes=True)
    attempts: Mapped[List["QuizAttempt"]] = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan", passive_deletes=True)


class Question(TimestampedModel):
    __tablename__ = "questions"

    quiz_id: Mapped[str] = mapped_column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(10), nullable=False, default=ContentType.TEXT.value)
    content_language: Mapped[Optional[str]] = mapped_column(String(50))
    correct_answer: Mapped[Optional[str]] = mapped_column(Text)
    multiple_answers: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="questions")
    choices: Mapped[List["Choice"]] = relationship(
        "Choice", back_populates="question", cascade="all, delete-orphan",
        passive_deletes=True, lazy="selectin", order_by="Choice.position"
    )
    tags: Mapped[List["QuizTag"]] = relationship("QuizTag", secondary=question_tags, lazy="selectin", order_by="QuizTag.name")


class Choice(BaseModel):
    __tablename__ = "choices"

    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    question: Mapped["Question"] = relationship("Question", back_populates="choices")


class QuizTag(BaseModel):
    __tablename__ = "quiz_tags"
    __table_args__ = (UniqueConstraint("quiz_id", "name", name="uq_quiz_tags_quiz_name"),)

    quiz_id: Mapped[str] = mapped_column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Relationships
    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="tags")
