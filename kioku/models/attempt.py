from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Integer, Boolean, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kioku.core.clock import utc_now
from kioku.db.base import BaseModel

if TYPE_CHECKING:
    from kioku.models.quiz import Quiz


class QuizAttempt(BaseModel):
    __tablename__ = "quiz_attempts"

    quiz_id: Mapped[str] = mapped_column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="attempts")
    question_results: Mapped[List["QuestionResult"]] = relationship(
        "QuestionResult", back_populates="attempt", cascade="all, delete-orphan",
        passive_deletes=True, lazy="selectin", order_by="QuestionResult.position"
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class QuestionResult(BaseModel):
    __tablename__ = "question_results"

    attempt_id: Mapped[str] = mapped_column(String(36), ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    user_answer: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    attempt: Mapped["QuizAttempt"] = relationship("QuizAttempt", back_populates="question_results")
