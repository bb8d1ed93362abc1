from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kioku.core.clock import utc_now
from kioku.db.base import BaseModel

if TYPE_CHECKING:
    from kioku.models.deck import Deck


class StudySession(BaseModel):
    __tablename__ = "study_sessions"

    deck_id: Mapped[str] = mapped_column(String(36), ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)
    cards_studied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    deck: Mapped["Deck"] = relationship("Deck", back_populates="study_sessions")
