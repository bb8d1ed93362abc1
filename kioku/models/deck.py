from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Integer, Boolean, Text, DateTime, ForeignKey, Table, Column, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kioku.db.base import Base, BaseModel, TimestampedModel
from kioku.models.enums import SyncStatus, ContentType

if TYPE_CHECKING:
    from kioku.models.study_session import StudySession


card_tags = Table(
    "card_tags",
    Base.metadata,
    Column("card_id", String(36), ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Deck(TimestampedModel):
    __tablename__ = "decks"

    user_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    shuffle_cards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Sync metadata; the deck is the unit of sync for its cards and tags
    remote_id: Mapped[Optional[int]] = mapped_column(Integer)
    sync_status: Mapped[str] = mapped_column(String(20), nullable=False, default=SyncStatus.LOCAL_ONLY.value, index=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    remote_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    cards: Mapped[List["Card"]] = relationship("Card", back_populates="deck", cascade="all, delete-orphan", passive_deletes=True)
    tags: Mapped[List["Tag"]] = relationship("Tag", back_populates="deck", cascade="all, delete-orphan", passive_deletes=True)
    study_sessions: Mapped[List["StudySession"]] = relationship("StudySession", back_populates="deck", cascade="all, delete-orphan", passive_deletes=True)


class Card(TimestampedModel):
    __tablename__ = "cards"

    deck_id: Mapped[str] = mapped_column(String(36), ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True)
    front: Mapped[str] = mapped_column(Text, nullable=False)
    front_type: Mapped[str] = mapped_column(String(10), nullable=False, default=ContentType.TEXT.value)
    front_language: Mapped[Optional[str]] = mapped_column(String(50))
    back: Mapped[str] = mapped_column(Text, nullable=False)
    back_type: Mapped[str] = mapped_column(String(10), nullable=False, default=ContentType.TEXT.value)
    back_language: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    remote_id: Mapped[Optional[int]] = mapped_column(Integer)

    # Relationships
    deck: Mapped["Deck"] = relationship("Deck", back_populates="cards")
    tags: Mapped[List["Tag"]] = relationship("Tag", secondary=card_tags, lazy="selectin", order_by="Tag.name")


class Tag(BaseModel):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("deck_id", "name", name="uq_tags_deck_name"),)

    deck_id: Mapped[str] = mapped_column(String(36), ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    remote_id: Mapped[Optional[int]] = mapped_column(Integer)

    # Relationships
    deck: Mapped["Deck"] = relationship("Deck", back_populates="tags")
