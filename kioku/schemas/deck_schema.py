from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from kioku.models.enums import SyncStatus, ContentType


class DeckBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Deck name")
    description: Optional[str] = Field(None, description="Free-form deck description")
    shuffle_cards: bool = Field(False, description="Present cards in random order when studying")


class DeckCreate(DeckBase):
    pass


class DeckUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    shuffle_cards: Optional[bool] = None


class DeckResponse(DeckBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    remote_id: Optional[int] = None
    sync_status: SyncStatus
    last_synced_at: Optional[datetime] = None
    remote_updated_at: Optional[datetime] = None
    card_count: int = 0


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class TagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    deck_id: str
    name: str
    remote_id: Optional[int] = None


class CardBase(BaseModel):
    front: str = Field(..., min_length=1, description="Prompt side")
    back: str = Field(..., min_length=1, description="Answer side")
    front_type: ContentType = ContentType.TEXT
    back_type: ContentType = ContentType.TEXT
    front_language: Optional[str] = Field(None, max_length=50, description="Language tag for CODE content")
    back_language: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class CardCreate(CardBase):
    pass


class CardUpdate(BaseModel):
    front: Optional[str] = Field(None, min_length=1)
    back: Optional[str] = Field(None, min_length=1)
    front_type: Optional[ContentType] = None
    back_type: Optional[ContentType] = None
    front_language: Optional[str] = Field(None, max_length=50)
    back_language: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class CardResponse(CardBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    deck_id: str
    created_at: datetime
    updated_at: datetime
    remote_id: Optional[int] = None
    tags: List[TagResponse] = []


class StudySessionEnd(BaseModel):
    cards_studied: int = Field(0, ge=0, description="Cards reviewed during the session")


class StudySessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    deck_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    cards_studied: int = 0


class DeckStudyStats(BaseModel):
    deck_id: str
    total_sessions: int = 0
    total_study_time_seconds: int = 0
    total_cards_studied: int = 0
    last_studied_at: Optional[datetime] = None
