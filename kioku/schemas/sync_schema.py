from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

from kioku.models.enums import ContentType


class RemoteModel(BaseModel):
    """Base for JSON exchanged with the remote server (camelCase on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeckSyncPayload(RemoteModel):
    name: str
    description: Optional[str] = None
    shuffle_cards: bool = False


class CardSyncPayload(RemoteModel):
    # Local deck id; resolved to the deck's remote id at replay time
    deck_id: str
    front: str
    back: str
    front_type: ContentType = ContentType.TEXT
    back_type: ContentType = ContentType.TEXT
    front_language: Optional[str] = None
    back_language: Optional[str] = None
    notes: Optional[str] = None


class RemoteDeck(RemoteModel):
    id: int
    name: str
    description: Optional[str] = None
    shuffle_cards: bool = False
    updated_at: Optional[datetime] = None


class RemoteCard(RemoteModel):
    id: int
    front: str
    back: str
    front_type: ContentType = ContentType.TEXT
    back_type: ContentType = ContentType.TEXT
    front_language: Optional[str] = None
    back_language: Optional[str] = None
    notes: Optional[str] = None


class RemoteAuthResponse(RemoteModel):
    token: str
    token_type: Optional[str] = Field(None, alias="type")
    user_id: Optional[int] = None
    email: Optional[str] = None


class RemoteLoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SyncResult(BaseModel):
    synced: int = Field(..., ge=0, description="Queue entries replayed in this pass")
    pending: int = Field(..., ge=0, description="Entries still queued after the pass")


class PendingCount(BaseModel):
    pending: int


class ConnectionStatus(BaseModel):
    online: bool
    remote_url: Optional[str] = None


class PullResult(BaseModel):
    decks: int
    cards: int
