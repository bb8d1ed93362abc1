from fastapi import APIRouter, Depends, status
from typing import List

from kioku.core.logging import get_logger
from kioku.dependencies import get_deck_service, get_stats_service, get_bundle_service, get_session_context
from kioku.schemas.bundle_schema import BundleImportRequest, BundleExport, DeckImportResult
from kioku.schemas.deck_schema import (
    DeckCreate, DeckUpdate, DeckResponse, CardCreate, CardUpdate, CardResponse,
    TagCreate, TagResponse, StudySessionEnd, StudySessionResponse, DeckStudyStats
)
from kioku.schemas.sync_schema import PullResult
from kioku.services.bundle_service import BundleService
from kioku.services.deck_service import DeckService
from kioku.services.stats_service import StatsService
from kioku.services.user_service import SessionContext

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=DeckResponse, status_code=status.HTTP_201_CREATED)
async def create_deck(
        deck_data: DeckCreate,
        ctx: SessionContext = Depends(get_session_context),
        deck_service: DeckService = Depends(get_deck_service)
):
    """Create a deck locally; it is queued for the next sync pass"""
    return await deck_service.create_deck(ctx, deck_data)


@router.post("/remote", response_model=DeckResponse, status_code=status.HTTP_201_CREATED)
async def create_deck_remote(
        deck_data: DeckCreate,
        ctx: SessionContext = Depends(get_session_context),
        deck_service: DeckService = Depends(get_deck_service)
):
    """Create a deck on the remote server and store it as synced"""
    return await deck_service.create_deck_remote(ctx, deck_data)


@router.post("/pull", response_model=PullResult)
async def pull_remote_decks(
        ctx: SessionContext = Depends(get_session_context),
        deck_service: DeckService = Depends(get_deck_service)
):
    """Overwrite local decks with the server's copies"""
    return await deck_service.pull_remote_decks(ctx)


@router.post("/import", response_model=DeckImportResult, status_code=status.HTTP_201_CREATED)
async def import_deck(
        request: BundleImportRequest,
        ctx: SessionContext = Depends(get_session_context),
        bundle_service: BundleService = Depends(get_bundle_service)
):
    return await bundle_service.import_deck(ctx, request.content)


@router.get("/", response_model=List[DeckResponse])
async def list_decks(
        ctx: SessionContext = Depends(get_session_context),
        deck_service: DeckService = Depends(get_deck_service)
):
    return await deck_service.list_decks(ctx)


@router.get("/{deck_id}", response_model=DeckResponse)
async def get_deck(deck_id: str, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.get_deck(deck_id)


@router.put("/{deck_id}", response_model=DeckResponse)
async def update_deck(deck_id: str, deck_data: DeckUpdate, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.update_deck(deck_id, deck_data)


@router.delete("/{deck_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deck(deck_id: str, deck_service: DeckService = Depends(get_deck_service)):
    await deck_service.delete_deck(deck_id)


@router.get("/{deck_id}/export", response_model=BundleExport)
async def export_deck(deck_id: str, bundle_service: BundleService = Depends(get_bundle_service)):
    return BundleExport(content=await bundle_service.export_deck(deck_id))


# Cards

@router.get("/{deck_id}/cards", response_model=List[CardResponse])
async def list_cards(deck_id: str, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.list_cards(deck_id)


@router.post("/{deck_id}/cards", response_model=CardResponse, status_code=status.HTTP_201_CREATED)
async def create_card(deck_id: str, card_data: CardCreate, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.create_card(deck_id, card_data)


@router.get("/{deck_id}/cards/{card_id}", response_model=CardResponse)
async def get_card(deck_id: str, card_id: str, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.get_card(card_id, deck_id)


@router.put("/{deck_id}/cards/{card_id}", response_model=CardResponse)
async def update_card(
        deck_id: str,
        card_id: str,
        card_data: CardUpdate,
        deck_service: DeckService = Depends(get_deck_service)
):
    return await deck_service.update_card(card_id, card_data, deck_id)


@router.delete("/{deck_id}/cards/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_card(deck_id: str, card_id: str, deck_service: DeckService = Depends(get_deck_service)):
    await deck_service.delete_card(card_id, deck_id)


@router.get("/{deck_id}/cards/{card_id}/tags", response_model=List[TagResponse])
async def list_card_tags(deck_id: str, card_id: str, deck_service: DeckService = Depends(get_deck_service)):
    await deck_service.get_card(card_id, deck_id)
    return await deck_service.list_card_tags(card_id)


@router.put("/{deck_id}/cards/{card_id}/tags/{tag_id}", response_model=CardResponse)
async def add_tag_to_card(
        deck_id: str,
        card_id: str,
        tag_id: str,
        deck_service: DeckService = Depends(get_deck_service)
):
    await deck_service.get_card(card_id, deck_id)
    return await deck_service.add_tag_to_card(card_id, tag_id)


@router.delete("/{deck_id}/cards/{card_id}/tags/{tag_id}", response_model=CardResponse)
async def remove_tag_from_card(
        deck_id: str,
        card_id: str,
        tag_id: str,
        deck_service: DeckService = Depends(get_deck_service)
):
    await deck_service.get_card(card_id, deck_id)
    return await deck_service.remove_tag_from_card(card_id, tag_id)


# Tags

@router.get("/{deck_id}/tags", response_model=List[TagResponse])
async def list_tags(deck_id: str, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.list_tags(deck_id)


@router.post("/{deck_id}/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(deck_id: str, tag_data: TagCreate, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.create_tag(deck_id, tag_data.name)


@router.get("/{deck_id}/tags/by-name/{name}", response_model=TagResponse)
async def get_tag_by_name(deck_id: str, name: str, deck_service: DeckService = Depends(get_deck_service)):
    return await deck_service.get_tag_by_name(deck_id, name)


@router.delete("/{deck_id}/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(deck_id: str, tag_id: str, deck_service: DeckService = Depends(get_deck_service)):
    await deck_service.delete_tag(deck_id, tag_id)


# Study sessions

@router.post("/{deck_id}/study-sessions", response_model=StudySessionResponse, status_code=status.HTTP_201_CREATED)
async def start_study_session(deck_id: str, stats_service: StatsService = Depends(get_stats_service)):
    return await stats_service.start_study_session(deck_id)


@router.post("/study-sessions/{session_id}/end", response_model=StudySessionResponse)
async def end_study_session(
        session_id: str,
        end_data: StudySessionEnd,
        stats_service: StatsService = Depends(get_stats_service)
):
    return await stats_service.end_study_session(session_id, end_data.cards_studied)


@router.get("/{deck_id}/stats", response_model=DeckStudyStats)
async def get_deck_study_stats(deck_id: str, stats_service: StatsService = Depends(get_stats_service)):
    return await stats_service.deck_study_stats(deck_id)
