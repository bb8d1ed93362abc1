"""
Deck-level sync status transitions.

A deck is the unit of sync: any local change to the deck, its cards or its
tags moves a synced deck to pending_sync. Decks never synced stay local_only
until their queued create is replayed.
"""
from datetime import datetime
from typing import Optional

from kioku.core import clock
from kioku.core.logging import get_logger
from kioku.models.deck import Deck
from kioku.models.enums import SyncStatus

logger = get_logger(__name__)


def mark_local_change(deck: Deck) -> SyncStatus:
    """Record a local mutation; only a synced deck changes state. Idempotent."""
    if deck.sync_status == SyncStatus.SYNCED:
        deck.sync_status = SyncStatus.PENDING_SYNC.value
        logger.debug(f"Deck {deck.id} demoted to pending_sync", extra={"deck_id": deck.id})
    return SyncStatus(deck.sync_status)


def mark_synced(deck: Deck, remote_id: int, remote_updated_at: Optional[datetime] = None) -> None:
    """Record server confirmation for the deck"""
    deck.remote_id = remote_id
    deck.sync_status = SyncStatus.SYNCED.value
    deck.last_synced_at = clock.utc_now()
    if remote_updated_at is not None:
        deck.remote_updated_at = remote_updated_at
