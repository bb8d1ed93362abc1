"""
Tests for the deck sync-status state machine

Tests cover:
- Demotion of synced decks on local change, and its idempotence
- Local-only and pending decks are left alone
- Every kind of deck-scoped mutation demotes a synced deck
"""

import pytest

from kioku.models.deck import Deck
from kioku.models.enums import SyncStatus
from kioku.schemas.deck_schema import DeckCreate, DeckUpdate, CardCreate, CardUpdate
from kioku.services import sync_status
from kioku.services.deck_service import DeckService


def make_deck(status: SyncStatus, remote_id=None) -> Deck:
    return Deck(id="d1", name="Deck", sync_status=status.value, remote_id=remote_id)


class TestTransitions:
    """Pure transitions on a deck row."""

    def test_synced_deck_becomes_pending(self):
        deck = make_deck(SyncStatus.SYNCED, remote_id=5)
        assert sync_status.mark_local_change(deck) == SyncStatus.PENDING_SYNC
        assert deck.remote_id == 5

    def test_demotion_is_idempotent(self):
        deck = make_deck(SyncStatus.SYNCED, remote_id=5)
        sync_status.mark_local_change(deck)
        sync_status.mark_local_change(deck)
        assert deck.sync_status == SyncStatus.PENDING_SYNC

    @pytest.mark.parametrize("status", [SyncStatus.LOCAL_ONLY, SyncStatus.PENDING_SYNC])
    def test_unsynced_decks_are_unchanged(self, status):
        deck = make_deck(status)
        assert sync_status.mark_local_change(deck) == status

    def test_mark_synced_sets_remote_fields(self):
        deck = make_deck(SyncStatus.LOCAL_ONLY)
        sync_status.mark_synced(deck, 42)
        assert deck.sync_status == SyncStatus.SYNCED
        assert deck.remote_id == 42
        assert deck.last_synced_at is not None


async def make_synced_deck(database, remote, ctx):
    service = DeckService(database, remote)
    deck = await service.create_deck_remote(ctx, DeckCreate(name="Remote deck"))
    assert deck.sync_status == SyncStatus.SYNCED
    return service, deck


class TestMutationsDemoteSyncedDeck:
    """Any change to a synced deck's content marks it pending_sync."""

    async def test_deck_update(self, database, remote, ctx):
        service, deck = await make_synced_deck(database, remote, ctx)
        updated = await service.update_deck(deck.id, DeckUpdate(name="Renamed"))
        assert updated.sync_status == SyncStatus.PENDING_SYNC
        assert updated.remote_id == deck.remote_id

    async def test_card_create(self, database, remote, ctx):
        service, deck = await make_synced_deck(database, remote, ctx)
        await service.create_card(deck.id, CardCreate(front="hola", back="hello"))
        assert (await service.get_deck(deck.id)).sync_status == SyncStatus.PENDING_SYNC

    async def test_card_update_and_delete(self, database, remote, ctx):
        service, deck = await make_synced_deck(database, remote, ctx)
        card = await service.create_card(deck.id, CardCreate(front="hola", back="hello"))
        await service.update_card(card.id, CardUpdate(back="hi"))
        await service.delete_card(card.id)
        assert (await service.get_deck(deck.id)).sync_status == SyncStatus.PENDING_SYNC

    async def test_tag_changes(self, database, remote, ctx):
        service, deck = await make_synced_deck(database, remote, ctx)
        await service.create_tag(deck.id, "verbs")
        assert (await service.get_deck(deck.id)).sync_status == SyncStatus.PENDING_SYNC

    async def test_local_only_deck_stays_local_only(self, database, ctx):
        service = DeckService(database)
        deck = await service.create_deck(ctx, DeckCreate(name="Offline"))
        await service.create_card(deck.id, CardCreate(front="a", back="b"))
        await service.update_deck(deck.id, DeckUpdate(description="notes"))
        fetched = await service.get_deck(deck.id)
        assert fetched.sync_status == SyncStatus.LOCAL_ONLY
        assert fetched.remote_id is None

    async def test_conflict_is_never_produced(self, database, remote, ctx):
        service, deck = await make_synced_deck(database, remote, ctx)
        await service.update_deck(deck.id, DeckUpdate(name="Again"))
        await service.update_deck(deck.id, DeckUpdate(name="And again"))
        assert (await service.get_deck(deck.id)).sync_status != SyncStatus.CONFLICT
