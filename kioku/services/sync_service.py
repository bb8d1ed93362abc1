import asyncio
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select, delete, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from kioku.clients.remote_client import RemoteClient
from kioku.core import clock
from kioku.core.logging import get_logger, get_performance_logger
from kioku.db.session import Database
from kioku.models.deck import Deck, Card
from kioku.models.enums import SyncEntityType, SyncOperation, SyncStatus
from kioku.models.sync_queue import SyncQueueItem
from kioku.schemas.sync_schema import DeckSyncPayload, CardSyncPayload, RemoteDeck, RemoteCard
from kioku.services import sync_status
from kioku.utils.exceptions import NetworkError, ProcessingError, ExternalServiceError

logger = get_logger(__name__)
perf_logger = get_performance_logger(__name__)

SyncPayload = Union[DeckSyncPayload, CardSyncPayload]

PAYLOAD_TYPES = {
    SyncEntityType.DECK.value: DeckSyncPayload,
    SyncEntityType.CARD.value: CardSyncPayload,
}


async def enqueue(
        db: AsyncSession,
        entity_type: SyncEntityType,
        entity_id: str,
        operation: SyncOperation,
        payload: BaseModel
) -> SyncQueueItem:
    """Append a pending remote operation inside the caller's store session"""
    item = SyncQueueItem(
        entity_type=entity_type.value,
        entity_id=entity_id,
        operation=operation.value,
        payload=payload.model_dump_json(by_alias=True),
        created_at=clock.utc_now()
    )
    db.add(item)
    await db.flush()
    logger.debug(
        f"Queued {operation.value} for {entity_type.value} {entity_id}",
        extra={"entity_type": entity_type.value, "entity_id": entity_id}
    )
    return item


async def purge(db: AsyncSession, entity_type: SyncEntityType, entity_ids: Sequence[str]) -> int:
    """Drop not-yet-replayed entries of deleted entities"""
    if not entity_ids:
        return 0
    result = await db.execute(
        delete(SyncQueueItem).where(
            SyncQueueItem.entity_type == entity_type.value,
            SyncQueueItem.entity_id.in_(list(entity_ids))
        )
    )
    return result.rowcount


async def refresh_payload(
        db: AsyncSession,
        entity_type: SyncEntityType,
        entity_id: str,
        payload: BaseModel
) -> bool:
    """Fold a local edit into the entity's still-queued create, if there is one"""
    result = await db.execute(
        update(SyncQueueItem)
        .where(
            SyncQueueItem.entity_type == entity_type.value,
            SyncQueueItem.entity_id == entity_id,
            SyncQueueItem.operation == SyncOperation.CREATE.value
        )
        .values(payload=payload.model_dump_json(by_alias=True))
    )
    if result.rowcount:
        logger.debug(
            f"Refreshed queued create of {entity_type.value} {entity_id}",
            extra={"entity_type": entity_type.value, "entity_id": entity_id}
        )
    return result.rowcount > 0


def _replay_order():
    # Decks replay before cards so a card can resolve its deck's remote id
    return (
        case((SyncQueueItem.entity_type == SyncEntityType.DECK.value, 0), else_=1),
        SyncQueueItem.created_at,
        SyncQueueItem.id,
    )


class SyncService:
    """Drains the local sync queue against the remote server"""

    def __init__(self, database: Database, remote: Optional[RemoteClient] = None):
        self.database = database
        self.remote = remote
        self._drain_lock = asyncio.Lock()

    def require_remote(self) -> RemoteClient:
        if self.remote is None:
            raise ExternalServiceError("Remote server is not configured", service_name="remote")
        return self.remote

    async def enqueue(
            self,
            entity_type: SyncEntityType,
            entity_id: str,
            operation: SyncOperation,
            payload: BaseModel
    ) -> int:
        async with self.database.session() as db:
            item = await enqueue(db, entity_type, entity_id, operation, payload)
            return item.id

    async def pending_count(self) -> int:
        async with self.database.session() as db:
            result = await db.execute(select(func.count(SyncQueueItem.id)))
            return result.scalar() or 0

    async def list_pending(self) -> List[SyncQueueItem]:
        async with self.database.session() as db:
            result = await db.execute(select(SyncQueueItem).order_by(*_replay_order()))
            return list(result.scalars().all())

    async def check_connection(self) -> bool:
        if self.remote is None:
            return False
        return await self.remote.check_connection()

    async def drain_queue(self) -> int:
        """
        Replay queued creates against the remote server.

        Returns:
            Number of queue entries synced in this pass
        """
        remote = self.require_remote()
        async with self._drain_lock:
            with perf_logger.measure_time("drain_sync_queue", service_name="sync"):
                return await self._drain(remote)

    async def _drain(self, remote: RemoteClient) -> int:
        # Snapshot under the store lock
        async with self.database.session() as db:
            result = await db.execute(select(SyncQueueItem).order_by(*_replay_order()))
            entries = list(result.scalars().all())
            if not entries:
                return 0
            rows = await db.execute(select(Deck.id, Deck.remote_id).where(Deck.remote_id.is_not(None)))
            persisted_remote_ids: Dict[str, int] = {deck_id: remote_id for deck_id, remote_id in rows.all()}

        decoded = [(entry, self._decode(entry)) for entry in entries]
        logger.info(f"Draining {len(decoded)} queued sync operations")

        # Network phase, store lock released
        replayed: List[Tuple[SyncQueueItem, Union[RemoteDeck, RemoteCard]]] = []
        mapped: Dict[str, int] = {}
        for entry, payload in decoded:
            try:
                if entry.entity_type == SyncEntityType.DECK.value:
                    remote_deck = await remote.create_deck(payload)
                    mapped[entry.entity_id] = remote_deck.id
                    replayed.append((entry, remote_deck))
                else:
                    remote_deck_id = mapped.get(payload.deck_id, persisted_remote_ids.get(payload.deck_id))
                    if remote_deck_id is None:
                        logger.info(
                            f"Card {entry.entity_id} waits for deck {payload.deck_id} to sync",
                            extra={"entity_type": entry.entity_type, "entity_id": entry.entity_id}
                        )
                        continue
                    remote_card = await remote.create_card(remote_deck_id, payload)
                    replayed.append((entry, remote_card))
            except NetworkError as e:
                logger.warning(
                    f"Sync of {entry.entity_type} {entry.entity_id} failed, keeping it queued: {e.message}",
                    extra={"entity_type": entry.entity_type, "entity_id": entry.entity_id}
                )

        if not replayed:
            return 0

        # Apply phase, one transaction
        async with self.database.session() as db:
            sent = {entry.id: entry.payload for entry, _ in replayed}
            current = await db.execute(
                select(SyncQueueItem.id, SyncQueueItem.payload).where(SyncQueueItem.id.in_(list(sent)))
            )
            # Edited while the create was in flight; the server holds the older content
            edited_in_flight = {queue_id for queue_id, payload in current.all() if payload != sent[queue_id]}

            touched_decks: Dict[str, Deck] = {}
            stale_decks: Set[str] = set()
            for entry, remote_obj in replayed:
                if entry.entity_type == SyncEntityType.DECK.value:
                    deck = await db.get(Deck, entry.entity_id)
                    if deck is None:
                        continue
                    deck.remote_id = remote_obj.id
                    deck.remote_updated_at = clock.as_naive_utc(remote_obj.updated_at)
                else:
                    card = await db.get(Card, entry.entity_id)
                    if card is None:
                        continue
                    card.remote_id = remote_obj.id
                    deck = await db.get(Deck, card.deck_id)
                    if deck is None:
                        continue
                touched_decks[deck.id] = deck
                if entry.id in edited_in_flight:
                    stale_decks.add(deck.id)

            await db.execute(delete(SyncQueueItem).where(SyncQueueItem.id.in_(list(sent))))
            await db.flush()

            for deck in touched_decks.values():
                await self._settle_deck_status(db, deck, stale=deck.id in stale_decks)

        logger.info(f"Synced {len(replayed)} of {len(decoded)} queued operations")
        return len(replayed)

    async def _settle_deck_status(self, db: AsyncSession, deck: Deck, stale: bool = False) -> None:
        """A replayed deck is synced once none of its entries remain queued and nothing was sent stale"""
        if deck.remote_id is None:
            return
        if stale:
            deck.sync_status = SyncStatus.PENDING_SYNC.value
            logger.warning(
                f"Deck {deck.id} changed while syncing, left pending_sync",
                extra={"deck_id": deck.id}
            )
            return
        card_ids = select(Card.id).where(Card.deck_id == deck.id)
        remaining = await db.execute(
            select(func.count(SyncQueueItem.id)).where(
                ((SyncQueueItem.entity_type == SyncEntityType.DECK.value) & (SyncQueueItem.entity_id == deck.id))
                | ((SyncQueueItem.entity_type == SyncEntityType.CARD.value) & SyncQueueItem.entity_id.in_(card_ids))
            )
        )
        if remaining.scalar():
            deck.sync_status = SyncStatus.PENDING_SYNC.value
            return
        sync_status.mark_synced(deck, deck.remote_id)
        logger.info(f"Deck {deck.id} synced as remote {deck.remote_id}", extra={"deck_id": deck.id})

    @staticmethod
    def _decode(entry: SyncQueueItem) -> SyncPayload:
        payload_type = PAYLOAD_TYPES.get(entry.entity_type)
        if payload_type is None or entry.operation != SyncOperation.CREATE.value:
            raise ProcessingError(
                f"Unsupported sync entry {entry.id}: {entry.operation} {entry.entity_type}",
                details={"queue_id": entry.id}
            )
        try:
            return payload_type.model_validate_json(entry.payload)
        except PydanticValidationError as e:
            logger.error(f"Corrupt payload in sync entry {entry.id}: {e}")
            raise ProcessingError(f"Corrupt payload in sync entry {entry.id}", details={"queue_id": entry.id})
