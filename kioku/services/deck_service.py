from typing import Dict, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func

from kioku.clients.remote_client import RemoteClient
from kioku.core import clock
from kioku.core.logging import get_logger
from kioku.db.session import Database
from kioku.db.utils import BaseRepository
from kioku.models.deck import Deck, Card, Tag
from kioku.models.enums import SyncStatus, SyncEntityType, SyncOperation
from kioku.schemas.deck_schema import (
    DeckCreate, DeckUpdate, DeckResponse, CardCreate, CardUpdate, CardResponse, TagResponse
)
from kioku.schemas.sync_schema import DeckSyncPayload, CardSyncPayload, PullResult, RemoteDeck, RemoteCard
from kioku.services import sync_service, sync_status
from kioku.services.user_service import SessionContext
from kioku.utils.exceptions import NotFoundError, ConflictError, ValidationError, ExternalServiceError

logger = get_logger(__name__)


class DeckRepository(BaseRepository[Deck]):
    def __init__(self):
        super().__init__(Deck)

    async def list_with_card_counts(self, db: AsyncSession, user_id: Optional[str]) -> List[Tuple[Deck, int]]:
        owner = Deck.user_id == user_id if user_id is not None else Deck.user_id.is_(None)
        result = await db.execute(
            select(Deck, func.count(Card.id))
            .outerjoin(Card, Card.deck_id == Deck.id)
            .where(owner)
            .group_by(Deck.id)
            .order_by(Deck.updated_at.desc())
        )
        return [(deck, count) for deck, count in result.all()]

    async def card_count(self, db: AsyncSession, deck_id: str) -> int:
        result = await db.execute(select(func.count(Card.id)).where(Card.deck_id == deck_id))
        return result.scalar() or 0

    async def get_by_remote_id(self, db: AsyncSession, remote_id: int) -> Optional[Deck]:
        result = await db.execute(select(Deck).where(Deck.remote_id == remote_id))
        return result.scalars().first()


class CardRepository(BaseRepository[Card]):
    def __init__(self):
        super().__init__(Card)

    async def list_for_deck(self, db: AsyncSession, deck_id: str) -> List[Card]:
        result = await db.execute(
            select(Card).where(Card.deck_id == deck_id).order_by(Card.created_at, Card.id)
        )
        return list(result.scalars().all())

    async def ids_for_decks(self, db: AsyncSession, deck_ids: List[str]) -> List[str]:
        result = await db.execute(select(Card.id).where(Card.deck_id.in_(deck_ids)))
        return list(result.scalars().all())


class TagRepository(BaseRepository[Tag]):
    def __init__(self):
        super().__init__(Tag)

    async def get_by_name(self, db: AsyncSession, deck_id: str, name: str) -> Optional[Tag]:
        result = await db.execute(select(Tag).where(Tag.deck_id == deck_id, Tag.name == name))
        return result.scalar_one_or_none()


class DeckService:
    """
    Decks, cards and tags in the local store.

    Every local mutation goes through the deck's sync status; locally created
    decks and cards are also appended to the sync queue.
    """

    def __init__(self, database: Database, remote: Optional[RemoteClient] = None):
        self.database = database
        self.remote = remote
        self.deck_repo = DeckRepository()
        self.card_repo = CardRepository()
        self.tag_repo = TagRepository()

    @staticmethod
    def _deck_response(deck: Deck, card_count: int = 0) -> DeckResponse:
        response = DeckResponse.model_validate(deck)
        response.card_count = card_count
        return response

    @staticmethod
    def _deck_payload(deck: Deck) -> DeckSyncPayload:
        return DeckSyncPayload(name=deck.name, description=deck.description, shuffle_cards=deck.shuffle_cards)

    @staticmethod
    def _card_payload(card: Card) -> CardSyncPayload:
        return CardSyncPayload(
            deck_id=card.deck_id,
            front=card.front,
            back=card.back,
            front_type=card.front_type,
            back_type=card.back_type,
            front_language=card.front_language,
            back_language=card.back_language,
            notes=card.notes
        )

    async def _get_card_in_deck(self, db: AsyncSession, card_id: str, deck_id: Optional[str]) -> Card:
        card = await self.card_repo.get_by_id(db, card_id)
        if card is None or (deck_id is not None and card.deck_id != deck_id):
            raise NotFoundError(f"Card {card_id} not found")
        return card

    # Decks

    async def create_deck(self, ctx: SessionContext, deck_data: DeckCreate) -> DeckResponse:
        """Create a deck offline; it stays local_only until the sync queue is drained"""
        now = clock.utc_now()
        async with self.database.session() as db:
            deck = await self.deck_repo.create(
                db,
                user_id=ctx.user_id,
                name=deck_data.name,
                description=deck_data.description,
                shuffle_cards=deck_data.shuffle_cards,
                sync_status=SyncStatus.LOCAL_ONLY.value,
                created_at=now,
                updated_at=now
            )
            await sync_service.enqueue(
                db, SyncEntityType.DECK, deck.id, SyncOperation.CREATE, self._deck_payload(deck)
            )
        logger.info(f"Created deck {deck.id}", extra={"deck_id": deck.id, "user_id": ctx.user_id})
        return self._deck_response(deck)

    async def create_deck_remote(self, ctx: SessionContext, deck_data: DeckCreate) -> DeckResponse:
        """Create the deck on the server first, then store it as synced"""
        if self.remote is None:
            raise ExternalServiceError("Remote server is not configured", service_name="remote")

        payload = DeckSyncPayload(
            name=deck_data.name, description=deck_data.description, shuffle_cards=deck_data.shuffle_cards
        )
        remote_deck = await self.remote.create_deck(payload)

        now = clock.utc_now()
        async with self.database.session() as db:
            deck = await self.deck_repo.create(
                db,
                user_id=ctx.user_id,
                name=deck_data.name,
                description=deck_data.description,
                shuffle_cards=deck_data.shuffle_cards,
                created_at=now,
                updated_at=now
            )
            sync_status.mark_synced(deck, remote_deck.id, clock.as_naive_utc(remote_deck.updated_at))
            await db.flush()
        logger.info(f"Created deck {deck.id} on remote as {remote_deck.id}", extra={"deck_id": deck.id})
        return self._deck_response(deck)

    async def list_decks(self, ctx: SessionContext) -> List[DeckResponse]:
        """Decks of the session user, most recently updated first"""
        async with self.database.session() as db:
            rows = await self.deck_repo.list_with_card_counts(db, ctx.user_id)
        return [self._deck_response(deck, count) for deck, count in rows]

    async def get_deck(self, deck_id: str) -> DeckResponse:
        async with self.database.session() as db:
            deck = await self.deck_repo.get_by_id_or_404(db, deck_id)
            count = await self.deck_repo.card_count(db, deck_id)
        return self._deck_response(deck, count)

    async def update_deck(self, deck_id: str, deck_data: DeckUpdate) -> DeckResponse:
        update_data = {k: v for k, v in deck_data.model_dump(exclude_unset=True).items()
                       if v is not None or k == "description"}

        async with self.database.session() as db:
            deck = await self.deck_repo.get_by_id_or_404(db, deck_id)
            if update_data:
                deck = await self.deck_repo.update(db, deck, updated_at=clock.utc_now(), **update_data)
                sync_status.mark_local_change(deck)
                await sync_service.refresh_payload(db, SyncEntityType.DECK, deck_id, self._deck_payload(deck))
            count = await self.deck_repo.card_count(db, deck_id)
        logger.info(f"Updated deck {deck_id}", extra={"deck_id": deck_id})
        return self._deck_response(deck, count)

    async def delete_deck(self, deck_id: str) -> None:
        """Delete a deck with its cards, tags and study sessions"""
        async with self.database.session() as db:
            await self.deck_repo.get_by_id_or_404(db, deck_id)
            card_ids = await self.card_repo.ids_for_decks(db, [deck_id])
            await sync_service.purge(db, SyncEntityType.CARD, card_ids)
            await sync_service.purge(db, SyncEntityType.DECK, [deck_id])
            await self.deck_repo.delete(db, deck_id)
        logger.info(f"Deleted deck {deck_id}", extra={"deck_id": deck_id})

    # Cards

    async def create_card(self, deck_id: str, card_data: CardCreate) -> CardResponse:
        now = clock.utc_now()
        async with self.database.session() as db:
            deck = await self.deck_repo.get_by_id_or_404(db, deck_id)
            card = await self.card_repo.create(
                db,
                deck_id=deck_id,
                tags=[],
                created_at=now,
                updated_at=now,
                **card_data.model_dump(mode="json")
            )
            sync_status.mark_local_change(deck)
            await sync_service.enqueue(
                db, SyncEntityType.CARD, card.id, SyncOperation.CREATE, self._card_payload(card)
            )
            response = CardResponse.model_validate(card)
        logger.info(f"Created card {card.id}", extra={"deck_id": deck_id, "entity_id": card.id})
        return response

    async def list_cards(self, deck_id: str) -> List[CardResponse]:
        """Cards of a deck, oldest first"""
        async with self.database.session() as db:
            await self.deck_repo.get_by_id_or_404(db, deck_id)
            cards = await self.card_repo.list_for_deck(db, deck_id)
            return [CardResponse.model_validate(card) for card in cards]

    async def get_card(self, card_id: str, deck_id: Optional[str] = None) -> CardResponse:
        async with self.database.session() as db:
            card = await self._get_card_in_deck(db, card_id, deck_id)
            return CardResponse.model_validate(card)

    async def update_card(self, card_id: str, card_data: CardUpdate, deck_id: Optional[str] = None) -> CardResponse:
        nullable = {"front_language", "back_language", "notes"}
        update_data = {k: v for k, v in card_data.model_dump(mode="json", exclude_unset=True).items()
                       if v is not None or k in nullable}

        async with self.database.session() as db:
            card = await self._get_card_in_deck(db, card_id, deck_id)
            if update_data:
                card = await self.card_repo.update(db, card, updated_at=clock.utc_now(), **update_data)
                deck = await self.deck_repo.get_by_id_or_404(db, card.deck_id)
                sync_status.mark_local_change(deck)
                await sync_service.refresh_payload(db, SyncEntityType.CARD, card_id, self._card_payload(card))
            response = CardResponse.model_validate(card)
        logger.info(f"Updated card {card_id}", extra={"deck_id": card.deck_id, "entity_id": card_id})
        return response

    async def delete_card(self, card_id: str, deck_id: Optional[str] = None) -> None:
        async with self.database.session() as db:
            card = await self._get_card_in_deck(db, card_id, deck_id)
            deck = await self.deck_repo.get_by_id_or_404(db, card.deck_id)
            await sync_service.purge(db, SyncEntityType.CARD, [card_id])
            await self.card_repo.delete(db, card_id)
            sync_status.mark_local_change(deck)
        logger.info(f"Deleted card {card_id}", extra={"deck_id": card.deck_id, "entity_id": card_id})

    # Tags

    async def create_tag(self, deck_id: str, name: str) -> TagResponse:
        async with self.database.session() as db:
            deck = await self.deck_repo.get_by_id_or_404(db, deck_id)
            if await self.tag_repo.get_by_name(db, deck_id, name):
                raise ConflictError(f"Tag '{name}' already exists in deck {deck_id}", resource_type="tag")
            tag = await self.tag_repo.create(db, deck_id=deck_id, name=name)
            sync_status.mark_local_change(deck)
        logger.info(f"Created tag {tag.id} in deck {deck_id}", extra={"deck_id": deck_id, "entity_id": tag.id})
        return TagResponse.model_validate(tag)

    async def list_tags(self, deck_id: str) -> List[TagResponse]:
        async with self.database.session() as db:
            tags = await self.tag_repo.get_multi(db, filters={"deck_id": deck_id}, order_by=[Tag.name])
        return [TagResponse.model_validate(tag) for tag in tags]

    async def get_tag_by_name(self, deck_id: str, name: str) -> TagResponse:
        async with self.database.session() as db:
            tag = await self.tag_repo.get_by_name(db, deck_id, name)
        if tag is None:
            raise NotFoundError(f"Tag '{name}' not found in deck {deck_id}")
        return TagResponse.model_validate(tag)

    async def list_card_tags(self, card_id: str) -> List[TagResponse]:
        async with self.database.session() as db:
            card = await self.card_repo.get_by_id_or_404(db, card_id)
            return [TagResponse.model_validate(tag) for tag in card.tags]

    async def delete_tag(self, deck_id: str, tag_id: str) -> None:
        async with self.database.session() as db:
            tag = await self.tag_repo.get_by_id(db, tag_id)
            if tag is None or tag.deck_id != deck_id:
                raise NotFoundError(f"Tag {tag_id} not found")
            deck = await self.deck_repo.get_by_id_or_404(db, deck_id)
            await self.tag_repo.delete(db, tag_id)
            sync_status.mark_local_change(deck)
        logger.info(f"Deleted tag {tag_id} from deck {deck_id}", extra={"deck_id": deck_id, "entity_id": tag_id})

    async def add_tag_to_card(self, card_id: str, tag_id: str) -> CardResponse:
        """Attach a deck tag to a card; attaching twice is a no-op"""
        async with self.database.session() as db:
            card = await self.card_repo.get_by_id_or_404(db, card_id)
            tag = await self.tag_repo.get_by_id_or_404(db, tag_id)
            if tag.deck_id != card.deck_id:
                raise ValidationError("Tag belongs to a different deck", details={"tag_id": tag_id})
            if tag not in card.tags:
                card.tags.append(tag)
                deck = await self.deck_repo.get_by_id_or_404(db, card.deck_id)
                sync_status.mark_local_change(deck)
                await db.flush()
            return CardResponse.model_validate(card)

    async def remove_tag_from_card(self, card_id: str, tag_id: str) -> CardResponse:
        async with self.database.session() as db:
            card = await self.card_repo.get_by_id_or_404(db, card_id)
            tag = next((t for t in card.tags if t.id == tag_id), None)
            if tag is not None:
                card.tags.remove(tag)
                deck = await self.deck_repo.get_by_id_or_404(db, card.deck_id)
                sync_status.mark_local_change(deck)
                await db.flush()
            return CardResponse.model_validate(card)

    # Remote hydration

    async def pull_remote_decks(self, ctx: SessionContext) -> PullResult:
        """
        Overwrite local decks with the server's copies.

        Decks matched by remote id are overwritten, unknown ones inserted; in
        both cases the cards are replaced by the server's and the deck ends up
        synced. Local decks that never synced are left alone.
        """
        if self.remote is None:
            raise ExternalServiceError("Remote server is not configured", service_name="remote")

        remote_decks = await self.remote.list_decks()
        remote_cards: Dict[int, List[RemoteCard]] = {}
        for remote_deck in remote_decks:
            remote_cards[remote_deck.id] = await self.remote.list_cards(remote_deck.id)

        card_total = 0
        async with self.database.session() as db:
            for remote_deck in remote_decks:
                deck = await self._overwrite_from_remote(db, ctx, remote_deck)
                card_total += await self._replace_cards(db, deck, remote_cards[remote_deck.id])

        logger.info(f"Pulled {len(remote_decks)} decks and {card_total} cards from remote")
        return PullResult(decks=len(remote_decks), cards=card_total)

    async def _overwrite_from_remote(self, db: AsyncSession, ctx: SessionContext, remote_deck: RemoteDeck) -> Deck:
        now = clock.utc_now()
        deck = await self.deck_repo.get_by_remote_id(db, remote_deck.id)
        if deck is None:
            deck = await self.deck_repo.create(
                db,
                user_id=ctx.user_id,
                name=remote_deck.name,
                description=remote_deck.description,
                shuffle_cards=remote_deck.shuffle_cards,
                created_at=now,
                updated_at=now
            )
        else:
            deck.name = remote_deck.name
            deck.description = remote_deck.description
            deck.shuffle_cards = remote_deck.shuffle_cards
            deck.updated_at = now
        sync_status.mark_synced(deck, remote_deck.id, clock.as_naive_utc(remote_deck.updated_at))
        await sync_service.purge(db, SyncEntityType.DECK, [deck.id])
        return deck

    async def _replace_cards(self, db: AsyncSession, deck: Deck, cards: List[RemoteCard]) -> int:
        stale_ids = await self.card_repo.ids_for_decks(db, [deck.id])
        await sync_service.purge(db, SyncEntityType.CARD, stale_ids)
        await db.execute(delete(Card).where(Card.deck_id == deck.id))

        now = clock.utc_now()
        for remote_card in cards:
            db.add(Card(
                deck_id=deck.id,
                remote_id=remote_card.id,
                tags=[],
                created_at=now,
                updated_at=now,
                **remote_card.model_dump(mode="json", exclude={"id"})
            ))
        await db.flush()
        return len(cards)
