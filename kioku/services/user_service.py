from dataclasses import dataclass
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from kioku.core import clock
from kioku.core.config import settings
from kioku.core.logging import get_logger, get_security_logger
from kioku.core.security import get_password_hash, check_profile_password
from kioku.db.session import Database
from kioku.db.utils import BaseRepository
from kioku.models.user import User, AppState
from kioku.models.deck import Deck, Card
from kioku.models.enums import SyncEntityType
from kioku.schemas.user_schema import UserCreate, UserUpdate
from kioku.services import sync_service
from kioku.utils.exceptions import AuthenticationError, NotFoundError, ValidationError

logger = get_logger(__name__)
security_logger = get_security_logger(__name__)

ACTIVE_USER_KEY = "active_user_id"


@dataclass(frozen=True)
class SessionContext:
    """The logged-in local profile, passed explicitly to user-scoped operations"""
    user_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


class UserRepository(BaseRepository[User]):
    def __init__(self):
        super().__init__(User)

    async def list_by_recent_login(self, db: AsyncSession) -> List[User]:
        result = await db.execute(
            select(User).order_by(
                User.last_login_at.is_(None),
                User.last_login_at.desc(),
                User.created_at.desc()
            )
        )
        return list(result.scalars().all())


class AppStateRepository:
    async def get(self, db: AsyncSession, key: str) -> Optional[str]:
        state = await db.get(AppState, key)
        return state.value if state else None

    async def set(self, db: AsyncSession, key: str, value: str) -> None:
        state = await db.get(AppState, key)
        if state is None:
            db.add(AppState(key=key, value=value))
        else:
            state.value = value
        await db.flush()

    async def delete(self, db: AsyncSession, key: str) -> None:
        await db.execute(delete(AppState).where(AppState.key == key))


class UserService:
    """Local profiles and the active-user record"""

    def __init__(self, database: Database):
        self.database = database
        self.user_repo = UserRepository()
        self.state_repo = AppStateRepository()

    @staticmethod
    def _hash_password(password: str) -> str:
        if len(password) < settings.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters",
                details={"field": "password"}
            )
        return get_password_hash(password)

    async def create_user(self, user_data: UserCreate) -> User:
        password_hash = self._hash_password(user_data.password) if user_data.password else None

        async with self.database.session() as db:
            user = await self.user_repo.create(
                db,
                name=user_data.name,
                password_hash=password_hash,
                avatar=user_data.avatar or settings.DEFAULT_AVATAR,
                created_at=clock.utc_now()
            )
        logger.info(f"Created local user {user.id}", extra={"user_id": user.id})
        return user

    async def list_users(self) -> List[User]:
        """Profiles with the most recently logged-in first"""
        async with self.database.session() as db:
            return await self.user_repo.list_by_recent_login(db)

    async def get_user(self, user_id: str) -> User:
        async with self.database.session() as db:
            return await self.user_repo.get_by_id_or_404(db, user_id)

    async def update_user(self, user_id: str, user_data: UserUpdate) -> User:
        update_data = user_data.model_dump(exclude_unset=True, exclude={"password"})
        if update_data.get("avatar") is None:
            update_data.pop("avatar", None)
        if "name" in update_data and update_data["name"] is None:
            update_data.pop("name")
        if user_data.password:
            update_data["password_hash"] = self._hash_password(user_data.password)

        async with self.database.session() as db:
            user = await self.user_repo.get_by_id_or_404(db, user_id)
            if update_data:
                user = await self.user_repo.update(db, user, **update_data)

        if "password_hash" in update_data:
            security_logger.log_credential_change(user_id, "password_set")
        logger.info(f"Updated local user {user_id}", extra={"user_id": user_id})
        return user

    async def remove_password(self, user_id: str) -> User:
        async with self.database.session() as db:
            user = await self.user_repo.get_by_id_or_404(db, user_id)
            user = await self.user_repo.update(db, user, password_hash=None)
        security_logger.log_credential_change(user_id, "password_removed")
        return user

    async def delete_user(self, user_id: str) -> None:
        """Delete a profile with its decks and quizzes, logging it out if active"""
        async with self.database.session() as db:
            await self.user_repo.get_by_id_or_404(db, user_id)

            if await self.state_repo.get(db, ACTIVE_USER_KEY) == user_id:
                await self.state_repo.delete(db, ACTIVE_USER_KEY)

            deck_ids = list((await db.execute(select(Deck.id).where(Deck.user_id == user_id))).scalars().all())
            if deck_ids:
                card_ids = (await db.execute(select(Card.id).where(Card.deck_id.in_(deck_ids)))).scalars().all()
                await sync_service.purge(db, SyncEntityType.CARD, card_ids)
                await sync_service.purge(db, SyncEntityType.DECK, deck_ids)

            # Decks and quizzes follow through ON DELETE CASCADE
            await self.user_repo.delete(db, user_id)
        logger.info(f"Deleted local user {user_id}", extra={"user_id": user_id})

    async def login(self, user_id: str, password: Optional[str] = None) -> User:
        async with self.database.session() as db:
            user = await self.user_repo.get_by_id(db, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            if not check_profile_password(user.password_hash, password):
                security_logger.log_authentication_attempt(False, user_id=user_id)
                raise AuthenticationError("Invalid password")

            user = await self.user_repo.update(db, user, last_login_at=clock.utc_now())
            await self.state_repo.set(db, ACTIVE_USER_KEY, user.id)

        security_logger.log_authentication_attempt(True, user_id=user_id)
        return user

    async def logout(self) -> None:
        async with self.database.session() as db:
            await self.state_repo.delete(db, ACTIVE_USER_KEY)
        logger.info("Active user logged out")

    async def get_active_user(self) -> Optional[User]:
        async with self.database.session() as db:
            user_id = await self.state_repo.get(db, ACTIVE_USER_KEY)
            if user_id is None:
                return None
            return await self.user_repo.get_by_id(db, user_id)

    async def get_session_context(self) -> SessionContext:
        user = await self.get_active_user()
        return SessionContext(user_id=user.id if user else None)
