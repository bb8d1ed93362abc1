"""
Tests for local user profiles

Tests cover:
- Optional password protection and the minimum length rule
- Login, logout and the active-user record
- Deleting a profile cascades to its decks and queue entries
"""

from datetime import datetime, timedelta

import pytest

from kioku.core import clock
from kioku.schemas.deck_schema import DeckCreate, CardCreate
from kioku.schemas.quiz_schema import QuizCreate
from kioku.schemas.user_schema import UserCreate, UserUpdate
from kioku.services.deck_service import DeckService
from kioku.services.quiz_service import QuizService
from kioku.services.sync_service import SyncService
from kioku.services.user_service import UserService, SessionContext
from kioku.utils.exceptions import AuthenticationError, NotFoundError, ValidationError


@pytest.fixture
def users(database):
    return UserService(database)


class TestProfiles:
    async def test_profile_without_password(self, users):
        user = await users.create_user(UserCreate(name="Alice"))

        assert user.has_password is False
        assert user.avatar == "avatar-smile"

    async def test_short_password_is_rejected(self, users):
        with pytest.raises(ValidationError):
            await users.create_user(UserCreate(name="Alice", password="123"))

    async def test_password_is_stored_hashed(self, users):
        user = await users.create_user(UserCreate(name="Alice", password="hunter22"))

        assert user.has_password is True
        assert user.password_hash != "hunter22"

    async def test_remove_password(self, users):
        user = await users.create_user(UserCreate(name="Alice", password="hunter22"))

        assert (await users.remove_password(user.id)).has_password is False
        assert (await users.login(user.id)).id == user.id

    async def test_update_keeps_unset_fields(self, users):
        user = await users.create_user(UserCreate(name="Alice", avatar="avatar-cat"))

        updated = await users.update_user(user.id, UserUpdate(name="Alicia"))

        assert updated.name == "Alicia"
        assert updated.avatar == "avatar-cat"

    async def test_list_orders_by_recent_login(self, users, monkeypatch):
        moments = iter(datetime(2026, 1, 1) + timedelta(minutes=m) for m in range(10))
        monkeypatch.setattr(clock, "utc_now", lambda: next(moments))
        never = await users.create_user(UserCreate(name="Never"))
        early = await users.create_user(UserCreate(name="Early"))
        late = await users.create_user(UserCreate(name="Late"))
        await users.login(early.id)
        await users.login(late.id)

        assert [u.id for u in await users.list_users()] == [late.id, early.id, never.id]


class TestLogin:
    async def test_login_sets_active_user(self, users):
        user = await users.create_user(UserCreate(name="Alice", password="hunter22"))

        logged_in = await users.login(user.id, "hunter22")

        assert logged_in.last_login_at is not None
        assert (await users.get_active_user()).id == user.id
        assert await users.get_session_context() == SessionContext(user_id=user.id)

    async def test_wrong_password(self, users):
        user = await users.create_user(UserCreate(name="Alice", password="hunter22"))

        with pytest.raises(AuthenticationError):
            await users.login(user.id, "wrong-one")
        with pytest.raises(AuthenticationError):
            await users.login(user.id)
        assert await users.get_active_user() is None

    async def test_unknown_user(self, users):
        with pytest.raises(NotFoundError):
            await users.login("no-such-user")

    async def test_logout(self, users):
        user = await users.create_user(UserCreate(name="Alice"))
        await users.login(user.id)

        await users.logout()

        assert await users.get_active_user() is None
        assert (await users.get_session_context()).is_authenticated is False


class TestDeleteUser:
    async def test_delete_logs_out_and_cascades(self, database, users):
        user = await users.create_user(UserCreate(name="Alice"))
        await users.login(user.id)
        ctx = SessionContext(user_id=user.id)
        decks = DeckService(database)
        deck = await decks.create_deck(ctx, DeckCreate(name="Spanish"))
        card = await decks.create_card(deck.id, CardCreate(front="hola", back="hello"))
        quiz = await QuizService(database).create_quiz(ctx, QuizCreate(name="Capitals"))

        await users.delete_user(user.id)

        assert await users.get_active_user() is None
        with pytest.raises(NotFoundError):
            await decks.get_deck(deck.id)
        with pytest.raises(NotFoundError):
            await decks.get_card(card.id)
        with pytest.raises(NotFoundError):
            await QuizService(database).get_quiz(quiz.id)
        assert await SyncService(database).pending_count() == 0

    async def test_delete_keeps_other_profiles_logged_in(self, users):
        alice = await users.create_user(UserCreate(name="Alice"))
        bob = await users.create_user(UserCreate(name="Bob"))
        await users.login(bob.id)

        await users.delete_user(alice.id)

        assert (await users.get_active_user()).id == bob.id
