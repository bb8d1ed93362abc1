from typing import Optional
from fastapi import Depends, Request

from kioku.clients.remote_client import RemoteClient
from kioku.db.session import Database
from kioku.services.attempt_service import AttemptService
from kioku.services.bundle_service import BundleService
from kioku.services.deck_service import DeckService
from kioku.services.quiz_service import QuizService
from kioku.services.stats_service import StatsService
from kioku.services.sync_service import SyncService
from kioku.services.user_service import UserService, SessionContext
from kioku.core.logging import get_logger

logger = get_logger(__name__)


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_remote(request: Request) -> Optional[RemoteClient]:
    return getattr(request.app.state, "remote", None)


def get_sync_service(request: Request) -> SyncService:
    # One instance per app so concurrent drain requests share its drain lock
    return request.app.state.sync_service


def get_user_service(database: Database = Depends(get_database)) -> UserService:
    return UserService(database)


def get_deck_service(
        database: Database = Depends(get_database),
        remote: Optional[RemoteClient] = Depends(get_remote)
) -> DeckService:
    return DeckService(database, remote)


def get_quiz_service(database: Database = Depends(get_database)) -> QuizService:
    return QuizService(database)


def get_attempt_service(database: Database = Depends(get_database)) -> AttemptService:
    return AttemptService(database)


def get_stats_service(database: Database = Depends(get_database)) -> StatsService:
    return StatsService(database)


def get_bundle_service(
        deck_service: DeckService = Depends(get_deck_service),
        quiz_service: QuizService = Depends(get_quiz_service)
) -> BundleService:
    return BundleService(deck_service, quiz_service)


async def get_session_context(user_service: UserService = Depends(get_user_service)) -> SessionContext:
    """Explicit context for the currently logged-in local profile (user_id is None when logged out)"""
    return await user_service.get_session_context()
