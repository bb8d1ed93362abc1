from fastapi import APIRouter, Depends

from kioku.core.config import settings
from kioku.core.logging import get_logger
from kioku.dependencies import get_sync_service
from kioku.schemas.sync_schema import SyncResult, PendingCount, ConnectionStatus, RemoteLoginRequest
from kioku.services.sync_service import SyncService

logger = get_logger(__name__)
router = APIRouter()


@router.post("/drain", response_model=SyncResult)
async def drain_queue(sync_service: SyncService = Depends(get_sync_service)):
    """Replay queued local creates against the remote server"""
    synced = await sync_service.drain_queue()
    return SyncResult(synced=synced, pending=await sync_service.pending_count())


@router.get("/pending", response_model=PendingCount)
async def get_pending_count(sync_service: SyncService = Depends(get_sync_service)):
    return PendingCount(pending=await sync_service.pending_count())


@router.get("/status", response_model=ConnectionStatus)
async def get_connection_status(sync_service: SyncService = Depends(get_sync_service)):
    online = await sync_service.check_connection()
    remote_url = sync_service.remote.base_url if sync_service.remote else settings.REMOTE_API_URL
    return ConnectionStatus(online=online, remote_url=remote_url)


@router.post("/login")
async def remote_login(login_data: RemoteLoginRequest, sync_service: SyncService = Depends(get_sync_service)):
    """Authenticate the sync client against the remote server"""
    remote = sync_service.require_remote()
    auth = await remote.login(login_data.email, login_data.password)
    return {"authenticated": True, "user_id": auth.user_id, "email": auth.email}
