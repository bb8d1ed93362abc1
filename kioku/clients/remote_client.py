from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError as PydanticValidationError

from kioku.core.config import settings
from kioku.core.logging import get_logger
from kioku.schemas.sync_schema import (
    DeckSyncPayload, CardSyncPayload, RemoteDeck, RemoteCard, RemoteAuthResponse
)
from kioku.utils.exceptions import NetworkError

logger = get_logger(__name__)

T = TypeVar("T")


class RemoteClient:
    """
    Async client for the remote sync server.

    Every failure (transport error, non-2xx status, undecodable body) is raised
    as NetworkError. Requests are not retried; unsynced work stays in the local
    sync queue instead.
    """

    def __init__(
            self,
            base_url: Optional[str] = None,
            token: Optional[str] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url or settings.REMOTE_API_URL
        if not self.base_url:
            raise ValueError("Remote API URL is required")

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(settings.REMOTE_REQUEST_TIMEOUT, connect=settings.REMOTE_CONNECT_TIMEOUT),
            transport=transport
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    @property
    def is_authenticated(self) -> bool:
        return "Authorization" in self.client.headers

    async def login(self, email: str, password: str) -> RemoteAuthResponse:
        """Authenticate against the server and keep the bearer token for later calls"""
        data = await self._make_request("POST", "/auth/login", json={"email": email, "password": password})
        auth = self._parse(RemoteAuthResponse, data)
        self.client.headers["Authorization"] = f"Bearer {auth.token}"
        logger.info(f"Authenticated with remote server as {auth.email or email}")
        return auth

    async def create_deck(self, payload: DeckSyncPayload) -> RemoteDeck:
        data = await self._make_request(
            "POST", "/decks", json=payload.model_dump(mode="json", by_alias=True)
        )
        return self._parse(RemoteDeck, data)

    async def create_card(self, remote_deck_id: int, payload: CardSyncPayload) -> RemoteCard:
        data = await self._make_request(
            "POST",
            f"/decks/{remote_deck_id}/cards",
            json=payload.model_dump(mode="json", by_alias=True, exclude={"deck_id"})
        )
        return self._parse(RemoteCard, data)

    async def list_decks(self) -> List[RemoteDeck]:
        data = await self._make_request("GET", "/decks")
        return self._parse(List[RemoteDeck], data)

    async def list_cards(self, remote_deck_id: int) -> List[RemoteCard]:
        data = await self._make_request("GET", f"/decks/{remote_deck_id}/cards")
        return self._parse(List[RemoteCard], data)

    async def check_connection(self) -> bool:
        """Probe the server's health endpoint with the short connect timeout"""
        try:
            response = await self.client.get("/health", timeout=settings.REMOTE_CONNECT_TIMEOUT)
            return response.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Remote health check failed: {e}")
            return False

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Issue a single request and return the decoded JSON body

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL
            **kwargs: Additional request parameters

        Returns:
            Response JSON data
        """
        try:
            response = await self.client.request(method, endpoint, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"Remote {method} {endpoint} returned {status}")
            raise NetworkError(f"Remote server returned {status} for {method} {endpoint}", status_code=status)
        except httpx.HTTPError as e:
            logger.warning(f"Remote {method} {endpoint} failed: {e}")
            raise NetworkError(f"Remote request failed: {e}")

        try:
            return response.json()
        except ValueError:
            raise NetworkError(f"Remote server sent an undecodable body for {method} {endpoint}")

    @staticmethod
    def _parse(model: Type[T], data: Any) -> T:
        try:
            if isinstance(model, type) and issubclass(model, BaseModel):
                return model.model_validate(data)
            return TypeAdapter(model).validate_python(data)
        except PydanticValidationError as e:
            raise NetworkError(f"Malformed response from remote server: {e.error_count()} validation errors")
