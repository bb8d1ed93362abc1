import json
from typing import Any, Dict, List

import httpx
import pytest

from kioku.clients.remote_client import RemoteClient
from kioku.db.session import Database
from kioku.services.user_service import SessionContext


class FakeRemoteServer:
    """In-memory stand-in for the sync server, served through httpx.MockTransport"""

    def __init__(self):
        self.decks: Dict[int, Dict[str, Any]] = {}
        self.cards: Dict[int, List[Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.offline = False
        self.fail_paths: set = set()
        self._next_id = 100

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if self.offline:
            raise httpx.ConnectError("server unreachable", request=request)
        if path in self.fail_paths:
            return httpx.Response(500, json={"error": "boom"})

        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})

        if path == "/auth/login" and request.method == "POST":
            body = json.loads(request.content)
            if body.get("password") != "secret":
                return httpx.Response(401, json={"error": "bad credentials"})
            return httpx.Response(200, json={"token": "tok-1", "type": "Bearer", "userId": 7, "email": body["email"]})

        parts = [part for part in path.split("/") if part]
        if parts == ["decks"]:
            if request.method == "POST":
                body = json.loads(request.content)
                deck = {"id": self._new_id(), "updatedAt": "2026-01-01T10:00:00Z", **body}
                self.decks[deck["id"]] = deck
                self.cards.setdefault(deck["id"], [])
                return httpx.Response(201, json=deck)
            return httpx.Response(200, json=list(self.decks.values()))

        if len(parts) == 3 and parts[0] == "decks" and parts[2] == "cards":
            deck_id = int(parts[1])
            if deck_id not in self.decks:
                return httpx.Response(404, json={"error": "no such deck"})
            if request.method == "POST":
                card = {"id": self._new_id(), **json.loads(request.content)}
                self.cards[deck_id].append(card)
                return httpx.Response(201, json=card)
            return httpx.Response(200, json=self.cards[deck_id])

        return httpx.Response(404, json={"error": "not found"})

    def posts_to(self, path: str) -> int:
        return sum(1 for r in self.requests if r.method == "POST" and r.url.path == path)


@pytest.fixture
async def database():
    db = Database("sqlite+aiosqlite:///:memory:", echo=False)
    await db.init_db()
    yield db
    await db.dispose()


@pytest.fixture
def remote_server():
    return FakeRemoteServer()


@pytest.fixture
async def remote(remote_server):
    client = RemoteClient(base_url="http://sync.test", transport=httpx.MockTransport(remote_server.handler))
    yield client
    await client.aclose()


@pytest.fixture
def ctx():
    return SessionContext(user_id=None)
