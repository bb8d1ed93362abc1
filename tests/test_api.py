"""
Tests for the HTTP command surface

Tests cover:
- Health check and request tracing headers
- Error envelope for not-found, validation and conflict errors
- The offline deck flow end to end through the sync endpoints
- Quiz attempt submission over HTTP
"""

import httpx
import pytest

from kioku.main import create_app


@pytest.fixture
async def client(database, remote):
    app = create_app(database=database, remote=remote)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://kioku.test") as http:
        yield http


@pytest.fixture
async def offline_client(database):
    app = create_app(database=database)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://kioku.test") as http:
        yield http


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_api_responses_carry_tracing_headers(self, client):
        response = await client.get("/api/v1/decks/")

        assert response.status_code == 200
        assert "X-Correlation-ID" in response.headers
        assert "X-Response-Time" in response.headers


class TestErrorEnvelope:
    async def test_not_found(self, client):
        response = await client.get("/api/v1/decks/no-such-deck")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["path"] == "/api/v1/decks/no-such-deck"
        assert response.headers["X-Correlation-ID"] == error["correlation_id"]

    async def test_request_validation(self, client):
        response = await client.post("/api/v1/decks/", json={"name": ""})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["validation_errors"][0]["field"] == "name"

    async def test_conflict(self, client):
        deck = (await client.post("/api/v1/decks/", json={"name": "Spanish"})).json()
        await client.post(f"/api/v1/decks/{deck['id']}/tags", json={"name": "verbs"})

        response = await client.post(f"/api/v1/decks/{deck['id']}/tags", json={"name": "verbs"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    async def test_wrong_password(self, client):
        user = (await client.post("/api/v1/users/", json={"name": "Alice", "password": "hunter22"})).json()

        response = await client.post("/api/v1/users/login", json={"user_id": user["id"], "password": "nope"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"

    async def test_malformed_bundle_is_unprocessable(self, client):
        bundle = '{"name": "B", "cards": [{"front": "a", "back": "b", "frontLanguage": "' + "x" * 60 + '"}]}'

        response = await client.post("/api/v1/decks/import", json={"content": bundle})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert (await client.get("/api/v1/decks/")).json() == []

    async def test_sync_without_remote(self, offline_client):
        response = await offline_client.post("/api/v1/sync/drain")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "EXTERNAL_SERVICE_ERROR"


class TestOfflineDeckFlow:
    async def test_create_offline_then_drain(self, client):
        deck = (await client.post("/api/v1/decks/", json={"name": "Spanish"})).json()
        assert deck["sync_status"] == "local_only"
        card = await client.post(f"/api/v1/decks/{deck['id']}/cards", json={"front": "hola", "back": "hello"})
        assert card.status_code == 201
        assert (await client.get("/api/v1/sync/pending")).json() == {"pending": 2}

        drained = await client.post("/api/v1/sync/drain")

        assert drained.json() == {"synced": 2, "pending": 0}
        fetched = (await client.get(f"/api/v1/decks/{deck['id']}")).json()
        assert fetched["sync_status"] == "synced"
        assert fetched["card_count"] == 1

    async def test_connection_status(self, client, remote_server):
        online = (await client.get("/api/v1/sync/status")).json()
        remote_server.offline = True
        offline = (await client.get("/api/v1/sync/status")).json()

        assert online["online"] is True
        assert offline["online"] is False

    async def test_remote_login(self, client):
        response = await client.post("/api/v1/sync/login", json={"email": "a@b.c", "password": "secret"})

        assert response.status_code == 200
        assert response.json()["authenticated"] is True

    async def test_delete_deck(self, client):
        deck = (await client.post("/api/v1/decks/", json={"name": "Spanish"})).json()

        assert (await client.delete(f"/api/v1/decks/{deck['id']}")).status_code == 204
        assert (await client.get(f"/api/v1/decks/{deck['id']}")).status_code == 404
        assert (await client.get("/api/v1/sync/pending")).json() == {"pending": 0}


class TestQuizFlow:
    async def test_take_a_quiz(self, client):
        quiz = (await client.post("/api/v1/quizzes/", json={"name": "Capitals"})).json()
        question = (await client.post(f"/api/v1/quizzes/{quiz['id']}/questions", json={
            "question_type": "fill_in_blank",
            "content": "Capital of France?",
            "correct_answer": "Paris",
        })).json()
        attempt = (await client.post(f"/api/v1/quizzes/{quiz['id']}/attempts")).json()

        submitted = await client.post(f"/api/v1/quizzes/attempts/{attempt['id']}/submit", json={
            "answers": [{"question_id": question["id"], "answer": "Paris"}]
        })

        assert submitted.status_code == 200
        assert submitted.json()["score_percentage"] == 100
        stats = (await client.get(f"/api/v1/quizzes/{quiz['id']}/stats")).json()
        assert stats["total_attempts"] == 1
        assert stats["recent_scores"] == [100]

    async def test_resubmission_is_unprocessable(self, client):
        quiz = (await client.post("/api/v1/quizzes/", json={"name": "Empty"})).json()
        attempt = (await client.post(f"/api/v1/quizzes/{quiz['id']}/attempts")).json()
        await client.post(f"/api/v1/quizzes/attempts/{attempt['id']}/submit", json={"answers": []})

        response = await client.post(f"/api/v1/quizzes/attempts/{attempt['id']}/submit", json={"answers": []})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
