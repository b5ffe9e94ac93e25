"""
Integration tests for the FastAPI gateway endpoints.

Uses the FastAPI TestClient against a temporary database, with the LLM
router mocked.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from companion.agent.llm_router import UpstreamModelError
from companion.agent.orchestrator import TurnOrchestrator
from companion.gateway.app import create_app
from companion.storage.store import Store, StoreReadError


@pytest.fixture
def router():
    r = MagicMock()
    r.chat = AsyncMock(
        return_value={
            "content": "Hi! How are you today?",
            "tool_calls": None,
            "model": "test/mock",
            "input_tokens": 1,
            "output_tokens": 1,
            "cost_usd": 0.0,
        }
    )
    return r


@pytest.fixture
def app(config, router):
    application = create_app(config=config)
    application.state.orchestrator = TurnOrchestrator(
        config=config,
        auth_manager=application.state.auth_manager,
        router=router,
    )
    return application


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


# ── Health Endpoints ──────────────────────────────────


class TestHealthEndpoints:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data

    def test_detailed_health_requires_token(self, client):
        assert client.get("/health/detailed").status_code == 401

    def test_detailed_health(self, client, auth_headers):
        response = client.get("/health/detailed", headers=auth_headers)
        assert response.status_code == 200
        components = response.json()["components"]
        assert "save_memory" in components["tools"]
        assert "database" not in components


# ── CORS ──────────────────────────────────────────────


class TestCORS:
    def test_preflight_has_headers_and_no_body(self, client):
        response = client.options(
            "/api/v1/chat",
            headers={
                "Origin": "https://app.example",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert "authorization" in response.headers["access-control-allow-headers"]

    def test_regular_response_has_cors_header(self, client):
        response = client.get("/health")
        assert response.headers["access-control-allow-origin"] == "*"


# ── Chat ──────────────────────────────────────────────


class TestChatEndpoint:
    def test_success(self, client, auth_headers, conversation):
        response = client.post(
            "/api/v1/chat",
            json={"message": "Hello", "conversationId": conversation["id"]},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json() == {"response": "Hi! How are you today?"}

    def test_accepts_last_message_at(self, client, auth_headers, conversation):
        response = client.post(
            "/api/v1/chat",
            json={
                "message": "Back again",
                "conversationId": conversation["id"],
                "lastMessageAt": "2020-01-01T00:00:00Z",
            },
            headers=auth_headers,
        )
        assert response.status_code == 200

    def test_missing_auth_is_500_with_error(self, client, router, conversation):
        response = client.post(
            "/api/v1/chat",
            json={"message": "Hello", "conversationId": conversation["id"]},
        )
        assert response.status_code == 500
        assert "error" in response.json()
        router.chat.assert_not_awaited()

    def test_model_failure_is_500_with_error(self, client, router, auth_headers, conversation):
        router.chat.side_effect = UpstreamModelError("AI service error")
        response = client.post(
            "/api/v1/chat",
            json={"message": "Hello", "conversationId": conversation["id"]},
            headers=auth_headers,
        )
        assert response.status_code == 500
        assert response.json() == {"error": "AI service error"}

    def test_store_failure_during_auth_is_json_error(
        self, client, router, auth_headers, conversation, monkeypatch
    ):
        def unreadable(self, token_hash):
            raise StoreReadError("database disk image is malformed")

        monkeypatch.setattr(Store, "get_auth_token", unreadable)
        response = client.post(
            "/api/v1/chat",
            json={"message": "Hello", "conversationId": conversation["id"]},
            headers=auth_headers,
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Unauthorized"}
        assert response.headers["access-control-allow-origin"] == "*"
        router.chat.assert_not_awaited()

    def test_malformed_body_rejected(self, client, auth_headers):
        response = client.post("/api/v1/chat", json={"message": "Hello"}, headers=auth_headers)
        assert response.status_code == 422


# ── Conversations, memories, tasks ────────────────────


class TestDataEndpoints:
    def test_requires_token(self, client):
        response = client.get("/api/v1/conversations")
        assert response.status_code == 401

    def test_create_and_list_conversations(self, client, auth_headers):
        created = client.post("/api/v1/conversations", json={"title": "Plans"}, headers=auth_headers)
        assert created.status_code == 201
        listed = client.get("/api/v1/conversations", headers=auth_headers).json()
        assert [c["title"] for c in listed["conversations"]] == ["Plans"]

    def test_messages_roundtrip(self, client, auth_headers, conversation, store):
        url = f"/api/v1/conversations/{conversation['id']}/messages"
        assert client.post(url, json={"role": "user", "content": "hey"}, headers=auth_headers).status_code == 201
        messages = client.get(url, headers=auth_headers).json()["messages"]
        assert [m["content"] for m in messages] == ["hey"]
        assert store.get_conversation(conversation["id"], "user1")["last_message_at"] is not None

    def test_foreign_conversation_is_404(self, client, auth_headers, store):
        other = store.create_conversation("user2")
        url = f"/api/v1/conversations/{other['id']}/messages"
        assert client.get(url, headers=auth_headers).status_code == 404
        assert client.post(url, json={"role": "user", "content": "x"}, headers=auth_headers).status_code == 404

    def test_memories_and_tasks_scoped(self, client, auth_headers, store, conversation):
        store.save_memory("user1", "goals", "Learn Spanish", 7)
        store.save_memory("user2", "goals", "Learn French", 7)
        store.create_task("user1", conversation["id"], "Book flights", 6, 0.9)

        memories = client.get("/api/v1/memories", headers=auth_headers).json()["memories"]
        tasks = client.get("/api/v1/tasks?status=pending", headers=auth_headers).json()["tasks"]
        assert [m["memory_text"] for m in memories] == ["Learn Spanish"]
        assert [t["task_name"] for t in tasks] == ["Book flights"]
