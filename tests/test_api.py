"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from review_assistant.agents.dispatcher import SessionDispatcher
from review_assistant.agents.reviewer import ReviewAgent
from review_assistant.dependencies import get_conversation_store, get_dispatcher
from review_assistant.llm.model import ServiceUnavailable
from review_assistant.main import app

from tests.conftest import SAMPLE_CODE


@pytest.fixture
def client(settings, store, llm_client):
    """Test client wired to a temporary store and a mocked completion client."""
    dispatcher = SessionDispatcher(
        lambda session_id: ReviewAgent(session_id, settings, store, llm_client)
    )
    app.dependency_overrides[get_conversation_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


def review_payload(**overrides):
    payload = {
        "code": SAMPLE_CODE,
        "language": "Python",
        "userId": "u1",
        "sessionId": "s1",
    }
    payload.update(overrides)
    return payload


class TestReviewEndpoint:
    """Tests for POST /api/review."""

    def test_review(self, client):
        response = client.post("/api/review", json=review_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["parseTier"] == "strict"
        assert data["reviewId"]
        assert len(data["suggestions"]) == 2
        assert data["suggestions"][0]["type"] == "bug"
        assert data["suggestions"][0]["line"] == 5
        assert 0.0 <= data["confidence"] <= 1.0

    def test_review_degraded_is_still_200(self, client, llm_client):
        llm_client.complete.side_effect = ServiceUnavailable("down")

        response = client.post("/api/review", json=review_payload())

        assert response.status_code == 200
        assert response.json()["confidence"] == 0.0
        assert len(response.json()["suggestions"]) == 1

    @pytest.mark.parametrize("missing", ["code", "language", "userId", "sessionId"])
    def test_missing_field(self, client, missing):
        payload = review_payload()
        del payload[missing]

        response = client.post("/api/review", json=payload)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing or invalid fields"

    def test_blank_code(self, client, llm_client):
        response = client.post("/api/review", json=review_payload(code="   \n "))

        assert response.status_code == 400
        llm_client.complete.assert_not_called()

    def test_code_is_not_stripped(self, client, llm_client):
        code = "\n\nx = 1\n"
        client.post("/api/review", json=review_payload(code=code))

        user_message = llm_client.complete.call_args.args[0][1]["content"]
        assert f"```python\n{code}\n```" in user_message


class TestChatEndpoint:
    """Tests for POST /api/chat."""

    def test_chat(self, client, llm_client):
        llm_client.complete.return_value = "Because None has no methods."

        response = client.post(
            "/api/chat",
            json={"message": "Why is line 5 a bug?", "userId": "u1", "sessionId": "s1"},
        )

        assert response.status_code == 200
        assert response.json() == {"response": "Because None has no methods.", "persisted": True}

    def test_chat_with_review_context(self, client, llm_client):
        llm_client.complete.return_value = "Sure."

        response = client.post(
            "/api/chat",
            json={
                "message": "Explain",
                "userId": "u1",
                "sessionId": "s1",
                "reviewContext": {"summary": "Two issues.", "suggestions": None},
            },
        )

        assert response.status_code == 200
        assert "Summary: Two issues." in llm_client.complete.call_args.args[0][0]["content"]

    def test_chat_blank_message(self, client):
        response = client.post(
            "/api/chat", json={"message": "  ", "userId": "u1", "sessionId": "s1"}
        )
        assert response.status_code == 400


class TestSessionEndpoints:
    """Tests for session lookup and history."""

    def test_create_and_fetch(self, client):
        created = client.post("/api/session").json()
        session_id = created["sessionId"]
        assert created["userId"]

        by_path = client.get(f"/api/session/{session_id}")
        by_query = client.get("/api/session", params={"sessionId": session_id})

        assert by_path.status_code == 200
        assert by_path.json()["sessionId"] == session_id
        assert by_query.json()["userId"] == created["userId"]

    def test_missing_session_id(self, client):
        response = client.get("/api/session")

        assert response.status_code == 400
        assert response.json() == {"error": "Session ID required"}

    def test_unknown_session(self, client):
        response = client.get("/api/session/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}

    def test_history_after_review(self, client):
        client.post("/api/review", json=review_payload())

        response = client.get("/api/session/s1/history")

        assert response.status_code == 200
        messages = response.json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[0]["code_context"] == SAMPLE_CODE


class TestHealthEndpoints:
    """Tests for health checks."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/api/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] in ("ready", "degraded")

    def test_live(self, client):
        assert client.get("/api/health/live").json() == {"status": "alive"}
