"""Tests for the HTTP endpoints with per-test services."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from src.core.dependencies import (
    get_follow_up_service,
    get_help_request_service,
    get_knowledge_base_service,
)
from src.main import app

from tests.conftest import FakeSession

PHONE = "+15551234567"


@pytest.fixture
def client(help_service, kb_service, follow_ups):
    app.dependency_overrides[get_help_request_service] = lambda: help_service
    app.dependency_overrides[get_knowledge_base_service] = lambda: kb_service
    app.dependency_overrides[get_follow_up_service] = lambda: follow_ups
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, question="Do you have parking?"):
    response = client.post(
        "/api/help-requests", json={"customer_phone": PHONE, "question": question}
    )
    assert response.status_code == 200
    return response.json()["request_id"]


class TestHelpRequestEndpoints:
    def test_create_and_list(self, client):
        request_id = _create(client)

        data = client.get("/api/help-requests").json()
        assert data["count"] == 1
        assert data["requests"][0]["id"] == request_id
        assert "revision" not in data["requests"][0]

        pending = client.get("/api/help-requests/pending").json()
        assert [r["id"] for r in pending["requests"]] == [request_id]

    def test_create_requires_question(self, client):
        response = client.post("/api/help-requests", json={"customer_phone": PHONE, "question": " "})
        assert response.status_code == 400

    def test_filter_by_status(self, client):
        _create(client)
        assert client.get("/api/help-requests", params={"status": "resolved"}).json()["count"] == 0
        assert client.get("/api/help-requests", params={"status": "pending"}).json()["count"] == 1

    def test_pending_read_times_out_expired_requests(self, client, clock):
        request_id = _create(client)
        clock.advance(hours=2)

        assert client.get("/api/help-requests/pending").json()["count"] == 0
        detail = client.get(f"/api/help-requests/{request_id}").json()
        assert detail["request"]["status"] == "timeout"

    def test_unknown_request_detail(self, client):
        assert client.get("/api/help-requests/req_missing").status_code == 404

    def test_respond(self, client):
        request_id = _create(client)

        response = client.post(
            f"/api/help-requests/{request_id}/respond",
            json={"answer": "Yes, free parking in the lot"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["request"]["status"] == "resolved"
        assert data["request"]["supervisor_answer"] == "Yes, free parking in the lot"
        assert data["knowledge_entry"]["source"] == "learned"
        assert data["delivered"] is False

    def test_respond_delivers_to_live_caller(self, client, directory):
        session = FakeSession()
        directory.register(PHONE, session, "room-1")
        request_id = _create(client)

        data = client.post(f"/api/help-requests/{request_id}/respond", json={"answer": "Yes"}).json()

        assert data["delivered"] is True
        assert data["request"]["delivery_status"] == "delivered"
        assert len(session.said) == 1

    def test_respond_unknown_id(self, client):
        response = client.post("/api/help-requests/req_missing/respond", json={"answer": "Yes"})
        assert response.status_code == 404

    def test_respond_without_answer(self, client):
        request_id = _create(client)
        assert client.post(f"/api/help-requests/{request_id}/respond", json={}).status_code == 400
        assert client.post(
            f"/api/help-requests/{request_id}/respond", json={"answer": ""}
        ).status_code == 400

    def test_respond_twice_conflicts(self, client):
        request_id = _create(client)
        client.post(f"/api/help-requests/{request_id}/respond", json={"answer": "Yes"})

        response = client.post(f"/api/help-requests/{request_id}/respond", json={"answer": "No"})
        assert response.status_code == 409

    def test_stats_and_maintenance(self, client, clock):
        _create(client)
        clock.advance(hours=2)

        timeouts = client.post("/api/help-requests/maintenance/check-timeouts").json()
        assert timeouts["timed_out_count"] == 1

        stats = client.get("/api/help-requests/stats").json()["stats"]
        assert stats["timeout"] == 1
        assert client.get("/api/help-requests/maintenance/unlearned").json()["count"] == 0


class TestKnowledgeBaseEndpoints:
    def test_list_seeded_entries(self, client):
        data = client.get("/api/knowledge-base").json()
        assert data["count"] == 5
        assert data["entries"][0]["question"] == "What are your business hours?"

    def test_search(self, client):
        hit = client.post("/api/knowledge-base/search", params={"query": "What are your business hours?"}).json()
        assert hit["found"] is True
        assert hit["answer"]["category"] == "hours"

        miss = client.post("/api/knowledge-base/search", params={"query": "Do you have parking?"}).json()
        assert miss["found"] is False
        assert miss["answer"] is None

    def test_manual_entry(self, client):
        response = client.post(
            "/api/knowledge-base",
            json={"question": "Do you allow pets?", "answer": "Yes, well-behaved pets are welcome."},
        )
        assert response.status_code == 200
        assert response.json()["entry"]["source"] == "initial"
        assert client.get("/api/knowledge-base").json()["count"] == 6

    def test_filter_learned(self, client):
        request_id = _create(client)
        client.post(f"/api/help-requests/{request_id}/respond", json={"answer": "Yes"})

        learned = client.get("/api/knowledge-base", params={"source": "learned"}).json()
        assert [e["question"] for e in learned["entries"]] == ["Do you have parking?"]


class TestMiscEndpoints:
    def test_follow_ups(self, client, follow_ups):
        asyncio.run(follow_ups.enqueue(PHONE, "Hi!"))
        data = client.get("/api/follow-ups", params={"customer_phone": PHONE}).json()
        assert data["count"] == 1
        assert data["follow_ups"][0]["message"] == "Hi!"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_token_requires_credentials(self, client, monkeypatch):
        from src.core.config import settings

        monkeypatch.setattr(settings, "livekit_api_key", None)
        response = client.post(
            "/api/livekit/token", json={"roomName": "room-1", "participantName": "caller"}
        )
        assert response.status_code == 500
