"""Tests for message persistence, chat sessions and the streaming send endpoint."""

import json

import pytest

from nexus.core.exceptions import ProviderError
from nexus.db.models import ChatSession, Message, User
from nexus.providers.base import BaseProvider, ProviderType


def sse_frames(text):
    return [
        json.loads(block[len("data: "):])
        for block in text.split("\n\n")
        if block.startswith("data: ")
    ]


class FailingProvider(BaseProvider):
    """Yields one fragment, then fails like an upstream that dropped mid-reply."""

    provider_type = ProviderType.MOCK

    async def healthcheck(self) -> bool:
        return False

    async def stream_text(self, params, cancelled):
        yield "partial "
        raise ProviderError("API request failed: 500 upstream broke", upstream_status=500)


def _messages(app, session_id):
    db = app.state.session_factory()
    try:
        return db.query(Message).filter(Message.session_id == session_id).all()
    finally:
        db.close()


class TestSendMessage:
    def test_streams_reply_and_persists_both_messages(self, app, client, seeded, auth_headers):
        response = client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "hello world"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = sse_frames(response.text)
        assert [f["type"] for f in frames] == ["start", "chunk", "chunk", "chunk", "done"]
        chunks = [f for f in frames if f["type"] == "chunk"]
        assert [c["index"] for c in chunks] == [1, 2, 3]
        assert "".join(c["content"] for c in chunks) == "[mock] hello world"

        stored = _messages(app, seeded["session_id"])
        by_type = {m.type: m for m in stored}
        assert set(by_type) == {"USER", "AGENT"}
        assert by_type["USER"].content == "hello world"
        assert by_type["AGENT"].content == "[mock] hello world"
        assert by_type["AGENT"].sender_name == "Nexus"
        assert frames[-1]["messageId"] == by_type["AGENT"].id

    def test_updates_session_preview(self, app, client, seeded, auth_headers):
        long_text = "x" * 250
        client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": long_text},
            headers=auth_headers,
        )

        db = app.state.session_factory()
        try:
            session = db.query(ChatSession).filter(ChatSession.id == seeded["session_id"]).first()
            assert session.last_message == "x" * 100
        finally:
            db.close()

    def test_context_data_is_prepended_to_prompt(self, client, seeded, auth_headers):
        response = client.post(
            "/api/messages/send",
            json={
                "sessionId": seeded["session_id"],
                "content": "summarize",
                "contextData": {"project": "apollo"},
            },
            headers=auth_headers,
        )

        reply = "".join(f["content"] for f in sse_frames(response.text) if f["type"] == "chunk")
        assert "[[CURRENT PROJECT CONTEXT]]" in reply
        assert "apollo" in reply
        assert reply.endswith("summarize")

    def test_missing_content_is_rejected_before_streaming(self, client, seeded, auth_headers):
        response = client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": ""},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/json")
        assert response.json()["detail"] == "Session ID and content are required"

    def test_missing_session_id_is_rejected(self, client, auth_headers):
        response = client.post("/api/messages/send", json={"content": "hi"}, headers=auth_headers)

        assert response.status_code == 400

    def test_unknown_session_is_not_found(self, app, client, seeded, auth_headers):
        response = client.post(
            "/api/messages/send",
            json={"sessionId": "does-not-exist", "content": "hi"},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E4040"
        assert _messages(app, "does-not-exist") == []

    def test_other_users_session_is_not_found(self, app, client, seeded, auth_headers):
        db = app.state.session_factory()
        try:
            other = User(email="other@example.com", name="Other")
            db.add(other)
            db.commit()
            foreign = ChatSession(user_id=other.id, title="Private")
            db.add(foreign)
            db.commit()
            foreign_id = foreign.id
        finally:
            db.close()

        response = client.post(
            "/api/messages/send",
            json={"sessionId": foreign_id, "content": "hi"},
            headers=auth_headers,
        )

        assert response.status_code == 404

    def test_requires_authentication(self, client, seeded):
        response = client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "hi"},
        )

        assert response.status_code == 401

    def test_upstream_failure_ends_with_error_frame(self, app, client, seeded, auth_headers):
        app.state.provider_registry.register("failing", FailingProvider())

        response = client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "hi", "provider": "failing"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        frames = sse_frames(response.text)
        assert [f["type"] for f in frames] == ["start", "chunk", "error"]
        assert frames[-1]["message"] == "API request failed: 500 upstream broke"
        assert {m.type for m in _messages(app, seeded["session_id"])} == {"USER"}

    def test_unknown_provider_ends_with_error_frame(self, client, seeded, auth_headers):
        response = client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "hi", "provider": "nope"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        frames = sse_frames(response.text)
        assert [f["type"] for f in frames] == ["start", "error"]
        assert frames[-1]["message"].startswith("No API configuration found")


class TestMessageHistory:
    def test_lists_messages_in_camel_case(self, client, seeded, auth_headers):
        client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "hello"},
            headers=auth_headers,
        )

        response = client.get(f"/api/messages/session/{seeded['session_id']}", headers=auth_headers)

        assert response.status_code == 200
        items = response.json()
        assert len(items) == 2
        assert {item["type"] for item in items} == {"USER", "AGENT"}
        assert {"id", "sessionId", "content", "senderName", "timestamp"} <= set(items[0])

    def test_unknown_session_history_is_not_found(self, client, auth_headers):
        response = client.get("/api/messages/session/missing", headers=auth_headers)

        assert response.status_code == 404

    def test_feedback_is_recorded(self, app, client, seeded, auth_headers):
        response = client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "rate me"},
            headers=auth_headers,
        )
        message_id = sse_frames(response.text)[-1]["messageId"]

        response = client.patch(
            f"/api/messages/{message_id}/feedback",
            json={"feedback": "up"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        agent = next(m for m in _messages(app, seeded["session_id"]) if m.id == message_id)
        assert agent.feedback == "up"

    def test_feedback_on_unknown_message_is_not_found(self, client, auth_headers):
        response = client.patch(
            "/api/messages/missing/feedback",
            json={"feedback": "down"},
            headers=auth_headers,
        )

        assert response.status_code == 404


class TestSessions:
    def test_create_and_list(self, client, seeded, auth_headers):
        response = client.post("/api/sessions", json={"title": "Research"}, headers=auth_headers)

        assert response.status_code == 200
        created = response.json()
        assert created["title"] == "Research"
        assert "createdAt" in created

        listed = client.get("/api/sessions", headers=auth_headers).json()
        assert {s["id"] for s in listed} == {created["id"], seeded["session_id"]}

    def test_empty_title_is_rejected(self, client, auth_headers):
        response = client.post("/api/sessions", json={"title": ""}, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "E4220"



def _foreign_session(app):
    db = app.state.session_factory()
    try:
        other = User(email="owner@example.com", name="Owner")
        db.add(other)
        db.commit()
        foreign = ChatSession(user_id=other.id, title="Private")
        db.add(foreign)
        db.commit()
        return foreign.id
    finally:
        db.close()


class TestSessionDetail:
    def test_get_returns_session_with_ordered_messages(self, client, seeded, auth_headers):
        client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "first"},
            headers=auth_headers,
        )

        response = client.get(f"/api/sessions/{seeded['session_id']}", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == seeded["session_id"]
        assert body["title"] == "Test"
        assert body["lastMessage"] == "first"
        timestamps = [m["timestamp"] for m in body["messages"]]
        assert timestamps == sorted(timestamps)
        assert {m["type"] for m in body["messages"]} == {"USER", "AGENT"}

    def test_patch_updates_title_and_preview(self, client, seeded, auth_headers):
        response = client.patch(
            f"/api/sessions/{seeded['session_id']}",
            json={"title": "Renamed", "lastMessage": "see you"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        body = client.get(f"/api/sessions/{seeded['session_id']}", headers=auth_headers).json()
        assert body["title"] == "Renamed"
        assert body["lastMessage"] == "see you"

    def test_patch_without_fields_is_rejected(self, client, seeded, auth_headers):
        response = client.patch(f"/api/sessions/{seeded['session_id']}", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "No fields to update"

    def test_delete_removes_session_and_messages(self, app, client, seeded, auth_headers):
        client.post(
            "/api/messages/send",
            json={"sessionId": seeded["session_id"], "content": "bye"},
            headers=auth_headers,
        )

        response = client.delete(f"/api/sessions/{seeded['session_id']}", headers=auth_headers)

        assert response.status_code == 200
        assert _messages(app, seeded["session_id"]) == []
        assert client.get(f"/api/sessions/{seeded['session_id']}", headers=auth_headers).status_code == 404

    @pytest.mark.parametrize("method", ["get", "patch", "delete"])
    def test_other_users_session_is_not_found(self, app, client, seeded, auth_headers, method):
        foreign_id = _foreign_session(app)
        kwargs = {"json": {"title": "Mine now"}} if method == "patch" else {}

        response = getattr(client, method)(f"/api/sessions/{foreign_id}", headers=auth_headers, **kwargs)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E4040"
        db = app.state.session_factory()
        try:
            assert db.query(ChatSession).filter(ChatSession.id == foreign_id).first().title == "Private"
        finally:
            db.close()

    def test_unknown_session_is_not_found(self, client, auth_headers):
        assert client.get("/api/sessions/missing", headers=auth_headers).status_code == 404
        assert client.delete("/api/sessions/missing", headers=auth_headers).status_code == 404
