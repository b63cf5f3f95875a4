"""Tests for messaging between parents and the athlete."""

import uuid

import pytest

from sugarwatch.services.event_bus import DEXCOM_DATA_UPDATED
from sugarwatch.services.messaging import (
    STROBE_ALERT_CONTENT,
    MessageNotFoundError,
    count_unread,
    mark_read,
    send_message,
)
from tests.conftest import auth_headers


class TestMarkRead:
    """Receiver-only, idempotent read marking."""

    async def test_receiver_marks_read(self, db_session, parent, athlete):
        message = await send_message(db_session, parent.id, athlete.id, "Check in")

        result = await mark_read(db_session, message.id, athlete.id)

        assert result.read is True
        assert await count_unread(db_session, athlete.id) == 0

    async def test_idempotent(self, db_session, parent, athlete):
        message = await send_message(db_session, parent.id, athlete.id, "Check in")

        await mark_read(db_session, message.id, athlete.id)
        again = await mark_read(db_session, message.id, athlete.id)

        assert again.read is True

    async def test_sender_cannot_mark(self, db_session, parent, athlete):
        message = await send_message(db_session, parent.id, athlete.id, "Check in")

        with pytest.raises(MessageNotFoundError):
            await mark_read(db_session, message.id, parent.id)

    async def test_unknown_message(self, db_session, athlete):
        with pytest.raises(MessageNotFoundError):
            await mark_read(db_session, uuid.uuid4(), athlete.id)


class TestMessageRoutes:
    """/api/messages"""

    async def test_parent_message_defaults_to_athlete(
        self, client, event_bus, parent, athlete
    ):
        events = []
        event_bus.subscribe(DEXCOM_DATA_UPDATED, handler=events.append)

        response = await client.post(
            "/api/messages",
            json={"content": "How are you feeling?"},
            headers=auth_headers(parent),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["receiverId"] == str(athlete.id)
        assert data["sender"]["name"] == "Pat Parent"
        assert events[0]["type"] == "new-message"
        assert events[0]["message"]["content"] == "How are you feeling?"

    async def test_athlete_lists_received(self, client, parent, athlete):
        await client.post(
            "/api/messages", json={"content": "first"}, headers=auth_headers(parent)
        )
        await client.post(
            "/api/messages", json={"content": "second"}, headers=auth_headers(parent)
        )

        response = await client.get("/api/messages", headers=auth_headers(athlete))

        data = response.json()
        assert data["unreadCount"] == 2
        assert {m["content"] for m in data["messages"]} == {"first", "second"}

    async def test_athlete_replies_to_parent(self, client, parent, athlete):
        response = await client.post(
            "/api/messages",
            json={"content": "All good", "receiverId": str(parent.id)},
            headers=auth_headers(athlete),
        )

        assert response.status_code == 201
        inbox = await client.get("/api/messages", headers=auth_headers(parent))
        assert inbox.json()["messages"][0]["content"] == "All good"

    async def test_strobe(self, client, parent, athlete):
        response = await client.post("/api/messages/strobe", headers=auth_headers(parent))

        assert response.status_code == 201
        data = response.json()
        assert data["isUrgent"] is True
        assert data["content"] == STROBE_ALERT_CONTENT

    async def test_strobe_requires_parent(self, client, athlete):
        response = await client.post("/api/messages/strobe", headers=auth_headers(athlete))
        assert response.status_code == 403

    async def test_mark_read_route(self, client, db_session, parent, athlete):
        message = await send_message(db_session, parent.id, athlete.id, "Read me")

        first = await client.post(
            f"/api/messages/{message.id}/read", headers=auth_headers(athlete)
        )
        second = await client.post(
            f"/api/messages/{message.id}/read", headers=auth_headers(athlete)
        )

        assert first.status_code == 200
        assert first.json() == {"success": True}
        assert second.status_code == 200

    async def test_mark_read_by_non_receiver(self, client, db_session, parent, athlete):
        message = await send_message(db_session, parent.id, athlete.id, "Not yours")

        response = await client.post(
            f"/api/messages/{message.id}/read", headers=auth_headers(parent)
        )
        assert response.status_code == 404

    async def test_mark_read_unauthenticated(self, client, db_session, parent, athlete):
        message = await send_message(db_session, parent.id, athlete.id, "Hi")

        response = await client.post(f"/api/messages/{message.id}/read")
        assert response.status_code == 401
