"""Tests for the SSE event stream."""

import asyncio
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from sugarwatch.routers.events import (
    HEARTBEAT_FRAME,
    LIMIT_RETRY_MS,
    format_sse_event,
    generate_event_stream,
)
from sugarwatch.services.dexcom_sync import ingest_reading
from sugarwatch.services.event_bus import DEXCOM_DATA_UPDATED, EventBus
from tests.conftest import auth_headers


def make_request(disconnected: bool = False) -> MagicMock:
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=disconnected)
    return request


def parse_frame(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):].strip())


class TestFormatSseEvent:
    def test_single_data_frame(self):
        frame = format_sse_event({"type": "connected"})
        assert frame == 'data: {"type": "connected"}\n\n'


class TestGenerateEventStream:
    """Stream lifecycle driven directly through the generator."""

    async def test_connected_frame_then_events(self):
        bus = EventBus()
        stream = generate_event_stream(bus, make_request(), heartbeat_interval=5)

        first = await stream.__anext__()
        assert parse_frame(first) == {"type": "connected"}
        assert bus.subscriber_count(DEXCOM_DATA_UPDATED) == 1

        bus.publish(DEXCOM_DATA_UPDATED, {"n": 1})
        bus.publish(DEXCOM_DATA_UPDATED, {"n": 2})

        assert parse_frame(await stream.__anext__()) == {"n": 1}
        assert parse_frame(await stream.__anext__()) == {"n": 2}

        await stream.aclose()
        assert bus.subscriber_count() == 0

    async def test_heartbeat_when_idle(self):
        bus = EventBus()
        stream = generate_event_stream(bus, make_request(), heartbeat_interval=0.01)

        await stream.__anext__()
        frame = await asyncio.wait_for(stream.__anext__(), timeout=1)

        assert frame == HEARTBEAT_FRAME
        await stream.aclose()

    async def test_disconnect_ends_stream_and_unsubscribes(self):
        bus = EventBus()
        request = make_request()
        stream = generate_event_stream(bus, request, heartbeat_interval=0.01)

        await stream.__anext__()
        request.is_disconnected.return_value = True

        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(stream.__anext__(), timeout=1)

        assert bus.subscriber_count() == 0
        assert bus.publish(DEXCOM_DATA_UPDATED, {"late": True}) == 0

    async def test_cancellation_unsubscribes(self):
        bus = EventBus()
        stream = generate_event_stream(bus, make_request(), heartbeat_interval=5)
        await stream.__anext__()

        task = asyncio.create_task(stream.__anext__())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert bus.subscriber_count() == 0

    async def test_eviction_ends_stream(self):
        bus = EventBus()
        stream = generate_event_stream(
            bus, make_request(), heartbeat_interval=5, max_queue_size=1
        )
        await stream.__anext__()

        bus.publish(DEXCOM_DATA_UPDATED, {"n": 1})
        bus.publish(DEXCOM_DATA_UPDATED, {"n": 2})

        assert parse_frame(await stream.__anext__()) == {"n": 1}
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert bus.subscriber_count() == 0

    async def test_subscriber_limit_sends_error_frame(self):
        """A stream opened past the limit explains why it ends at once."""
        bus = EventBus(max_subscribers=1)
        bus.subscribe(DEXCOM_DATA_UPDATED)

        stream = generate_event_stream(bus, make_request(), heartbeat_interval=5)

        frame = await stream.__anext__()
        assert frame.startswith(f"retry: {LIMIT_RETRY_MS}\n")
        event = parse_frame(frame[frame.index("data: "):])
        assert event == {"type": "error", "message": "Too many open event streams"}
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert bus.subscriber_count() == 1

    async def test_two_streams_receive_identical_payload(self):
        bus = EventBus()
        first = generate_event_stream(bus, make_request(), heartbeat_interval=5)
        second = generate_event_stream(bus, make_request(), heartbeat_interval=5)
        await first.__anext__()
        await second.__anext__()

        bus.publish(DEXCOM_DATA_UPDATED, {"type": "glucose-update", "value": 61})

        frame_a = await first.__anext__()
        frame_b = await second.__anext__()
        assert frame_a == frame_b

        await first.aclose()
        await second.aclose()

    async def test_low_reading_reaches_open_stream(self, db_session, athlete):
        """A stored LOW reading is announced to a connected client."""
        bus = EventBus()
        stream = generate_event_stream(bus, make_request(), heartbeat_interval=5)
        await stream.__anext__()

        reading = await ingest_reading(
            db_session,
            bus,
            athlete.id,
            value=55,
            recorded_at=datetime(2026, 3, 1, 8, 0, tzinfo=UTC),
        )

        event = parse_frame(await stream.__anext__())
        assert event["type"] == "glucose-update"
        assert event["status"] == "LOW"
        assert event["athleteId"] == str(athlete.id)
        assert event["reading"]["id"] == str(reading.id)
        assert event["reading"]["value"] == 55
        assert event["reading"]["status"]["type"] == "LOW"

        await stream.aclose()


class TestStreamEndpoint:
    """Access control on the HTTP endpoint."""

    async def test_requires_authentication(self, client):
        response = await client.get("/api/dexcom/events")
        assert response.status_code == 401

    async def test_athlete_forbidden(self, client, athlete):
        response = await client.get("/api/dexcom/events", headers=auth_headers(athlete))
        assert response.status_code == 403

    async def test_subscriber_limit_returns_503(self, client, event_bus, parent):
        event_bus.max_subscribers = 1
        event_bus.subscribe(DEXCOM_DATA_UPDATED)

        response = await client.get("/api/dexcom/events", headers=auth_headers(parent))

        assert response.status_code == 503
