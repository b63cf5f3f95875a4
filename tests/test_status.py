"""Tests for glucose status derivation and acknowledgment."""

import uuid
from datetime import UTC, datetime

import pytest

from sugarwatch.models.glucose import StatusType
from sugarwatch.services.dexcom_sync import ingest_reading
from sugarwatch.services.status import (
    GlucoseThresholds,
    StatusNotFoundError,
    acknowledge_status,
    classify_glucose,
    default_thresholds,
    get_thresholds,
    update_thresholds,
)


class TestClassifyGlucose:
    """Pure classification against thresholds."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (55, StatusType.LOW),
            (69.9, StatusType.LOW),
            (70, StatusType.OK),
            (120, StatusType.OK),
            (180, StatusType.OK),
            (180.1, StatusType.HIGH),
            (300, StatusType.HIGH),
        ],
    )
    def test_default_thresholds(self, value, expected):
        assert classify_glucose(value, GlucoseThresholds(70, 180)) == expected

    def test_same_value_same_classification(self):
        thresholds = GlucoseThresholds(80, 160)
        results = {classify_glucose(75, thresholds) for _ in range(10)}
        assert results == {StatusType.LOW}

    def test_invalid_thresholds_rejected(self):
        with pytest.raises(ValueError):
            GlucoseThresholds(low=180, high=70)
        with pytest.raises(ValueError):
            GlucoseThresholds(low=100, high=100)

    def test_default_thresholds_from_settings(self):
        thresholds = default_thresholds()
        assert thresholds.low == 70
        assert thresholds.high == 180


class TestThresholdPreferences:
    """Per-athlete threshold storage."""

    async def test_defaults_without_preferences(self, db_session, athlete):
        thresholds = await get_thresholds(db_session, athlete.id)
        assert thresholds == GlucoseThresholds(70, 180)

    async def test_update_then_read(self, db_session, athlete):
        await update_thresholds(db_session, athlete.id, 80, 200)
        await update_thresholds(db_session, athlete.id, 90, 210)

        thresholds = await get_thresholds(db_session, athlete.id)
        assert thresholds == GlucoseThresholds(90, 210)

    async def test_update_rejects_inverted(self, db_session, athlete):
        with pytest.raises(ValueError):
            await update_thresholds(db_session, athlete.id, 200, 100)

    async def test_existing_status_not_recomputed(self, db_session, event_bus, athlete):
        reading = await ingest_reading(
            db_session,
            event_bus,
            athlete.id,
            value=75,
            recorded_at=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
        )
        assert reading.status.type == StatusType.OK

        await update_thresholds(db_session, athlete.id, 80, 180)
        await db_session.refresh(reading.status)

        assert reading.status.type == StatusType.OK


class TestAcknowledgeStatus:
    """Alert acknowledgment."""

    async def test_acknowledge_sets_timestamp(self, db_session, event_bus, athlete):
        reading = await ingest_reading(
            db_session,
            event_bus,
            athlete.id,
            value=50,
            recorded_at=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
        )

        status = await acknowledge_status(db_session, reading.id, athlete.id)

        assert status.acknowledged_at is not None
        assert status.type == StatusType.LOW

    async def test_repeat_acknowledge_keeps_first_timestamp(
        self, db_session, event_bus, athlete
    ):
        reading = await ingest_reading(
            db_session,
            event_bus,
            athlete.id,
            value=250,
            recorded_at=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
        )

        first = await acknowledge_status(db_session, reading.id, athlete.id)
        first_at = first.acknowledged_at
        second = await acknowledge_status(db_session, reading.id, athlete.id)

        assert second.acknowledged_at == first_at
        assert second.type == StatusType.HIGH

    async def test_unknown_reading(self, db_session, athlete):
        with pytest.raises(StatusNotFoundError):
            await acknowledge_status(db_session, uuid.uuid4(), athlete.id)

    async def test_other_users_reading(self, db_session, event_bus, athlete, parent):
        reading = await ingest_reading(
            db_session,
            event_bus,
            athlete.id,
            value=100,
            recorded_at=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
        )

        with pytest.raises(StatusNotFoundError):
            await acknowledge_status(db_session, reading.id, parent.id)
