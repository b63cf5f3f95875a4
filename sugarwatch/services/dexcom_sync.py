"""Dexcom CGM data ingestion.

Fetches EGV records for the athlete through the Dexcom API, stores each
new reading together with its derived status, and publishes every stored
reading on the event bus after it is committed.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.config import settings
from sugarwatch.core.encryption import decrypt_credential, encrypt_credential
from sugarwatch.database import get_db_session
from sugarwatch.logging_config import get_logger
from sugarwatch.models.dexcom_token import DexcomConnectionStatus, DexcomToken
from sugarwatch.models.glucose import GlucoseReading, ReadingSource, Status
from sugarwatch.schemas.glucose import serialize_reading
from sugarwatch.services.dexcom_client import (
    DexcomAuthError,
    DexcomClient,
    DexcomConnectionError,
    DexcomSyncError,
    DexcomTokenExpiredError,
)
from sugarwatch.services.event_bus import DEXCOM_DATA_UPDATED, EventBus
from sugarwatch.services.status import classify_glucose, get_thresholds

logger = get_logger(__name__)

AUTH_ERROR_MESSAGE = "Dexcom connection expired. Please reconnect."

__all__ = [
    "DexcomAuthError",
    "DexcomConnectionError",
    "DexcomPoller",
    "DexcomSyncError",
    "SyncResult",
    "ingest_reading",
    "sync_dexcom_for_athlete",
]


@dataclass
class SyncResult:
    """Outcome of one sync for one athlete."""

    athlete_id: uuid.UUID
    readings_fetched: int = 0
    readings_stored: int = 0
    readings_failed: int = 0
    last_reading_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "athleteId": str(self.athlete_id),
            "readingsFetched": self.readings_fetched,
            "readingsStored": self.readings_stored,
            "readingsFailed": self.readings_failed,
            "lastReadingAt": (
                self.last_reading_at.isoformat() if self.last_reading_at else None
            ),
        }


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


async def ingest_reading(
    db: AsyncSession,
    bus: EventBus,
    athlete_id: uuid.UUID,
    value: float,
    recorded_at: datetime,
    source: ReadingSource = ReadingSource.DEXCOM,
    unit: str = "mg/dL",
    trend: str | None = None,
    trend_rate: float | None = None,
    recorded_by_id: uuid.UUID | None = None,
    provider_record_id: str | None = None,
) -> GlucoseReading | None:
    """Store one reading and its status, then announce it.

    The reading and its status are committed together; the
    `glucose-update` event is published only after the commit succeeds.

    Returns:
        The stored reading, or None if the athlete already has a reading
        at `recorded_at`
    """
    recorded_at = _as_utc(recorded_at)

    existing = await db.execute(
        select(GlucoseReading.id).where(
            GlucoseReading.user_id == athlete_id,
            GlucoseReading.recorded_at == recorded_at,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return None

    thresholds = await get_thresholds(db, athlete_id)

    reading = GlucoseReading(
        user_id=athlete_id,
        recorded_by_id=recorded_by_id,
        value=value,
        unit=unit,
        trend=trend,
        trend_rate=trend_rate,
        recorded_at=recorded_at,
        source=source,
        provider_record_id=provider_record_id,
    )
    reading.status = Status(
        user_id=athlete_id,
        type=classify_glucose(value, thresholds),
    )
    db.add(reading)

    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same instant
        await db.rollback()
        return None

    bus.publish(
        DEXCOM_DATA_UPDATED,
        {
            "type": "glucose-update",
            "athleteId": str(athlete_id),
            "reading": serialize_reading(reading),
            "status": reading.status.type.value,
        },
    )

    logger.debug(
        "Glucose reading stored",
        athlete_id=str(athlete_id),
        value=value,
        status=reading.status.type.value,
        source=source.value,
    )
    return reading


async def _get_active_token(db: AsyncSession, athlete_id: uuid.UUID) -> DexcomToken:
    result = await db.execute(
        select(DexcomToken)
        .where(
            DexcomToken.athlete_id == athlete_id,
            DexcomToken.status != DexcomConnectionStatus.DISCONNECTED,
        )
        .order_by(DexcomToken.updated_at.desc())
        .limit(1)
    )
    token = result.scalar_one_or_none()
    if token is None:
        logger.warning("No Dexcom connection for athlete", athlete_id=str(athlete_id))
        raise DexcomSyncError("Dexcom integration not configured")
    return token


async def _mark_token_error(
    db: AsyncSession,
    token: DexcomToken,
    message: str,
) -> None:
    token.status = DexcomConnectionStatus.ERROR
    token.last_error = message
    await db.commit()


def _publish_auth_error(bus: EventBus, athlete_id: uuid.UUID) -> None:
    bus.publish(
        DEXCOM_DATA_UPDATED,
        {
            "type": "dexcom-auth-error",
            "athleteId": str(athlete_id),
            "message": AUTH_ERROR_MESSAGE,
        },
    )


async def _refresh_token(
    db: AsyncSession,
    bus: EventBus,
    client: DexcomClient,
    token: DexcomToken,
) -> str:
    """Refresh the stored token pair and return the new access token."""
    try:
        refresh_token = decrypt_credential(token.encrypted_refresh_token)
    except ValueError as e:
        await _mark_token_error(db, token, "Token decryption failed")
        raise DexcomSyncError("Failed to decrypt Dexcom tokens") from e

    try:
        token_set = await client.refresh(refresh_token)
    except DexcomAuthError as e:
        logger.warning(
            "Dexcom token refresh rejected",
            athlete_id=str(token.athlete_id),
            error=str(e),
        )
        await _mark_token_error(db, token, "Token refresh failed - reconnect required")
        _publish_auth_error(bus, token.athlete_id)
        raise
    except DexcomSyncError as e:
        await _mark_token_error(db, token, f"Token refresh failed: {e}")
        raise

    token.encrypted_access_token = encrypt_credential(token_set.access_token)
    token.encrypted_refresh_token = encrypt_credential(token_set.refresh_token)
    token.expires_at = token_set.expires_at
    token.status = DexcomConnectionStatus.CONNECTED
    token.last_error = None
    await db.commit()

    logger.info("Dexcom token refreshed", athlete_id=str(token.athlete_id))
    return token_set.access_token


async def _latest_dexcom_reading_time(
    db: AsyncSession,
    athlete_id: uuid.UUID,
) -> datetime | None:
    result = await db.execute(
        select(func.max(GlucoseReading.recorded_at)).where(
            GlucoseReading.user_id == athlete_id,
            GlucoseReading.source == ReadingSource.DEXCOM,
        )
    )
    latest = result.scalar_one_or_none()
    return _as_utc(latest) if latest is not None else None


async def _get_access_token(
    db: AsyncSession,
    bus: EventBus,
    client: DexcomClient,
    token: DexcomToken,
) -> str:
    skew = timedelta(seconds=settings.dexcom_token_refresh_skew_seconds)
    if _as_utc(token.expires_at) <= datetime.now(UTC) + skew:
        return await _refresh_token(db, bus, client, token)

    try:
        return decrypt_credential(token.encrypted_access_token)
    except ValueError as e:
        await _mark_token_error(db, token, "Token decryption failed")
        raise DexcomSyncError("Failed to decrypt Dexcom tokens") from e


async def sync_dexcom_for_athlete(
    db: AsyncSession,
    bus: EventBus,
    client: DexcomClient,
    athlete_id: uuid.UUID,
) -> SyncResult:
    """Fetch and store new Dexcom readings for the athlete.

    Args:
        db: Database session
        bus: Bus that stored readings are published on
        client: Dexcom API client
        athlete_id: Athlete whose readings are fetched

    Returns:
        SyncResult with fetched/stored counts

    Raises:
        DexcomAuthError: If the token cannot be refreshed or is rejected
        DexcomConnectionError: If the Dexcom API cannot be reached
        DexcomSyncError: For other sync errors
    """
    token = await _get_active_token(db, athlete_id)
    access_token = await _get_access_token(db, bus, client, token)

    now = datetime.now(UTC)
    start = now - timedelta(hours=settings.dexcom_lookback_hours)
    # Only Dexcom readings advance the cursor; manual and webhook entries
    # must not hide CGM values Dexcom has yet to deliver
    last_dexcom_at = await _latest_dexcom_reading_time(db, athlete_id)
    if last_dexcom_at is not None:
        start = max(start, last_dexcom_at)

    try:
        egvs = await client.get_egvs(access_token, start, now)
    except DexcomTokenExpiredError:
        # Access token revoked before its stated expiry; refresh once
        access_token = await _refresh_token(db, bus, client, token)
        try:
            egvs = await client.get_egvs(access_token, start, now)
        except DexcomTokenExpiredError:
            await _mark_token_error(db, token, AUTH_ERROR_MESSAGE)
            _publish_auth_error(bus, athlete_id)
            raise
    except DexcomSyncError as e:
        logger.warning(
            "Failed to fetch Dexcom readings",
            athlete_id=str(athlete_id),
            error=str(e),
        )
        await _mark_token_error(db, token, f"Fetch failed: {e}")
        raise

    result = SyncResult(athlete_id=athlete_id, readings_fetched=len(egvs))

    for egv in sorted(egvs, key=lambda e: e.system_time):
        try:
            reading = await ingest_reading(
                db,
                bus,
                athlete_id,
                value=egv.value,
                recorded_at=egv.system_time,
                source=ReadingSource.DEXCOM,
                unit=egv.unit,
                trend=egv.trend,
                trend_rate=egv.trend_rate,
                provider_record_id=egv.record_id,
            )
        except Exception as e:
            await db.rollback()
            logger.error(
                "Failed to store Dexcom reading",
                athlete_id=str(athlete_id),
                recorded_at=egv.system_time.isoformat(),
                error=str(e),
            )
            result.readings_failed += 1
            continue

        if reading is not None:
            result.readings_stored += 1
            result.last_reading_at = reading.recorded_at

    token.status = DexcomConnectionStatus.CONNECTED
    token.last_sync_at = now
    token.last_error = None
    await db.commit()

    logger.info(
        "Dexcom sync completed",
        athlete_id=str(athlete_id),
        readings_fetched=result.readings_fetched,
        readings_stored=result.readings_stored,
        readings_failed=result.readings_failed,
    )
    return result


@dataclass
class CycleResult:
    """Outcome of one polling cycle across all connected athletes."""

    results: list[SyncResult] = field(default_factory=list)
    error_count: int = 0

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "errorCount": self.error_count,
        }


class DexcomPoller:
    """Runs ingestion cycles, never more than one at a time.

    Shared by the scheduled job and the manual refresh endpoint.
    """

    def __init__(
        self,
        bus: EventBus,
        client: DexcomClient | None = None,
    ):
        self.bus = bus
        self.client = client or DexcomClient()
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self) -> CycleResult | None:
        """Sync every athlete with a live Dexcom connection.

        Returns:
            The cycle result, or None if a cycle was already in flight
        """
        if self._lock.locked():
            logger.info("Dexcom sync already in progress, skipping cycle")
            return None

        async with self._lock:
            return await self._run()

    async def _run(self) -> CycleResult:
        cycle = CycleResult()

        async with get_db_session() as db:
            result = await db.execute(
                select(DexcomToken.athlete_id)
                .where(
                    DexcomToken.athlete_id.is_not(None),
                    DexcomToken.status.in_(
                        [
                            DexcomConnectionStatus.CONNECTED,
                            DexcomConnectionStatus.ERROR,  # Retry errors
                        ]
                    ),
                )
                .distinct()
            )
            athlete_ids = [row[0] for row in result.all()]

        if not athlete_ids:
            logger.debug("No athletes with Dexcom connection to sync")
            return cycle

        for athlete_id in athlete_ids:
            try:
                # New session per athlete to isolate errors
                async with get_db_session() as db:
                    cycle.results.append(
                        await sync_dexcom_for_athlete(db, self.bus, self.client, athlete_id)
                    )
            except DexcomSyncError as e:
                logger.warning(
                    "Scheduled Dexcom sync failed",
                    athlete_id=str(athlete_id),
                    error=str(e),
                )
                cycle.error_count += 1
            except Exception as e:
                logger.error(
                    "Unexpected error in scheduled Dexcom sync",
                    athlete_id=str(athlete_id),
                    error=str(e),
                )
                cycle.error_count += 1

        return cycle
