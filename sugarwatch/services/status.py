"""Glucose status derivation and acknowledgment.

A status is derived once, when its reading is stored, and never
recomputed. Acknowledging an alert only stamps `acknowledged_at`.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.config import settings
from sugarwatch.logging_config import get_logger
from sugarwatch.models.glucose import GlucoseReading, Status, StatusType
from sugarwatch.models.preferences import UserPreferences

logger = get_logger(__name__)


class StatusNotFoundError(Exception):
    """The reading does not exist, has no status, or belongs to someone else."""

    pass


@dataclass(frozen=True)
class GlucoseThresholds:
    """Inclusive OK band in mg/dL: values in [low, high] classify as OK."""

    low: float
    high: float

    def __post_init__(self) -> None:
        if self.low >= self.high:
            raise ValueError("Low threshold must be less than high threshold")


def default_thresholds() -> GlucoseThresholds:
    return GlucoseThresholds(
        low=settings.default_low_threshold,
        high=settings.default_high_threshold,
    )


def classify_glucose(value: float, thresholds: GlucoseThresholds) -> StatusType:
    """Classify a glucose value.

    Args:
        value: Glucose value in mg/dL
        thresholds: The athlete's low/high thresholds

    Returns:
        LOW below the low threshold, HIGH above the high threshold, else OK
    """
    if value < thresholds.low:
        return StatusType.LOW
    if value > thresholds.high:
        return StatusType.HIGH
    return StatusType.OK


async def get_thresholds(db: AsyncSession, athlete_id: uuid.UUID) -> GlucoseThresholds:
    """Load the athlete's thresholds, falling back to configured defaults."""
    result = await db.execute(
        select(UserPreferences).where(UserPreferences.user_id == athlete_id)
    )
    preferences = result.scalar_one_or_none()
    if preferences is None:
        return default_thresholds()
    return GlucoseThresholds(
        low=preferences.low_threshold,
        high=preferences.high_threshold,
    )


async def update_thresholds(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    low: int,
    high: int,
) -> UserPreferences:
    """Create or update the athlete's thresholds.

    Only affects readings stored afterwards; existing statuses keep the
    classification they were created with.

    Raises:
        ValueError: If low is not below high
    """
    GlucoseThresholds(low=low, high=high)

    result = await db.execute(
        select(UserPreferences).where(UserPreferences.user_id == athlete_id)
    )
    preferences = result.scalar_one_or_none()
    if preferences is None:
        preferences = UserPreferences(
            user_id=athlete_id,
            low_threshold=low,
            high_threshold=high,
        )
        db.add(preferences)
    else:
        preferences.low_threshold = low
        preferences.high_threshold = high

    await db.commit()

    logger.info(
        "Glucose thresholds updated",
        athlete_id=str(athlete_id),
        low_threshold=low,
        high_threshold=high,
    )
    return preferences


async def acknowledge_status(
    db: AsyncSession,
    reading_id: uuid.UUID,
    athlete_id: uuid.UUID,
) -> Status:
    """Mark the status of one of the athlete's readings as acknowledged.

    The first acknowledgment timestamp is kept on repeated calls.

    Raises:
        StatusNotFoundError: If no such reading/status exists for the athlete
    """
    result = await db.execute(
        select(Status)
        .join(GlucoseReading, GlucoseReading.id == Status.reading_id)
        .where(
            Status.reading_id == reading_id,
            GlucoseReading.user_id == athlete_id,
        )
    )
    status = result.scalar_one_or_none()
    if status is None:
        raise StatusNotFoundError(f"No status for reading {reading_id}")

    if status.acknowledged_at is None:
        status.acknowledged_at = datetime.now(UTC)
        await db.commit()
        logger.info(
            "Status acknowledged",
            reading_id=str(reading_id),
            status_type=status.type.value,
        )

    return status
