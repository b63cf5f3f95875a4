"""Athlete lookups and the aggregated view parents see on their dashboard."""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.models.glucose import GlucoseReading
from sugarwatch.models.user import User
from sugarwatch.services.messaging import count_unread


async def get_athlete(db: AsyncSession) -> User | None:
    """Return the monitored athlete, or None if no athlete account exists."""
    result = await db.execute(
        select(User).where(User.is_athlete.is_(True)).order_by(User.created_at).limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_glucose_reading(
    db: AsyncSession,
    athlete_id: uuid.UUID,
) -> GlucoseReading | None:
    """Most recent reading by recorded_at, with its status loaded."""
    result = await db.execute(
        select(GlucoseReading)
        .where(GlucoseReading.user_id == athlete_id)
        .order_by(GlucoseReading.recorded_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_glucose_readings(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    limit: int = 20,
) -> list[GlucoseReading]:
    """Recent readings, newest first, each with its status loaded."""
    result = await db.execute(
        select(GlucoseReading)
        .where(GlucoseReading.user_id == athlete_id)
        .order_by(GlucoseReading.recorded_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_formatted_athlete_data(
    db: AsyncSession,
    history_limit: int = 10,
) -> dict[str, Any] | None:
    """Compose the athlete dashboard payload.

    Returns:
        None when there is no athlete; otherwise a dict with the athlete's
        identity, unread message count, latest status and reading, and the
        recent history excluding the latest reading.
    """
    athlete = await get_athlete(db)
    if athlete is None:
        return None

    latest = await get_latest_glucose_reading(db, athlete.id)
    recent = await get_glucose_readings(db, athlete.id, limit=history_limit)
    history = [r for r in recent if latest is None or r.id != latest.id]

    return {
        "id": athlete.id,
        "name": athlete.name,
        "unread_messages_count": await count_unread(db, athlete.id),
        "status": latest.status if latest is not None else None,
        "glucose": latest,
        "glucose_history": history,
    }


async def get_subject_athlete(db: AsyncSession, user: User) -> User | None:
    """The athlete whose data `user` is asking about.

    The athlete sees their own data; a parent sees the monitored athlete.
    """
    if user.is_athlete:
        return user
    return await get_athlete(db)
