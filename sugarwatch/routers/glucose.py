"""Glucose history, current status, acknowledgment and threshold routes."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.core.auth import CurrentUser, ParentUser
from sugarwatch.database import get_db
from sugarwatch.dependencies import EventBusDep
from sugarwatch.logging_config import get_logger
from sugarwatch.models.glucose import ReadingSource
from sugarwatch.schemas.glucose import (
    AcknowledgeRequest,
    CurrentStatusResponse,
    GlucoseHistoryResponse,
    GlucoseReadingResponse,
    ManualReadingRequest,
    StatusResponse,
    SuccessResponse,
    ThresholdsResponse,
    ThresholdsUpdateRequest,
)
from sugarwatch.services.athlete import (
    get_athlete,
    get_glucose_readings,
    get_latest_glucose_reading,
    get_subject_athlete,
)
from sugarwatch.services.dexcom_sync import ingest_reading
from sugarwatch.services.status import (
    StatusNotFoundError,
    acknowledge_status,
    update_thresholds,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["glucose"])


@router.get("/status", response_model=CurrentStatusResponse)
async def get_current_status(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> CurrentStatusResponse:
    """Latest status and reading for the athlete, or nulls if none recorded."""
    athlete = await get_subject_athlete(db, current_user)
    if athlete is None:
        return CurrentStatusResponse()

    reading = await get_latest_glucose_reading(db, athlete.id)
    if reading is None:
        return CurrentStatusResponse()

    return CurrentStatusResponse(
        status=StatusResponse.model_validate(reading.status) if reading.status else None,
        glucose_reading=GlucoseReadingResponse.model_validate(reading),
    )


@router.post(
    "/status/acknowledge",
    response_model=SuccessResponse,
    responses={404: {"description": "No status for that reading"}},
)
async def acknowledge(
    body: AcknowledgeRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    """Acknowledge the alert raised by a reading's status."""
    athlete = await get_subject_athlete(db, current_user)
    if athlete is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Status not found")

    try:
        await acknowledge_status(db, body.reading_id, athlete.id)
    except StatusNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Status not found")

    return SuccessResponse()


@router.get("/glucose/history", response_model=GlucoseHistoryResponse)
async def get_history(
    current_user: CurrentUser,
    limit: int = Query(default=20, ge=1, le=500, description="Maximum readings to return"),
    db: AsyncSession = Depends(get_db),
) -> GlucoseHistoryResponse:
    """Recent readings, newest first, each with its status."""
    athlete = await get_subject_athlete(db, current_user)
    if athlete is None:
        return GlucoseHistoryResponse(readings=[], count=0)

    readings = await get_glucose_readings(db, athlete.id, limit=limit)
    return GlucoseHistoryResponse(
        readings=[GlucoseReadingResponse.model_validate(r) for r in readings],
        count=len(readings),
    )


@router.post(
    "/glucose",
    response_model=GlucoseReadingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "No athlete account"},
        409: {"description": "A reading already exists at that time"},
    },
)
async def create_manual_reading(
    body: ManualReadingRequest,
    current_user: ParentUser,
    bus: EventBusDep,
    db: AsyncSession = Depends(get_db),
) -> GlucoseReadingResponse:
    """Record a glucose value measured outside the CGM, e.g. a finger stick."""
    athlete = await get_athlete(db)
    if athlete is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Athlete not found")

    reading = await ingest_reading(
        db,
        bus,
        athlete.id,
        value=body.value,
        recorded_at=body.recorded_at or datetime.now(UTC),
        source=ReadingSource.MANUAL,
        unit=body.unit,
        recorded_by_id=current_user.id,
    )
    if reading is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A reading already exists at that time",
        )

    logger.info(
        "Manual glucose reading recorded",
        athlete_id=str(athlete.id),
        recorded_by=str(current_user.id),
    )
    return GlucoseReadingResponse.model_validate(reading)


@router.put(
    "/preferences/thresholds",
    response_model=ThresholdsResponse,
    responses={400: {"description": "Low threshold not below high threshold"}},
)
async def set_thresholds(
    body: ThresholdsUpdateRequest,
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> ThresholdsResponse:
    """Set the thresholds used to classify readings stored from now on."""
    athlete = await get_athlete(db)
    if athlete is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Athlete not found")

    try:
        preferences = await update_thresholds(
            db, athlete.id, body.low_threshold, body.high_threshold
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ThresholdsResponse(
        low_threshold=preferences.low_threshold,
        high_threshold=preferences.high_threshold,
    )
