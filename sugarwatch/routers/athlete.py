"""Athlete dashboard and household account management."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.core.auth import AdminUser, ParentUser
from sugarwatch.database import get_db
from sugarwatch.logging_config import get_logger
from sugarwatch.models.user import UserRole
from sugarwatch.routers.auth import create_user
from sugarwatch.schemas.athlete import AthleteDataResponse
from sugarwatch.schemas.auth import CreateAccountRequest, UserResponse
from sugarwatch.schemas.glucose import GlucoseReadingResponse, StatusResponse
from sugarwatch.services.athlete import get_athlete, get_formatted_athlete_data

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["athlete"])


@router.get("/athlete", response_model=AthleteDataResponse | None)
async def get_athlete_view(
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> AthleteDataResponse | None:
    """Current status, latest reading, recent history and unread count.

    Returns null when no athlete account exists yet.
    """
    data = await get_formatted_athlete_data(db)
    if data is None:
        return None
    return AthleteDataResponse(
        id=data["id"],
        name=data["name"],
        unread_messages_count=data["unread_messages_count"],
        status=(
            StatusResponse.model_validate(data["status"]) if data["status"] else None
        ),
        glucose=(
            GlucoseReadingResponse.model_validate(data["glucose"])
            if data["glucose"]
            else None
        ),
        glucose_history=[
            GlucoseReadingResponse.model_validate(r) for r in data["glucose_history"]
        ],
    )


@router.post(
    "/athlete",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_athlete(
    body: CreateAccountRequest,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Create the athlete account. Only one athlete may exist."""
    if await get_athlete(db) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Athlete already exists",
        )

    athlete = await create_user(db, body, UserRole.ATHLETE, is_athlete=True)
    logger.info(
        "Athlete account created",
        athlete_id=str(athlete.id),
        created_by=str(current_user.id),
    )
    return UserResponse.model_validate(athlete)


@router.post(
    "/parents",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_parent(
    body: CreateAccountRequest,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Add another parent to the household."""
    parent = await create_user(db, body, UserRole.PARENT)
    logger.info(
        "Parent account created",
        parent_id=str(parent.id),
        created_by=str(current_user.id),
    )
    return UserResponse.model_validate(parent)
