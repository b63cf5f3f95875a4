"""Dexcom connection management and external CGM push routes."""

import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.config import settings
from sugarwatch.core.auth import ParentUser
from sugarwatch.core.encryption import encrypt_credential
from sugarwatch.core.security import create_oauth_state, verify_oauth_state
from sugarwatch.database import get_db
from sugarwatch.dependencies import DexcomPollerDep, EventBusDep
from sugarwatch.logging_config import get_logger
from sugarwatch.models.dexcom_token import DexcomConnectionStatus, DexcomToken
from sugarwatch.models.glucose import ReadingSource
from sugarwatch.schemas.dexcom import (
    AuthorizeUrlResponse,
    DexcomStatusResponse,
    WebhookReadingRequest,
)
from sugarwatch.services.athlete import get_athlete
from sugarwatch.services.dexcom_client import DexcomSyncError
from sugarwatch.services.dexcom_sync import ingest_reading

logger = get_logger(__name__)

router = APIRouter(prefix="/api/dexcom", tags=["dexcom"])
webhook_router = APIRouter(prefix="/api/webhook", tags=["webhook"])


async def _get_token(db: AsyncSession, user_id) -> DexcomToken | None:
    result = await db.execute(select(DexcomToken).where(DexcomToken.user_id == user_id))
    return result.scalar_one_or_none()


@router.get("/authorize", response_model=AuthorizeUrlResponse)
async def authorize(
    current_user: ParentUser,
    poller: DexcomPollerDep,
) -> AuthorizeUrlResponse:
    """URL of the Dexcom consent page that starts the OAuth flow."""
    state = create_oauth_state(current_user.id)
    return AuthorizeUrlResponse(url=poller.client.build_authorize_url(state))


@router.get(
    "/callback",
    response_model=DexcomStatusResponse,
    responses={400: {"description": "Missing parameters or provider error"}},
)
async def callback(
    current_user: ParentUser,
    poller: DexcomPollerDep,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> DexcomStatusResponse:
    """Complete the OAuth flow and store the caller's Dexcom tokens."""
    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing code or state",
        )
    if not verify_oauth_state(state, current_user.id):
        logger.warning("Invalid Dexcom OAuth state", user_id=str(current_user.id))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid state",
        )

    try:
        token_set = await poller.client.exchange_code(code)
    except DexcomSyncError as e:
        logger.warning(
            "Dexcom code exchange failed",
            user_id=str(current_user.id),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to connect Dexcom account",
        )

    athlete = await get_athlete(db)
    token = await _get_token(db, current_user.id)
    if token is None:
        token = DexcomToken(user_id=current_user.id)
        db.add(token)

    token.athlete_id = athlete.id if athlete else None
    token.encrypted_access_token = encrypt_credential(token_set.access_token)
    token.encrypted_refresh_token = encrypt_credential(token_set.refresh_token)
    token.expires_at = token_set.expires_at
    token.status = DexcomConnectionStatus.CONNECTED
    token.last_error = None
    await db.commit()

    logger.info(
        "Dexcom account connected",
        user_id=str(current_user.id),
        athlete_id=str(token.athlete_id) if token.athlete_id else None,
    )
    return _status_response(token)


def _status_response(token: DexcomToken | None) -> DexcomStatusResponse:
    if token is None:
        return DexcomStatusResponse(connected=False)
    return DexcomStatusResponse(
        connected=token.status == DexcomConnectionStatus.CONNECTED,
        status=token.status,
        athlete_id=token.athlete_id,
        expires_at=token.expires_at,
        last_sync_at=token.last_sync_at,
        last_error=token.last_error,
    )


@router.get("/status", response_model=DexcomStatusResponse)
async def connection_status(
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> DexcomStatusResponse:
    """State of the caller's Dexcom connection."""
    return _status_response(await _get_token(db, current_user.id))


@router.delete("/connection", response_model=DexcomStatusResponse)
async def disconnect(
    current_user: ParentUser,
    db: AsyncSession = Depends(get_db),
) -> DexcomStatusResponse:
    """Stop polling with the caller's Dexcom tokens."""
    token = await _get_token(db, current_user.id)
    if token is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not connected")

    token.status = DexcomConnectionStatus.DISCONNECTED
    await db.commit()
    logger.info("Dexcom account disconnected", user_id=str(current_user.id))
    return _status_response(token)


@router.post("/refresh")
async def refresh(
    current_user: ParentUser,
    poller: DexcomPollerDep,
) -> dict:
    """Run one ingestion cycle now, unless one is already running."""
    logger.info("Manual Dexcom sync requested", user_id=str(current_user.id))
    cycle = await poller.run_cycle()
    if cycle is None:
        return {"skipped": True}
    return cycle.to_dict()


@webhook_router.post(
    "/update-cgm",
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"description": "Duplicate reading, nothing stored"},
        401: {"description": "Missing or wrong webhook secret"},
        404: {"description": "Webhook disabled or no athlete"},
    },
)
async def update_cgm(
    body: WebhookReadingRequest,
    bus: EventBusDep,
    x_webhook_secret: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    """Ingest a reading pushed by an external CGM bridge."""
    if not settings.webhook_secret:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if x_webhook_secret is None or not secrets.compare_digest(
        x_webhook_secret, settings.webhook_secret
    ):
        logger.warning("Webhook call with invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )

    athlete = await get_athlete(db)
    if athlete is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Athlete not found")

    reading = await ingest_reading(
        db,
        bus,
        athlete.id,
        value=body.value,
        recorded_at=body.timestamp,
        source=ReadingSource.WEBHOOK,
        unit=body.unit,
        trend=body.trend,
    )
    if reading is None:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"success": False, "noNewData": True},
        )

    return {"success": True, "id": str(reading.id)}
