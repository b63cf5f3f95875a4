"""Messaging routes between parents and the athlete."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.core.auth import CurrentUser, ParentUser
from sugarwatch.database import get_db
from sugarwatch.dependencies import EventBusDep
from sugarwatch.models.message import Message
from sugarwatch.schemas.glucose import SuccessResponse
from sugarwatch.schemas.message import (
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
)
from sugarwatch.services.athlete import get_athlete
from sugarwatch.services.event_bus import DEXCOM_DATA_UPDATED, EventBus
from sugarwatch.services.messaging import (
    MessageNotFoundError,
    count_unread,
    list_received,
    mark_read,
    send_message,
    send_strobe,
)

router = APIRouter(prefix="/api/messages", tags=["messages"])


def _publish_new_message(bus: EventBus, message: Message) -> None:
    bus.publish(
        DEXCOM_DATA_UPDATED,
        {
            "type": "new-message",
            "message": MessageResponse.model_validate(message).model_dump(
                by_alias=True, mode="json"
            ),
        },
    )


@router.get("", response_model=MessageListResponse)
async def get_messages(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    """Messages received by the caller, newest first."""
    messages = await list_received(db, current_user.id)
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        unread_count=await count_unread(db, current_user.id),
    )


@router.post(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    body: SendMessageRequest,
    current_user: CurrentUser,
    bus: EventBusDep,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Send a message. Without a receiver, a parent's message goes to the athlete."""
    receiver_id = body.receiver_id
    if receiver_id is None:
        athlete = await get_athlete(db)
        if athlete is None or athlete.id == current_user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="receiverId is required",
            )
        receiver_id = athlete.id

    message = await send_message(
        db,
        sender_id=current_user.id,
        receiver_id=receiver_id,
        content=body.content,
        is_urgent=body.is_urgent,
    )
    await db.refresh(message, ["sender"])
    _publish_new_message(bus, message)
    return MessageResponse.model_validate(message)


@router.post(
    "/strobe",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_strobe(
    current_user: ParentUser,
    bus: EventBusDep,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Send the urgent strobe alert to the athlete."""
    athlete = await get_athlete(db)
    if athlete is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Athlete not found")

    message = await send_strobe(db, current_user.id, athlete.id)
    await db.refresh(message, ["sender"])
    _publish_new_message(bus, message)
    return MessageResponse.model_validate(message)


@router.post(
    "/{message_id}/read",
    response_model=SuccessResponse,
    responses={404: {"description": "Message not found"}},
)
async def read_message(
    message_id: uuid.UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    """Mark a received message as read."""
    try:
        await mark_read(db, message_id, current_user.id)
    except MessageNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return SuccessResponse()
