"""Messaging between parents and the athlete."""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.logging_config import get_logger
from sugarwatch.models.message import Message

logger = get_logger(__name__)

STROBE_ALERT_CONTENT = "⚠️ STROBE ALERT! PLEASE CHECK YOUR PHONE IMMEDIATELY!"


class MessageNotFoundError(Exception):
    """The message does not exist or the caller is not its receiver."""

    pass


async def send_message(
    db: AsyncSession,
    sender_id: uuid.UUID,
    receiver_id: uuid.UUID,
    content: str,
    is_urgent: bool = False,
) -> Message:
    """Create a message from sender to receiver."""
    message = Message(
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        is_urgent=is_urgent,
        read=False,
    )
    db.add(message)
    await db.commit()

    logger.info(
        "Message sent",
        message_id=str(message.id),
        sender_id=str(sender_id),
        receiver_id=str(receiver_id),
        is_urgent=is_urgent,
    )
    return message


async def send_strobe(
    db: AsyncSession,
    parent_id: uuid.UUID,
    athlete_id: uuid.UUID,
) -> Message:
    """Send the urgent strobe alert that makes the athlete's phone flash."""
    return await send_message(
        db,
        sender_id=parent_id,
        receiver_id=athlete_id,
        content=STROBE_ALERT_CONTENT,
        is_urgent=True,
    )


async def list_received(db: AsyncSession, user_id: uuid.UUID) -> list[Message]:
    """Messages addressed to the user, newest first."""
    result = await db.execute(
        select(Message)
        .where(Message.receiver_id == user_id)
        .order_by(Message.created_at.desc())
    )
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession,
    message_id: uuid.UUID,
    caller_id: uuid.UUID,
) -> Message:
    """Mark a message as read on behalf of its receiver.

    Idempotent: marking an already-read message succeeds.

    Raises:
        MessageNotFoundError: If the message is absent or the caller is
            not the receiver
    """
    result = await db.execute(
        select(Message).where(
            Message.id == message_id,
            Message.receiver_id == caller_id,
        )
    )
    message = result.scalar_one_or_none()
    if message is None:
        raise MessageNotFoundError(f"Message {message_id} not found")

    if not message.read:
        message.read = True
        await db.commit()

    return message


async def count_unread(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Number of unread messages addressed to the user."""
    result = await db.execute(
        select(func.count())
        .select_from(Message)
        .where(Message.receiver_id == user_id, Message.read.is_(False))
    )
    return result.scalar_one()
