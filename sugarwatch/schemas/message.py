"""Messaging schemas."""

import uuid
from datetime import datetime

from pydantic import Field

from sugarwatch.schemas.base import CamelModel


class SenderSummary(CamelModel):
    id: uuid.UUID
    name: str


class MessageResponse(CamelModel):
    """A message as shown to its receiver."""

    id: uuid.UUID
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    content: str
    read: bool
    is_urgent: bool
    created_at: datetime
    sender: SenderSummary | None = None


class MessageListResponse(CamelModel):
    messages: list[MessageResponse]
    unread_count: int


class SendMessageRequest(CamelModel):
    """New message; parents may omit the receiver to address the athlete."""

    content: str = Field(..., min_length=1, max_length=2000)
    is_urgent: bool = False
    receiver_id: uuid.UUID | None = None
