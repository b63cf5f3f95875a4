"""Dexcom connection and webhook schemas."""

import uuid
from datetime import datetime

from pydantic import Field

from sugarwatch.models.dexcom_token import DexcomConnectionStatus
from sugarwatch.schemas.base import CamelModel


class AuthorizeUrlResponse(CamelModel):
    url: str


class DexcomStatusResponse(CamelModel):
    """State of the caller's Dexcom connection."""

    connected: bool
    status: DexcomConnectionStatus | None = None
    athlete_id: uuid.UUID | None = None
    expires_at: datetime | None = None
    last_sync_at: datetime | None = None
    last_error: str | None = None


class WebhookReadingRequest(CamelModel):
    """A reading pushed by an external CGM bridge."""

    value: float = Field(..., gt=0, le=1000, description="Glucose value")
    timestamp: datetime = Field(..., description="When the reading was taken")
    trend: str | None = Field(None, max_length=32)
    unit: str = Field(default="mg/dL", max_length=16)
