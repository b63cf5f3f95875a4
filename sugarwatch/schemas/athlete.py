"""Athlete dashboard schemas."""

import uuid

from sugarwatch.schemas.base import CamelModel
from sugarwatch.schemas.glucose import GlucoseReadingResponse, StatusResponse


class AthleteDataResponse(CamelModel):
    """Aggregated view of the athlete for parents."""

    id: uuid.UUID
    name: str
    unread_messages_count: int
    status: StatusResponse | None = None
    glucose: GlucoseReadingResponse | None = None
    glucose_history: list[GlucoseReadingResponse] = []
