"""Glucose reading and status schemas."""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import Field, field_serializer, field_validator

from sugarwatch.models.glucose import GlucoseReading, ReadingSource, StatusType
from sugarwatch.schemas.base import CamelModel


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


class StatusResponse(CamelModel):
    """Derived status of one reading."""

    id: uuid.UUID
    reading_id: uuid.UUID
    type: StatusType
    acknowledged_at: datetime | None = None
    created_at: datetime

    @field_serializer("acknowledged_at", "created_at")
    def _serialize_dt(self, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class GlucoseReadingResponse(CamelModel):
    """A stored glucose reading with its embedded status."""

    id: uuid.UUID
    value: float = Field(..., description="Glucose value")
    unit: str = Field(..., description="Unit of the value, normally mg/dL")
    trend: str | None = Field(None, description="Vendor trend label")
    trend_rate: float | None = Field(None, description="Rate of change in mg/dL/min")
    recorded_at: datetime = Field(..., description="When the reading was taken")
    source: ReadingSource
    status: StatusResponse | None = None

    @field_serializer("recorded_at")
    def _serialize_dt(self, value: datetime) -> datetime:
        return _as_utc(value)


class GlucoseHistoryResponse(CamelModel):
    """Recent readings, newest first."""

    readings: list[GlucoseReadingResponse]
    count: int = Field(..., description="Number of readings returned")


class CurrentStatusResponse(CamelModel):
    """Latest status and reading for the subject athlete."""

    status: StatusResponse | None = None
    glucose_reading: GlucoseReadingResponse | None = None


class AcknowledgeRequest(CamelModel):
    """Request to acknowledge the status of a reading."""

    reading_id: uuid.UUID


class ManualReadingRequest(CamelModel):
    """A glucose value entered by a parent."""

    value: float = Field(..., gt=0, le=1000, description="Glucose value in mg/dL")
    unit: str = Field(default="mg/dL", max_length=16)
    recorded_at: datetime | None = Field(
        None, description="When the reading was taken; defaults to now"
    )

    @field_validator("recorded_at")
    @classmethod
    def not_in_future(cls, v: datetime | None) -> datetime | None:
        """Reject timestamps ahead of the server clock (one minute of slack)."""
        v = _as_utc(v)
        if v is not None and v > datetime.now(UTC) + timedelta(minutes=1):
            raise ValueError("recordedAt cannot be in the future")
        return v


class ThresholdsUpdateRequest(CamelModel):
    """New low/high thresholds for status derivation."""

    low_threshold: int = Field(..., ge=20, le=600)
    high_threshold: int = Field(..., ge=20, le=600)


class ThresholdsResponse(CamelModel):
    low_threshold: int
    high_threshold: int


class SuccessResponse(CamelModel):
    success: bool = True


def serialize_reading(reading: GlucoseReading) -> dict[str, Any]:
    """JSON-ready camelCase dict for a reading and its status."""
    return GlucoseReadingResponse.model_validate(reading).model_dump(
        by_alias=True, mode="json"
    )
