"""Glucose reading and derived status models."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sugarwatch.models.base import Base, TimestampMixin


class StatusType(str, enum.Enum):
    """Classification of a glucose value against the athlete's thresholds."""

    OK = "OK"
    HIGH = "HIGH"
    LOW = "LOW"


class ReadingSource(str, enum.Enum):
    """Where a reading came from."""

    DEXCOM = "dexcom"
    MANUAL = "manual"
    WEBHOOK = "webhook"


class GlucoseReading(Base, TimestampMixin):
    """A single CGM or manually entered glucose value for the athlete.

    Readings are immutable once written. At most one reading exists per
    athlete per `recorded_at` instant, which makes ingestion idempotent.
    """

    __tablename__ = "glucose_readings"

    __table_args__ = (
        UniqueConstraint("user_id", "recorded_at", name="uq_glucose_user_recorded_at"),
        Index("ix_glucose_readings_user_recorded_at", "user_id", "recorded_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Owner: the athlete
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Parent who entered it manually, if any
    recorded_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(16), default="mg/dL", nullable=False)

    # Vendor trend label, e.g. "flat", "singleDown"
    trend: Mapped[str | None] = mapped_column(String(32), nullable=True)
    trend_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    # When the CGM took the reading
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    source: Mapped[ReadingSource] = mapped_column(
        Enum(
            ReadingSource,
            name="readingsource",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=ReadingSource.DEXCOM,
    )

    provider_record_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user = relationship(
        "User",
        back_populates="glucose_readings",
        foreign_keys=[user_id],
    )
    status = relationship(
        "Status",
        back_populates="reading",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<GlucoseReading(user_id={self.user_id}, value={self.value}, recorded_at={self.recorded_at})>"


class Status(Base, TimestampMixin):
    """Derived classification of one reading.

    The classification is fixed at creation; only `acknowledged_at` is
    ever updated, by a parent acknowledging the alert.
    """

    __tablename__ = "statuses"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    reading_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("glucose_readings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    type: Mapped[StatusType] = mapped_column(
        Enum(
            StatusType,
            name="statustype",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )

    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reading = relationship("GlucoseReading", back_populates="status")

    def __repr__(self) -> str:
        return f"<Status(reading_id={self.reading_id}, type={self.type.value})>"
