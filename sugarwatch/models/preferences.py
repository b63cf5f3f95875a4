"""Per-user glucose threshold preferences."""

import uuid

from sqlalchemy import ForeignKey, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sugarwatch.models.base import Base, TimestampMixin


class UserPreferences(Base, TimestampMixin):
    """Low/high glucose thresholds in mg/dL for status classification."""

    __tablename__ = "user_preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    low_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=70)
    high_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=180)

    user = relationship("User", back_populates="preferences")
