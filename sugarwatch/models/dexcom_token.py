"""Dexcom OAuth token storage.

Tokens are encrypted at rest with Fernet (see core.encryption).
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sugarwatch.models.base import Base, TimestampMixin


class DexcomConnectionStatus(str, enum.Enum):
    """Connection state of a stored Dexcom authorization."""

    CONNECTED = "connected"  # Tokens valid as of the last exchange/refresh
    ERROR = "error"  # Last refresh or fetch failed
    DISCONNECTED = "disconnected"  # Parent revoked the connection


class DexcomToken(Base, TimestampMixin):
    """OAuth access/refresh token pair for the athlete's Dexcom account.

    Each parent can hold one authorization; it is linked to the athlete
    whose readings it fetches.
    """

    __tablename__ = "dexcom_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Parent who completed the OAuth flow
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    athlete_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    encrypted_access_token: Mapped[str] = mapped_column(Text, nullable=False)
    encrypted_refresh_token: Mapped[str] = mapped_column(Text, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    status: Mapped[DexcomConnectionStatus] = mapped_column(
        Enum(
            DexcomConnectionStatus,
            name="dexcomconnectionstatus",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=DexcomConnectionStatus.CONNECTED,
    )

    last_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<DexcomToken(user_id={self.user_id}, athlete_id={self.athlete_id}, status={self.status.value})>"
