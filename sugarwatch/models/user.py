"""User model with parent/athlete roles."""

import enum
import uuid

from sqlalchemy import Enum, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sugarwatch.models.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    """User roles.

    - PARENT: Caregiver; views the athlete's data, receives alerts, sends messages
    - ATHLETE: The monitored CGM wearer
    """

    PARENT = "PARENT"
    ATHLETE = "ATHLETE"


class User(Base, TimestampMixin):
    """User account model.

    Attributes:
        id: Unique user identifier (UUID)
        email: Lower-cased email address (unique, used for login)
        name: Display name
        hashed_password: Bcrypt-hashed password
        role: PARENT or ATHLETE
        is_admin: Parent allowed to manage accounts (first registrant)
        is_athlete: Marks the single monitored athlete
    """

    __tablename__ = "users"
    __table_args__ = (
        # At most one admin: the first parent to register
        Index(
            "ix_users_single_admin",
            "is_admin",
            unique=True,
            postgresql_where=text("is_admin"),
            sqlite_where=text("is_admin"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="userrole",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=UserRole.PARENT,
    )
    is_admin: Mapped[bool] = mapped_column(default=False)
    is_athlete: Mapped[bool] = mapped_column(default=False, index=True)

    glucose_readings = relationship(
        "GlucoseReading",
        back_populates="user",
        foreign_keys="GlucoseReading.user_id",
        cascade="all, delete-orphan",
    )
    preferences = relationship(
        "UserPreferences",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
