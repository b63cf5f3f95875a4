"""Messages exchanged between parents and the athlete."""

import uuid

from sqlalchemy import Boolean, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sugarwatch.models.base import Base, TimestampMixin


class Message(Base, TimestampMixin):
    """A message from one user to another.

    Only the receiver may mark a message as read.
    """

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    sender = relationship("User", foreign_keys=[sender_id], lazy="selectin")

    def __repr__(self) -> str:
        return f"<Message(sender_id={self.sender_id}, receiver_id={self.receiver_id}, read={self.read})>"
