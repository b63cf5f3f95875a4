# Database Models
from sugarwatch.models.base import Base, TimestampMixin
from sugarwatch.models.dexcom_token import DexcomConnectionStatus, DexcomToken
from sugarwatch.models.glucose import (
    GlucoseReading,
    ReadingSource,
    Status,
    StatusType,
)
from sugarwatch.models.message import Message
from sugarwatch.models.preferences import UserPreferences
from sugarwatch.models.user import User, UserRole

__all__ = [
    "Base",
    "DexcomConnectionStatus",
    "DexcomToken",
    "GlucoseReading",
    "Message",
    "ReadingSource",
    "Status",
    "StatusType",
    "TimestampMixin",
    "User",
    "UserPreferences",
    "UserRole",
]
