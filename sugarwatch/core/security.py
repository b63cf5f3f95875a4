"""Security utilities.

Password hashing, verification, and JWT token management.
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from sugarwatch.config import settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8"),
    )


def hash_password(password: str) -> str:
    """Hash a password using bcrypt.

    Args:
        password: The plain text password to hash

    Returns:
        The bcrypt hash of the password
    """
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def create_access_token(
    user_id: uuid.UUID,
    email: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT carrying the user's id, email and role.

    Args:
        user_id: User's unique identifier
        email: User's email address
        role: User's role (PARENT, ATHLETE)
        expires_delta: Optional custom lifetime (default 7 days)

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.access_token_expire_days)

    now = datetime.now(timezone.utc)

    payload = {
        "sub": str(user_id),
        "id": str(user_id),
        "email": email,
        "role": role,
        "exp": now + expires_delta,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(
        payload,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT access token.

    Returns:
        Token payload dict if valid, None if invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None

    return payload


class TokenData:
    """Parsed token data for type safety."""

    def __init__(self, payload: dict):
        self.user_id: uuid.UUID = uuid.UUID(payload["sub"])
        self.email: str = payload["email"]
        self.role: str = payload["role"]
        self.exp: datetime = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


OAUTH_STATE_EXPIRE_MINUTES = 10


def create_oauth_state(user_id: uuid.UUID) -> str:
    """Signed, short-lived OAuth `state` bound to the user starting the flow."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "exp": now + timedelta(minutes=OAUTH_STATE_EXPIRE_MINUTES),
        "iat": now,
        "nonce": secrets.token_urlsafe(8),
        "type": "oauth_state",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def verify_oauth_state(state: str, user_id: uuid.UUID) -> bool:
    """True if `state` was issued by `create_oauth_state` for this user."""
    try:
        payload = jwt.decode(
            state,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return False
    return payload.get("type") == "oauth_state" and payload.get("sub") == str(user_id)
