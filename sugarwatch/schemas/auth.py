"""Authentication and account schemas."""

import uuid

from pydantic import EmailStr, Field

from sugarwatch.models.user import UserRole
from sugarwatch.schemas.base import CamelModel


class RegisterRequest(CamelModel):
    """Request schema for user registration."""

    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=8, max_length=128, description="Password")


class LoginRequest(CamelModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=1, description="User's password")


class CreateAccountRequest(RegisterRequest):
    """Admin request to create the athlete or an additional parent."""


class UserResponse(CamelModel):
    """Public user information."""

    id: uuid.UUID
    email: str
    name: str
    role: UserRole
    is_admin: bool
    is_athlete: bool


class AuthResponse(CamelModel):
    """Token plus the authenticated user."""

    token: str = Field(..., description="JWT access token (7-day lifetime)")
    user: UserResponse


class ErrorResponse(CamelModel):
    """Error response schema."""

    detail: str = Field(..., description="Error message")
