"""Authentication router: registration, login, and credential verification."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.core.auth import CurrentUser
from sugarwatch.core.security import create_access_token, hash_password, verify_password
from sugarwatch.database import get_db
from sugarwatch.logging_config import get_logger
from sugarwatch.middleware.rate_limit import AUTH_RATE_LIMIT, limiter
from sugarwatch.models.user import User, UserRole
from sugarwatch.schemas.auth import (
    AuthResponse,
    ErrorResponse,
    LoginRequest,
    RegisterRequest,
    UserResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


def build_auth_response(user: User) -> AuthResponse:
    token = create_access_token(user.id, user.email, user.role.value)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


async def create_user(
    db: AsyncSession,
    body: RegisterRequest,
    role: UserRole,
    is_admin: bool = False,
    is_athlete: bool = False,
) -> User:
    """Insert a user with a hashed password and lower-cased email.

    Only one admin may exist. If the admin slot is taken by the time the
    row is written, the user is stored without admin rights.

    Raises:
        HTTPException 400: If the email is already registered
    """
    email = body.email.lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        logger.warning("Registration attempt with existing email", email=email)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists",
        )

    hashed_password = hash_password(body.password)

    async def insert(as_admin: bool) -> User:
        user = User(
            email=email,
            name=body.name,
            hashed_password=hashed_password,
            role=role,
            is_admin=as_admin,
            is_athlete=is_athlete,
        )
        db.add(user)
        await db.commit()
        return user

    try:
        user = await insert(is_admin)
    except IntegrityError:
        await db.rollback()
        if not is_admin:
            logger.warning("Registration failed - integrity error", email=email)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User already exists",
            )
        # Another registration claimed the admin slot first
        logger.info("Admin already assigned, registering as parent", email=email)
        is_admin = False
        try:
            user = await insert(False)
        except IntegrityError:
            await db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User already exists",
            )

    logger.info(
        "User created",
        user_id=str(user.id),
        role=role.value,
        is_admin=is_admin,
    )
    return user


@router.post(
    "/register",
    response_model=AuthResponse,
    responses={400: {"model": ErrorResponse, "description": "Email already registered"}},
)
@limiter.limit(AUTH_RATE_LIMIT)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Register a parent account.

    The first parent to register becomes the household admin.
    """
    parent_count = await db.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.PARENT)
    )
    is_first_parent = parent_count.scalar_one() == 0

    user = await create_user(db, body, UserRole.PARENT, is_admin=is_first_parent)
    return build_auth_response(user)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
@limiter.limit(AUTH_RATE_LIMIT)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Exchange email and password for a bearer token."""
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.hashed_password):
        logger.warning(
            "Login failed",
            email=body.email.lower(),
            client_ip=request.client.host if request.client else "unknown",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    logger.info("User logged in", user_id=str(user.id))
    return build_auth_response(user)


@router.get("/verify", response_model=UserResponse)
async def verify(current_user: CurrentUser) -> UserResponse:
    """Return the user the presented token belongs to."""
    return UserResponse.model_validate(current_user)
