"""Authentication and role-based authorization dependencies.

Credentials are stateless: every request carries `Authorization: Bearer
<jwt>` and the token is verified and resolved to a user row each time.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sugarwatch.core.security import TokenData, decode_access_token
from sugarwatch.database import get_db
from sugarwatch.logging_config import get_logger
from sugarwatch.models.user import User, UserRole

logger = get_logger(__name__)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_bearer_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header, if well formed."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user from the bearer token.

    Returns:
        The authenticated User object

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, or
            refers to a user that no longer exists
    """
    token = extract_bearer_token(request)
    if token is None:
        raise _credentials_exception()

    payload = decode_access_token(token)
    if payload is None:
        raise _credentials_exception()

    try:
        token_data = TokenData(payload)
    except (KeyError, ValueError):
        raise _credentials_exception()

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _credentials_exception()
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


class RoleChecker:
    """Dependency that verifies the current user has one of the allowed roles.

    Usage:
        @router.get("/parents-only")
        async def endpoint(user: CurrentUser, _: bool = Depends(RoleChecker([UserRole.PARENT]))):
            ...
    """

    def __init__(self, allowed_roles: list[UserRole], require_admin: bool = False):
        self.allowed_roles = allowed_roles
        self.require_admin = require_admin

    async def __call__(
        self,
        request: Request,
        current_user: CurrentUser,
    ) -> bool:
        allowed = current_user.role in self.allowed_roles
        if allowed and self.require_admin:
            allowed = current_user.is_admin

        if not allowed:
            client_ip = request.client.host if request.client else "unknown"
            logger.warning(
                "Unauthorized access attempt",
                user_id=str(current_user.id),
                user_role=current_user.role.value,
                required_roles=[r.value for r in self.allowed_roles],
                require_admin=self.require_admin,
                path=request.url.path,
                method=request.method,
                client_ip=client_ip,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You don't have permission to access this resource",
            )
        return True


require_parent = RoleChecker([UserRole.PARENT])
require_athlete = RoleChecker([UserRole.ATHLETE])
require_admin = RoleChecker([UserRole.PARENT], require_admin=True)


async def get_parent_user(current_user: CurrentUser, request: Request) -> User:
    """Get the current user and verify they are a parent."""
    await require_parent(request, current_user)
    return current_user


async def get_athlete_user(current_user: CurrentUser, request: Request) -> User:
    """Get the current user and verify they are the athlete."""
    await require_athlete(request, current_user)
    return current_user


async def get_admin_user(current_user: CurrentUser, request: Request) -> User:
    """Get the current user and verify they are an admin parent."""
    await require_admin(request, current_user)
    return current_user


ParentUser = Annotated[User, Depends(get_parent_user)]
AthleteUser = Annotated[User, Depends(get_athlete_user)]
AdminUser = Annotated[User, Depends(get_admin_user)]
