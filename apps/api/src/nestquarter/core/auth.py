"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
This module validates JWT bearer tokens and exposes the current actor
(the session collaborator) to routers, plus an admin-only guard for the
verification review console.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- PYTHON_ENV defaults to production, so test tokens stay disabled unless a
  deployment opts in explicitly
- The is_production check provides an additional safety layer
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from nestquarter.core.config import settings
from nestquarter.core.security import decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


@dataclass
class CurrentUser:
    """
    The authenticated actor, populated from JWT claims.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        first_name: Given name, used for display and the instant provider
        last_name: Family name
        is_admin: Whether the user may use the verification review console
    """

    id: UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, email={self.email}, is_admin={self.is_admin})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    All of these must hold:
    1. settings.is_development is True (PYTHON_ENV=development)
    2. settings.is_production is False
    3. PYTHON_ENV environment variable is neither "production" nor "staging"
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var != "production"
        and env_var != "staging"
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

# Development users for local testing (only used when PYTHON_ENV=development)
_DEV_ADMIN = CurrentUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="admin@nestquarter.dev",
    first_name="Development",
    last_name="Admin",
    is_admin=True,
)

_DEV_STUDENT = CurrentUser(
    id=UUID("00000000-0000-0000-0000-000000000002"),
    email="student@nestquarter.dev",
    first_name="Development",
    last_name="Student",
    is_admin=False,
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> CurrentUser:
    """
    Validate a JWT and build the current user from its claims.

    Raises:
        HTTPException 401: If the token is invalid, expired, of the wrong
            type, or missing required claims
    """
    if _DEVELOPMENT_MODE:
        if token == "dev-admin-token":
            logger.debug("Development mode: using dev admin")
            return _DEV_ADMIN
        if token == "dev-student-token":
            logger.debug("Development mode: using dev student")
            return _DEV_STUDENT

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return CurrentUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            first_name=payload.get("first_name", ""),
            last_name=payload.get("last_name", ""),
            is_admin=bool(payload.get("is_admin", False)),
        )
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency returning the authenticated user.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
    """
    user = await _validate_jwt_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id}")
    return user


async def get_current_admin_user(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    FastAPI dependency that only admits users carrying the is_admin capability.

    The check runs before any handler code, so non-admin callers never reach
    the data layer.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the user is not an admin
    """
    if not user.is_admin:
        logger.warning(f"Access denied: user {user.id} is not an admin")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ADMIN_ACCESS_REQUIRED",
                "message": "Access Denied: Admin privileges required",
            },
        )

    logger.debug(f"Authenticated admin: {user.id}")
    return user


__all__ = [
    "CurrentUser",
    "get_current_user",
    "get_current_admin_user",
]
