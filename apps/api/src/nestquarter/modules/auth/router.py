"""Authentication router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from nestquarter.core.database import get_db
from nestquarter.core.security import create_access_token, create_refresh_token, verify_password
from nestquarter.modules.auth.schemas import LoginRequest, LoginResponse, UserResponse
from nestquarter.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

_INVALID_CREDENTIALS = {
    "error": "INVALID_CREDENTIALS",
    "message": "Invalid email or password.",
}


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate user and return JWT tokens.

    The access token carries the profile claims the verification endpoints
    read (name, email, admin flag), so they never need a user lookup to
    authorize a request.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    user = await UserRepository.get_by_email(db, credentials.email)

    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning("Login attempt with invalid credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=_INVALID_CREDENTIALS,
        )

    if not user.is_active:
        logger.warning(f"Login attempt for inactive account: {user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ACCOUNT_INACTIVE",
                "message": "Your account has been deactivated.",
            },
        )

    additional_claims = {
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "is_admin": user.is_admin,
    }

    access_token = create_access_token(
        subject=str(user.id),
        additional_claims=additional_claims,
    )
    refresh_token = create_refresh_token(subject=str(user.id))

    logger.info(f"User logged in: {user.id} (admin: {user.is_admin})")

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_admin=user.is_admin,
            is_active=user.is_active,
            sheerid_verified=user.sheerid_verified,
            student_verified=user.student_verified,
            created_at=user.created_at.isoformat(),
            updated_at=user.updated_at.isoformat(),
        ),
    )
