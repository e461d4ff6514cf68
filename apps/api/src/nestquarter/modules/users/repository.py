"""
User Repository

Database operations for user accounts.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nestquarter.modules.users.models import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        is_admin: bool = False,
        is_active: bool = True,
    ) -> User:
        """
        Create a new user record.

        Args:
            db: Database session
            email: User's email address (unique)
            password_hash: Hashed password
            first_name: User's first name
            last_name: User's last name
            is_admin: Whether the user may review verifications
            is_active: Whether user is active

        Returns:
            Created User instance
        """
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            is_admin=is_admin,
            is_active=is_active,
        )

        db.add(user)
        await db.commit()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} (admin={user.is_admin})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> User | None:
        """Get a user by ID."""
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email address."""
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_sheerid_verified(db: AsyncSession, user_id: UUID) -> User | None:
        """
        Record a successful instant verification.

        Sets sheerid_verified and the derived student_verified flag. The
        manual verification record is not touched.

        Returns:
            The updated user, or None if not found
        """
        user = await db.get(User, user_id)
        if not user:
            return None

        user.sheerid_verified = True
        user.student_verified = True

        await db.commit()
        await db.refresh(user)
        return user
