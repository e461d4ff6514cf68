"""
Seed Admin User

Creates a reviewer account for the student verification queue.
Credentials come from the environment; nothing is hardcoded.

Usage:
    cd apps/api
    SEED_ADMIN_EMAIL=reviewer@example.com SEED_ADMIN_PASSWORD=... \
        python scripts/seed_admin.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from nestquarter.core.database import async_session_maker, engine
from nestquarter.core.security import hash_password
from nestquarter.modules.student_verification.models import StudentVerification  # noqa: F401
from nestquarter.modules.users.repository import UserRepository


async def seed_admin() -> None:
    """Create the admin user if it doesn't exist."""
    email = os.getenv("SEED_ADMIN_EMAIL")
    password = os.getenv("SEED_ADMIN_PASSWORD")
    first_name = os.getenv("SEED_ADMIN_FIRST_NAME", "Review")
    last_name = os.getenv("SEED_ADMIN_LAST_NAME", "Admin")

    if not email or not password:
        print("SEED_ADMIN_EMAIL and SEED_ADMIN_PASSWORD must be set")
        sys.exit(1)

    async with async_session_maker() as db:
        existing_user = await UserRepository.get_by_email(db, email)

        if existing_user:
            print(f"Admin already exists: {email}")
            print(f"  ID: {existing_user.id}")
            print(f"  Admin: {existing_user.is_admin}")
            return

        admin_user = await UserRepository.create(
            db,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_admin=True,
        )

        print("Admin created successfully!")
        print(f"  Email: {email}")
        print(f"  Name: {first_name} {last_name}")
        print(f"  ID: {admin_user.id}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_admin())
