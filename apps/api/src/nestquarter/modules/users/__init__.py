"""
Users module - User accounts and verification signals.
"""

from nestquarter.modules.users.models import User
from nestquarter.modules.users.repository import UserRepository

__all__ = ["User", "UserRepository"]
