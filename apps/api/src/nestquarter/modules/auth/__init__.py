"""Authentication module."""

from nestquarter.modules.auth.router import router
from nestquarter.modules.auth.schemas import LoginRequest, LoginResponse, TokenResponse

__all__ = ["router", "LoginRequest", "LoginResponse", "TokenResponse"]
