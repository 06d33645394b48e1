"""
Auth Module - Service Layer
=============================
Back-office login: credential check and session token creation.
"""

import logging

from common.exceptions import AuthenticationError
from common.security import constant_time_equals, create_token
from config.settings import ADMIN_USERNAME, ADMIN_PASSWORD

logger = logging.getLogger("mimasa.auth")


class AuthService:
    """Single-admin credential check against the configured username/password."""

    def login(self, username: str, password: str) -> str:
        """Return a signed admin token, or raise AuthenticationError."""
        if not ADMIN_PASSWORD:
            logger.error("Admin login attempted but ADMIN_PASSWORD is not configured")
            raise AuthenticationError("Admin login is not configured.")

        user_ok = constant_time_equals(username or "", ADMIN_USERNAME)
        pass_ok = constant_time_equals(password or "", ADMIN_PASSWORD)
        if not (user_ok and pass_ok):
            logger.warning(f"Failed admin login for username={username!r}")
            raise AuthenticationError("Invalid username or password.")

        logger.info(f"Admin {username} logged in")
        return create_token({"sub": username, "role": "admin"})


auth_service = AuthService()
