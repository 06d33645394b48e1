"""
Mimasa Store - Security Utilities
===================================
JWT tokens for the admin session, HMAC signing, constant-time comparison,
and anonymous cart session tokens.
"""

import hmac
import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError

from config.settings import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from common.helpers import now_utc

logger = logging.getLogger("mimasa.security")


# ==========================================
# HMAC
# ==========================================

def hmac_sha256_hex(secret: str, message: str) -> str:
    """HMAC-SHA256 of message under secret, lowercase hex digest."""
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without leaking the mismatch position."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# ==========================================
# JWT Tokens (admin session)
# ==========================================

def create_token(data: dict) -> str:
    """Create a signed JWT with an expiry."""
    to_encode = data.copy()
    to_encode["exp"] = now_utc() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode a JWT token. Returns payload or None."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ==========================================
# Cookie Helpers
# ==========================================

def get_cookie_kwargs(max_age: int = ACCESS_TOKEN_EXPIRE_MINUTES * 60) -> dict:
    """Standard cookie settings for auth/session tokens."""
    from config.settings import COOKIE_SECURE, COOKIE_SAMESITE
    return dict(
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        max_age=max_age,
    )


# ==========================================
# Cart Session
# ==========================================

def new_session_token() -> str:
    """Opaque anonymous session identifier for the cart cookie."""
    return secrets.token_urlsafe(24)
