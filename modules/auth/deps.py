"""
Auth Module - Dependencies
===========================
FastAPI dependencies for back-office authentication.
These are injected into admin route handlers via Depends().
"""

from typing import Optional

from fastapi import Request, HTTPException, status

from common.security import decode_token

ADMIN_COOKIE = "admin_token"


def get_current_admin(request: Request) -> Optional[str]:
    """
    Identify the admin from the admin_token cookie.
    Returns the admin username or None.
    """
    token = request.cookies.get(ADMIN_COOKIE)
    if not token:
        return None

    payload = decode_token(token)
    if not payload or payload.get("role") != "admin":
        return None

    return payload.get("sub")


def require_admin(request: Request) -> str:
    """Only allow a logged-in admin. Raises 401 otherwise."""
    admin = get_current_admin(request)
    if not admin:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login_required")
    return admin
