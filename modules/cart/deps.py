"""
Cart Module - Dependencies
============================
Anonymous cart session: read from the session cookie, issued on first access.
"""

from fastapi import Request, Response

from config.settings import SESSION_COOKIE_NAME, SESSION_COOKIE_MAX_AGE
from common.security import get_cookie_kwargs, new_session_token


def get_cart_session(request: Request, response: Response) -> str:
    """Return the caller's cart session id, setting the cookie if it is new."""
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id and 16 <= len(session_id) <= 64:
        return session_id

    session_id = new_session_token()
    response.set_cookie(SESSION_COOKIE_NAME, session_id, **get_cookie_kwargs(SESSION_COOKIE_MAX_AGE))
    return session_id
