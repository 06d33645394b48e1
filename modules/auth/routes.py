"""
Auth Routes
=============
Back-office login / logout (JWT in an httponly cookie).
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from common.security import get_cookie_kwargs
from modules.auth.deps import ADMIN_COOKIE, require_admin
from modules.auth.service import auth_service

router = APIRouter(prefix="/admin", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200)


@router.post("/login")
async def login(body: LoginRequest):
    token = auth_service.login(body.username, body.password)
    response = JSONResponse({"status": "ok", "username": body.username})
    response.set_cookie(ADMIN_COOKIE, token, **get_cookie_kwargs())
    return response


@router.post("/logout")
async def logout():
    """Clear the admin cookie."""
    response = JSONResponse({"status": "ok"})
    response.delete_cookie(ADMIN_COOKIE)
    return response


@router.get("/me")
async def whoami(admin: str = Depends(require_admin)):
    return {"username": admin}
