from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request, HTTPException, Depends
from itsdangerous import URLSafeSerializer, BadSignature
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from . import models
from .db import get_session
from .settings import settings

COOKIE_NAME = "ro_admin"

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"
ROLE_CHAPTER_ADMIN = "chapter_admin"
ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_CHAPTER_ADMIN)

def _serializer() -> URLSafeSerializer:
    return URLSafeSerializer(settings.RO_SECRET_KEY, salt="ro-admin-auth")

@dataclass
class CurrentAdmin:
    id: int
    email: str
    name: str
    role: str
    chapter_id: Optional[int] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def is_full_admin(self) -> bool:
        return self.role in (ROLE_SUPER_ADMIN, ROLE_ADMIN)

    @property
    def is_chapter_admin(self) -> bool:
        return self.role == ROLE_CHAPTER_ADMIN

def set_login_cookie(request: Request, *, admin_id: int, email: str, name: str, role: str, chapter_id: Optional[int]) -> None:
    token = _serializer().dumps({"id": admin_id, "e": email, "n": name, "r": role, "c": chapter_id})
    request.state._set_auth_cookie = token

def clear_login_cookie(request: Request) -> None:
    request.state._clear_auth_cookie = True

def get_current_admin(request: Request, session: Session = Depends(get_session)) -> Optional[CurrentAdmin]:
    """Resolve the login cookie to the admin row it names.

    The cookie only identifies the admin. Role, chapter and name always come
    from the database, so a deleted or demoted admin loses access on the next
    request. A cookie pointing at a missing admin is cleared.
    """
    raw = request.cookies.get(COOKIE_NAME)
    if not raw:
        return None
    try:
        admin_id = int(_serializer().loads(raw)["id"])
    except (BadSignature, KeyError, TypeError, ValueError):
        return None

    row = session.get(models.Admin, admin_id)
    if not row:
        clear_login_cookie(request)
        return None
    return CurrentAdmin(
        id=row.id,
        email=row.email,
        name=row.name,
        role=row.role,
        chapter_id=row.chapter_id,
    )

def admin_required(admin: Optional[CurrentAdmin] = Depends(get_current_admin)) -> CurrentAdmin:
    if not admin:
        raise HTTPException(status_code=401, detail="Login required")
    if admin.role not in ROLES:
        raise HTTPException(status_code=403, detail="Forbidden")
    return admin

def full_admin_required(admin: CurrentAdmin = Depends(admin_required)) -> CurrentAdmin:
    if not admin.is_full_admin:
        raise HTTPException(status_code=403, detail="Admin required")
    return admin

def super_admin_required(admin: CurrentAdmin = Depends(admin_required)) -> CurrentAdmin:
    if not admin.is_super_admin:
        raise HTTPException(status_code=403, detail="Super admin required")
    return admin

def assert_can_access_chapter(admin: CurrentAdmin, chapter_id: Optional[int]) -> None:
    # chapter admins only see their own chapter
    if admin.is_full_admin:
        return
    if admin.is_chapter_admin and admin.chapter_id is not None and admin.chapter_id == chapter_id:
        return
    raise HTTPException(status_code=403, detail="Not allowed for this chapter")

class AuthCookieMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        token = getattr(request.state, "_set_auth_cookie", None)
        if token:
            response.set_cookie(
                COOKIE_NAME,
                token,
                httponly=True,
                samesite="lax",
                secure=settings.COOKIE_SECURE,
                max_age=60 * 60 * 12,
            )
        if getattr(request.state, "_clear_auth_cookie", False):
            response.delete_cookie(COOKIE_NAME)
        return response
