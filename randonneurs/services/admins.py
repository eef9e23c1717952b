from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..audit import log_audit_event
from ..auth import CurrentAdmin, ROLES, ROLE_CHAPTER_ADMIN, ROLE_SUPER_ADMIN
from ..schemas import AdminUserCreate
from ..security import hash_password, verify_password
from ..settings import Settings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def get_admin_by_email(session: Session, email: str) -> Optional[models.Admin]:
    return session.execute(
        select(models.Admin).where(func.lower(models.Admin.email) == _normalize_email(email))
    ).scalar_one_or_none()


def get_admin(session: Session, admin_id: int) -> Optional[models.Admin]:
    return session.get(models.Admin, admin_id)


def current_admin_from(admin: models.Admin) -> CurrentAdmin:
    return CurrentAdmin(id=admin.id, email=admin.email, name=admin.name, role=admin.role, chapter_id=admin.chapter_id)


def authenticate_admin(session: Session, email: str, password: str) -> Optional[models.Admin]:
    a = get_admin_by_email(session, email)
    if not a:
        return None
    if verify_password(password, a.password_hash):
        return a
    return None


def ensure_super_admin(session: Session, settings: Settings) -> None:
    """Make sure the bootstrap super admin from settings exists and can log in."""
    email = _normalize_email(settings.RO_ADMIN_EMAIL)
    if not email or not settings.RO_ADMIN_PASSWORD:
        logger.info("RO_ADMIN_EMAIL/RO_ADMIN_PASSWORD not set; no bootstrap admin")
        return

    existing = get_admin_by_email(session, email)
    if existing:
        changed = False
        if existing.role != ROLE_SUPER_ADMIN:
            existing.role = ROLE_SUPER_ADMIN
            existing.chapter_id = None
            changed = True
        if not verify_password(settings.RO_ADMIN_PASSWORD, existing.password_hash):
            existing.password_hash = hash_password(settings.RO_ADMIN_PASSWORD)
            changed = True
        if changed:
            session.commit()
            logger.info("Synced bootstrap admin %s", email)
        return

    session.add(models.Admin(
        email=email,
        name=settings.RO_ADMIN_NAME,
        password_hash=hash_password(settings.RO_ADMIN_PASSWORD),
        role=ROLE_SUPER_ADMIN,
    ))
    session.commit()
    logger.info("Created bootstrap admin %s", email)


def list_admins(session: Session) -> list[models.Admin]:
    return session.execute(
        select(models.Admin).options(selectinload(models.Admin.chapter)).order_by(models.Admin.created_at.desc())
    ).scalars().all()


def _check_role(session: Session, role: str, chapter_id: Optional[int]) -> Optional[int]:
    if role not in ROLES:
        raise ValueError("Invalid role")
    if role == ROLE_CHAPTER_ADMIN:
        if not chapter_id:
            raise ValueError("Chapter admins must have a chapter assigned")
        if not session.get(models.Chapter, chapter_id):
            raise ValueError("Chapter not found")
        return chapter_id
    return None


def create_admin_user(session: Session, admin: CurrentAdmin, payload: AdminUserCreate) -> models.Admin:
    if not admin.is_super_admin:
        raise ValueError("You do not have permission to create admin users")
    email = _normalize_email(payload.email)
    name = (payload.name or "").strip()
    if not email or not name or not payload.password:
        raise ValueError("Missing required fields")
    chapter_id = _check_role(session, payload.role, payload.chapter_id)
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise ValueError("Password must be at least 8 characters")
    if get_admin_by_email(session, email):
        raise ValueError("An admin with this email already exists")

    a = models.Admin(
        email=email,
        name=name,
        phone=(payload.phone or "").strip() or None,
        password_hash=hash_password(payload.password),
        role=payload.role,
        chapter_id=chapter_id,
    )
    session.add(a)
    session.commit()
    log_audit_event(session, admin.id, "create", "admin_user", a.id, f"Created admin user: {name} ({email})")
    return a


def update_admin_user(
    session: Session,
    admin: CurrentAdmin,
    user_id: int,
    name: str,
    role: str,
    chapter_id: Optional[int] = None,
    phone: Optional[str] = None,
) -> models.Admin:
    if not admin.is_super_admin:
        raise ValueError("You do not have permission to update admin users")
    a = session.get(models.Admin, user_id)
    if not a:
        raise ValueError("Admin user not found")
    name = (name or "").strip()
    if not name:
        raise ValueError("Name is required")
    a.chapter_id = _check_role(session, role, chapter_id)
    a.role = role
    a.name = name
    a.phone = (phone or "").strip() or None
    session.commit()
    log_audit_event(session, admin.id, "update", "admin_user", a.id, f"Updated admin user: {name}")
    return a


def delete_admin_user(session: Session, admin: CurrentAdmin, user_id: int) -> None:
    if not admin.is_super_admin:
        raise ValueError("You do not have permission to delete admin users")
    if admin.id == user_id:
        raise ValueError("You cannot delete your own account")
    a = session.get(models.Admin, user_id)
    if not a:
        raise ValueError("Admin user not found")
    name = a.name
    session.delete(a)
    session.commit()
    log_audit_event(session, admin.id, "delete", "admin_user", user_id, f"Deleted admin user: {name}")


def reset_admin_password(session: Session, admin: CurrentAdmin, user_id: int, new_password: str) -> None:
    if not admin.is_super_admin:
        raise ValueError("You do not have permission to reset passwords")
    if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValueError("Password must be at least 8 characters")
    a = session.get(models.Admin, user_id)
    if not a:
        raise ValueError("Admin user not found")
    a.password_hash = hash_password(new_password)
    session.commit()
    log_audit_event(session, admin.id, "update", "admin_user", user_id, f"Reset password for {a.name}")


def update_profile(
    session: Session,
    admin: CurrentAdmin,
    name: str,
    phone: Optional[str] = None,
    new_password: Optional[str] = None,
) -> models.Admin:
    a = session.get(models.Admin, admin.id)
    if not a:
        raise ValueError("Admin user not found")
    name = (name or "").strip()
    if not name:
        raise ValueError("Name is required")
    if new_password:
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValueError("Password must be at least 8 characters")
        a.password_hash = hash_password(new_password)
    a.name = name
    a.phone = (phone or "").strip() or None
    session.commit()
    log_audit_event(session, admin.id, "update", "admin_user", a.id, f"Updated profile: {name}")
    return a
