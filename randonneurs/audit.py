from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import models

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = ("create", "update", "delete", "status_change", "merge", "submit")
AUDIT_ENTITY_TYPES = ("event", "route", "rider", "result", "page", "admin_user", "news")


def log_audit_event(
    session: Session,
    admin_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[object],
    description: str,
) -> None:
    """Record one admin action. Never raises: a failed write is only logged."""
    try:
        session.add(models.AuditLog(
            admin_id=admin_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=description,
        ))
        session.commit()
    except Exception:
        logger.exception("Failed to write audit log: %s %s %s", action, entity_type, entity_id)
        try:
            session.rollback()
        except Exception:
            logger.exception("Rollback after audit failure failed")


def list_audit_logs(session: Session, limit: int = 100, entity_type: Optional[str] = None) -> list[models.AuditLog]:
    q = (
        select(models.AuditLog)
        .options(selectinload(models.AuditLog.admin))
        .order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc())
        .limit(limit)
    )
    if entity_type:
        q = q.where(models.AuditLog.entity_type == entity_type)
    return session.execute(q).scalars().all()
