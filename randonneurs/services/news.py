from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models
from ..audit import log_audit_event
from ..auth import CurrentAdmin
from ..schemas import NewsCreate

logger = logging.getLogger(__name__)


def published_news(session: Session, limit: Optional[int] = None) -> list[models.NewsItem]:
    q = (
        select(models.NewsItem)
        .where(models.NewsItem.is_published.is_(True))
        .order_by(models.NewsItem.created_at.desc(), models.NewsItem.id.desc())
    )
    if limit:
        q = q.limit(limit)
    return session.execute(q).scalars().all()


def all_news(session: Session) -> list[models.NewsItem]:
    return session.execute(
        select(models.NewsItem).order_by(models.NewsItem.created_at.desc(), models.NewsItem.id.desc())
    ).scalars().all()


def get_news_item(session: Session, news_id: int) -> Optional[models.NewsItem]:
    return session.get(models.NewsItem, news_id)


def _clean(payload: NewsCreate) -> tuple[str, Optional[str], str]:
    title = (payload.title or "").strip()
    body = (payload.body or "").strip()
    if not title or not body:
        raise ValueError("Title and body are required")
    return title, (payload.teaser or "").strip() or None, body


def create_news_item(session: Session, admin: CurrentAdmin, payload: NewsCreate) -> models.NewsItem:
    title, teaser, body = _clean(payload)
    item = models.NewsItem(
        title=title,
        teaser=teaser,
        body=body,
        is_published=payload.is_published,
        created_by=admin.id,
    )
    session.add(item)
    session.commit()
    log_audit_event(session, admin.id, "create", "news", item.id, f"Created news item: {title}")
    return item


def update_news_item(session: Session, admin: CurrentAdmin, news_id: int, payload: NewsCreate) -> models.NewsItem:
    item = session.get(models.NewsItem, news_id)
    if not item:
        raise ValueError("News item not found")
    item.title, item.teaser, item.body = _clean(payload)
    item.is_published = payload.is_published
    session.commit()
    log_audit_event(session, admin.id, "update", "news", item.id, f"Updated news item: {item.title}")
    return item


def delete_news_item(session: Session, admin: CurrentAdmin, news_id: int) -> None:
    item = session.get(models.NewsItem, news_id)
    if not item:
        raise ValueError("News item not found")
    title = item.title
    session.delete(item)
    session.commit()
    log_audit_event(session, admin.id, "delete", "news", news_id, f"Deleted news item: {title}")
