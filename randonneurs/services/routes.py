from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, func, update
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..audit import log_audit_event
from ..auth import CurrentAdmin
from ..chapters import get_db_slug
from ..schemas import RouteCreate
from ..utils import create_slug

logger = logging.getLogger(__name__)

RWGPS_ROUTE_URL = "https://ridewithgps.com/routes/{}"

_RWGPS_PATTERNS = (
    re.compile(r"ridewithgps\.com/routes/(\d+)"),
    re.compile(r"ridewithgps\.com/ambassador_routes/(\d+)"),
    re.compile(r"ridewithgps\.com/trips/(\d+)"),
)

# (label, min km, max km) in display order
DISTANCE_CATEGORIES = (
    ("Populaires", 0, 199),
    ("200 km", 200, 299),
    ("300 km", 300, 399),
    ("400 km", 400, 599),
    ("600 km", 600, 999),
    ("1000+ km", 1000, None),
)


def extract_rwgps_id(value: Optional[str]) -> Optional[str]:
    """Accepts a bare id or any RideWithGPS route/trip URL."""
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if trimmed.isdigit():
        return trimmed
    for pattern in _RWGPS_PATTERNS:
        m = pattern.search(trimmed)
        if m:
            return m.group(1)
    return trimmed


def rwgps_url(rwgps_id: str) -> str:
    return RWGPS_ROUTE_URL.format(rwgps_id)

# ---------------------------
# Public
# ---------------------------

@dataclass
class PublicRoute:
    name: str
    distance: int
    url: str


@dataclass
class RouteCollection:
    name: str
    routes: list[PublicRoute] = field(default_factory=list)


def _category_for(distance: int) -> str:
    for label, lo, hi in DISTANCE_CATEGORIES:
        if distance >= lo and (hi is None or distance <= hi):
            return label
    return "Populaires"


def routes_by_chapter(session: Session, url_slug: str) -> list[RouteCollection]:
    db_slug = get_db_slug(url_slug)
    if not db_slug:
        return []
    routes = session.execute(
        select(models.Route)
        .join(models.Chapter, models.Chapter.id == models.Route.chapter_id)
        .where(
            models.Chapter.slug == db_slug,
            models.Route.is_active.is_(True),
            models.Route.rwgps_id.is_not(None),
        )
    ).scalars().all()

    grouped: dict[str, list[models.Route]] = {}
    for r in routes:
        if not r.distance_km or not r.rwgps_id:
            continue
        grouped.setdefault(_category_for(r.distance_km), []).append(r)

    collections = []
    for label, _, _ in DISTANCE_CATEGORIES:
        members = sorted(grouped.get(label, []), key=lambda r: r.name.lower())
        if members:
            collections.append(RouteCollection(
                name=label,
                routes=[PublicRoute(r.name, r.distance_km, rwgps_url(r.rwgps_id)) for r in members],
            ))
    return collections


def active_routes(session: Session) -> list[models.Route]:
    return session.execute(
        select(models.Route)
        .options(selectinload(models.Route.chapter))
        .where(models.Route.is_active.is_(True))
        .order_by(models.Route.name.asc())
    ).scalars().all()

# ---------------------------
# Admin
# ---------------------------

def list_routes(
    session: Session,
    chapter_id: Optional[int] = None,
    active: Optional[bool] = None,
    q: Optional[str] = None,
) -> list[models.Route]:
    query = select(models.Route).options(selectinload(models.Route.chapter)).order_by(models.Route.name.asc())
    if chapter_id:
        query = query.where(models.Route.chapter_id == chapter_id)
    if active is not None:
        query = query.where(models.Route.is_active.is_(active))
    if q:
        query = query.where(models.Route.name.ilike(f"%{q.strip()}%"))
    return session.execute(query).scalars().all()


def get_route(session: Session, route_id: int) -> Optional[models.Route]:
    return session.get(models.Route, route_id)


def route_event_counts(session: Session, route_ids: list[int]) -> dict[int, int]:
    if not route_ids:
        return {}
    rows = session.execute(
        select(models.Event.route_id, func.count(models.Event.id))
        .where(models.Event.route_id.in_(route_ids))
        .group_by(models.Event.route_id)
    ).all()
    counts = {rid: 0 for rid in route_ids}
    counts.update({rid: n for rid, n in rows})
    return counts


def _slug_taken(session: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
    q = select(models.Route.id).where(models.Route.slug == slug)
    if exclude_id is not None:
        q = q.where(models.Route.id != exclude_id)
    return session.execute(q).first() is not None


def _apply(route: models.Route, payload: RouteCreate, slug: str) -> None:
    route.name = payload.name.strip()
    route.slug = slug
    route.chapter_id = payload.chapter_id or None
    route.distance_km = payload.distance_km or None
    route.collection = payload.collection or None
    route.description = payload.description or None
    route.rwgps_id = extract_rwgps_id(payload.rwgps_id)
    route.cue_sheet_url = payload.cue_sheet_url or None
    route.notes = payload.notes or None
    route.is_active = payload.is_active


def create_route(session: Session, admin: CurrentAdmin, payload: RouteCreate) -> models.Route:
    if not (payload.name or "").strip():
        raise ValueError("Route name is required")
    slug = (payload.slug or "").strip() or create_slug(payload.name)
    if _slug_taken(session, slug):
        raise ValueError("A route with this slug already exists")

    r = models.Route()
    _apply(r, payload, slug)
    session.add(r)
    session.commit()
    log_audit_event(session, admin.id, "create", "route", r.id, f"Created route: {r.name}")
    return r


def update_route(session: Session, admin: CurrentAdmin, route_id: int, payload: RouteCreate) -> models.Route:
    r = session.get(models.Route, route_id)
    if not r:
        raise ValueError("Route not found")
    if not (payload.name or "").strip():
        raise ValueError("Route name is required")
    slug = (payload.slug or "").strip() or r.slug
    if _slug_taken(session, slug, exclude_id=route_id):
        raise ValueError("A route with this slug already exists")

    _apply(r, payload, slug)
    session.commit()
    log_audit_event(session, admin.id, "update", "route", r.id, f"Updated route: {r.name}")
    return r


def delete_route(session: Session, admin: CurrentAdmin, route_id: int) -> None:
    r = session.get(models.Route, route_id)
    if not r:
        raise ValueError("Route not found")
    used = session.execute(select(models.Event.id).where(models.Event.route_id == route_id).limit(1)).first()
    if used:
        raise ValueError("Cannot delete route that is used by events. Mark it as inactive instead.")

    name = r.name
    session.delete(r)
    session.commit()
    log_audit_event(session, admin.id, "delete", "route", route_id, f"Deleted route: {name}")


def toggle_route_active(session: Session, admin: CurrentAdmin, route_id: int, is_active: bool) -> models.Route:
    r = session.get(models.Route, route_id)
    if not r:
        raise ValueError("Route not found")
    r.is_active = is_active
    session.commit()
    state = "active" if is_active else "inactive"
    log_audit_event(session, admin.id, "update", "route", r.id, f"Marked route {r.name} as {state}")
    return r


@dataclass
class RouteMergeSummary:
    updated_events: int
    deleted_routes: int


def merge_routes(
    session: Session,
    admin: CurrentAdmin,
    target_route_id: int,
    source_route_ids: list[int],
    route_data: Optional[RouteCreate] = None,
) -> RouteMergeSummary:
    """Point every event of the selected routes at the target, then drop the others."""
    ids = list(dict.fromkeys(source_route_ids))
    if len(ids) < 2:
        raise ValueError("At least 2 routes are required to merge")
    if target_route_id not in ids:
        raise ValueError("Target route must be one of the selected routes")
    if route_data is not None and not (route_data.name or "").strip():
        raise ValueError("Route name is required")

    target = session.get(models.Route, target_route_id)
    if not target:
        raise ValueError("Route not found")
    others = [rid for rid in ids if rid != target_route_id]

    updated = session.execute(
        update(models.Event).where(models.Event.route_id.in_(others)).values(route_id=target_route_id)
    ).rowcount or 0

    deleted = 0
    for rid in others:
        r = session.get(models.Route, rid)
        if r:
            session.delete(r)
            deleted += 1
    session.flush()

    if route_data is not None:
        slug = (route_data.slug or "").strip() or target.slug
        if _slug_taken(session, slug, exclude_id=target_route_id):
            session.rollback()
            raise ValueError("A route with this slug already exists")
        _apply(target, route_data, slug)

    session.commit()
    log_audit_event(
        session, admin.id, "merge", "route", target_route_id,
        f"Merged {deleted} routes into {target.name} ({updated} events updated)",
    )
    return RouteMergeSummary(updated_events=updated, deleted_routes=deleted)
