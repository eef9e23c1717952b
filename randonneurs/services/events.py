from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from email.message import EmailMessage
from typing import Callable, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session, selectinload

from .. import models, mailer, email_templates
from ..audit import log_audit_event
from ..auth import CurrentAdmin
from ..chapters import get_db_slug, url_slug_from_db_slug
from ..completion import create_pending_results
from ..schemas import EventCreate
from ..settings import settings
from ..utils import (
    club_today,
    create_slug,
    format_event_date,
    format_event_type,
    parse_date_yyyy_mm_dd,
    DEFAULT_START_TIME,
)

logger = logging.getLogger(__name__)

EVENT_TYPES = ("brevet", "populaire", "fleche", "permanent")
EVENT_STATUSES = ("scheduled", "completed", "cancelled", "submitted")

_START_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")

# ---------------------------
# Public views
# ---------------------------

@dataclass
class EventCard:
    slug: str
    date: date
    name: str
    type: str
    distance: int
    start_location: str
    start_time: str
    registered_count: int


@dataclass
class EventDetails:
    id: int
    slug: str
    name: str
    date: date
    start_time: str
    start_location: str
    distance: int
    type: str
    status: str
    chapter_name: str
    chapter_slug: str
    rwgps_id: Optional[str]
    route_slug: Optional[str]
    cue_sheet_url: Optional[str]
    description: Optional[str]
    image_url: Optional[str]


def _registration_counts(session: Session, event_ids: list[int]) -> dict[int, int]:
    if not event_ids:
        return {}
    rows = session.execute(
        select(models.Registration.event_id, func.count(models.Registration.id))
        .where(models.Registration.event_id.in_(event_ids), models.Registration.status == "registered")
        .group_by(models.Registration.event_id)
    ).all()
    return {event_id: count for event_id, count in rows}


def _to_cards(session: Session, events: list[models.Event]) -> list[EventCard]:
    counts = _registration_counts(session, [e.id for e in events])
    return [
        EventCard(
            slug=e.slug,
            date=e.event_date,
            name=e.name,
            type=format_event_type(e.event_type),
            distance=e.distance_km,
            start_location=e.start_location or "",
            start_time=e.start_time or DEFAULT_START_TIME,
            registered_count=counts.get(e.id, 0),
        )
        for e in events
    ]


def upcoming_events_by_chapter(session: Session, url_slug: str, today: Optional[date] = None) -> list[EventCard]:
    db_slug = get_db_slug(url_slug)
    if not db_slug:
        return []
    today = today or club_today()
    events = session.execute(
        select(models.Event)
        .join(models.Chapter, models.Chapter.id == models.Event.chapter_id)
        .where(
            models.Chapter.slug == db_slug,
            models.Event.status == "scheduled",
            models.Event.event_type != "permanent",
            models.Event.event_date >= today,
        )
        .order_by(models.Event.event_date.asc(), models.Event.distance_km.desc())
    ).scalars().all()
    return _to_cards(session, events)


def upcoming_permanents(session: Session, today: Optional[date] = None) -> list[EventCard]:
    today = today or club_today()
    events = session.execute(
        select(models.Event)
        .where(
            models.Event.event_type == "permanent",
            models.Event.status == "scheduled",
            models.Event.event_date >= today,
        )
        .order_by(models.Event.event_date.asc(), models.Event.distance_km.desc())
    ).scalars().all()
    return _to_cards(session, events)


def upcoming_events(session: Session, limit: int = 6, today: Optional[date] = None) -> list[EventCard]:
    today = today or club_today()
    events = session.execute(
        select(models.Event)
        .where(
            models.Event.status == "scheduled",
            models.Event.event_type != "permanent",
            models.Event.event_date >= today,
        )
        .order_by(models.Event.event_date.asc(), models.Event.distance_km.desc())
        .limit(limit)
    ).scalars().all()
    return _to_cards(session, events)


def get_event(session: Session, event_id: int) -> Optional[models.Event]:
    return session.get(models.Event, event_id)


def get_event_by_slug(session: Session, slug: str) -> Optional[EventDetails]:
    e = session.execute(
        select(models.Event)
        .options(selectinload(models.Event.chapter), selectinload(models.Event.route))
        .where(models.Event.slug == slug)
    ).scalar_one_or_none()
    if not e:
        return None
    return EventDetails(
        id=e.id,
        slug=e.slug,
        name=e.name,
        date=e.event_date,
        start_time=e.start_time or DEFAULT_START_TIME,
        start_location=e.start_location or "",
        distance=e.distance_km,
        type=format_event_type(e.event_type),
        status=e.status,
        chapter_name=e.chapter.name if e.chapter else "",
        chapter_slug=url_slug_from_db_slug(e.chapter.slug) if e.chapter else "",
        rwgps_id=e.route.rwgps_id if e.route else None,
        route_slug=e.route.slug if e.route else None,
        cue_sheet_url=e.route.cue_sheet_url if e.route else None,
        description=e.description or None,
        image_url=e.image_url or None,
    )


def registered_riders(session: Session, event_id: int) -> list[str]:
    """Display names of registered riders; "First L." or "Anonymous"."""
    rows = session.execute(
        select(models.Registration, models.Rider)
        .join(models.Rider, models.Rider.id == models.Registration.rider_id)
        .where(models.Registration.event_id == event_id, models.Registration.status == "registered")
        .order_by(models.Registration.registered_at.asc())
    ).all()
    names = []
    for reg, rider in rows:
        if not reg.share_registration:
            names.append("Anonymous")
            continue
        initial = f"{rider.last_name[0]}." if rider.last_name else ""
        names.append(f"{rider.first_name or ''} {initial}".strip())
    return names

# ---------------------------
# Admin queries
# ---------------------------

@dataclass
class AdminEventRow:
    event: models.Event
    registration_count: int
    result_count: int


def admin_event_list(
    session: Session,
    chapter_id: Optional[int] = None,
    status: Optional[str] = None,
    season: Optional[int] = None,
) -> list[AdminEventRow]:
    q = select(models.Event).options(selectinload(models.Event.chapter)).order_by(models.Event.event_date.desc())
    if chapter_id:
        q = q.where(models.Event.chapter_id == chapter_id)
    if status:
        q = q.where(models.Event.status == status)
    if season:
        q = q.where(models.Event.event_date >= date(season, 1, 1), models.Event.event_date <= date(season, 12, 31))
    events = session.execute(q).scalars().all()

    ids = [e.id for e in events]
    reg_counts = _registration_counts(session, ids)
    result_counts: dict[int, int] = {}
    if ids:
        result_counts = dict(session.execute(
            select(models.Result.event_id, func.count(models.Result.id))
            .where(models.Result.event_id.in_(ids))
            .group_by(models.Result.event_id)
        ).all())
    return [AdminEventRow(e, reg_counts.get(e.id, 0), result_counts.get(e.id, 0)) for e in events]


def event_registrations(session: Session, event_id: int) -> list[models.Registration]:
    return session.execute(
        select(models.Registration)
        .options(selectinload(models.Registration.rider))
        .where(models.Registration.event_id == event_id)
        .order_by(models.Registration.registered_at.asc())
    ).scalars().all()

# ---------------------------
# Mutations
# ---------------------------

def _validate(session: Session, payload: EventCreate) -> tuple[str, date, Optional[str]]:
    name = (payload.name or "").strip()
    if not name:
        raise ValueError("Event name is required")
    if not payload.chapter_id:
        raise ValueError("Chapter is required")
    if not payload.event_date:
        raise ValueError("Event date is required")
    if not payload.distance_km or payload.distance_km <= 0:
        raise ValueError("Distance must be greater than 0")
    if payload.event_type not in EVENT_TYPES:
        raise ValueError("Invalid event type")
    if not session.get(models.Chapter, payload.chapter_id):
        raise ValueError("Chapter not found")
    if payload.route_id and not session.get(models.Route, payload.route_id):
        raise ValueError("Route not found")

    start_time = (payload.start_time or "").strip() or None
    if start_time and not _START_TIME_RE.match(start_time):
        raise ValueError("Start time must be HH:MM")
    return name, parse_date_yyyy_mm_dd(payload.event_date), start_time


def event_slug(name: str, distance_km: int, event_date: date) -> str:
    return f"{create_slug(name)}-{distance_km}km-{event_date.isoformat()}"


def create_event(session: Session, admin: CurrentAdmin, payload: EventCreate) -> models.Event:
    name, event_date, start_time = _validate(session, payload)
    slug = event_slug(name, payload.distance_km, event_date)
    if session.execute(select(models.Event.id).where(models.Event.slug == slug)).first():
        raise ValueError("An event with this name, distance and date already exists")

    e = models.Event(
        slug=slug,
        name=name,
        chapter_id=payload.chapter_id,
        route_id=payload.route_id or None,
        event_type=payload.event_type,
        distance_km=payload.distance_km,
        event_date=event_date,
        start_time=start_time,
        start_location=(payload.start_location or "").strip() or None,
        description=(payload.description or "").strip() or None,
        image_url=payload.image_url or None,
        collection=payload.collection or None,
        status="scheduled",
    )
    session.add(e)
    session.commit()
    log_audit_event(session, admin.id, "create", "event", e.id, f"Created event: {name} ({event_date.isoformat()})")
    return e


def update_event(session: Session, admin: CurrentAdmin, event_id: int, payload: EventCreate) -> models.Event:
    e = session.get(models.Event, event_id)
    if not e:
        raise ValueError("Event not found")
    name, event_date, start_time = _validate(session, payload)

    e.name = name
    e.chapter_id = payload.chapter_id
    e.route_id = payload.route_id or None
    e.event_type = payload.event_type
    e.distance_km = payload.distance_km
    e.event_date = event_date
    e.start_time = start_time
    e.start_location = (payload.start_location or "").strip() or None
    e.description = (payload.description or "").strip() or None
    e.image_url = payload.image_url or None
    e.collection = payload.collection or None
    session.commit()
    log_audit_event(session, admin.id, "update", "event", e.id, f"Updated event: {name}")
    return e


def delete_event(session: Session, admin: CurrentAdmin, event_id: int, today: Optional[date] = None) -> None:
    e = session.get(models.Event, event_id)
    if not e:
        raise ValueError("Event not found")
    today = today or club_today()
    if e.event_date < today:
        raise ValueError("Cannot delete past events")

    name = e.name
    session.delete(e)  # registrations and results cascade
    session.commit()
    log_audit_event(session, admin.id, "delete", "event", event_id, f"Deleted event: {name}")


def update_event_status(
    session: Session,
    admin: CurrentAdmin,
    event_id: int,
    status: str,
    send: Callable[[EmailMessage], bool] = mailer.send_quietly,
) -> models.Event:
    if status not in EVENT_STATUSES:
        raise ValueError("Invalid status")
    e = session.get(models.Event, event_id)
    if not e:
        raise ValueError("Event not found")

    previous = e.status
    if status == "cancelled":
        session.execute(delete(models.Result).where(models.Result.event_id == event_id))
        session.expire(e, ["results"])
    e.status = status
    session.commit()
    log_audit_event(
        session, admin.id, "status_change", "event", e.id,
        f"Changed status of {e.name} from {previous} to {status}",
    )

    if status == "completed" and previous == "scheduled":
        outcome = create_pending_results(session, e, send=send)
        for err in outcome.errors:
            logger.error("Completing %s: %s", e.name, err)
    return e


def submit_event_results(
    session: Session,
    admin: CurrentAdmin,
    event_id: int,
    send: Callable[[EmailMessage], bool] = mailer.send_message,
) -> None:
    """Email the event's results to the VP of administration and lock the event."""
    e = session.execute(
        select(models.Event).options(selectinload(models.Event.chapter)).where(models.Event.id == event_id)
    ).scalar_one_or_none()
    if not e:
        raise ValueError("Event not found")
    if e.status == "submitted":
        raise ValueError("Results have already been submitted")
    if e.status != "completed":
        raise ValueError("Only completed events can have results submitted")

    rows = session.execute(
        select(models.Result, models.Rider)
        .join(models.Rider, models.Rider.id == models.Result.rider_id)
        .where(models.Result.event_id == event_id)
        .order_by(models.Result.finish_time.is_(None), models.Result.finish_time.asc())
    ).all()

    lines = []
    for r, rider in rows:
        line = f"{rider.first_name} {rider.last_name}: {r.status.upper()}"
        if r.status == "finished":
            line += f" ({r.finish_time or '-'})"
        if r.note:
            line += f" | Note: {r.note}"
        lines.append(line)

    rendered = email_templates.vp_results_submission(
        event_name=e.name,
        event_date=format_event_date(e.event_date),
        chapter_name=e.chapter.name if e.chapter else "Unknown",
        admin_name=admin.name,
        admin_email=admin.email,
        result_lines=lines,
    )
    msg = mailer.build_message(
        to=settings.VP_ADMIN_EMAIL,
        subject=rendered.subject,
        text=rendered.text,
        reply_to=admin.email,
    )
    try:
        send(msg)
    except Exception:
        logger.exception("Failed to send results email for event %s", event_id)
        raise ValueError("Failed to send email. Please try again.")

    e.status = "submitted"
    session.commit()
    log_audit_event(session, admin.id, "submit", "event", e.id, f"Submitted results for {e.name} ({len(rows)} riders)")
