from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import select, extract
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..audit import log_audit_event
from ..auth import CurrentAdmin
from ..chapters import (
    all_results_chapter_slugs,
    get_db_slug,
    get_results_chapter_info,
)
from ..schemas import ResultCreate, ResultUpdate
from ..utils import format_finish_time
from .riders import assign_rider_number

logger = logging.getLogger(__name__)

RESULT_STATUSES = ("pending", "finished", "dnf", "dns", "otl", "dq")
STATUS_LABELS = {"dnf": "DNF", "dns": "DNS", "otl": "OTL", "dq": "DQ"}
PBP_EVENT_NAME = "Paris-Brest-Paris"


def status_label(status: str) -> Optional[str]:
    """Display text for a non-finished status; None means show the finish time."""
    if status == "finished":
        return None
    return STATUS_LABELS.get(status, status.upper())


def _clean_time(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return format_finish_time(value) if value else None

# ---------------------------
# Admin
# ---------------------------

def event_results(session: Session, event_id: int) -> list[models.Result]:
    return session.execute(
        select(models.Result)
        .options(selectinload(models.Result.rider))
        .join(models.Rider, models.Rider.id == models.Result.rider_id)
        .where(models.Result.event_id == event_id)
        .order_by(models.Rider.last_name.asc(), models.Rider.first_name.asc())
    ).scalars().all()


def _new_result(
    session: Session,
    event: models.Event,
    rider: models.Rider,
    status: str,
    finish_time: Optional[str],
    team_name: Optional[str],
    note: Optional[str],
) -> models.Result:
    if status not in RESULT_STATUSES:
        raise ValueError("Invalid status")
    result = models.Result(
        event_id=event.id,
        rider_id=rider.id,
        status=status,
        finish_time=_clean_time(finish_time),
        team_name=(team_name or "").strip() or None,
        note=(note or "").strip() or None,
        season=event.event_date.year,
        distance_km=event.distance_km,
    )
    session.add(result)
    if status not in ("dns", "pending"):
        assign_rider_number(session, rider)
    return result


def create_result(session: Session, admin: CurrentAdmin, payload: ResultCreate) -> models.Result:
    event = session.get(models.Event, payload.event_id)
    if not event:
        raise ValueError("Event not found")
    rider = session.get(models.Rider, payload.rider_id)
    if not rider:
        raise ValueError("Rider not found")

    existing = session.execute(
        select(models.Result.id).where(
            models.Result.event_id == event.id,
            models.Result.rider_id == rider.id,
        )
    ).first()
    if existing:
        raise ValueError("A result already exists for this rider in this event")

    result = _new_result(session, event, rider, payload.status, payload.finish_time, payload.team_name, payload.note)
    session.commit()
    log_audit_event(
        session, admin.id, "create", "result", result.id,
        f"Added result for {rider.first_name} {rider.last_name} in {event.name}",
    )
    return result


def update_result(session: Session, admin: CurrentAdmin, result_id: int, payload: ResultUpdate) -> models.Result:
    result = session.get(models.Result, result_id)
    if not result:
        raise ValueError("Result not found")
    if payload.status is not None:
        if payload.status not in RESULT_STATUSES:
            raise ValueError("Invalid status")
        result.status = payload.status
        if payload.status not in ("dns", "pending"):
            assign_rider_number(session, result.rider)
    if payload.finish_time is not None:
        result.finish_time = _clean_time(payload.finish_time)
    if payload.team_name is not None:
        result.team_name = payload.team_name.strip() or None
    if payload.note is not None:
        result.note = payload.note.strip() or None
    session.commit()
    log_audit_event(session, admin.id, "update", "result", result.id, f"Updated result {result.id}")
    return result


def delete_result(session: Session, admin: CurrentAdmin, result_id: int) -> None:
    result = session.get(models.Result, result_id)
    if not result:
        raise ValueError("Result not found")
    session.delete(result)
    session.commit()
    log_audit_event(session, admin.id, "delete", "result", result_id, f"Deleted result {result_id}")


def create_bulk_results(session: Session, admin: CurrentAdmin, event_id: int, rows: list[ResultCreate]) -> int:
    """Insert one result per row, skipping riders that already have one. Returns the count created."""
    event = session.get(models.Event, event_id)
    if not event:
        raise ValueError("Event not found")

    taken = set(session.execute(
        select(models.Result.rider_id).where(models.Result.event_id == event_id)
    ).scalars().all())

    created = 0
    for row in rows:
        if row.rider_id in taken:
            continue
        rider = session.get(models.Rider, row.rider_id)
        if not rider:
            raise ValueError("Rider not found")
        _new_result(session, event, rider, row.status, row.finish_time, row.team_name, row.note)
        taken.add(row.rider_id)
        created += 1
        # rider numbers are read back with max() so each one has to be visible
        session.flush()

    session.commit()
    if created:
        log_audit_event(session, admin.id, "create", "result", event_id, f"Added {created} results to {event.name}")
    return created


def list_results(
    session: Session,
    season: Optional[int] = None,
    status: Optional[str] = None,
    chapter_id: Optional[int] = None,
    limit: int = 200,
) -> list[models.Result]:
    query = (
        select(models.Result)
        .options(selectinload(models.Result.rider), selectinload(models.Result.event))
        .join(models.Event, models.Event.id == models.Result.event_id)
        .order_by(models.Event.event_date.desc(), models.Result.id.asc())
    )
    if season:
        query = query.where(models.Result.season == season)
    if status:
        query = query.where(models.Result.status == status)
    if chapter_id:
        query = query.where(models.Event.chapter_id == chapter_id)
    return session.execute(query.limit(limit)).scalars().all()

# ---------------------------
# Public
# ---------------------------

@dataclass
class RiderResultRow:
    name: str
    last_name: str
    slug: str
    time: str


@dataclass
class EventResultTable:
    date: date
    name: str
    distance: int
    riders: list[RiderResultRow] = field(default_factory=list)


@dataclass
class ChapterYears:
    slug: str
    name: str
    years: list[int]


def _chapter_events_query(session: Session, url_slug: str):
    """Events belonging to a results chapter, or None when the chapter is unknown."""
    if not get_results_chapter_info(url_slug):
        return None
    db_slug = get_db_slug(url_slug)
    query = select(models.Event)
    if db_slug is None:
        # collection based, e.g. granite-anvil
        return query.where(models.Event.collection == url_slug)

    chapter = session.execute(select(models.Chapter).where(models.Chapter.slug == db_slug)).scalar_one_or_none()
    if not chapter:
        return None
    query = query.where(models.Event.chapter_id == chapter.id)
    if url_slug == "pbp":
        query = query.where(models.Event.name == PBP_EVENT_NAME)
    return query


def available_years(session: Session, url_slug: str) -> list[int]:
    query = _chapter_events_query(session, url_slug)
    if query is None:
        return []
    events = session.execute(query.options(selectinload(models.Event.results))).scalars().all()

    seasons: set[int] = set()
    for event in events:
        seasons.add(event.season)
        seasons.update(r.season for r in event.results if r.season)
    return sorted(seasons, reverse=True)


def chapter_results(session: Session, url_slug: str, year: int) -> list[EventResultTable]:
    query = _chapter_events_query(session, url_slug)
    if query is None:
        return []
    events = session.execute(
        query.where(extract("year", models.Event.event_date) == year)
        .order_by(models.Event.event_date.asc(), models.Event.id.asc())
    ).scalars().all()
    if not events:
        return []

    rows = session.execute(
        select(models.Result, models.Rider)
        .join(models.Rider, models.Rider.id == models.Result.rider_id)
        .where(
            models.Result.event_id.in_([e.id for e in events]),
            models.Result.status != "pending",
        )
    ).all()
    by_event: dict[int, list[RiderResultRow]] = {}
    for result, rider in rows:
        name = f"{rider.first_name} {rider.last_name}".strip() or "Unknown"
        time = status_label(result.status) or format_finish_time(result.finish_time)
        by_event.setdefault(result.event_id, []).append(
            RiderResultRow(name=name, last_name=rider.last_name, slug=rider.slug, time=time)
        )

    tables = []
    for event in events:
        riders = by_event.get(event.id)
        if not riders:
            continue
        riders.sort(key=lambda r: (r.last_name.lower(), r.name.lower()))
        tables.append(EventResultTable(event.event_date, event.name, event.distance_km, riders))
    return tables


def chapters_with_years(session: Session) -> list[ChapterYears]:
    out = []
    for slug in all_results_chapter_slugs():
        info = get_results_chapter_info(slug)
        years = available_years(session, slug)
        if info and years:
            out.append(ChapterYears(slug=slug, name=info.name, years=years))
    return out
