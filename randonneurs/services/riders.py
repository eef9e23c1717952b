from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import select, func, or_, exists
from sqlalchemy.orm import Session

from .. import models
from ..audit import log_audit_event
from ..auth import CurrentAdmin
from ..chapters import url_slug_from_db_slug
from ..schemas import RiderCreate, RiderMergeData
from ..utils import create_slug, format_finish_time

logger = logging.getLogger(__name__)

GENDERS = ("M", "F", "X")
SEARCH_LIMIT = 20

_BASE36 = string.ascii_lowercase + string.digits


def random_suffix(n: int = 6) -> str:
    return "".join(random.choice(_BASE36) for _ in range(n))


def normalize_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip().lower()
    return email or None


def parse_gender(value: Optional[str]) -> Optional[str]:
    return value if value in GENDERS else None


def unique_rider_slug(session: Session, base: str) -> str:
    base = create_slug(base) or "rider"
    while True:
        slug = f"{base}-{random_suffix()}"
        if not session.execute(select(models.Rider.id).where(models.Rider.slug == slug)).first():
            return slug


def get_rider(session: Session, rider_id: int) -> Optional[models.Rider]:
    return session.get(models.Rider, rider_id)


def get_rider_by_email(session: Session, email: str) -> Optional[models.Rider]:
    return session.execute(
        select(models.Rider).where(func.lower(models.Rider.email) == email.lower())
    ).scalar_one_or_none()

# ---------------------------
# Admin
# ---------------------------

def search_riders(session: Session, q: str, limit: int = SEARCH_LIMIT) -> list[models.Rider]:
    """Every whitespace separated term must appear in the full name or the email."""
    q = (q or "").strip()
    if len(q) < 2:
        return []
    query = select(models.Rider)
    for term in q.split():
        pattern = f"%{term}%"
        query = query.where(or_(models.Rider.full_name.ilike(pattern), models.Rider.email.ilike(pattern)))
    query = query.order_by(models.Rider.last_name.asc(), models.Rider.first_name.asc()).limit(limit)
    return session.execute(query).scalars().all()


def list_riders(session: Session, q: Optional[str] = None, limit: int = 200) -> list[models.Rider]:
    if q and q.strip():
        return search_riders(session, q, limit=limit)
    return session.execute(
        select(models.Rider).order_by(models.Rider.last_name.asc(), models.Rider.first_name.asc()).limit(limit)
    ).scalars().all()


def create_rider(session: Session, admin: CurrentAdmin, payload: RiderCreate) -> models.Rider:
    first = (payload.first_name or "").strip()
    last = (payload.last_name or "").strip()
    if not first or not last:
        raise ValueError("First name and last name are required")

    email = normalize_email(payload.email)
    if email and get_rider_by_email(session, email):
        raise ValueError("A rider with this email already exists")

    rider = models.Rider(
        slug=unique_rider_slug(session, f"{first} {last}"),
        first_name=first,
        last_name=last,
        email=email,
        gender=parse_gender(payload.gender),
    )
    session.add(rider)
    session.commit()
    log_audit_event(session, admin.id, "create", "rider", rider.id, f"Created rider: {first} {last}")
    return rider


def update_rider(session: Session, admin: CurrentAdmin, rider_id: int, payload: RiderCreate) -> models.Rider:
    rider = session.get(models.Rider, rider_id)
    if not rider:
        raise ValueError("Rider not found")
    first = (payload.first_name or "").strip()
    last = (payload.last_name or "").strip()
    if not first or not last:
        raise ValueError("First name and last name are required")

    email = normalize_email(payload.email)
    if email:
        other = get_rider_by_email(session, email)
        if other and other.id != rider_id:
            raise ValueError("A rider with this email already exists")

    rider.first_name = first
    rider.last_name = last
    rider.email = email
    rider.gender = parse_gender(payload.gender)
    session.commit()
    log_audit_event(session, admin.id, "update", "rider", rider.id, f"Updated rider: {first} {last}")
    return rider


@dataclass
class MergeSummary:
    registrations: int
    results: int
    deleted: int


def merge_riders(
    session: Session,
    admin: CurrentAdmin,
    target_id: int,
    rider_ids: list[int],
    rider_data: Optional[RiderMergeData] = None,
) -> MergeSummary:
    """Fold duplicate riders into ``target_id`` and delete the rest."""
    ids = list(dict.fromkeys(rider_ids))
    if len(ids) < 2:
        raise ValueError("At least 2 riders are required to merge")
    if target_id not in ids:
        raise ValueError("Target rider must be one of the selected riders")

    target = session.get(models.Rider, target_id)
    if not target:
        raise ValueError("Rider not found")
    sources = [rid for rid in ids if rid != target_id]

    # the target keeps its own row when both riders entered the same event
    moved_regs = 0
    for reg in session.execute(
        select(models.Registration).where(models.Registration.rider_id.in_(sources))
    ).scalars().all():
        clash = session.execute(
            select(models.Registration.id).where(
                models.Registration.rider_id == target_id,
                models.Registration.event_id == reg.event_id,
            )
        ).first()
        if clash:
            session.delete(reg)
        else:
            reg.rider_id = target_id
            moved_regs += 1
        session.flush()

    moved_results = 0
    for res in session.execute(
        select(models.Result).where(models.Result.rider_id.in_(sources))
    ).scalars().all():
        clash = session.execute(
            select(models.Result.id).where(
                models.Result.rider_id == target_id,
                models.Result.event_id == res.event_id,
            )
        ).first()
        if clash:
            session.delete(res)
        else:
            res.rider_id = target_id
            moved_results += 1
        session.flush()

    target_seasons = set(session.execute(
        select(models.Membership.season).where(models.Membership.rider_id == target_id)
    ).scalars().all())
    for m in session.execute(
        select(models.Membership).where(models.Membership.rider_id.in_(sources))
    ).scalars().all():
        if m.season in target_seasons:
            session.delete(m)
        else:
            m.rider_id = target_id
            target_seasons.add(m.season)
    session.flush()

    deleted = 0
    for rid in sources:
        rider = session.get(models.Rider, rid)
        if rider:
            session.expire(rider)
            session.delete(rider)
            deleted += 1
    session.flush()

    if rider_data is not None:
        if rider_data.first_name and rider_data.first_name.strip():
            target.first_name = rider_data.first_name.strip()
        if rider_data.last_name and rider_data.last_name.strip():
            target.last_name = rider_data.last_name.strip()
        email = normalize_email(rider_data.email)
        if email:
            other = get_rider_by_email(session, email)
            if other and other.id != target_id:
                session.rollback()
                raise ValueError("A rider with this email already exists")
        target.email = email
        target.gender = parse_gender(rider_data.gender)

    session.commit()
    log_audit_event(
        session, admin.id, "merge", "rider", target_id,
        f"Merged {deleted} riders into {target.first_name} {target.last_name}",
    )
    return MergeSummary(registrations=moved_regs, results=moved_results, deleted=deleted)


@dataclass
class RiderCounts:
    registrations: int = 0
    results: int = 0


def rider_counts(session: Session, rider_ids: list[int]) -> dict[int, RiderCounts]:
    counts = {rid: RiderCounts() for rid in rider_ids}
    if not rider_ids:
        return counts
    for rid, n in session.execute(
        select(models.Registration.rider_id, func.count(models.Registration.id))
        .where(models.Registration.rider_id.in_(rider_ids))
        .group_by(models.Registration.rider_id)
    ).all():
        counts[rid].registrations = n
    for rid, n in session.execute(
        select(models.Result.rider_id, func.count(models.Result.id))
        .where(models.Result.rider_id.in_(rider_ids))
        .group_by(models.Result.rider_id)
    ).all():
        counts[rid].results = n
    return counts


def assign_rider_number(session: Session, rider: models.Rider) -> Optional[int]:
    """Give the rider the next club number the first time they have a real result."""
    if rider.rider_number is not None:
        return rider.rider_number
    current = session.execute(select(func.max(models.Rider.rider_number))).scalar()
    rider.rider_number = (current or 0) + 1
    return rider.rider_number

# ---------------------------
# Public
# ---------------------------

@dataclass
class RiderListItem:
    slug: str
    first_name: str
    last_name: str


def all_riders(session: Session) -> list[RiderListItem]:
    has_result = exists().where(
        models.Result.rider_id == models.Rider.id,
        models.Result.status != "pending",
    )
    rows = session.execute(
        select(models.Rider.slug, models.Rider.first_name, models.Rider.last_name)
        .where(has_result)
        .order_by(models.Rider.last_name.asc(), models.Rider.first_name.asc())
    ).all()
    return [RiderListItem(slug, first, last) for slug, first, last in rows]


def get_rider_by_slug(session: Session, slug: str) -> Optional[models.Rider]:
    return session.execute(select(models.Rider).where(models.Rider.slug == slug)).scalar_one_or_none()


@dataclass
class RiderEventResult:
    date: date
    event_name: str
    distance_km: int
    time: str
    status: str
    note: Optional[str]
    chapter_slug: Optional[str]


@dataclass
class RiderYearResults:
    year: int
    completed_count: int
    total_distance_km: int
    results: list[RiderEventResult] = field(default_factory=list)


def rider_results(session: Session, slug: str) -> list[RiderYearResults]:
    rider = get_rider_by_slug(session, slug)
    if not rider:
        return []

    rows = session.execute(
        select(models.Result, models.Event, models.Chapter.slug)
        .join(models.Event, models.Event.id == models.Result.event_id)
        .outerjoin(models.Chapter, models.Chapter.id == models.Event.chapter_id)
        .where(models.Result.rider_id == rider.id, models.Result.status != "pending")
    ).all()

    by_year: dict[int, list[RiderEventResult]] = {}
    for result, event, chapter_slug in rows:
        year = result.season or event.event_date.year
        by_year.setdefault(year, []).append(RiderEventResult(
            date=event.event_date,
            event_name=event.name,
            distance_km=result.distance_km or event.distance_km,
            time=format_finish_time(result.finish_time),
            status=result.status,
            note=result.note,
            chapter_slug=url_slug_from_db_slug(chapter_slug) if chapter_slug else None,
        ))

    seasons = []
    for year in sorted(by_year, reverse=True):
        rides = sorted(by_year[year], key=lambda r: r.date)
        finished = [r for r in rides if r.status == "finished"]
        seasons.append(RiderYearResults(
            year=year,
            completed_count=len(finished),
            total_distance_km=sum(r.distance_km for r in finished),
            results=rides,
        ))
    return seasons
