from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models
from ..utils import DEFAULT_START_TIME, club_today


@dataclass
class MyUpcomingRide:
    slug: str
    name: str
    date: date
    distance: int
    start_time: str
    start_location: str
    chapter_name: str


def my_upcoming_rides(session: Session, email: Optional[str], today: Optional[date] = None) -> list[MyUpcomingRide]:
    """Registered, still scheduled rides for ``email``. Unknown addresses simply get nothing back."""
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required")

    rider_id = session.execute(select(models.Rider.id).where(models.Rider.email == email)).scalar_one_or_none()
    if rider_id is None:
        return []

    today = today or club_today()
    rows = session.execute(
        select(models.Event, models.Chapter.name)
        .join(models.Registration, models.Registration.event_id == models.Event.id)
        .outerjoin(models.Chapter, models.Chapter.id == models.Event.chapter_id)
        .where(
            models.Registration.rider_id == rider_id,
            models.Registration.status == "registered",
            models.Event.status == "scheduled",
            models.Event.event_date >= today,
        )
        .order_by(models.Event.event_date.asc(), models.Event.start_time.asc())
    ).all()
    return [
        MyUpcomingRide(
            slug=e.slug,
            name=e.name,
            date=e.event_date,
            distance=e.distance_km,
            start_time=e.start_time or DEFAULT_START_TIME,
            start_location=e.start_location or "",
            chapter_name=chapter_name or "",
        )
        for e, chapter_name in rows
    ]
