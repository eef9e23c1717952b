"""
Automatic completion of events once their last control has closed.

An event closes at its date plus start time (08:00 when unset) plus the
BRM closing time for its distance.  Completing an event creates a pending
result for every registered rider who has an email address, and emails
each of them a personal link to report their ride.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.message import EmailMessage
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import models, mailer, email_templates
from .brm import close_hours
from .settings import settings
from .utils import club_now, parse_start_time

logger = logging.getLogger(__name__)


@dataclass
class PendingResultsOutcome:
    results_created: int = 0
    emails_sent: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class CompletionReport:
    checked: int = 0
    completed: int = 0
    completed_events: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        out = {
            "success": True,
            "checked": self.checked,
            "completed": self.completed,
            "completedEvents": self.completed_events,
        }
        if self.errors:
            out["errors"] = self.errors
        return out


def closing_time(event: models.Event) -> datetime:
    hour, minute = parse_start_time(event.start_time)
    start = datetime(event.event_date.year, event.event_date.month, event.event_date.day, hour, minute)
    return start + timedelta(minutes=close_hours(event.distance_km) * 60)


def submission_url(token: str) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/results/submit/{token}"


def create_pending_results(
    session: Session,
    event: models.Event,
    send: Callable[[EmailMessage], bool] = mailer.send_quietly,
) -> PendingResultsOutcome:
    outcome = PendingResultsOutcome()

    registrations = session.execute(
        select(models.Registration)
        .options(selectinload(models.Registration.rider))
        .where(models.Registration.event_id == event.id, models.Registration.status == "registered")
    ).scalars().all()
    existing = set(session.execute(
        select(models.Result.rider_id).where(models.Result.event_id == event.id)
    ).scalars().all())

    created: list[tuple[models.Rider, str]] = []
    for reg in registrations:
        rider = reg.rider
        if rider.id in existing or not rider.email:
            continue
        token = str(uuid.uuid4())
        session.add(models.Result(
            event_id=event.id,
            rider_id=rider.id,
            status="pending",
            season=event.event_date.year,
            distance_km=event.distance_km,
            submission_token=token,
        ))
        created.append((rider, token))
    session.commit()
    outcome.results_created = len(created)

    chapter_name = event.chapter.name if event.chapter else "Randonneurs Ontario"
    event_date = f"{event.event_date.strftime('%B')} {event.event_date.day}, {event.event_date.year}"
    for rider, token in created:
        rendered = email_templates.result_submission_request(
            rider_name=f"{rider.first_name} {rider.last_name}",
            event_name=event.name,
            event_date=event_date,
            event_distance=event.distance_km,
            chapter_name=chapter_name,
            submission_url=submission_url(token),
        )
        msg = mailer.build_message(rider.email, rendered.subject, rendered.text, rendered.html)
        try:
            if send(msg):
                outcome.emails_sent += 1
        except Exception as e:
            outcome.errors.append(f"Failed to send email to {rider.email}: {e}")
    return outcome


def complete_due_events(
    session: Session,
    now: Optional[datetime] = None,
    send: Callable[[EmailMessage], bool] = mailer.send_quietly,
) -> CompletionReport:
    """Mark every scheduled event whose closing time has passed as completed."""
    now = now or club_now().replace(tzinfo=None)
    report = CompletionReport()

    events = session.execute(
        select(models.Event)
        .options(selectinload(models.Event.chapter))
        .where(models.Event.status == "scheduled")
    ).scalars().all()
    report.checked = len(events)

    for event in events:
        if now <= closing_time(event):
            continue
        event.status = "completed"
        session.commit()
        logger.info("Auto-completed event: %s (%s)", event.name, event.id)

        outcome = create_pending_results(session, event, send=send)
        report.completed_events.append({
            "id": event.id,
            "name": event.name,
            "resultsCreated": outcome.results_created,
            "emailsSent": outcome.emails_sent,
        })
        for err in outcome.errors:
            report.errors.append({"id": event.id, "name": event.name, "error": err})

    report.completed = len(report.completed_events)
    return report
