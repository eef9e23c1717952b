"""
Public registration for scheduled events and permanent rides.

A registrant is identified by email.  When the email is unknown but the name
resembles a historical rider without an email, the caller gets the list of
candidates back instead of a registration and finishes the flow through
``complete_registration_with_rider`` once the registrant has picked one.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from email.message import EmailMessage
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models, mailer, email_templates
from ..ccn import CCNClient
from ..chapters import url_slug_from_db_slug, vp_email
from ..errors import MembershipError
from ..memberships import check_registration_eligibility
from ..schemas import RegistrationData, PermanentRegistrationData
from ..utils import club_today, format_event_date, format_event_time, format_event_type, parse_date_yyyy_mm_dd
from .rider_match import RiderMatchCandidate, search_rider_candidates
from .riders import normalize_email, parse_gender, random_suffix

logger = logging.getLogger(__name__)

REGISTRATION_STATUSES = ("registered", "cancelled", "incomplete: membership")
STATUS_INCOMPLETE_MEMBERSHIP = "incomplete: membership"
PERMANENT_LEAD_DAYS = 14

_TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")

ALREADY_REGISTERED = "You are already registered for this event"
ALREADY_REGISTERED_PERMANENT = "You are already registered for this permanent ride"


@dataclass
class RegistrationOutcome:
    registration: Optional[models.Registration] = None
    email: Optional[EmailMessage] = None
    needs_rider_match: bool = False
    candidates: list[RiderMatchCandidate] = field(default_factory=list)
    pending: Optional[RegistrationData] = None

    @property
    def success(self) -> bool:
        return self.registration is not None


def rider_slug_from_email(email: str) -> str:
    prefix = re.sub(r"[^a-z0-9]", "-", email.split("@")[0].lower())
    return f"{prefix}-{random_suffix()}"


def _required(data: RegistrationData) -> tuple[str, str, str]:
    first = (data.first_name or "").strip()
    last = (data.last_name or "").strip()
    email = normalize_email(data.email)
    if not data.event_id or not first or not last or not email:
        raise ValueError("Missing required fields")
    return first, last, email


def _open_event(session: Session, event_id: int) -> models.Event:
    event = session.get(models.Event, event_id)
    if not event:
        raise ValueError("Event not found")
    if event.status != "scheduled":
        raise ValueError("Registration is not open for this event")
    return event


def _new_rider(session: Session, data: RegistrationData, first: str, last: str, email: str) -> models.Rider:
    rider = models.Rider(
        slug=rider_slug_from_email(email),
        first_name=first,
        last_name=last,
        email=email,
        gender=parse_gender(data.gender),
        emergency_contact_name=data.emergency_contact_name or None,
        emergency_contact_phone=data.emergency_contact_phone or None,
    )
    session.add(rider)
    session.flush()
    logger.info("Created rider %s for %s", rider.slug, email)
    return rider


def _refresh_rider(rider: models.Rider, data: RegistrationData, first: str, last: str) -> None:
    rider.first_name = first
    rider.last_name = last
    rider.gender = parse_gender(data.gender)
    rider.emergency_contact_name = data.emergency_contact_name or None
    rider.emergency_contact_phone = data.emergency_contact_phone or None


def _confirmation(
    event: models.Event,
    rider_name: str,
    email: str,
    notes: Optional[str],
    location: Optional[str] = None,
) -> EmailMessage:
    chapter = event.chapter
    rendered = email_templates.registration_confirmation(email_templates.RegistrationEmailData(
        registrant_name=rider_name,
        registrant_email=email,
        event_name=event.name,
        event_date=format_event_date(event.event_date),
        event_time=format_event_time(event.start_time),
        event_location=location or event.start_location or "TBD",
        event_distance=event.distance_km,
        event_type=format_event_type(event.event_type),
        chapter_name=chapter.name if chapter else "",
        chapter_slug=url_slug_from_db_slug(chapter.slug) if chapter else None,
        notes=notes or None,
    ))
    cc = vp_email(chapter.slug if chapter else None)
    return mailer.build_message(email, rendered.subject, rendered.text, rendered.html, cc=[cc] if cc else None)


def _register(
    session: Session,
    event: models.Event,
    rider: models.Rider,
    data: RegistrationData,
    client: Optional[CCNClient],
    today: Optional[date],
    duplicate_message: str,
    location: Optional[str] = None,
) -> RegistrationOutcome:
    """Membership gate, duplicate check, insert. Commits the rider changes either way."""
    existing = session.execute(
        select(models.Registration).where(
            models.Registration.event_id == event.id,
            models.Registration.rider_id == rider.id,
        )
    ).scalar_one_or_none()
    if existing and existing.status != STATUS_INCOMPLETE_MEMBERSHIP:
        session.commit()
        raise ValueError(duplicate_message)

    registration = existing or models.Registration(event_id=event.id, rider_id=rider.id)
    registration.share_registration = data.share_registration
    registration.notes = data.notes or None

    try:
        check_registration_eligibility(session, rider, client, today=today)
    except MembershipError as e:
        # keep the attempt so organizers can follow up
        registration.status = STATUS_INCOMPLETE_MEMBERSHIP
        session.add(registration)
        session.commit()
        logger.info("Registration of rider %s for event %s incomplete: %s", rider.id, event.id, e.variant)
        raise

    registration.status = "registered"
    session.add(registration)
    session.commit()
    logger.info("Registered rider %s for event %s", rider.id, event.id)

    msg = _confirmation(event, f"{rider.first_name} {rider.last_name}", rider.email, data.notes, location)
    return RegistrationOutcome(registration=registration, email=msg)


def _resolve_and_register(
    session: Session,
    event: models.Event,
    data: RegistrationData,
    client: Optional[CCNClient],
    today: Optional[date],
    duplicate_message: str,
    location: Optional[str] = None,
) -> RegistrationOutcome:
    first, last, email = _required(data)
    rider = session.execute(
        select(models.Rider).where(models.Rider.email == email)
    ).scalar_one_or_none()

    if rider:
        _refresh_rider(rider, data, first, last)
    else:
        candidates = search_rider_candidates(session, first, last)
        if candidates:
            pending = RegistrationData(**{**data.model_dump(), "event_id": event.id, "first_name": first, "last_name": last})
            session.commit()
            return RegistrationOutcome(needs_rider_match=True, candidates=candidates, pending=pending)
        rider = _new_rider(session, data, first, last, email)

    return _register(session, event, rider, data, client, today, duplicate_message, location)


def register_for_event(
    session: Session,
    data: RegistrationData,
    client: Optional[CCNClient] = None,
    today: Optional[date] = None,
) -> RegistrationOutcome:
    _required(data)
    event = _open_event(session, data.event_id)
    return _resolve_and_register(
        session, event, data, client, today,
        ALREADY_REGISTERED,
    )


def permanent_event_slug(route_slug: str, ride_date: date) -> str:
    return f"permanent-{route_slug}-{ride_date.isoformat()}"


def register_for_permanent(
    session: Session,
    data: PermanentRegistrationData,
    client: Optional[CCNClient] = None,
    today: Optional[date] = None,
) -> RegistrationOutcome:
    first = (data.first_name or "").strip()
    last = (data.last_name or "").strip()
    if not data.route_id or not data.ride_date or not data.start_time or not first or not last \
            or not (data.email or "").strip():
        raise ValueError("Missing required fields")
    if not _TIME_RE.match(data.start_time.strip()):
        raise ValueError("Start time must be HH:MM")

    ride_date = parse_date_yyyy_mm_dd(data.ride_date)
    today = today or club_today()
    if ride_date < today + timedelta(days=PERMANENT_LEAD_DAYS):
        raise ValueError("Permanent rides must be scheduled at least 2 weeks in advance")

    route = session.get(models.Route, data.route_id)
    if not route or not route.is_active:
        raise ValueError("Route not found or is not active")
    if not route.chapter_id:
        raise ValueError("Route does not have an assigned chapter")

    name = f"{route.name} (Reversed)" if data.direction == "reversed" else route.name
    slug = permanent_event_slug(route.slug, ride_date)
    location = (data.start_location or "").strip() or None

    # riders choosing the same route and date share one event
    event = session.execute(select(models.Event).where(models.Event.slug == slug)).scalar_one_or_none()
    if not event:
        event = models.Event(
            slug=slug,
            name=name,
            event_type="permanent",
            status="scheduled",
            route_id=route.id,
            chapter_id=route.chapter_id,
            distance_km=route.distance_km or 0,
            event_date=ride_date,
            start_time=data.start_time.strip(),
            start_location=location,
        )
        session.add(event)
        session.flush()
        logger.info("Created permanent event %s", slug)
    elif event.status != "scheduled":
        raise ValueError("Registration is not open for this event")

    base = RegistrationData(**{
        k: v for k, v in data.model_dump().items() if k in RegistrationData.model_fields
    })
    base.event_id = event.id
    return _resolve_and_register(
        session, event, base, client, today,
        ALREADY_REGISTERED_PERMANENT,
        location=location or "Start control per route",
    )


def complete_registration_with_rider(
    session: Session,
    data: RegistrationData,
    selected_rider_id: Optional[int],
    client: Optional[CCNClient] = None,
    today: Optional[date] = None,
) -> RegistrationOutcome:
    """Finish a registration after the registrant picked a historical rider, or none."""
    first, last, email = _required(data)
    event = _open_event(session, data.event_id)

    if selected_rider_id:
        rider = session.get(models.Rider, selected_rider_id)
        if not rider:
            raise ValueError("Selected rider not found")
        other = session.execute(
            select(models.Rider.id).where(models.Rider.email == email, models.Rider.id != rider.id)
        ).first()
        if other:
            raise ValueError("A rider with this email already exists")

        session.add(models.RiderMerge(
            rider_id=rider.id,
            submitted_first_name=first,
            submitted_last_name=last,
            submitted_email=email,
            previous_first_name=rider.first_name,
            previous_last_name=rider.last_name,
            previous_email=rider.email,
            merge_source="registration",
        ))
        _refresh_rider(rider, data, first, last)
        rider.email = email
        logger.info("Rider %s claimed by %s", rider.id, email)
    else:
        rider = _new_rider(session, data, first, last, email)

    return _register(
        session, event, rider, data, client, today,
        ALREADY_REGISTERED_PERMANENT if event.event_type == "permanent" else ALREADY_REGISTERED,
    )
