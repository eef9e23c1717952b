"""
Membership verification for event registration.

The local ``memberships`` table caches registry lookups per rider and
season; the CCN registry is only asked when there is no cached row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models
from .ccn import CCNClient, MEMBERSHIP_TRIAL
from .errors import MembershipError
from .settings import settings
from .utils import club_today

logger = logging.getLogger(__name__)

TRIAL_COUNTING_STATUSES = ("finished", "dnf", "otl", "dq")


@dataclass
class MembershipResult:
    found: bool
    membership_id: Optional[int] = None
    membership_type: Optional[str] = None


def get_membership_for_rider(
    session: Session,
    rider_id: int,
    first_name: str,
    last_name: str,
    client: CCNClient,
    season: Optional[int] = None,
) -> MembershipResult:
    season = season or settings.CURRENT_SEASON

    cached = session.execute(
        select(models.Membership).where(
            models.Membership.rider_id == rider_id,
            models.Membership.season == season,
        )
    ).scalar_one_or_none()
    if cached:
        return MembershipResult(True, cached.membership_id, cached.membership_type)

    member = client.search(first_name, last_name)
    if member is None:
        return MembershipResult(found=False)

    session.add(models.Membership(
        rider_id=rider_id,
        season=season,
        membership_id=member.membership_id,
        membership_type=member.membership_type,
    ))
    session.commit()
    logger.info("Cached CCN membership %s for rider %s", member.membership_id, rider_id)
    return MembershipResult(True, member.membership_id, member.membership_type)


def is_trial_used(
    session: Session,
    rider_id: int,
    today: Optional[date] = None,
    season: Optional[int] = None,
) -> bool:
    """A trial is used by any counting result this season or any upcoming registration."""
    season = season or settings.CURRENT_SEASON
    today = today or club_today()

    has_result = session.execute(
        select(models.Result.id).where(
            models.Result.rider_id == rider_id,
            models.Result.season == season,
            models.Result.status.in_(TRIAL_COUNTING_STATUSES),
        ).limit(1)
    ).first()
    if has_result:
        return True

    has_registration = session.execute(
        select(models.Registration.id)
        .join(models.Event, models.Event.id == models.Registration.event_id)
        .where(
            models.Registration.rider_id == rider_id,
            models.Registration.status == "registered",
            models.Event.event_date >= today,
        ).limit(1)
    ).first()
    return has_registration is not None


def check_registration_eligibility(
    session: Session,
    rider: models.Rider,
    client: Optional[CCNClient],
    today: Optional[date] = None,
) -> Optional[MembershipResult]:
    if client is None:
        logger.debug("CCN not configured; skipping membership check for rider %s", rider.id)
        return None

    membership = get_membership_for_rider(session, rider.id, rider.first_name, rider.last_name, client)
    if not membership.found:
        raise MembershipError("no-membership")
    if membership.membership_type == MEMBERSHIP_TRIAL and is_trial_used(session, rider.id, today=today):
        raise MembershipError("trial-used")
    return membership
