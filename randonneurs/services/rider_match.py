"""
Matching registrants against historical riders.

Imported results predate online registration, so those riders have no email
on file.  When someone registers with an unknown email we look for such a
rider with a similar name and let the registrant claim the profile.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from .. import models
from ..fuzzy import find_fuzzy_name_matches, name_variants

logger = logging.getLogger(__name__)

CANDIDATE_FETCH_LIMIT = 100
MATCH_THRESHOLD = 0.4
MAX_CANDIDATES = 10


@dataclass
class RiderMatchCandidate:
    id: int
    first_name: str
    last_name: str
    full_name: str
    first_season: Optional[int]
    total_rides: int
    score: float = 0.0


def search_rider_candidates(session: Session, first_name: str, last_name: str) -> list[RiderMatchCandidate]:
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    if not first and not last:
        return []

    variants = name_variants(first)
    riders = session.execute(
        select(models.Rider)
        .where(
            models.Rider.email.is_(None),
            or_(*[models.Rider.first_name.ilike(f"%{v}%") for v in variants]),
        )
        .limit(CANDIDATE_FETCH_LIMIT)
    ).scalars().all()
    if not riders:
        return []

    ids = [r.id for r in riders]
    stats = {
        rider_id: (first_season, total)
        for rider_id, first_season, total in session.execute(
            select(models.Result.rider_id, func.min(models.Result.season), func.count(models.Result.id))
            .where(models.Result.rider_id.in_(ids))
            .group_by(models.Result.rider_id)
        ).all()
    }

    matches = find_fuzzy_name_matches(
        first, last, riders,
        lambda r: r.first_name,
        lambda r: r.last_name,
        threshold=MATCH_THRESHOLD,
        max_results=MAX_CANDIDATES,
    )
    candidates = []
    for m in matches:
        first_season, total = stats.get(m.item.id, (None, 0))
        candidates.append(RiderMatchCandidate(
            id=m.item.id,
            first_name=m.item.first_name,
            last_name=m.item.last_name,
            full_name=f"{m.item.first_name} {m.item.last_name}",
            first_season=first_season,
            total_rides=total,
            score=m.score,
        ))
    logger.debug("Rider match for %s %s: %d candidates", first, last, len(candidates))
    return candidates
