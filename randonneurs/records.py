"""
Club records for the /records page.

Every table holds at most RECORD_LIMIT rows ranked 1..n in order, the way
ROW_NUMBER() numbers them: ties keep distinct ranks.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select, func, distinct, extract
from sqlalchemy.orm import Session

from . import models
from .brm import nominal_distance
from .settings import settings
from .utils import finish_time_minutes, format_finish_time

logger = logging.getLogger(__name__)

RECORD_LIMIT = 10
SR_DISTANCES = (200, 300, 400, 600)
AWARD_SUPER_RANDONNEUR = "super-randonneur"
AWARD_DEVIL_WEEK = "completed-devil-week"
PBP_EVENT_NAME = "Paris-Brest-Paris"
GRANITE_ANVIL_COLLECTION = "granite-anvil"


@dataclass
class RiderRecord:
    rank: int
    rider_slug: str
    rider_name: str
    value: int


@dataclass
class SeasonRiderRecord:
    rank: int
    season: int
    rider_slug: str
    rider_name: str
    value: int


@dataclass
class ClubSeasonRecord:
    rank: int
    season: int
    value: int


@dataclass
class RouteRecord:
    rank: int
    route_slug: str
    route_name: str
    distance_km: int
    chapter_name: Optional[str]
    value: int


@dataclass
class RiderTimeRecord:
    rank: int
    rider_slug: str
    rider_name: str
    time: str
    event_date: date


@dataclass
class StreakRecord:
    rank: int
    rider_slug: str
    rider_name: str
    streak_length: int
    streak_end_season: int


@dataclass
class LifetimeRecords:
    most_brevets: list[RiderRecord] = field(default_factory=list)
    highest_distance: list[RiderRecord] = field(default_factory=list)
    most_active_seasons: list[RiderRecord] = field(default_factory=list)
    most_permanents: list[RiderRecord] = field(default_factory=list)
    most_devil_weeks: list[RiderRecord] = field(default_factory=list)
    most_super_randonneurs: list[RiderRecord] = field(default_factory=list)
    longest_streaks: list[StreakRecord] = field(default_factory=list)
    sr_streaks: list[StreakRecord] = field(default_factory=list)


@dataclass
class SeasonRecords:
    most_brevets_in_season: list[SeasonRiderRecord] = field(default_factory=list)
    highest_distance_in_season: list[SeasonRiderRecord] = field(default_factory=list)


@dataclass
class ClubAchievements:
    most_unique_riders: list[ClubSeasonRecord] = field(default_factory=list)
    most_brevets_organized: list[ClubSeasonRecord] = field(default_factory=list)
    highest_cumulative_distance: list[ClubSeasonRecord] = field(default_factory=list)


@dataclass
class RouteRecords:
    by_frequency: list[RouteRecord] = field(default_factory=list)
    by_participants: list[RouteRecord] = field(default_factory=list)


@dataclass
class TimedRecords:
    most_completions: list[RiderRecord] = field(default_factory=list)
    fastest_times: list[RiderTimeRecord] = field(default_factory=list)


def _name(first: str, last: str) -> str:
    return f"{first} {last}".strip()


def _rider_ranking(session: Session, value, *where, joins_event: bool = False, limit: int = RECORD_LIMIT) -> list[RiderRecord]:
    q = (
        select(models.Rider.slug, models.Rider.first_name, models.Rider.last_name, value.label("value"))
        .select_from(models.Result)
        .join(models.Rider, models.Rider.id == models.Result.rider_id)
    )
    if joins_event:
        q = q.join(models.Event, models.Event.id == models.Result.event_id)
    q = (
        q.where(models.Result.status == "finished", *where)
        .group_by(models.Rider.id, models.Rider.slug, models.Rider.first_name, models.Rider.last_name)
        .order_by(value.desc(), models.Rider.last_name.asc())
        .limit(limit)
    )
    return [
        RiderRecord(rank, slug, _name(first, last), int(v or 0))
        for rank, (slug, first, last, v) in enumerate(session.execute(q).all(), start=1)
    ]


def _award_seasons(session: Session, award_slug: str) -> dict[int, set[int]]:
    rows = session.execute(
        select(models.Result.rider_id, models.Result.season)
        .join(models.ResultAward, models.ResultAward.result_id == models.Result.id)
        .join(models.Award, models.Award.id == models.ResultAward.award_id)
        .where(models.Award.slug == award_slug, models.Result.season.is_not(None))
    ).all()
    out: dict[int, set[int]] = {}
    for rider_id, season in rows:
        out.setdefault(rider_id, set()).add(season)
    return out


def _riders_by_id(session: Session, ids: Iterable[int]) -> dict[int, models.Rider]:
    ids = list(ids)
    if not ids:
        return {}
    return {r.id: r for r in session.execute(select(models.Rider).where(models.Rider.id.in_(ids))).scalars().all()}


def _rank_counts(session: Session, seasons_by_rider: dict[int, set[int]], limit: int = RECORD_LIMIT) -> list[RiderRecord]:
    riders = _riders_by_id(session, seasons_by_rider)
    ordered = sorted(
        ((rid, len(s)) for rid, s in seasons_by_rider.items() if s and rid in riders),
        key=lambda x: (-x[1], riders[x[0]].last_name.lower()),
    )[:limit]
    return [
        RiderRecord(rank, riders[rid].slug, _name(riders[rid].first_name, riders[rid].last_name), n)
        for rank, (rid, n) in enumerate(ordered, start=1)
    ]

# ---------------------------
# Super Randonneur
# ---------------------------

def sr_seasons_from_results(rows: Iterable[tuple[int, int]]) -> set[int]:
    """Seasons in which (season, distance_km) brevet finishes cover all of 200/300/400/600."""
    buckets: dict[int, set[int]] = {}
    for season, distance in rows:
        if distance is None or distance < 200:
            continue
        buckets.setdefault(season, set()).add(nominal_distance(distance))
    return {season for season, got in buckets.items() if set(SR_DISTANCES) <= got}


def _finished_brevets(session: Session, rider_id: Optional[int] = None):
    distance = func.coalesce(models.Result.distance_km, models.Event.distance_km)
    q = (
        select(models.Result.rider_id, models.Result.season, distance)
        .join(models.Event, models.Event.id == models.Result.event_id)
        .where(
            models.Result.status == "finished",
            models.Result.season.is_not(None),
            models.Event.event_type == "brevet",
            distance >= 200,
        )
    )
    if rider_id is not None:
        q = q.where(models.Result.rider_id == rider_id)
    return session.execute(q).all()


def super_randonneur_seasons(session: Session, rider_id: int) -> list[int]:
    earned = sr_seasons_from_results((season, km) for _, season, km in _finished_brevets(session, rider_id))
    earned |= _award_seasons(session, AWARD_SUPER_RANDONNEUR).get(rider_id, set())
    return sorted(earned)


def all_super_randonneur_seasons(session: Session) -> dict[int, set[int]]:
    per_rider: dict[int, list[tuple[int, int]]] = {}
    for rider_id, season, km in _finished_brevets(session):
        per_rider.setdefault(rider_id, []).append((season, km))
    out = {rid: sr_seasons_from_results(rows) for rid, rows in per_rider.items()}
    for rid, seasons in _award_seasons(session, AWARD_SUPER_RANDONNEUR).items():
        out.setdefault(rid, set()).update(seasons)
    return {rid: s for rid, s in out.items() if s}

# ---------------------------
# Streaks
# ---------------------------

def streaks(seasons: Iterable[int]) -> list[tuple[int, int]]:
    """Runs of consecutive seasons as (length, last season)."""
    runs = []
    ordered = sorted(set(seasons))
    start = prev = None
    for s in ordered:
        if prev is not None and s == prev + 1:
            prev = s
            continue
        if prev is not None:
            runs.append((prev - start + 1, prev))
        start = prev = s
    if prev is not None:
        runs.append((prev - start + 1, prev))
    return runs


def _rank_streaks(
    session: Session,
    seasons_by_rider: dict[int, set[int]],
    min_end: Optional[int] = None,
    limit: int = RECORD_LIMIT,
) -> list[StreakRecord]:
    best: dict[int, tuple[int, int]] = {}
    for rid, seasons in seasons_by_rider.items():
        runs = [r for r in streaks(seasons) if min_end is None or r[1] >= min_end]
        if runs:
            best[rid] = max(runs)
    riders = _riders_by_id(session, best)
    ordered = sorted(best.items(), key=lambda x: (-x[1][0], -x[1][1], riders[x[0]].last_name.lower()))[:limit]
    return [
        StreakRecord(rank, riders[rid].slug, _name(riders[rid].first_name, riders[rid].last_name), length, end)
        for rank, (rid, (length, end)) in enumerate(ordered, start=1)
    ]


def _finish_seasons(session: Session) -> dict[int, set[int]]:
    out: dict[int, set[int]] = {}
    for rid, season in session.execute(
        select(models.Result.rider_id, models.Result.season)
        .where(models.Result.status == "finished", models.Result.season.is_not(None))
        .distinct()
    ).all():
        out.setdefault(rid, set()).add(season)
    return out

# ---------------------------
# Record tables
# ---------------------------

def lifetime_records(session: Session, current_season: Optional[int] = None) -> LifetimeRecords:
    current_season = current_season or settings.CURRENT_SEASON
    sr = all_super_randonneur_seasons(session)
    return LifetimeRecords(
        most_brevets=_rider_ranking(session, func.count(models.Result.id)),
        highest_distance=_rider_ranking(session, func.sum(models.Event.distance_km), joins_event=True),
        most_active_seasons=_rider_ranking(session, func.count(distinct(models.Result.season))),
        most_permanents=_rider_ranking(
            session, func.count(models.Result.id), models.Event.event_type == "permanent", joins_event=True,
        ),
        most_devil_weeks=_rank_counts(session, _award_seasons(session, AWARD_DEVIL_WEEK)),
        most_super_randonneurs=_rank_counts(session, sr),
        # only streaks still alive: ending this season or last
        longest_streaks=_rank_streaks(session, _finish_seasons(session), min_end=current_season - 1),
        sr_streaks=_rank_streaks(session, sr),
    )


def _season_ranking(session: Session, value, limit: int = RECORD_LIMIT) -> list[SeasonRiderRecord]:
    q = (
        select(models.Result.season, models.Rider.slug, models.Rider.first_name, models.Rider.last_name, value.label("value"))
        .select_from(models.Result)
        .join(models.Rider, models.Rider.id == models.Result.rider_id)
        .join(models.Event, models.Event.id == models.Result.event_id)
        .where(models.Result.status == "finished", models.Result.season.is_not(None))
        .group_by(models.Result.season, models.Rider.id, models.Rider.slug, models.Rider.first_name, models.Rider.last_name)
        .order_by(value.desc(), models.Result.season.desc())
        .limit(limit)
    )
    return [
        SeasonRiderRecord(rank, season, slug, _name(first, last), int(v or 0))
        for rank, (season, slug, first, last, v) in enumerate(session.execute(q).all(), start=1)
    ]


def season_records(session: Session) -> SeasonRecords:
    return SeasonRecords(
        most_brevets_in_season=_season_ranking(session, func.count(models.Result.id)),
        highest_distance_in_season=_season_ranking(session, func.sum(models.Event.distance_km)),
    )


def current_season_distance(session: Session, season: Optional[int] = None) -> list[RiderRecord]:
    season = season or settings.CURRENT_SEASON
    return _rider_ranking(session, func.sum(models.Event.distance_km), models.Result.season == season, joins_event=True)


def _club_ranking(session: Session, q) -> list[ClubSeasonRecord]:
    return [ClubSeasonRecord(rank, season, int(v or 0)) for rank, (season, v) in enumerate(session.execute(q).all(), start=1)]


def club_achievements(session: Session, limit: int = RECORD_LIMIT) -> ClubAchievements:
    riders = func.count(distinct(models.Result.rider_id))
    events_season = extract("year", models.Event.event_date)
    events = func.count(models.Event.id)
    distance = func.sum(models.Event.distance_km)
    return ClubAchievements(
        most_unique_riders=_club_ranking(session, (
            select(models.Result.season, riders)
            .where(models.Result.status == "finished", models.Result.season.is_not(None))
            .group_by(models.Result.season)
            .order_by(riders.desc(), models.Result.season.desc())
            .limit(limit)
        )),
        most_brevets_organized=[
            ClubSeasonRecord(r.rank, int(r.season), r.value)
            for r in _club_ranking(session, (
                select(events_season, events)
                .where(models.Event.status == "submitted", models.Event.event_type != "permanent")
                .group_by(events_season)
                .order_by(events.desc(), events_season.desc())
                .limit(limit)
            ))
        ],
        highest_cumulative_distance=_club_ranking(session, (
            select(models.Result.season, distance)
            .join(models.Event, models.Event.id == models.Result.event_id)
            .where(
                models.Result.status == "finished",
                models.Result.season.is_not(None),
                models.Event.event_type != "permanent",
            )
            .group_by(models.Result.season)
            .order_by(distance.desc(), models.Result.season.desc())
            .limit(limit)
        )),
    )


def _route_ranking(session: Session, value, with_results: bool, limit: int = RECORD_LIMIT) -> list[RouteRecord]:
    q = (
        select(models.Route.slug, models.Route.name, models.Route.distance_km, models.Chapter.name, value.label("value"))
        .select_from(models.Route)
        .join(models.Event, models.Event.route_id == models.Route.id)
        .outerjoin(models.Chapter, models.Chapter.id == models.Route.chapter_id)
        .where(models.Event.event_type != "permanent")
    )
    if with_results:
        q = q.join(models.Result, models.Result.event_id == models.Event.id).where(models.Result.status == "finished")
    q = (
        q.group_by(models.Route.id, models.Route.slug, models.Route.name, models.Route.distance_km, models.Chapter.name)
        .order_by(value.desc(), models.Route.name.asc())
        .limit(limit)
    )
    return [
        RouteRecord(rank, slug, name, km or 0, chapter, int(v or 0))
        for rank, (slug, name, km, chapter, v) in enumerate(session.execute(q).all(), start=1)
    ]


def route_records(session: Session) -> RouteRecords:
    return RouteRecords(
        by_frequency=_route_ranking(session, func.count(distinct(models.Event.id)), with_results=False),
        by_participants=_route_ranking(session, func.count(distinct(models.Result.rider_id)), with_results=True),
    )


def _fastest_times(session: Session, event_filter, limit: int = RECORD_LIMIT) -> list[RiderTimeRecord]:
    rows = session.execute(
        select(models.Result.finish_time, models.Event.event_date, models.Rider.slug, models.Rider.first_name, models.Rider.last_name)
        .join(models.Event, models.Event.id == models.Result.event_id)
        .join(models.Rider, models.Rider.id == models.Result.rider_id)
        .where(models.Result.status == "finished", models.Result.finish_time.is_not(None), event_filter)
    ).all()
    # finish times are stored as text, "9:30" has to sort before "10:00"
    timed = [(finish_time_minutes(t), t, d, slug, first, last) for t, d, slug, first, last in rows]
    timed = sorted((r for r in timed if r[0] is not None), key=lambda r: (r[0], r[2]))[:limit]
    return [
        RiderTimeRecord(rank, slug, _name(first, last), format_finish_time(t), d)
        for rank, (_, t, d, slug, first, last) in enumerate(timed, start=1)
    ]


def _timed_records(session: Session, event_filter) -> TimedRecords:
    return TimedRecords(
        most_completions=_rider_ranking(session, func.count(models.Result.id), event_filter, joins_event=True),
        fastest_times=_fastest_times(session, event_filter),
    )


def pbp_records(session: Session) -> TimedRecords:
    return _timed_records(session, models.Event.name == PBP_EVENT_NAME)


def granite_anvil_records(session: Session) -> TimedRecords:
    return _timed_records(session, models.Event.collection == GRANITE_ANVIL_COLLECTION)
