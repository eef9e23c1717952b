"""iCalendar feeds of upcoming events, one per chapter."""
from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models
from .chapters import ChapterInfo
from .settings import settings
from .utils import club_today, format_event_type, parse_start_time

logger = logging.getLogger(__name__)

PRODID = "-//Randonneurs Ontario//Calendar//EN"
FEED_TIMEZONE = "America/Toronto"
CACHE_CONTROL = "public, max-age=3600, stale-while-revalidate=86400"

# ACP limits in hours for the standard brevet distances
BRM_TIME_LIMITS = {200: 13.5, 300: 20, 400: 27, 600: 40, 1000: 75, 1200: 90}


def event_duration_hours(distance_km: int, event_type: str) -> float:
    if event_type == "fleche":
        return 24
    if event_type == "brevet" and distance_km in BRM_TIME_LIMITS:
        return BRM_TIME_LIMITS[distance_km]
    if event_type == "brevet" and distance_km >= 200:
        if distance_km > 1200:
            return math.ceil(distance_km / 15)
        hours = BRM_TIME_LIMITS[200]
        for d in sorted(BRM_TIME_LIMITS):
            if distance_km >= d:
                hours = BRM_TIME_LIMITS[d]
        return hours
    return math.ceil(distance_km / 15)


def format_duration(hours: float) -> str:
    whole = int(hours)
    minutes = round((hours - whole) * 60)
    return f"PT{whole}H{minutes}M" if minutes else f"PT{whole}H"


def start_utc(event_date: date, start_time: Optional[str]) -> datetime:
    hour, minute = parse_start_time(start_time)
    local = datetime(event_date.year, event_date.month, event_date.day, hour, minute, tzinfo=ZoneInfo(FEED_TIMEZONE))
    return local.astimezone(timezone.utc)


def escape_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def fold_line(line: str) -> str:
    """Fold to 75 octets per line, continuation lines start with a space."""
    out = []
    current = ""
    size = 0
    for ch in line:
        n = len(ch.encode("utf-8"))
        limit = 75 if not out else 74
        if size + n > limit:
            out.append(current)
            current, size = "", 0
        current += ch
        size += n
    out.append(current)
    return "\r\n ".join(out)


def _stamp(dt: datetime) -> str:
    return dt.strftime("%Y%m%dT%H%M%SZ")


def upcoming_feed_events(session: Session, chapter_id: int, today: Optional[date] = None) -> list[models.Event]:
    today = today or club_today()
    return session.execute(
        select(models.Event)
        .where(
            models.Event.chapter_id == chapter_id,
            models.Event.status == "scheduled",
            models.Event.event_type != "permanent",
            models.Event.event_date >= today,
        )
        .order_by(models.Event.event_date.asc(), models.Event.start_time.asc())
    ).scalars().all()


def build_calendar(
    chapter: ChapterInfo,
    events: list[models.Event],
    site_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    site = (site_url or settings.SITE_URL).rstrip("/")
    host = site.split("://", 1)[-1]
    stamp = _stamp(now or datetime.now(timezone.utc))
    cal_name = f"Randonneurs Ontario - {chapter.name}"

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"X-WR-CALNAME:{escape_text(cal_name)}",
    ]
    for e in events:
        kind = format_event_type(e.event_type)
        start = start_utc(e.event_date, e.start_time)
        parts = [f"{e.distance_km}km {kind}"]
        if e.description:
            parts.append(e.description)
        parts += ["", f"Details & Registration: {site}/register/{e.slug}"]
        description = "\n".join(parts)
        lines += [
            "BEGIN:VEVENT",
            f"UID:{e.id}@{host}",
            f"DTSTAMP:{stamp}",
            f"DTSTART:{_stamp(start)}",
            f"DURATION:{format_duration(event_duration_hours(e.distance_km, e.event_type))}",
            f"SUMMARY:{escape_text(f'{e.name} ({e.distance_km}km {kind})')}",
            f"DESCRIPTION:{escape_text(description)}",
        ]
        if e.start_location:
            lines.append(f"LOCATION:{escape_text(e.start_location)}")
        lines += [
            f"URL:{site}/register/{e.slug}",
            f"CATEGORIES:{escape_text(kind)},Cycling,Randonneuring",
            "STATUS:CONFIRMED",
            "TRANSP:OPAQUE",
            f'ORGANIZER;CN="{cal_name}":mailto:info@{host}',
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")
    return "\r\n".join(fold_line(l) for l in lines) + "\r\n"
