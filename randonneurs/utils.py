from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from .settings import settings

EVENT_TYPE_LABELS = {
    "brevet": "Brevet",
    "populaire": "Populaire",
    "fleche": "Fleche",
    "permanent": "Permanent",
}

DEFAULT_START_TIME = "08:00"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def club_now() -> datetime:
    return datetime.now(ZoneInfo(settings.CLUB_TIMEZONE))


def club_today() -> date:
    return club_now().date()


def create_slug(text: str, max_length: Optional[int] = 100) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length] if max_length else slug


def parse_date_yyyy_mm_dd(s: str) -> date:
    try:
        return datetime.strptime(s.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError("Invalid date. Use YYYY-MM-DD")


def parse_start_time(value: Optional[str]) -> tuple[int, int]:
    hh, mm = (value or DEFAULT_START_TIME).split(":")[:2]
    return int(hh), int(mm)


def format_event_type(event_type: str) -> str:
    return EVENT_TYPE_LABELS.get(event_type, "Brevet")


def format_event_date(d: date) -> str:
    # Sunday, June 15, 2025
    return f"{d.strftime('%A')}, {d.strftime('%B')} {d.day}, {d.year}"


def format_event_time(value: Optional[str]) -> str:
    if not value:
        return "TBD"
    hour, minute = parse_start_time(value)
    ampm = "PM" if hour >= 12 else "AM"
    hour12 = hour % 12 or 12
    return f"{hour12}:{minute:02d} {ampm}"


_INTERVAL_RE = re.compile(r"(?:(\d+)\s*days?\s*)?(\d{1,3}):(\d{2})(?::\d{2})?")


def format_finish_time(value: Optional[str]) -> str:
    """Normalise an elapsed time ("10:30:00", "1 day 02:30:00") to total H:MM."""
    if not value:
        return ""
    m = _INTERVAL_RE.search(value)
    if not m:
        return value
    days = int(m.group(1) or 0)
    hours = int(m.group(2)) + days * 24
    return f"{hours}:{m.group(3)}"


def finish_time_minutes(value: Optional[str]) -> Optional[int]:
    normalised = format_finish_time(value)
    if not normalised or ":" not in normalised:
        return None
    hh, mm = normalised.split(":")
    return int(hh) * 60 + int(mm)
