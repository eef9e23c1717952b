"""
ACP/BRM control opening and closing times, 200 km through 1300 km.

Opening times use the maximum speeds per segment (34/32/30/28/26 km/h).
Closing times use 1h + d/20 for the first 60 km, then 15 km/h to 600 km,
11.428 km/h to 1000 km and 13.333 km/h beyond.  The finish control always
closes at the official overall limit for the nominal distance.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

NOMINAL_DISTANCES = (200, 300, 400, 600, 1000, 1200, 1300)

FINISH_LIMITS_MIN = {
    200: 13 * 60 + 30,
    300: 20 * 60,
    400: 27 * 60,
    600: 40 * 60,
    1000: 75 * 60,
    1200: 90 * 60,
    1300: 93 * 60,
}

# (segment end km, km/h)
OPEN_SEGMENTS = ((200, 34), (400, 32), (600, 30), (1000, 28), (1300, 26))

_DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass
class ControlTimes:
    open_at: datetime
    close_at: datetime
    open_min: int
    close_min: int


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def close_hours(d: float) -> float:
    if d <= 0:
        return 1.0

    first = min(d, 60)
    hours = 1 + first / 20
    remaining = d - first
    if remaining <= 0:
        return hours

    span = min(remaining, 540)
    hours += span / 15
    remaining -= span
    if remaining <= 0:
        return hours

    span = min(remaining, 400)
    hours += span / 11.428
    remaining -= span
    if remaining <= 0:
        return hours

    return hours + remaining / 13.333


def open_hours(d: float) -> float:
    remaining = d
    hours = 0.0
    last_edge = 0
    for edge, speed in OPEN_SEGMENTS:
        span = max(0, min(remaining, edge - last_edge))
        if span > 0:
            hours += span / speed
            remaining -= span
            last_edge = edge
        if remaining <= 0:
            break
    return hours


def nominal_distance(distance: float) -> int:
    for nominal in NOMINAL_DISTANCES[:-1]:
        if distance <= nominal:
            return nominal
    return 1300


def compute_control_times(
    start: datetime,
    control_km: float,
    nominal_km: int,
    route_km: Optional[float] = None,
    truncate_km: bool = True,
) -> ControlTimes:
    """Opening and closing time of one control.

    Finish detection uses the route length (``route_km``, else the nominal
    distance) while the finish cutoff always uses the nominal distance.
    """
    if nominal_km not in FINISH_LIMITS_MIN:
        raise ValueError(f"Unsupported nominal distance: {nominal_km}")

    d_ctrl = math.trunc(control_km) if truncate_km else control_km
    if route_km is None:
        d_route = nominal_km
    else:
        d_route = math.trunc(route_km) if truncate_km else route_km

    open_min = _round_half_up(open_hours(d_ctrl) * 60)
    close_min = _round_half_up(close_hours(d_ctrl) * 60)
    if d_ctrl >= d_route - 1e-4:
        close_min = FINISH_LIMITS_MIN[nominal_km]

    return ControlTimes(
        open_at=start + timedelta(minutes=open_min),
        close_at=start + timedelta(minutes=close_min),
        open_min=open_min,
        close_min=close_min,
    )


def format_hm(minutes: float) -> str:
    h = int(minutes // 60)
    m = _round_half_up(minutes % 60)
    return f"{h:02d}:{m:02d}"


def format_control_time(dt: datetime) -> str:
    # Thu 04h30
    return f"{_DAY_NAMES[dt.weekday()]} {dt.hour:02d}h{dt.minute:02d}"


def format_card_date(d: date) -> str:
    # Jan 08 2026
    return f"{_MONTH_NAMES[d.month - 1]} {d.day:02d} {d.year}"
