#!/usr/bin/env python3
"""Turn the club schedule export into SQL INSERTs for routes and events.

Usage examples:
  python scripts/generate_seed_sql.py --input docs/schedule.json --year 2026 --output seed.sql

Notes:
- Each distinct (chapter, route, distance) becomes one route row.
- Chapters are looked up by slug with subselects, so the output runs against
  any database that already has the chapter rows.
"""

from __future__ import annotations

import argparse
import json
import re
from pathlib import Path
from typing import Optional

from randonneurs.utils import create_slug

CHAPTER_MAP = {
    "Toronto": "toronto",
    "Ottawa": "ottawa",
    "Huron": "huron",
    "Simcoe": "simcoe",
    "Club": "toronto",
}

_RWGPS_RE = re.compile(r"routes/(\d+)")
_LEADING_INT_RE = re.compile(r"\s*(\d+)")


def normalize_event_type(name: str) -> str:
    lower = (name or "").lower()
    if "fleche" in lower:
        return "fleche"
    if "populaire" in lower:
        return "populaire"
    return "brevet"


def extract_rwgps_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    m = _RWGPS_RE.search(url)
    return m.group(1) if m else None


def parse_distance(value) -> Optional[int]:
    """Leading integer of a distance cell, so "200km" reads as 200."""
    m = _LEADING_INT_RE.match(str(value or ""))
    return int(m.group(1)) if m else None


def route_slug(route: str, distance_km: int) -> str:
    return f"{create_slug(route, max_length=None)}-{distance_km}km"


def sql_str(value: Optional[str]) -> str:
    if value is None:
        return "NULL"
    return "'" + str(value).replace("'", "''") + "'"


def _chapter_id(slug: str) -> str:
    return f"(SELECT id FROM chapters WHERE slug = {sql_str(slug)})"


def generate_seed_sql(schedule: list[dict], year: int) -> tuple[str, int, int]:
    """Return (sql, route_count, event_count) for the events of ``year``."""
    events = [e for e in schedule if str(e.get("Date", "")).startswith(str(year))]

    rows_in: list[tuple[dict, str, int]] = []
    for e in events:
        chapter = CHAPTER_MAP.get(e.get("Chapter", ""))
        distance = parse_distance(e.get("Distance"))
        if not chapter or distance is None:
            continue
        rows_in.append((e, chapter, distance))

    routes: dict[str, dict] = {}
    for e, chapter, distance in rows_in:
        slug = route_slug(e["Route"], distance)
        key = f"{chapter}:{slug}"
        rwgps = extract_rwgps_id(e.get("RWGPS"))
        if key not in routes:
            routes[key] = {
                "slug": slug,
                "name": e["Route"],
                "chapter": chapter,
                "distance_km": distance,
                "rwgps_id": rwgps,
            }
        elif not routes[key]["rwgps_id"] and rwgps:
            routes[key]["rwgps_id"] = rwgps

    lines = [
        f"-- Seed data: Routes and Events for {year} season",
        "-- Generated from the club schedule export",
        "",
        "-- ============================================",
        "-- Routes",
        "-- ============================================",
        "INSERT INTO routes (slug, name, chapter_id, distance_km, rwgps_id) VALUES",
    ]
    lines.append(",\n".join(
        f"  ({sql_str(r['slug'])}, {sql_str(r['name'])}, {_chapter_id(r['chapter'])}, "
        f"{r['distance_km']}, {sql_str(r['rwgps_id'])})"
        for r in routes.values()
    ) + ";")
    lines += [
        "",
        "-- ============================================",
        "-- Events",
        "-- ============================================",
        "INSERT INTO events (slug, chapter_id, route_id, name, event_type, distance_km, "
        "event_date, start_time, start_location, status) VALUES",
    ]

    rows = []
    for e, chapter, distance in rows_in:
        slug = route_slug(e["Route"], distance)
        route_id = (
            f"(SELECT id FROM routes WHERE slug = {sql_str(slug)} "
            f"AND chapter_id = {_chapter_id(chapter)})"
        )
        rows.append(
            f"  ({sql_str(slug + '-' + e['Date'])}, {_chapter_id(chapter)}, {route_id}, "
            f"{sql_str(e['Route'])}, {sql_str(normalize_event_type(e.get('Event', '')))}, "
            f"{distance}, {sql_str(e['Date'])}, {sql_str((e.get('Stime') or '')[:5] or None)}, "
            f"{sql_str(e.get('StartLoc') or None)}, 'scheduled')"
        )
    lines.append(",\n".join(rows) + ";")
    return "\n".join(lines), len(routes), len(rows)


def main(argv: Optional[list[str]] = None):
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument("--input", type=str, default="docs/schedule.json", help="Schedule JSON export")
    ap.add_argument("--year", type=int, default=2026, help="Season to extract")
    ap.add_argument("--output", type=str, default="seed.sql", help="Output SQL filename")
    args = ap.parse_args(argv)

    path = Path(args.input)
    if not path.is_file():
        raise SystemExit(f"Input file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    schedule = data.get("schedule", []) if isinstance(data, dict) else data

    sql, n_routes, n_events = generate_seed_sql(schedule, args.year)
    Path(args.output).write_text(sql, encoding="utf-8")
    print(f"Generated {args.output}")
    print(f"  - {n_routes} routes")
    print(f"  - {n_events} events")


if __name__ == "__main__":
    main()
