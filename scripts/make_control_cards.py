#!/usr/bin/env python3
"""Print brevet control cards for an event without going through the admin site.

Usage examples:
  python scripts/make_control_cards.py --event spring-200-200km-2026-05-02 --controls controls.txt --out cards.pdf
  python scripts/make_control_cards.py --event spring-200-200km-2026-05-02 --blank 10 --organizer "Jane Doe" --phone 555-0100

Notes:
- The controls file holds one "name | km" per line, '#' starts a comment.
- Without --controls the card lists just the start and the finish.
- --blank adds unnamed cards for walk-up riders.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

from sqlalchemy import select

from randonneurs import models
from randonneurs.control_cards import Organizer, build_control_cards_pdf, parse_controls
from randonneurs.db import init_db, new_session
from randonneurs.services.events import event_registrations


def main(argv: Optional[list[str]] = None):
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument("--event", type=str, required=True, help="Event slug")
    ap.add_argument("--controls", type=str, default=None, help="File with 'name | km' lines")
    ap.add_argument("--out", type=str, default="control_cards.pdf", help="Output PDF filename")
    ap.add_argument("--organizer", type=str, default="", help="Organizer name")
    ap.add_argument("--phone", type=str, default="", help="Organizer phone")
    ap.add_argument("--email", type=str, default="", help="Organizer email")
    ap.add_argument("--blank", type=int, default=0, help="Extra blank cards")
    ap.add_argument("--db-url", type=str, default=None, help="Overrides RO_DB_URL")
    args = ap.parse_args(argv)

    if args.blank < 0:
        raise SystemExit("--blank must be >= 0")

    init_db(args.db_url)
    s = new_session()
    try:
        event = s.execute(select(models.Event).where(models.Event.slug == args.event)).scalar_one_or_none()
        if not event:
            raise SystemExit(f"Event not found: {args.event}")

        if args.controls:
            text = Path(args.controls).read_text(encoding="utf-8")
        else:
            text = f"Start | 0\nFinish | {event.distance_km}"
        try:
            controls = parse_controls(text)
        except ValueError as e:
            raise SystemExit(str(e))

        riders = sorted(
            (reg.rider for reg in event_registrations(s, event.id) if reg.status == "registered"),
            key=lambda r: (r.last_name.lower(), r.first_name.lower()),
        )
        names = [f"{r.first_name} {r.last_name}" for r in riders] + [""] * args.blank

        pdf = build_control_cards_pdf(event, names, controls, Organizer(args.organizer, args.phone, args.email))
    finally:
        s.close()

    Path(args.out).write_bytes(pdf)
    print(f"Wrote {args.out} ({max(len(names), 1)} cards)")


if __name__ == "__main__":
    main()
