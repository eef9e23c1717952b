from __future__ import annotations

import csv
from io import StringIO

from fastapi import APIRouter, Depends, HTTPException
from starlette.responses import Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_session
from . import models
from .auth import CurrentAdmin, admin_required, full_admin_required, assert_can_access_chapter
from .services import events as event_service
from .services import results as result_service
from .utils import format_finish_time

router = APIRouter()

def _csv_response(filename: str, text: str) -> Response:
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

def _event_for(session: Session, admin: CurrentAdmin, event_id: int) -> models.Event:
    e = event_service.get_event(session, event_id)
    if not e:
        raise HTTPException(status_code=404, detail="Event not found")
    assert_can_access_chapter(admin, e.chapter_id)
    return e

@router.get("/events/{event_id}/registrations.csv")
def registrations_csv(
    event_id: int,
    admin: CurrentAdmin = Depends(admin_required),
    session: Session = Depends(get_session),
):
    e = _event_for(session, admin, event_id)
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow([
        "first_name", "last_name", "email", "gender", "status", "share_registration",
        "emergency_contact_name", "emergency_contact_phone", "notes", "registered_at",
    ])
    for reg in event_service.event_registrations(session, event_id):
        r = reg.rider
        w.writerow([
            r.first_name,
            r.last_name,
            r.email or "",
            r.gender or "",
            reg.status,
            "yes" if reg.share_registration else "no",
            r.emergency_contact_name or "",
            r.emergency_contact_phone or "",
            reg.notes or "",
            reg.registered_at.isoformat() if reg.registered_at else "",
        ])
    return _csv_response(f"registrations_{e.slug}.csv", buf.getvalue())

@router.get("/events/{event_id}/results.csv")
def results_csv(
    event_id: int,
    admin: CurrentAdmin = Depends(admin_required),
    session: Session = Depends(get_session),
):
    e = _event_for(session, admin, event_id)
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(["rider_number", "first_name", "last_name", "status", "time", "team", "note", "submitted_at"])
    for res in result_service.event_results(session, event_id):
        r = res.rider
        w.writerow([
            r.rider_number or "",
            r.first_name,
            r.last_name,
            res.status,
            result_service.status_label(res.status) or format_finish_time(res.finish_time),
            res.team_name or "",
            res.note or "",
            res.submitted_at.isoformat() if res.submitted_at else "",
        ])
    return _csv_response(f"results_{e.slug}.csv", buf.getvalue())

@router.get("/riders.csv", dependencies=[Depends(full_admin_required)])
def riders_csv(session: Session = Depends(get_session)):
    rows = session.execute(
        select(models.Rider).order_by(models.Rider.last_name.asc(), models.Rider.first_name.asc())
    ).scalars().all()
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(["rider_number", "slug", "first_name", "last_name", "email", "gender"])
    for r in rows:
        w.writerow([r.rider_number or "", r.slug, r.first_name, r.last_name, r.email or "", r.gender or ""])
    return _csv_response("riders.csv", buf.getvalue())
