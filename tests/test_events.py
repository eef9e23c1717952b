from datetime import date

import pytest
from sqlalchemy import select

from conftest import make_event, make_result, make_rider, make_route, register
from randonneurs import models
from randonneurs.schemas import EventCreate
from randonneurs.services.events import (
    admin_event_list,
    create_event,
    delete_event,
    event_slug,
    get_event_by_slug,
    registered_riders,
    submit_event_results,
    update_event,
    update_event_status,
    upcoming_events,
    upcoming_events_by_chapter,
    upcoming_permanents,
)

TODAY = date(2026, 4, 1)


def _payload(chapter, **overrides) -> EventCreate:
    values = dict(
        name="Spring Classic",
        chapter_id=chapter.id,
        event_type="brevet",
        distance_km=200,
        event_date="2026-05-02",
        start_time="07:00",
        start_location="Tim Hortons",
    )
    values.update(overrides)
    return EventCreate(**values)


def test_create_event(session, admin, chapter):
    e = create_event(session, admin, _payload(chapter))
    assert e.slug == "spring-classic-200km-2026-05-02" == event_slug("Spring Classic", 200, date(2026, 5, 2))
    assert e.status == "scheduled"
    assert session.execute(select(models.AuditLog.description)).scalar_one().startswith("Created event")

    with pytest.raises(ValueError, match="already exists"):
        create_event(session, admin, _payload(chapter))


@pytest.mark.parametrize("overrides,message", [
    ({"name": " "}, "name is required"),
    ({"chapter_id": None}, "Chapter is required"),
    ({"distance_km": 0}, "Distance"),
    ({"event_type": "crit"}, "Invalid event type"),
    ({"event_date": "05/02/2026"}, "YYYY-MM-DD"),
    ({"start_time": "7am"}, "HH:MM"),
    ({"route_id": 999}, "Route not found"),
])
def test_create_event_validation(session, admin, chapter, overrides, message):
    with pytest.raises(ValueError, match=message):
        create_event(session, admin, _payload(chapter, **overrides))


def test_update_event(session, admin, chapter):
    route = make_route(session, chapter)
    e = make_event(session, chapter)
    update_event(session, admin, e.id, _payload(chapter, name="Renamed", route_id=route.id, description="Hilly"))
    session.expire_all()
    e = session.get(models.Event, e.id)
    assert (e.name, e.route_id, e.description) == ("Renamed", route.id, "Hilly")


def test_delete_only_future_events(session, admin, chapter):
    past = make_event(session, chapter, name="Past", event_date=date(2026, 3, 1))
    future = make_event(session, chapter, name="Future")
    register(session, future, make_rider(session))

    with pytest.raises(ValueError, match="past events"):
        delete_event(session, admin, past.id, today=TODAY)
    delete_event(session, admin, future.id, today=TODAY)
    session.expire_all()
    assert session.get(models.Event, future.id) is None
    assert session.execute(select(models.Registration)).first() is None


def test_cancelling_removes_results(session, admin, chapter):
    e = make_event(session, chapter, status="completed")
    make_result(session, e, make_rider(session))
    update_event_status(session, admin, e.id, "cancelled")
    assert session.execute(select(models.Result)).first() is None
    assert session.get(models.Event, e.id).status == "cancelled"


def test_completing_creates_pending_results(session, admin, chapter):
    e = make_event(session, chapter)
    register(session, e, make_rider(session))
    register(session, e, make_rider(session, first="No", last="Email", email=None))
    sent = []

    update_event_status(session, admin, e.id, "completed", send=lambda msg: sent.append(msg) or True)

    results = session.execute(select(models.Result)).scalars().all()
    assert [r.status for r in results] == ["pending"]
    assert results[0].submission_token
    assert len(sent) == 1


def test_invalid_status(session, admin, chapter):
    e = make_event(session, chapter)
    with pytest.raises(ValueError, match="Invalid status"):
        update_event_status(session, admin, e.id, "postponed")


def test_submit_results_emails_vp_and_locks_event(session, admin, chapter):
    e = make_event(session, chapter, status="completed")
    make_result(session, e, make_rider(session, first="Fast", last="Rider"), finish_time="9:45")
    make_result(session, e, make_rider(session, first="Slow", last="Rider", email="slow@example.org"),
                status="dnf", note="Mechanical")
    sent = []

    submit_event_results(session, admin, e.id, send=lambda msg: sent.append(msg) or True)

    session.expire_all()
    assert session.get(models.Event, e.id).status == "submitted"
    msg = sent[0]
    assert msg["To"] == "vp-admin@randonneursontario.ca"
    assert msg["Reply-To"] == admin.email
    body = msg.get_body(("plain",)).get_content()
    assert "Fast Rider: FINISHED (9:45)" in body
    assert "Slow Rider: DNF | Note: Mechanical" in body

    with pytest.raises(ValueError, match="already been submitted"):
        submit_event_results(session, admin, e.id, send=lambda msg: True)


def test_submit_requires_completed_event(session, admin, chapter):
    e = make_event(session, chapter)
    with pytest.raises(ValueError, match="Only completed events"):
        submit_event_results(session, admin, e.id, send=lambda msg: True)


def test_failed_submit_email_keeps_event_completed(session, admin, chapter):
    e = make_event(session, chapter, status="completed")

    def broken(msg):
        raise OSError("smtp down")

    with pytest.raises(ValueError, match="Failed to send email"):
        submit_event_results(session, admin, e.id, send=broken)
    session.expire_all()
    assert session.get(models.Event, e.id).status == "completed"


def test_public_listings(session, chapter):
    ottawa = session.execute(select(models.Chapter).where(models.Chapter.slug == "ottawa")).scalar_one()
    make_event(session, chapter, name="Old", event_date=date(2026, 3, 1))
    make_event(session, chapter, name="Toronto 300", distance_km=300, event_date=date(2026, 5, 2))
    soon = make_event(session, chapter, name="Toronto 200", event_date=date(2026, 5, 2))
    make_event(session, ottawa, name="Ottawa 200", event_date=date(2026, 4, 20))
    make_event(session, chapter, name="Cancelled", event_date=date(2026, 6, 1), status="cancelled")
    make_event(session, chapter, name="Perm", event_type="permanent", event_date=date(2026, 6, 2))
    register(session, soon, make_rider(session))

    cards = upcoming_events_by_chapter(session, "toronto", today=TODAY)
    assert [c.name for c in cards] == ["Toronto 300", "Toronto 200"]
    assert cards[1].registered_count == 1
    assert cards[1].type == "Brevet"

    assert [c.name for c in upcoming_events(session, limit=2, today=TODAY)] == ["Ottawa 200", "Toronto 300"]
    assert [c.name for c in upcoming_permanents(session, today=TODAY)] == ["Perm"]
    assert upcoming_events_by_chapter(session, "nowhere", today=TODAY) == []


def test_event_details_and_roster(session, chapter):
    route = make_route(session, chapter, rwgps_id="321")
    e = make_event(session, chapter, route=route, start_time=None)
    register(session, e, make_rider(session, first="Ann", last="Lee", email="ann@example.org"))
    register(session, e, make_rider(session, first="Ben", last="Ode", email="ben@example.org"), share=False)
    register(session, e, make_rider(session, first="Cy", last="Ray", email="cy@example.org"), status="cancelled")

    details = get_event_by_slug(session, e.slug)
    assert details.start_time == "08:00"
    assert (details.chapter_slug, details.rwgps_id, details.route_slug) == ("toronto", "321", route.slug)
    assert registered_riders(session, e.id) == ["Ann L.", "Anonymous"]
    assert get_event_by_slug(session, "missing") is None


def test_admin_event_list_counts(session, chapter):
    e = make_event(session, chapter, status="completed")
    rider = make_rider(session)
    register(session, e, rider)
    make_result(session, e, rider)
    make_event(session, chapter, name="Other", event_date=date(2025, 5, 1))

    rows = admin_event_list(session, season=2026)
    assert [(r.event.id, r.registration_count, r.result_count) for r in rows] == [(e.id, 1, 1)]
    assert admin_event_list(session, status="scheduled")[0].event.name == "Other"
