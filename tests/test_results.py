from datetime import date

import pytest
from sqlalchemy import select

from conftest import make_event, make_result, make_rider
from randonneurs import models
from randonneurs.chapters import get_chapter_by_db_slug
from randonneurs.schemas import ResultCreate, ResultUpdate
from randonneurs.services.results import (
    available_years,
    chapter_results,
    chapters_with_years,
    create_bulk_results,
    create_result,
    delete_result,
    list_results,
    status_label,
    update_result,
)


def test_create_result_copies_event_facts_and_numbers_the_rider(session, admin, chapter):
    e = make_event(session, chapter, distance_km=300, event_date=date(2025, 6, 7), status="completed")
    rider = make_rider(session)
    r = create_result(session, admin, ResultCreate(event_id=e.id, rider_id=rider.id, finish_time="19:05:00"))
    assert (r.season, r.distance_km, r.finish_time) == (2025, 300, "19:05")
    session.expire_all()
    assert session.get(models.Rider, rider.id).rider_number == 1

    with pytest.raises(ValueError, match="already exists"):
        create_result(session, admin, ResultCreate(event_id=e.id, rider_id=rider.id))


def test_dns_does_not_assign_a_rider_number(session, admin, chapter):
    e = make_event(session, chapter, status="completed")
    rider = make_rider(session)
    create_result(session, admin, ResultCreate(event_id=e.id, rider_id=rider.id, status="dns"))
    session.expire_all()
    assert session.get(models.Rider, rider.id).rider_number is None


def test_invalid_status(session, admin, chapter):
    e = make_event(session, chapter)
    rider = make_rider(session)
    with pytest.raises(ValueError, match="Invalid status"):
        create_result(session, admin, ResultCreate(event_id=e.id, rider_id=rider.id, status="won"))


def test_update_and_delete(session, admin, chapter):
    e = make_event(session, chapter, status="completed")
    result = make_result(session, e, make_rider(session), status="pending")
    update_result(session, admin, result.id, ResultUpdate(status="finished", finish_time="12:01", note=" flat tire "))
    session.expire_all()
    result = session.get(models.Result, result.id)
    assert (result.status, result.finish_time, result.note) == ("finished", "12:01", "flat tire")
    assert result.rider.rider_number == 1

    delete_result(session, admin, result.id)
    assert session.execute(select(models.Result)).first() is None
    with pytest.raises(ValueError, match="not found"):
        delete_result(session, admin, result.id)


def test_bulk_skips_existing_and_numbers_each_rider(session, admin, chapter):
    e = make_event(session, chapter, status="completed")
    a = make_rider(session, first="A", email="a@example.org")
    b = make_rider(session, first="B", email="b@example.org")
    c = make_rider(session, first="C", email="c@example.org")
    make_result(session, e, a)

    created = create_bulk_results(session, admin, e.id, [
        ResultCreate(event_id=e.id, rider_id=a.id),
        ResultCreate(event_id=e.id, rider_id=b.id, finish_time="10:00"),
        ResultCreate(event_id=e.id, rider_id=c.id, finish_time="11:00"),
    ])
    assert created == 2
    session.expire_all()
    assert sorted(session.execute(select(models.Rider.rider_number).where(models.Rider.id.in_([b.id, c.id]))).scalars()) == [1, 2]


def test_list_results_filters(session, chapter):
    old = make_event(session, chapter, name="Old", event_date=date(2025, 5, 1), status="submitted")
    new = make_event(session, chapter, name="New", event_date=date(2026, 5, 1), status="completed")
    rider = make_rider(session)
    make_result(session, old, rider)
    make_result(session, new, rider, status="pending")

    assert [r.event.name for r in list_results(session)] == ["New", "Old"]
    assert [r.event.name for r in list_results(session, season=2025)] == ["Old"]
    assert [r.event.name for r in list_results(session, status="pending")] == ["New"]


def test_status_label():
    assert status_label("finished") is None
    assert status_label("otl") == "OTL"


def test_public_chapter_results(session, chapter):
    e1 = make_event(session, chapter, name="Brevet One", event_date=date(2025, 5, 3), status="submitted")
    e2 = make_event(session, chapter, name="Brevet Two", event_date=date(2025, 4, 5), status="submitted")
    make_event(session, chapter, name="Empty", event_date=date(2025, 9, 1), status="submitted")
    zed = make_rider(session, first="Zed", last="Young", email="z@example.org")
    amy = make_rider(session, first="Amy", last="Young", email="amy@example.org")
    bob = make_rider(session, first="Bob", last="Able", email="bob@example.org")
    make_result(session, e1, zed, finish_time="11:30:00")
    make_result(session, e1, amy, status="dnf")
    make_result(session, e1, bob, finish_time="12:00")
    make_result(session, e2, bob, status="pending")

    tables = chapter_results(session, "toronto", 2025)
    assert [t.name for t in tables] == ["Brevet One"]
    assert [(r.name, r.time) for r in tables[0].riders] == [
        ("Bob Able", "12:00"),
        ("Amy Young", "DNF"),
        ("Zed Young", "11:30"),
    ]
    assert available_years(session, "toronto") == [2025]
    assert chapter_results(session, "atlantis", 2025) == []


def test_pbp_and_collection_chapters(session):
    other = get_chapter_by_db_slug(session, "other")
    pbp = make_event(session, other, name="Paris-Brest-Paris", distance_km=1200, event_date=date(2023, 8, 20),
                     status="submitted")
    make_event(session, other, name="Misc Ride", event_date=date(2024, 6, 1), status="submitted")
    anvil = make_event(session, None, name="Anvil", distance_km=1000, event_date=date(2024, 7, 1),
                       status="submitted", collection="granite-anvil")
    rider = make_rider(session)
    make_result(session, pbp, rider, finish_time="80:10")
    make_result(session, anvil, rider, finish_time="70:00")

    assert available_years(session, "pbp") == [2023]
    assert available_years(session, "other") == [2024, 2023]
    assert [t.name for t in chapter_results(session, "granite-anvil", 2024)] == ["Anvil"]

    listed = {c.slug: c.years for c in chapters_with_years(session)}
    assert listed["pbp"] == [2023]
    assert "toronto" not in listed
