import pytest
from sqlalchemy import select

from conftest import make_event, make_route
from randonneurs import models
from randonneurs.chapters import get_chapter_by_db_slug
from randonneurs.schemas import RouteCreate
from randonneurs.services.routes import (
    create_route,
    delete_route,
    extract_rwgps_id,
    list_routes,
    merge_routes,
    route_event_counts,
    routes_by_chapter,
    toggle_route_active,
    update_route,
)


@pytest.mark.parametrize("value,expected", [
    ("12345", "12345"),
    ("https://ridewithgps.com/routes/12345?privacy_code=x", "12345"),
    ("https://ridewithgps.com/ambassador_routes/777-foo", "777"),
    ("https://ridewithgps.com/trips/42", "42"),
    ("  ", None),
    (None, None),
    ("not-a-url", "not-a-url"),
])
def test_extract_rwgps_id(value, expected):
    assert extract_rwgps_id(value) == expected


def test_create_route_derives_slug_and_rwgps(session, admin, chapter):
    r = create_route(session, admin, RouteCreate(
        name="Niagara Escarpment", chapter_id=chapter.id, distance_km=300,
        rwgps_id="https://ridewithgps.com/routes/999",
    ))
    assert (r.slug, r.rwgps_id, r.is_active) == ("niagara-escarpment", "999", True)

    with pytest.raises(ValueError, match="slug already exists"):
        create_route(session, admin, RouteCreate(name="Niagara Escarpment"))
    with pytest.raises(ValueError, match="name is required"):
        create_route(session, admin, RouteCreate(name=" "))


def test_update_route_keeps_slug_unless_given(session, admin, chapter):
    r = make_route(session, chapter)
    other = make_route(session, chapter, name="Other", slug="other")
    updated = update_route(session, admin, r.id, RouteCreate(name="Renamed", chapter_id=chapter.id, distance_km=210))
    assert (updated.name, updated.slug, updated.distance_km) == ("Renamed", "uxbridge-loop-200km", 210)
    with pytest.raises(ValueError, match="slug already exists"):
        update_route(session, admin, r.id, RouteCreate(name="Renamed", slug=other.slug))


def test_delete_refuses_routes_in_use(session, admin, chapter):
    used = make_route(session, chapter)
    unused = make_route(session, chapter, name="Spare")
    make_event(session, chapter, route=used)

    with pytest.raises(ValueError, match="Mark it as inactive"):
        delete_route(session, admin, used.id)
    delete_route(session, admin, unused.id)
    session.expire_all()
    assert session.get(models.Route, unused.id) is None


def test_toggle_and_filters(session, admin, chapter):
    r = make_route(session, chapter)
    make_route(session, get_chapter_by_db_slug(session, "ottawa"), name="Rideau")
    toggle_route_active(session, admin, r.id, False)

    assert [x.name for x in list_routes(session, active=False)] == ["Uxbridge Loop"]
    assert [x.name for x in list_routes(session, active=True)] == ["Rideau"]
    assert [x.name for x in list_routes(session, chapter_id=chapter.id)] == ["Uxbridge Loop"]
    assert [x.name for x in list_routes(session, q="ride")] == ["Rideau"]


def test_merge_repoints_events(session, admin, chapter):
    keep = make_route(session, chapter, name="Keep")
    dup = make_route(session, chapter, name="Keep Copy")
    make_event(session, chapter, name="A", route=dup)
    make_event(session, chapter, name="B", route=keep)

    summary = merge_routes(session, admin, keep.id, [keep.id, dup.id])
    assert (summary.updated_events, summary.deleted_routes) == (1, 1)
    session.expire_all()
    assert route_event_counts(session, [keep.id]) == {keep.id: 2}
    assert session.get(models.Route, dup.id) is None

    with pytest.raises(ValueError, match="At least 2"):
        merge_routes(session, admin, keep.id, [keep.id])


def test_public_routes_grouped_by_distance(session, chapter):
    make_route(session, chapter, name="Short", distance_km=100, rwgps_id="1")
    make_route(session, chapter, name="Brevet B", distance_km=200, rwgps_id="2")
    make_route(session, chapter, name="Brevet A", distance_km=205, rwgps_id="3")
    make_route(session, chapter, name="No Map", distance_km=200)
    make_route(session, chapter, name="Retired", distance_km=300, rwgps_id="4", is_active=False)

    collections = routes_by_chapter(session, "toronto")
    assert [c.name for c in collections] == ["Populaires", "200 km"]
    assert [r.name for r in collections[1].routes] == ["Brevet A", "Brevet B"]
    assert collections[0].routes[0].url == "https://ridewithgps.com/routes/1"
    assert routes_by_chapter(session, "atlantis") == []


def test_merge_can_rewrite_the_kept_route(session, admin, chapter):
    a = make_route(session, chapter, name="A1")
    b = make_route(session, chapter, name="A2")
    merge_routes(session, admin, a.id, [a.id, b.id], RouteCreate(name="A", slug="a-route", chapter_id=chapter.id))
    session.expire_all()
    kept = session.get(models.Route, a.id)
    assert (kept.name, kept.slug) == ("A", "a-route")
    assert session.execute(select(models.AuditLog.action)).scalars().all() == ["merge"]
