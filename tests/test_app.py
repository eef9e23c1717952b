from datetime import date

from sqlalchemy import select

from conftest import make_event, make_rider
from randonneurs import models
from randonneurs.settings import settings

FUTURE = date(2099, 5, 2)


def test_home_lists_upcoming_events(client, session, chapter):
    make_event(session, chapter, name="Far Future", event_date=FUTURE)
    r = client.get("/")
    assert r.status_code == 200
    assert "Far Future" in r.text


def test_chapter_calendar(client, session, chapter):
    make_event(session, chapter, name="Lakeshore", event_date=FUTURE)
    r = client.get("/calendar/toronto")
    assert r.status_code == 200
    assert "Lakeshore" in r.text

    r = client.get("/calendar/atlantis")
    assert r.status_code == 404
    assert "text/html" in r.headers["content-type"]


def test_ics_feed(client, session, chapter):
    make_event(session, chapter, name="Lakeshore", event_date=FUTURE)
    r = client.get("/api/calendar/toronto.ics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/calendar")
    assert "toronto-calendar.ics" in r.headers["content-disposition"]
    assert "BEGIN:VCALENDAR" in r.text
    assert "SUMMARY:Lakeshore" in r.text

    r = client.get("/api/calendar/atlantis")
    assert r.status_code == 404
    assert "Invalid chapter" in r.json()["error"]


def test_cron_requires_secret(client, monkeypatch):
    assert client.get("/api/cron/complete-events").status_code == 500

    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    r = client.get("/api/cron/complete-events", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_cron_completes_past_events(client, session, chapter, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    e = make_event(session, chapter, name="Old Ride", event_date=date(2020, 5, 2))
    r = client.get("/api/cron/complete-events", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["completed"] == 1
    assert body["completedEvents"][0]["id"] == e.id
    session.expire_all()
    assert session.get(models.Event, e.id).status == "completed"


def test_admin_pages_redirect_to_login(client):
    r = client.get("/admin/events", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/admin/login"


def test_bad_login(client, admin_user):
    r = client.post("/admin/login", data={"email": admin_user.email, "password": "wrong"})
    assert r.status_code == 401
    assert "Invalid email or password" in r.text


def test_admin_creates_event(admin_client, session, chapter):
    r = admin_client.post(
        "/admin/events/new",
        data={
            "name": "Spring Opener", "chapter_id": str(chapter.id), "event_type": "brevet",
            "distance_km": "200", "event_date": "2099-04-18", "start_time": "07:00",
            "start_location": "Tim Hortons",
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    e = session.execute(select(models.Event).where(models.Event.name == "Spring Opener")).scalar_one()
    assert r.headers["location"] == f"/admin/events/{e.id}"
    assert admin_client.get(r.headers["location"]).status_code == 200


def test_admin_event_form_errors_rerender(admin_client, chapter):
    r = admin_client.post(
        "/admin/events/new",
        data={"name": "", "chapter_id": str(chapter.id), "distance_km": "abc", "event_date": "2099-04-18"},
    )
    assert r.status_code == 400


def test_admin_news_and_pages(admin_client, client):
    r = admin_client.post(
        "/admin/news/new",
        data={"title": "Season opens", "body": "See you **out there**", "is_published": "on"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "Season opens" in client.get("/news").text

    r = admin_client.post(
        "/admin/pages/new",
        data={"slug": "about", "title": "About Us", "description": "", "body": "We ride **far**."},
        follow_redirects=False,
    )
    assert r.status_code == 302
    page = client.get("/about")
    assert page.status_code == 200
    assert "<strong>far</strong>" in page.text

    r = admin_client.post("/admin/pages/new", data={"slug": "about", "title": "Again", "body": "x"})
    assert r.status_code == 400
    assert client.get("/no-such-page").status_code == 404


def test_admin_creates_rider(admin_client, session):
    r = admin_client.post(
        "/admin/riders/new",
        data={"first_name": "Bob", "last_name": "Stone", "email": "bob@example.org"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    rider = session.execute(select(models.Rider).where(models.Rider.email == "bob@example.org")).scalar_one()
    assert r.headers["location"] == f"/admin/riders/{rider.id}"


def test_csv_exports(admin_client, client, session, chapter):
    e = make_event(session, chapter, event_date=FUTURE)
    r = admin_client.get(f"/api/events/{e.id}/registrations.csv")
    assert r.status_code == 200
    assert r.text.startswith("first_name,last_name,email")

    make_rider(session)
    r = admin_client.get("/api/riders.csv")
    assert r.status_code == 200
    assert "alice@example.org" in r.text


def test_csv_requires_login(client, session, chapter):
    e = make_event(session, chapter, event_date=FUTURE)
    r = client.get(f"/api/events/{e.id}/registrations.csv")
    assert r.status_code == 401
    assert r.headers["content-type"].startswith("application/json")


def test_public_registration(client, session, chapter):
    e = make_event(session, chapter, name="Lakeshore", event_date=FUTURE)
    r = client.post(
        f"/register/{e.slug}",
        data={"first_name": "Carol", "last_name": "Reed", "email": "carol@example.org", "share_registration": "on"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"] == f"/register/{e.slug}?registered=1"
    session.expire_all()
    reg = session.execute(select(models.Registration).where(models.Registration.event_id == e.id)).scalar_one()
    assert reg.status == "registered"
    assert reg.share_registration


def test_registration_needs_names(client, session, chapter):
    e = make_event(session, chapter, event_date=FUTURE)
    r = client.post(f"/register/{e.slug}", data={"first_name": "Carol", "email": "carol@example.org"})
    assert r.status_code == 400
    assert client.get("/register/no-such-event").status_code == 404


def test_uploaded_files_are_served(client, tmp_path):
    target = tmp_path / "uploads" / "general" / "map.txt"
    target.parent.mkdir(parents=True)
    target.write_text("route map")
    r = client.get("/uploads/general/map.txt")
    assert r.status_code == 200
    assert r.text == "route map"
    assert client.get("/uploads/general/missing.txt").status_code == 404


def test_my_rides_lookup(client, session, chapter):
    rider = make_rider(session)
    e = make_event(session, chapter, name="Lakeshore", event_date=FUTURE)
    session.add(models.Registration(event_id=e.id, rider_id=rider.id, status="registered"))
    session.commit()

    r = client.post("/my-rides", data={"email": "alice@example.org"})
    assert r.status_code == 200
    assert "Lakeshore" in r.text
    assert client.post("/my-rides", data={"email": ""}).status_code == 400


def test_public_pages_render(client):
    for path in ("/", "/calendar", "/calendar/permanents", "/routes/toronto", "/riders", "/records",
                 "/news", "/my-rides", "/results"):
        r = client.get(path)
        assert r.status_code == 200, path
        assert "text/html" in r.headers["content-type"]


def test_deleted_admin_loses_access(admin_client, session, admin_user):
    assert admin_client.get("/api/riders/search", params={"q": "al"}).status_code == 200

    session.delete(admin_user)
    session.commit()
    r = admin_client.get("/api/riders/search", params={"q": "al"})
    assert r.status_code == 401
    assert 'ro_admin=""' in r.headers.get("set-cookie", "")

    r = admin_client.get("/admin/events", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/admin/login"


def test_demoted_admin_loses_rights(admin_client, session, admin_user, chapter):
    assert admin_client.get("/api/riders.csv").status_code == 200

    admin_user.role = "chapter_admin"
    admin_user.chapter_id = chapter.id
    session.commit()
    assert admin_client.get("/api/riders.csv").status_code == 403
    assert admin_client.get("/admin/users").status_code == 403
    assert admin_client.get("/admin/events").status_code == 200


def test_list_filters_ignore_bad_numbers(admin_client):
    assert admin_client.get("/admin/events", params={"season": "abc", "chapter_id": "x"}).status_code == 200
    assert admin_client.get("/admin/results", params={"season": "abc", "chapter_id": "x"}).status_code == 200
    assert admin_client.get("/admin/routes", params={"chapter_id": "x"}).status_code == 200
