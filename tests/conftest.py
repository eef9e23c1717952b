from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from randonneurs import models
from randonneurs.auth import CurrentAdmin, ROLE_SUPER_ADMIN
from randonneurs.ccn import get_ccn_client
from randonneurs.chapters import ensure_chapters, get_chapter_by_db_slug
from randonneurs.db import init_db, new_session
from randonneurs.security import hash_password
from randonneurs.settings import settings

ADMIN_EMAIL = "vp@example.org"
ADMIN_PASSWORD = "correct-horse"


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "CONTENT_DIR", str(tmp_path / "content"))
    monkeypatch.setattr(settings, "SMTP_HOST", "")
    monkeypatch.setattr(settings, "CCN_ENDPOINT", "")
    monkeypatch.setattr(settings, "CRON_SECRET", "")
    monkeypatch.setattr(settings, "RO_ADMIN_EMAIL", "")
    monkeypatch.setattr(settings, "CURRENT_SEASON", 2026)
    init_db(f"sqlite:///{tmp_path / 'test.db'}")


@pytest.fixture
def session():
    s = new_session()
    ensure_chapters(s)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def chapter(session):
    return get_chapter_by_db_slug(session, "toronto")


@pytest.fixture
def admin_user(session):
    a = models.Admin(
        email=ADMIN_EMAIL,
        name="Vera Pascal",
        password_hash=hash_password(ADMIN_PASSWORD),
        role=ROLE_SUPER_ADMIN,
    )
    session.add(a)
    session.commit()
    return a


@pytest.fixture
def admin(admin_user):
    return CurrentAdmin(
        id=admin_user.id,
        email=admin_user.email,
        name=admin_user.name,
        role=admin_user.role,
        chapter_id=admin_user.chapter_id,
    )


@pytest.fixture
def client(session):
    from randonneurs.main import app

    app.dependency_overrides[get_ccn_client] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client, admin_user):
    r = client.post(
        "/admin/login",
        data={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
        follow_redirects=False,
    )
    assert r.status_code == 302
    return client

# ---------------------------
# Factories
# ---------------------------

def make_event(session, chapter, name="Spring Classic", distance_km=200, event_date=date(2026, 5, 2),
               event_type="brevet", status="scheduled", start_time="07:00", route=None, **extra) -> models.Event:
    e = models.Event(
        slug=f"{name.lower().replace(' ', '-')}-{distance_km}km-{event_date.isoformat()}",
        name=name,
        chapter_id=chapter.id if chapter else None,
        route_id=route.id if route else None,
        event_type=event_type,
        distance_km=distance_km,
        event_date=event_date,
        start_time=start_time,
        start_location="Tim Hortons, Main St",
        status=status,
        **extra,
    )
    session.add(e)
    session.commit()
    return e


def make_rider(session, first="Alice", last="Walker", email="alice@example.org", **extra) -> models.Rider:
    slug = f"{first}-{last}-{email or 'none'}".lower().replace("@", "-").replace(".", "-")
    r = models.Rider(slug=slug, first_name=first, last_name=last, email=email, **extra)
    session.add(r)
    session.commit()
    return r


def make_route(session, chapter, name="Uxbridge Loop", distance_km=200, slug=None, **extra) -> models.Route:
    r = models.Route(
        slug=slug or f"{name.lower().replace(' ', '-')}-{distance_km}km",
        name=name,
        chapter_id=chapter.id if chapter else None,
        distance_km=distance_km,
        **extra,
    )
    session.add(r)
    session.commit()
    return r


def make_result(session, event, rider, status="finished", finish_time="12:30", **extra) -> models.Result:
    r = models.Result(
        event_id=event.id,
        rider_id=rider.id,
        status=status,
        finish_time=finish_time if status == "finished" else None,
        season=event.event_date.year,
        distance_km=event.distance_km,
        **extra,
    )
    session.add(r)
    session.commit()
    return r


def register(session, event, rider, status="registered", share=True) -> models.Registration:
    reg = models.Registration(event_id=event.id, rider_id=rider.id, status=status, share_registration=share)
    session.add(reg)
    session.commit()
    return reg
