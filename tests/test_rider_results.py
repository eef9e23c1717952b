from pathlib import Path

import pytest

from conftest import make_event, make_result, make_rider
from randonneurs import models
from randonneurs.services.rider_results import (
    delete_result_file,
    get_result_by_token,
    submit_rider_result,
    upload_result_file,
)
from randonneurs.uploads import resolve_upload

TOKEN = "6f1c1e9e-2a38-4d0b-8f38-3c1f7f5b9a11"


@pytest.fixture
def pending(session, chapter):
    event = make_event(session, chapter, status="completed")
    rider = make_rider(session)
    return make_result(session, event, rider, status="pending", submission_token=TOKEN)


def test_lookup_by_token(session, pending):
    sub = get_result_by_token(session, TOKEN)
    assert (sub.result_id, sub.rider_name, sub.chapter_name) == (pending.id, "Alice Walker", "Toronto")
    assert sub.can_submit
    with pytest.raises(ValueError, match="invalid token"):
        get_result_by_token(session, "nope")
    with pytest.raises(ValueError, match="Invalid submission token"):
        get_result_by_token(session, "")


def test_submit_finished(session, pending):
    submit_rider_result(session, TOKEN, "finished", "13:30", gpx_url=" https://www.strava.com/x ", notes="windy")
    session.expire_all()
    r = session.get(models.Result, pending.id)
    assert (r.status, r.finish_time, r.gpx_url, r.rider_notes) == ("finished", "13:30", "https://www.strava.com/x", "windy")
    assert r.submitted_at is not None


def test_submit_dnf_clears_time(session, pending):
    submit_rider_result(session, TOKEN, "dnf", "13:30")
    session.expire_all()
    assert session.get(models.Result, pending.id).finish_time is None


@pytest.mark.parametrize("status,time,message", [
    ("finished", "", "required"),
    ("finished", "1:2", "Invalid finish time"),
    ("otl", "", "Invalid status"),
])
def test_submit_validation(session, pending, status, time, message):
    with pytest.raises(ValueError, match=message):
        submit_rider_result(session, TOKEN, status, time)


def test_submitted_events_are_locked(session, pending):
    pending.event.status = "submitted"
    session.commit()
    assert not get_result_by_token(session, TOKEN).can_submit
    with pytest.raises(ValueError, match="already been submitted"):
        submit_rider_result(session, TOKEN, "finished", "13:30")


def test_upload_replace_and_delete_files(session, pending):
    first = upload_result_file(session, TOKEN, "gpx", "ride.GPX", "application/gpx+xml", b"<gpx/>")
    assert first.path.startswith(f"{pending.event_id}/{pending.rider_id}/gpx-")
    assert first.path.endswith(".gpx")
    assert first.url.startswith("/uploads/rider-submissions/")
    first_file = resolve_upload(f"rider-submissions/{first.path}")
    assert first_file.read_bytes() == b"<gpx/>"

    second = upload_result_file(session, TOKEN, "gpx", "ride2.gpx", "text/xml", b"<gpx>2</gpx>")
    assert not first_file.exists()
    assert get_result_by_token(session, TOKEN).file_url("gpx") == second.url

    delete_result_file(session, TOKEN, "gpx")
    session.expire_all()
    assert session.get(models.Result, pending.id).gpx_file_path is None
    assert not Path(resolve_upload(f"rider-submissions/{second.path}")).exists()


@pytest.mark.parametrize("file_type,content_type,data,message", [
    ("selfie", "image/png", b"x", "Invalid file type"),
    ("control_card_front", "application/pdf", b"x", "image"),
    ("gpx", "image/png", b"x", "GPX"),
    ("gpx", "text/xml", b"", "No file"),
])
def test_upload_validation(session, pending, file_type, content_type, data, message):
    with pytest.raises(ValueError, match=message):
        upload_result_file(session, TOKEN, file_type, "f", content_type, data)
