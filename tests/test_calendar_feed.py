from datetime import date, datetime, timezone

import pytest

from conftest import make_event
from randonneurs.calendar_feed import (
    build_calendar,
    escape_text,
    event_duration_hours,
    fold_line,
    format_duration,
    start_utc,
    upcoming_feed_events,
)
from randonneurs.chapters import get_chapter_info


@pytest.mark.parametrize("km,event_type,hours", [
    (200, "brevet", 13.5),
    (250, "brevet", 13.5),
    (1000, "brevet", 75),
    (1300, "brevet", 87),
    (100, "populaire", 7),
    (360, "fleche", 24),
])
def test_event_duration_hours(km, event_type, hours):
    assert event_duration_hours(km, event_type) == hours


def test_format_duration():
    assert format_duration(13.5) == "PT13H30M"
    assert format_duration(40) == "PT40H"


def test_start_is_converted_from_toronto_time():
    assert start_utc(date(2026, 5, 2), "07:00") == datetime(2026, 5, 2, 11, 0, tzinfo=timezone.utc)
    assert start_utc(date(2026, 1, 10), "07:00") == datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


def test_escape_text():
    assert escape_text("a,b;c\\d\ne") == "a\\,b\\;c\\\\d\\ne"


def test_fold_line():
    line = "DESCRIPTION:" + "x" * 200
    folded = fold_line(line)
    parts = folded.split("\r\n")
    assert len(parts[0]) == 75
    assert all(p.startswith(" ") and len(p) <= 75 for p in parts[1:])
    assert folded.replace("\r\n ", "") == line
    assert fold_line("short") == "short"


def test_feed_lists_scheduled_chapter_events(session, chapter):
    make_event(session, chapter, name="Past", event_date=date(2026, 3, 1))
    make_event(session, chapter, name="Done", event_date=date(2026, 6, 1), status="completed")
    make_event(session, chapter, name="Perm", event_type="permanent", event_date=date(2026, 6, 2))
    later = make_event(session, chapter, name="Later", event_date=date(2026, 7, 1))
    sooner = make_event(session, chapter, name="Sooner", event_date=date(2026, 5, 2))

    events = upcoming_feed_events(session, chapter.id, today=date(2026, 4, 1))
    assert [e.id for e in events] == [sooner.id, later.id]


def test_build_calendar(session, chapter):
    e = make_event(session, chapter, name="Spring Classic", description="Coffee, then hills")
    body = build_calendar(get_chapter_info("toronto"), [e], site_url="https://example.org/",
                          now=datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc))

    assert body.startswith("BEGIN:VCALENDAR\r\n")
    assert body.endswith("END:VCALENDAR\r\n")
    unfolded = body.replace("\r\n ", "")
    assert "X-WR-CALNAME:Randonneurs Ontario - Toronto" in unfolded
    assert f"UID:{e.id}@example.org" in unfolded
    assert "DTSTAMP:20260401T120000Z" in unfolded
    assert "DTSTART:20260502T110000Z" in unfolded
    assert "DURATION:PT13H30M" in unfolded
    assert "SUMMARY:Spring Classic (200km Brevet)" in unfolded
    assert "DESCRIPTION:200km Brevet\\nCoffee\\, then hills\\n\\nDetails & Registration: " \
           f"https://example.org/register/{e.slug}" in unfolded
    assert "LOCATION:Tim Hortons\\, Main St" in unfolded
