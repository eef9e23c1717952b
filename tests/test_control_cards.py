import pytest

from conftest import make_event, make_rider
from randonneurs.control_cards import (
    Control,
    Organizer,
    build_control_cards_pdf,
    control_rows,
    event_url,
    parse_controls,
)

CONTROLS = """
# name | km
Finish, Tim Hortons | 200
Start | 0
Port Perry | 102.5
"""


def test_parse_controls_sorts_by_distance():
    controls = parse_controls(CONTROLS)
    assert controls == [
        Control("Start", 0),
        Control("Port Perry", 102.5),
        Control("Finish, Tim Hortons", 200),
    ]
    assert parse_controls("") == []


@pytest.mark.parametrize("text,message", [
    ("Start 0", "Line 1: expected 'name | km'"),
    ("Start | 0\n | 50", "Line 2: control name is required"),
    ("Start | zero", "invalid distance"),
    ("Start | -5", "cannot be negative"),
])
def test_parse_controls_errors(text, message):
    with pytest.raises(ValueError, match=message):
        parse_controls(text)


def test_control_rows(session, chapter):
    e = make_event(session, chapter)
    rows = control_rows(e, parse_controls(CONTROLS))
    assert rows[0] == ("Start", "0", "Sat 07h00", "Sat 08h00")
    assert rows[1][1] == "102.5"
    assert rows[2] == ("Finish, Tim Hortons", "200", "Sat 12h53", "Sat 20h30")


def test_event_url(session, chapter):
    e = make_event(session, chapter)
    assert event_url(e, "https://example.org/") == f"https://example.org/register/{e.slug}"


def test_build_pdf(session, chapter):
    e = make_event(session, chapter)
    riders = [make_rider(session), make_rider(session, first="Bo", email="bo@example.org"), "Walk Up"]
    pdf = build_control_cards_pdf(e, riders, parse_controls(CONTROLS), Organizer("Vera Pascal", "555-0100"))
    assert pdf.startswith(b"%PDF")
    # three cards, two per page
    assert b"/Count 2" in pdf

    blank = build_control_cards_pdf(e, [], parse_controls(CONTROLS), Organizer("Vera Pascal"))
    assert blank.startswith(b"%PDF")

    with pytest.raises(ValueError, match="At least one control"):
        build_control_cards_pdf(e, riders, [], Organizer("Vera Pascal"))
