"""Bodies of the emails the site sends."""
from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Optional

ABOUT_URL = "https://randonneursontario.ca/about"
MAILING_LIST_URL = "https://www.randonneursontario.ca/who/Mailing_Lists.html"
SLACK_URL = "https://join.slack.com/t/randonneursontario/shared_invite/zt-3ephj7rw1-S_KOqcTe2DMarv5kOvUxWQ"
HOME_URL = "https://randonneursontario.ca"

BREVET_RULES = (
    "Be an active member of Randonneurs Ontario and Ontario Cycling.",
    "Wear a helmet.",
    "Wear a reflective vest 1 hour before sunset, and 1 hour after sunrise.",
    "Have front and rear lights solidly affixed to your bicycle.",
    "Have someone sign your brevet card at the controls.",
)


@dataclass
class RenderedEmail:
    subject: str
    text: str
    html: str


@dataclass
class RegistrationEmailData:
    registrant_name: str
    registrant_email: str
    event_name: str
    event_date: str
    event_time: str
    event_location: str
    event_distance: int
    event_type: str
    chapter_name: str
    chapter_slug: Optional[str]
    notes: Optional[str] = None


def _html_row(label: str, value: str, last: bool = False) -> str:
    border = "" if last else " border-bottom: 1px solid #eee;"
    return (
        f'    <tr>\n'
        f'      <td style="padding: 8px 0;{border} font-weight: 600; width: 180px;">{escape(label)}</td>\n'
        f'      <td style="padding: 8px 0;{border}">{escape(value)}</td>\n'
        f'    </tr>'
    )


def _html_page(body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n  <meta charset=\"utf-8\">\n"
        "  <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">\n</head>\n"
        "<body style=\"font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; "
        "line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;\">\n"
        f"{body}\n</body>\n</html>"
    )


def registration_confirmation(data: RegistrationEmailData) -> RenderedEmail:
    ride_name = f"{data.event_name} {data.event_distance}"
    subject = f"Registration Received: {ride_name}"
    notes = data.notes or "(none)"
    rules = "\n".join(f"- {r}" for r in BREVET_RULES)

    text = f"""Hi {data.registrant_name},

Thanks for your interest in our {ride_name}. We've received your registration request and we'll be following up if we need anything more.

Rider name: {data.registrant_name}
Ride: {ride_name}
Chapter: {data.chapter_name}
Start time: {data.event_time} {data.event_date}
Start location: {data.event_location}
Notes for the ride organizer: {notes}

Thanks

--------------------
Brevet Rules
--------------------

{rules}

Learn more about Brevets: {ABOUT_URL}

--------------------
What's Next?
--------------------

Don't miss any exciting Randonneuring updates by joining our mailing list or Slack.

Join the Randolist: {MAILING_LIST_URL}
Join our Slack: {SLACK_URL}

The {data.chapter_name} Chapter VP is included in this email. Just hit reply if you have any questions. We're always happy to help!

See you on the road,

Randonneurs Ontario
{HOME_URL}"""

    rows = "\n".join([
        _html_row("Rider name", data.registrant_name),
        _html_row("Ride", ride_name),
        _html_row("Chapter", data.chapter_name),
        _html_row("Start time", f"{data.event_time} {data.event_date}"),
        _html_row("Start location", data.event_location),
        _html_row("Notes for organizer", notes, last=True),
    ])
    rule_items = "\n".join(f"    <li>{escape(r)}</li>" for r in BREVET_RULES)
    hr = '  <hr style="border: none; border-top: 1px solid #eee; margin: 32px 0;">'
    html = _html_page(f"""  <p>Hi {escape(data.registrant_name)},</p>

  <p>Thanks for your interest in our <strong>{escape(ride_name)}</strong>. We've received your registration request and we'll be following up if we need anything more.</p>

  <table style="width: 100%; border-collapse: collapse; margin: 24px 0;">
{rows}
  </table>

  <p>Thanks</p>

{hr}

  <h2 style="font-size: 18px; margin-bottom: 16px;">Brevet Rules</h2>
  <ul style="padding-left: 20px; margin: 0 0 24px 0;">
{rule_items}
  </ul>
  <p><a href="{ABOUT_URL}" style="color: #0066cc;">Learn more about Brevets</a></p>

{hr}

  <h2 style="font-size: 18px; margin-bottom: 16px;">What's Next?</h2>
  <p>Don't miss any exciting Randonneuring updates by joining our mailing list or Slack.</p>
  <p>
    <a href="{MAILING_LIST_URL}" style="color: #0066cc;">Join the Randolist</a><br>
    <a href="{SLACK_URL}" style="color: #0066cc;">Join our Slack</a>
  </p>

{hr}

  <p>The {escape(data.chapter_name)} Chapter VP is included in this email. Just hit reply if you have any questions. We're always happy to help!</p>

  <p>See you on the road,</p>

  <p>
    <strong>Randonneurs Ontario</strong><br>
    <a href="{HOME_URL}" style="color: #0066cc;">randonneursontario.ca</a>
  </p>""")

    return RenderedEmail(subject, text, html)


def result_submission_request(
    rider_name: str,
    event_name: str,
    event_date: str,
    event_distance: int,
    chapter_name: str,
    submission_url: str,
) -> RenderedEmail:
    subject = f"Submit your result: {event_name} {event_distance}km"
    text = f"""Hi {rider_name},

Thanks for riding the {event_name} ({event_distance}km, {chapter_name} chapter) on {event_date}.

Please tell us how your ride went. You can report your finish time, add a link to your GPS track and upload photos of your brevet card here:

{submission_url}

This link is personal to you. Your chapter VP reviews all results before they are sent to ACP.

See you on the road,

Randonneurs Ontario
{HOME_URL}"""

    html = _html_page(f"""  <p>Hi {escape(rider_name)},</p>

  <p>Thanks for riding the <strong>{escape(event_name)}</strong> ({event_distance}km, {escape(chapter_name)} chapter) on {escape(event_date)}.</p>

  <p>Please tell us how your ride went. You can report your finish time, add a link to your GPS track and upload photos of your brevet card.</p>

  <p style="margin: 24px 0;">
    <a href="{escape(submission_url)}" style="background: #0066cc; color: #fff; padding: 12px 20px; border-radius: 4px; text-decoration: none;">Submit your result</a>
  </p>

  <p>This link is personal to you. Your chapter VP reviews all results before they are sent to ACP.</p>

  <p>See you on the road,</p>

  <p>
    <strong>Randonneurs Ontario</strong><br>
    <a href="{HOME_URL}" style="color: #0066cc;">randonneursontario.ca</a>
  </p>""")

    return RenderedEmail(subject, text, html)


def vp_results_submission(
    event_name: str,
    event_date: str,
    chapter_name: str,
    admin_name: str,
    admin_email: str,
    result_lines: list[str],
) -> RenderedEmail:
    subject = f"Results for {event_name} - {event_date} ({chapter_name} chapter)"
    count = len(result_lines)
    plural = "" if count == 1 else "s"
    body = "\n".join(result_lines) if result_lines else "No results recorded."

    text = f"""Results for {event_name}
{event_date}
{chapter_name} chapter

Submitted by: {admin_name} ({admin_email})

---

RESULTS ({count} rider{plural}):

{body}

---
This email was sent from the Randonneurs Ontario admin system.
"""
    html = _html_page("<pre>" + escape(text) + "</pre>")
    return RenderedEmail(subject, text, html)
