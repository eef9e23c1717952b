"""Printable brevet control cards.

Two cards per US letter page, one per registered rider.  Each card has the
event header, the rider's name, the organizer contact, a QR code pointing at
the event page and the control table with ACP opening and closing times.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Iterable, Optional

import qrcode
from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from . import models
from .brm import (
    FINISH_LIMITS_MIN,
    compute_control_times,
    format_card_date,
    format_control_time,
    format_hm,
    nominal_distance,
)
from .settings import settings
from .utils import format_event_type, parse_start_time

PREAMBLE = "Event Organized Under the Rules and Regulations of Les Randonneurs Mondiaux."
EMERGENCY = "Emergency Services: 911"

MARGIN = 12 * mm
QR_SIZE = 28 * mm
ROW_HEIGHT = 6 * mm


@dataclass
class Control:
    name: str
    distance: float


@dataclass
class Organizer:
    name: str
    phone: str = ""
    email: str = ""


def make_qr_png_bytes(text: str, box_size: int = 10, border: int = 2) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(text)
    qr.make(fit=True)
    img: Image.Image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    bio = BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


def parse_controls(text: str) -> list[Control]:
    """Parse ``name | km`` lines, sorted by distance.

    Blank lines and lines starting with ``#`` are ignored.
    """
    controls = []
    for n, raw in enumerate((text or "").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if "|" not in line:
            raise ValueError(f"Line {n}: expected 'name | km'")
        name, km = (p.strip() for p in line.rsplit("|", 1))
        if not name:
            raise ValueError(f"Line {n}: control name is required")
        try:
            distance = float(km)
        except ValueError:
            raise ValueError(f"Line {n}: invalid distance '{km}'")
        if distance < 0:
            raise ValueError(f"Line {n}: distance cannot be negative")
        controls.append(Control(name=name, distance=distance))
    return sorted(controls, key=lambda c: c.distance)


def event_start(event: models.Event) -> datetime:
    hour, minute = parse_start_time(event.start_time)
    d = event.event_date
    return datetime(d.year, d.month, d.day, hour, minute)


def control_rows(event: models.Event, controls: Iterable[Control]) -> list[tuple[str, str, str, str]]:
    """(name, km, open, close) for each control, times as 'Thu 04h30'."""
    start = event_start(event)
    nominal = nominal_distance(event.distance_km)
    rows = []
    for c in controls:
        t = compute_control_times(start, c.distance, nominal, route_km=event.distance_km)
        km = f"{c.distance:g}"
        rows.append((c.name, km, format_control_time(t.open_at), format_control_time(t.close_at)))
    return rows


def event_url(event: models.Event, site_url: Optional[str] = None) -> str:
    return f"{(site_url or settings.SITE_URL).rstrip('/')}/register/{event.slug}"


def _rider_name(rider) -> str:
    if isinstance(rider, str):
        return rider
    return f"{rider.first_name} {rider.last_name}".strip()


def _draw_card(
    c: canvas.Canvas,
    x: float,
    y: float,
    w: float,
    h: float,
    event: models.Event,
    rider_name: str,
    rows: list[tuple[str, str, str, str]],
    organizer: Organizer,
    qr: ImageReader,
) -> None:
    # (x, y) is the bottom-left corner of the card
    c.setLineWidth(0.8)
    c.rect(x, y, w, h, stroke=1, fill=0)

    top = y + h - 8 * mm
    c.drawImage(qr, x + w - QR_SIZE - 4 * mm, y + h - QR_SIZE - 4 * mm, width=QR_SIZE, height=QR_SIZE,
                preserveAspectRatio=True, mask="auto")

    c.setFont("Helvetica-Bold", 14)
    c.drawString(x + 5 * mm, top, "Randonneurs Ontario")
    c.setFont("Helvetica-Bold", 12)
    c.drawString(x + 5 * mm, top - 6 * mm, event.name)
    c.setFont("Helvetica", 10)
    kind = format_event_type(event.event_type)
    nominal = nominal_distance(event.distance_km)
    c.drawString(x + 5 * mm, top - 11 * mm, f"{event.distance_km} km {kind}  |  {format_card_date(event.event_date)}")
    c.drawString(x + 5 * mm, top - 16 * mm, f"Start: {event.start_location or 'TBD'}")
    c.drawString(
        x + 5 * mm, top - 21 * mm,
        f"Time limit: {format_hm(FINISH_LIMITS_MIN[nominal])}  |  {EMERGENCY}",
    )

    c.setFont("Helvetica-Bold", 12)
    c.drawString(x + 5 * mm, top - 29 * mm, f"Rider: {rider_name}")
    c.setFont("Helvetica", 9)
    contact = "  ".join(p for p in (organizer.name, organizer.phone, organizer.email) if p)
    c.drawString(x + 5 * mm, top - 34 * mm, f"Organizer: {contact}")

    # control table
    cols = (x + 5 * mm, x + 72 * mm, x + 90 * mm, x + 117 * mm, x + 144 * mm)
    table_top = top - 40 * mm
    c.setFont("Helvetica-Bold", 9)
    for col, label in zip(cols, ("Control", "km", "Opens", "Closes", "Time / Signature")):
        c.drawString(col, table_top, label)
    c.line(x + 4 * mm, table_top - 1.5 * mm, x + w - 4 * mm, table_top - 1.5 * mm)

    available = table_top - (y + 10 * mm)
    row_h = min(ROW_HEIGHT, available / max(len(rows), 1))
    c.setFont("Helvetica", 8 if row_h < ROW_HEIGHT else 9)
    ty = table_top - row_h
    for name, km, opens, closes in rows:
        c.drawString(cols[0], ty, name[:40])
        c.drawString(cols[1], ty, km)
        c.drawString(cols[2], ty, opens)
        c.drawString(cols[3], ty, closes)
        c.line(cols[4], ty - 1, x + w - 5 * mm, ty - 1)
        ty -= row_h

    c.setFont("Helvetica-Oblique", 7)
    c.drawCentredString(x + w / 2, y + 4 * mm, PREAMBLE)


def build_control_cards_pdf(
    event: models.Event,
    riders: Iterable,
    controls: list[Control],
    organizer: Organizer,
    site_url: Optional[str] = None,
) -> bytes:
    """Render one card per rider and return the PDF bytes.

    ``riders`` holds Rider rows or plain names.  With no riders a single
    blank card is produced for walk-ups.
    """
    if not controls:
        raise ValueError("At least one control is required")

    rows = control_rows(event, controls)
    names = [_rider_name(r) for r in riders] or [""]
    qr = ImageReader(BytesIO(make_qr_png_bytes(event_url(event, site_url))))

    page_w, page_h = letter
    card_w = page_w - 2 * MARGIN
    card_h = (page_h - 3 * MARGIN) / 2

    bio = BytesIO()
    c = canvas.Canvas(bio, pagesize=letter)
    c.setTitle(f"Control cards - {event.name}")

    for i, name in enumerate(names):
        slot = i % 2
        if i and slot == 0:
            c.showPage()
        y = page_h - MARGIN - card_h - slot * (card_h + MARGIN)
        _draw_card(c, MARGIN, y, card_w, card_h, event, name, rows, organizer, qr)

    c.save()
    return bio.getvalue()
