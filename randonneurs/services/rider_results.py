"""
Rider self-reporting of results.

Each pending result carries a random submission token that is mailed to the
rider when the event completes.  Holding the token is the only credential:
these functions never look at an admin session.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..uploads import MAX_FILE_SIZE, StoredFile, delete_upload, file_extension, public_url, save_upload, unique_name
from ..utils import utcnow

logger = logging.getLogger(__name__)

SUBMISSION_FOLDER = "rider-submissions"
SUBMITTABLE_STATUSES = ("finished", "dnf", "dns")
FILE_FIELDS = {
    "gpx": "gpx_file_path",
    "control_card_front": "control_card_front_path",
    "control_card_back": "control_card_back_path",
}
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
ALLOWED_GPX_TYPES = ("application/gpx+xml", "application/xml", "text/xml")

_FINISH_TIME_RE = re.compile(r"^\d{1,3}:\d{2}$")


@dataclass
class ResultSubmission:
    result_id: int
    event_id: int
    event_name: str
    event_date: date
    event_distance: int
    chapter_name: str
    rider_name: str
    rider_email: str
    current_status: str
    finish_time: Optional[str]
    gpx_url: Optional[str]
    gpx_file_path: Optional[str]
    control_card_front_path: Optional[str]
    control_card_back_path: Optional[str]
    rider_notes: Optional[str]
    submitted_at: Optional[datetime]
    can_submit: bool

    def file_url(self, file_type: str) -> Optional[str]:
        path = getattr(self, FILE_FIELDS[file_type])
        return public_url(f"{SUBMISSION_FOLDER}/{path}") if path else None


def _result_for_token(session: Session, token: Optional[str]) -> models.Result:
    if not token:
        raise ValueError("Invalid submission token")
    result = session.execute(
        select(models.Result)
        .options(selectinload(models.Result.event).selectinload(models.Event.chapter), selectinload(models.Result.rider))
        .where(models.Result.submission_token == token)
    ).scalar_one_or_none()
    if not result:
        raise ValueError("Result not found or invalid token")
    return result


def _ensure_open(result: models.Result, message: str) -> None:
    if result.event.status == "submitted":
        raise ValueError(message)


def get_result_by_token(session: Session, token: Optional[str]) -> ResultSubmission:
    result = _result_for_token(session, token)
    event, rider = result.event, result.rider
    return ResultSubmission(
        result_id=result.id,
        event_id=event.id,
        event_name=event.name,
        event_date=event.event_date,
        event_distance=event.distance_km,
        chapter_name=event.chapter.name if event.chapter else "Randonneurs Ontario",
        rider_name=f"{rider.first_name} {rider.last_name}",
        rider_email=rider.email or "",
        current_status=result.status,
        finish_time=result.finish_time,
        gpx_url=result.gpx_url,
        gpx_file_path=result.gpx_file_path,
        control_card_front_path=result.control_card_front_path,
        control_card_back_path=result.control_card_back_path,
        rider_notes=result.rider_notes,
        submitted_at=result.submitted_at,
        can_submit=event.status != "submitted",
    )


def submit_rider_result(
    session: Session,
    token: Optional[str],
    status: str,
    finish_time: Optional[str] = None,
    gpx_url: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.Result:
    if not token:
        raise ValueError("Invalid submission token")
    if status not in SUBMITTABLE_STATUSES:
        raise ValueError("Invalid status")
    finish_time = (finish_time or "").strip()
    if status == "finished":
        if not finish_time:
            raise ValueError("Finish time is required for finished rides")
        if not _FINISH_TIME_RE.match(finish_time):
            raise ValueError("Invalid finish time format. Use HH:MM (e.g., 13:30 or 105:45)")

    result = _result_for_token(session, token)
    _ensure_open(result, "Results have already been submitted to ACP. Contact your chapter VP for changes.")

    result.status = status
    result.finish_time = finish_time if status == "finished" else None
    result.gpx_url = (gpx_url or "").strip() or None
    result.rider_notes = (notes or "").strip() or None
    result.submitted_at = utcnow()
    session.commit()
    logger.info("Rider submitted result %s as %s", result.id, status)
    return result


def upload_result_file(
    session: Session,
    token: Optional[str],
    file_type: str,
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
) -> StoredFile:
    if not token:
        raise ValueError("Invalid submission token")
    if file_type not in FILE_FIELDS:
        raise ValueError("Invalid file type")
    if not data:
        raise ValueError("No file provided")
    if len(data) > MAX_FILE_SIZE:
        raise ValueError("File too large. Maximum size is 10MB.")

    is_gpx = file_type == "gpx"
    allowed = ALLOWED_GPX_TYPES if is_gpx else ALLOWED_IMAGE_TYPES
    if content_type not in allowed:
        desc = "GPX/XML" if is_gpx else "image (JPEG, PNG, WebP)"
        raise ValueError(f"Invalid file type. Please upload a {desc} file.")

    result = _result_for_token(session, token)
    _ensure_open(result, "Results have already been submitted. Contact your chapter VP for changes.")

    ext = file_extension(filename, "gpx" if is_gpx else "jpg")
    path = f"{result.event_id}/{result.rider_id}/{unique_name(file_type, ext)}"
    stored = save_upload(f"{SUBMISSION_FOLDER}/{path}", data)

    field = FILE_FIELDS[file_type]
    previous = getattr(result, field)
    setattr(result, field, path)
    session.commit()
    if previous:
        delete_upload(f"{SUBMISSION_FOLDER}/{previous}")
    return StoredFile(path=path, url=stored.url)


def delete_result_file(session: Session, token: Optional[str], file_type: str) -> None:
    if not token:
        raise ValueError("Invalid submission token")
    if file_type not in FILE_FIELDS:
        raise ValueError("Invalid file type")

    result = _result_for_token(session, token)
    _ensure_open(result, "Results have already been submitted. Contact your chapter VP for changes.")

    field = FILE_FIELDS[file_type]
    path = getattr(result, field)
    if not path:
        return
    delete_upload(f"{SUBMISSION_FOLDER}/{path}")
    setattr(result, field, None)
    session.commit()
