"""Chapter metadata and the mapping between URL slugs and database slugs."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChapterInfo:
    slug: str
    name: str
    description: str
    db_slug: Optional[str]  # None: matched on the event collection instead
    cover_image: Optional[str] = None


CORE_CHAPTERS: dict[str, ChapterInfo] = {
    "toronto": ChapterInfo(
        "toronto", "Toronto",
        "Brevets and populaires through the Greater Toronto Area, Niagara Peninsula, and the rolling hills beyond.",
        "toronto", "/static/img/toronto.jpg",
    ),
    "ottawa": ChapterInfo(
        "ottawa", "Ottawa",
        "Explore the scenic routes of Eastern Ontario, from the Ottawa Valley to the St. Lawrence.",
        "ottawa", "/static/img/ottawa.jpg",
    ),
    "simcoe-muskoka": ChapterInfo(
        "simcoe-muskoka", "Simcoe-Muskoka",
        "Brevets and populaires through the lakes and forests of Muskoka, Georgian Bay, and the Kawarthas.",
        "simcoe", "/static/img/simcoe.jpg",
    ),
    "huron": ChapterInfo(
        "huron", "Huron",
        "Discover the shores of Lake Huron and the rolling farmland of Southwestern Ontario.",
        "huron", "/static/img/huron.jpg",
    ),
}

RESULTS_ONLY_CHAPTERS: dict[str, ChapterInfo] = {
    "niagara": ChapterInfo("niagara", "Niagara", "Historical results from the Niagara chapter.", "niagara"),
    "other": ChapterInfo("other", "Other", "Results from miscellaneous events.", "other"),
    "permanent": ChapterInfo("permanent", "Permanents", "Routes ridden outside of the normal Brevet schedule.", "permanent"),
    # PBP events are stored in the "other" chapter
    "pbp": ChapterInfo(
        "pbp", "Paris-Brest-Paris", "Ontario randonneurs who have completed Paris-Brest-Paris.",
        "other", "/static/img/pbp.jpg",
    ),
    "granite-anvil": ChapterInfo(
        "granite-anvil", "Granite Anvil", "Results from the Granite Anvil 1000km+ series.",
        None, "/static/img/granite-anvil.jpg",
    ),
}

ALL_CHAPTERS: dict[str, ChapterInfo] = {**CORE_CHAPTERS, **RESULTS_ONLY_CHAPTERS}

RESULTS_DESCRIPTIONS = {
    "toronto": "Results from brevets and populaires in the Greater Toronto Area.",
    "ottawa": "Results from brevets and populaires in the Ottawa Valley region.",
    "simcoe-muskoka": "Results from brevets and populaires in Simcoe County and Muskoka.",
    "huron": "Results from brevets and populaires along Lake Huron and Bruce County.",
}

VP_EMAILS = {
    "huron": "vp-huron@randonneursontario.ca",
    "ottawa": "vp-ottawa@randonneursontario.ca",
    "simcoe": "vp-simcoe@randonneursontario.ca",
    "toronto": "vp-toronto@randonneursontario.ca",
}

_DB_TO_URL = {"simcoe": "simcoe-muskoka"}


def get_chapter_info(url_slug: str) -> Optional[ChapterInfo]:
    return CORE_CHAPTERS.get(url_slug)


def get_results_chapter_info(url_slug: str) -> Optional[ChapterInfo]:
    return ALL_CHAPTERS.get(url_slug)


def all_chapter_slugs() -> list[str]:
    return list(CORE_CHAPTERS)


def all_results_chapter_slugs() -> list[str]:
    return list(ALL_CHAPTERS)


def get_db_slug(url_slug: str) -> Optional[str]:
    info = ALL_CHAPTERS.get(url_slug)
    return info.db_slug if info else None


def url_slug_from_db_slug(db_slug: str) -> str:
    # "other" stays "other", never "pbp"
    return _DB_TO_URL.get(db_slug, db_slug)


def results_description(url_slug: str) -> str:
    info = ALL_CHAPTERS.get(url_slug)
    if not info:
        return ""
    return RESULTS_DESCRIPTIONS.get(url_slug, info.description)


def vp_email(db_slug: Optional[str]) -> Optional[str]:
    if not db_slug:
        return None
    return VP_EMAILS.get(db_slug)


def ensure_chapters(session: Session) -> None:
    """Insert a chapters row for every database slug that is missing one."""
    existing = set(session.execute(select(models.Chapter.slug)).scalars().all())
    added = 0
    for info in ALL_CHAPTERS.values():
        if info.db_slug is None or info.db_slug in existing:
            continue
        session.add(models.Chapter(slug=info.db_slug, name=info.name))
        existing.add(info.db_slug)
        added += 1
    if added:
        session.commit()
        logger.info("Seeded %d chapters", added)


def get_chapter_by_db_slug(session: Session, db_slug: str) -> Optional[models.Chapter]:
    return session.execute(select(models.Chapter).where(models.Chapter.slug == db_slug)).scalar_one_or_none()


def list_chapters(session: Session) -> list[models.Chapter]:
    return session.execute(select(models.Chapter).order_by(models.Chapter.name.asc())).scalars().all()
