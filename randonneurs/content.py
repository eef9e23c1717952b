"""
Markdown content pages.

Pages live in ``CONTENT_DIR/pages/<slug>.md``.  Each file starts with a YAML
frontmatter block (title, slug, description, lastUpdated) followed by the
markdown body.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

import markdown
import yaml
from sqlalchemy.orm import Session

from .audit import log_audit_event
from .auth import CurrentAdmin
from .settings import settings
from .utils import club_today

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9-]+$")
MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]

_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*\n?", re.DOTALL)


@dataclass
class PageMeta:
    slug: str
    title: str
    description: str
    last_updated: str


@dataclass
class Page(PageMeta):
    content: str = ""

    @property
    def html(self) -> str:
        return render_markdown(self.content)


def pages_dir() -> Path:
    return Path(settings.CONTENT_DIR) / "pages"


def render_markdown(text: Optional[str]) -> str:
    return markdown.markdown(text or "", extensions=MARKDOWN_EXTENSIONS)


def split_frontmatter(raw: str) -> tuple[dict, str]:
    m = _FRONTMATTER_RE.match(raw)
    if not m:
        return {}, raw
    data = yaml.safe_load(m.group(1)) or {}
    if not isinstance(data, dict):
        data = {}
    return data, raw[m.end():]


def _meta(slug: str, data: dict) -> PageMeta:
    updated = data.get("lastUpdated")
    return PageMeta(
        slug=slug,
        title=str(data.get("title") or slug),
        description=str(data.get("description") or ""),
        # yaml turns bare dates into date objects
        last_updated=str(updated).split("T")[0] if updated else "",
    )


def get_page(slug: str) -> Optional[Page]:
    if not SLUG_RE.match(slug or ""):
        return None
    path = pages_dir() / f"{slug}.md"
    if not path.is_file():
        return None
    data, body = split_frontmatter(path.read_text(encoding="utf-8"))
    meta = _meta(slug, data)
    return Page(meta.slug, meta.title, meta.description, meta.last_updated, content=body.lstrip("\n"))


def list_pages() -> list[PageMeta]:
    directory = pages_dir()
    if not directory.is_dir():
        return []
    pages = []
    for path in directory.glob("*.md"):
        data, _ = split_frontmatter(path.read_text(encoding="utf-8"))
        pages.append(_meta(path.stem, data))
    return sorted(pages, key=lambda p: p.title.lower())


def page_file_content(slug: str, title: str, description: str, content: str, today: date) -> str:
    front = yaml.safe_dump(
        {"title": title, "slug": slug, "description": description, "lastUpdated": today.isoformat()},
        sort_keys=False,
        allow_unicode=True,
    )
    return f"---\n{front}---\n\n{content.rstrip()}\n"


def save_page(
    session: Session,
    admin: CurrentAdmin,
    slug: str,
    title: str,
    description: str,
    content: str,
    today: Optional[date] = None,
) -> Page:
    slug = (slug or "").strip()
    title = (title or "").strip()
    if not slug or not title:
        raise ValueError("Slug and title are required")
    if not SLUG_RE.match(slug):
        raise ValueError("Slug can only contain lowercase letters, numbers, and hyphens")

    directory = pages_dir()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{slug}.md"
    existed = path.exists()
    path.write_text(
        page_file_content(slug, title, (description or "").strip(), content or "", today or club_today()),
        encoding="utf-8",
    )
    logger.info("Saved page %s", path)

    log_audit_event(
        session, admin.id, "update" if existed else "create", "page", slug,
        f"{'Updated' if existed else 'Created'} page: {title}",
    )
    return get_page(slug)
