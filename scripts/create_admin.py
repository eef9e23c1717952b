#!/usr/bin/env python3
"""Create an admin user, or reset the password and role of an existing one.

Usage examples:
  python scripts/create_admin.py --email vp@example.org --password secret --name "Jane Doe"
  python scripts/create_admin.py --email ottawa@example.org --password secret --name Ottawa --role chapter_admin --chapter ottawa
"""

from __future__ import annotations

import argparse
from typing import Optional

from randonneurs import models
from randonneurs.auth import ROLES, ROLE_CHAPTER_ADMIN
from randonneurs.chapters import ensure_chapters, get_chapter_by_db_slug
from randonneurs.db import init_db, new_session
from randonneurs.logging_config import setup_logging
from randonneurs.security import hash_password
from randonneurs.services.admins import get_admin_by_email


def create_or_update_admin(session, email: str, password: str, name: str, role: str = "super_admin",
                           chapter_slug: Optional[str] = None) -> tuple[models.Admin, bool]:
    """Returns (admin, created)."""
    email = email.strip().lower()
    if role not in ROLES:
        raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")

    chapter_id = None
    if role == ROLE_CHAPTER_ADMIN:
        chapter = get_chapter_by_db_slug(session, chapter_slug or "")
        if not chapter:
            raise ValueError("Chapter admins need a valid --chapter")
        chapter_id = chapter.id

    admin = get_admin_by_email(session, email)
    created = admin is None
    if created:
        admin = models.Admin(email=email)
        session.add(admin)
    admin.name = name.strip()
    admin.role = role
    admin.chapter_id = chapter_id
    admin.password_hash = hash_password(password)
    session.commit()
    return admin, created


def main(argv: Optional[list[str]] = None):
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--name", required=True)
    ap.add_argument("--role", default="super_admin", choices=list(ROLES))
    ap.add_argument("--chapter", default=None, help="Chapter slug, for chapter admins")
    ap.add_argument("--db-url", default=None, help="Overrides RO_DB_URL")
    args = ap.parse_args(argv)

    setup_logging()
    init_db(args.db_url)
    s = new_session()
    try:
        ensure_chapters(s)
        admin, created = create_or_update_admin(s, args.email, args.password, args.name, args.role, args.chapter)
    except ValueError as e:
        raise SystemExit(str(e))
    finally:
        s.close()
    print(f"{'Created' if created else 'Updated'} {admin.role} {admin.email}")


if __name__ == "__main__":
    main()
