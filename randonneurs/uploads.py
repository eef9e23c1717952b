"""Files uploaded through the site, stored under UPLOAD_DIR and served at /uploads."""
from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .services.riders import random_suffix
from .settings import settings

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
PUBLIC_PREFIX = "/uploads"
ADMIN_FOLDER = "site"

ADMIN_ALLOWED_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
}
ADMIN_ALLOWED_LABEL = "JPEG, PNG, WebP, GIF, PDF, DOC, DOCX, XLS, XLSX"
ADMIN_EXTENSIONS = set(ADMIN_ALLOWED_TYPES.values()) | {"jpeg"}


@dataclass
class StoredFile:
    path: str
    url: str


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR).resolve()


def resolve_upload(subpath: str) -> Path:
    root = upload_root()
    target = (root / subpath).resolve()
    if root != target and root not in target.parents:
        raise ValueError("Invalid upload path")
    return target


def public_url(subpath: str) -> str:
    return f"{PUBLIC_PREFIX}/{subpath.lstrip('/')}"


def save_upload(subpath: str, data: bytes) -> StoredFile:
    target = resolve_upload(subpath)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "xb") as fh:
        fh.write(data)
    logger.info("Stored upload %s (%d bytes)", subpath, len(data))
    return StoredFile(path=subpath, url=public_url(subpath))


def delete_upload(subpath: Optional[str]) -> bool:
    if not subpath:
        return False
    target = resolve_upload(subpath)
    try:
        os.remove(target)
    except FileNotFoundError:
        logger.warning("Upload already gone: %s", subpath)
        return False
    logger.info("Deleted upload %s", subpath)
    return True


def unique_name(prefix: str, ext: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{random_suffix()}.{ext}"


def file_extension(filename: Optional[str], default: str) -> str:
    ext = (filename or "").rsplit(".", 1)[-1].lower() if "." in (filename or "") else ""
    ext = re.sub(r"[^a-z0-9]", "", ext)
    return ext or default


def upload_admin_file(filename: str, content_type: str, data: bytes) -> StoredFile:
    """Images and documents uploaded from the admin for news and content pages."""
    if content_type not in ADMIN_ALLOWED_TYPES:
        raise ValueError(f"Invalid file type. Allowed: {ADMIN_ALLOWED_LABEL}")
    if len(data) > MAX_FILE_SIZE:
        raise ValueError("File too large. Maximum size: 10MB")

    ext = file_extension(filename, ADMIN_ALLOWED_TYPES[content_type])
    if ext not in ADMIN_EXTENSIONS:
        ext = ADMIN_ALLOWED_TYPES[content_type]
    stem = re.sub(r"[^a-z0-9]+", "-", Path(filename or "file").stem.lower()).strip("-") or "file"
    return save_upload(f"{ADMIN_FOLDER}/{unique_name(stem[:40], ext)}", data)
