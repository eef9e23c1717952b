"""Outgoing mail over SMTP. An empty SMTP_HOST turns sending into a logged no-op."""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, Optional

from .settings import settings

logger = logging.getLogger(__name__)


def build_message(
    to: str,
    subject: str,
    text: str,
    html: Optional[str] = None,
    cc: Optional[Iterable[str]] = None,
    sender: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender or settings.EMAIL_FROM
    msg["To"] = to
    cc = [c for c in (cc or []) if c]
    if cc:
        msg["Cc"] = ", ".join(cc)
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")
    return msg


def send_message(msg: EmailMessage) -> bool:
    """Send ``msg``. Returns False when SMTP is not configured; SMTP errors propagate."""
    if not settings.SMTP_HOST:
        logger.warning("SMTP not configured, skipping email to %s: %s", msg["To"], msg["Subject"])
        return False

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
        if settings.SMTP_USE_TLS:
            server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    logger.info("Sent email to %s%s: %s", msg["To"], f" (cc: {msg['Cc']})" if msg["Cc"] else "", msg["Subject"])
    return True


def send_quietly(msg: EmailMessage) -> bool:
    """Fire-and-forget variant for background tasks."""
    try:
        return send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email to %s", msg["To"])
        return False
