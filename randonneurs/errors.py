from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "A record with this value already exists"


class MembershipError(ValueError):
    """Registration refused because of the rider's membership status.

    ``variant`` is ``"no-membership"`` or ``"trial-used"`` and selects which
    explanation the registration page shows.
    """

    MESSAGES = {
        "no-membership": "We could not find a current Randonneurs Ontario membership for you.",
        "trial-used": "Your trial membership has already been used this season.",
    }

    def __init__(self, variant: str):
        self.variant = variant
        super().__init__(self.MESSAGES.get(variant, "Membership check failed"))


def user_message(exc: Exception, default: str = "An unexpected error occurred") -> str:
    """Turn an exception raised by a service call into text for a form."""
    if isinstance(exc, IntegrityError):
        logger.warning("Integrity error: %s", exc.orig)
        return DUPLICATE_MESSAGE
    if isinstance(exc, ValueError):
        return str(exc)
    logger.exception("Unexpected error", exc_info=exc)
    return default
