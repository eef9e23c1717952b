"""Client for the CCN membership registry."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from .settings import settings

logger = logging.getLogger(__name__)

MEMBERSHIP_INDIVIDUAL = "Individual Membership"
MEMBERSHIP_FAMILY_ADDITIONAL = "Additional Family Member"
MEMBERSHIP_FAMILY_PRIMARY = "Family Membership > PRIMARY FAMILY MEMBER"
MEMBERSHIP_TRIAL = "Trial Member"
MEMBERSHIP_TYPES = (
    MEMBERSHIP_INDIVIDUAL,
    MEMBERSHIP_FAMILY_ADDITIONAL,
    MEMBERSHIP_FAMILY_PRIMARY,
    MEMBERSHIP_TRIAL,
)


class CCNError(RuntimeError):
    pass


@dataclass
class CCNMember:
    membership_id: int
    full_name: str
    membership_type: str


class CCNClient:
    def __init__(self, endpoint: str, http: Optional[httpx.Client] = None, timeout: float = 15.0):
        if not endpoint:
            raise CCNError("CCN_ENDPOINT environment variable not set")
        self.endpoint = endpoint
        self.http = http or httpx.Client(timeout=timeout)

    def search(self, first_name: str, last_name: str) -> Optional[CCNMember]:
        """Look a member up by full name; the first hit wins."""
        url = f"{self.endpoint}&search={quote(f'{first_name} {last_name}', safe='')}"
        response = self.http.get(url)
        if not response.is_success:
            raise CCNError(f"CCN API error: {response.status_code}")

        data = response.json()
        results = data.get("results") or []
        if not data.get("count") or not results:
            logger.info("No CCN membership for %s %s", first_name, last_name)
            return None

        member = results[0]
        return CCNMember(
            membership_id=int(member["id"]),
            full_name=str(member.get("full_name") or ""),
            membership_type=str(member.get("registration_category") or ""),
        )


def get_ccn_client() -> Optional[CCNClient]:
    if not settings.CCN_ENDPOINT:
        return None
    return CCNClient(settings.CCN_ENDPOINT)
