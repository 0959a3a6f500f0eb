# Reoon email verifier, single-address endpoint
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .http import send
from ..errors import ConfigurationError, HireSignalError, TransientNetworkError

log = logging.getLogger(__name__)

REOON_API = "https://emailverifier.reoon.com/api/v1"

QUICK_STATUSES = {"valid", "invalid", "disposable", "spamtrap"}
POWER_STATUSES = {
    "safe", "invalid", "disabled", "disposable", "inbox_full",
    "catch_all", "role_account", "spamtrap", "unknown",
}


def map_status(raw: str | None, mode: str) -> str:
    allowed = QUICK_STATUSES if mode == "quick" else POWER_STATUSES
    return raw if raw in allowed else "unknown"


@dataclass
class EmailCheck:
    email: str
    status: str
    is_safe_to_send: bool
    score: int | None = None


class ReoonVerifier:
    id = "reoon"
    name = "Reoon Email Verifier"

    def __init__(self, api_key: str | None, *, mode: str = "power", transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key
        self.mode = mode
        self._transport = transport

    async def is_configured(self) -> bool:
        return bool(self.api_key)

    @retry(
        retry=retry_if_exception_type(TransientNetworkError),
        wait=wait_exponential(min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def verify_email(self, email: str) -> EmailCheck:
        if not self.api_key:
            raise ConfigurationError("REOON_API_KEY environment variable is not set")
        async with httpx.AsyncClient(base_url=REOON_API, timeout=30, transport=self._transport) as client:
            r = await send(client, "GET", "/verify", params={"email": email, "key": self.api_key, "mode": self.mode})
        if r.status_code >= 400:
            raise HireSignalError(f"Reoon verify error: {r.status_code}")
        data = r.json()
        status = map_status(data.get("status"), self.mode)
        if self.mode == "power":
            safe = bool(data.get("is_safe_to_send"))
        else:
            safe = status in ("safe", "valid")
        log.debug("verified %s: %s", email, status)
        return EmailCheck(email=data.get("email") or email, status=status, is_safe_to_send=safe,
                          score=data.get("overall_score"))
