# Apify LinkedIn jobs actor: start a run, poll its status, page its dataset
import logging

import httpx

from .base import DataSourceProvider, RunPage
from .http import send
from ..errors import ConfigurationError, TerminalRunFailure
from ..schemas import RunStatus, ScrapeOptions, ScrapeRun

log = logging.getLogger(__name__)

APIFY_API = "https://api.apify.com/v2"

DATE_RANGES = {
    "24h": "r86400",
    "last24hours": "r86400",
    "3d": "r259200",
    "last3days": "r259200",
    "7d": "r604800",
    "last7days": "r604800",
    "14d": "r1209600",
    "last14days": "r1209600",
    "30d": "r2592000",
    "last30days": "r2592000",
}

_FAILED = {"FAILED", "ABORTED", "ABORTING", "TIMED-OUT", "TIMING-OUT"}


def map_run_status(raw: str | None) -> RunStatus:
    s = (raw or "").upper()
    if s == "SUCCEEDED":
        return RunStatus.SUCCEEDED
    if s in _FAILED:
        return RunStatus.FAILED
    return RunStatus.RUNNING


class ApifyDataSource(DataSourceProvider):
    id = "apify"
    name = "Apify LinkedIn Scraper"

    def __init__(
        self,
        api_token: str | None,
        actor_id: str,
        *,
        default_max_results: int = 150,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_token = api_token
        self.actor_id = actor_id
        self.default_max_results = default_max_results
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.api_token:
            raise ConfigurationError("APIFY_API_TOKEN not configured")
        return httpx.AsyncClient(
            base_url=APIFY_API,
            timeout=30,
            headers={"Authorization": f"Bearer {self.api_token}"},
            transport=self._transport,
        )

    async def is_configured(self) -> bool:
        return bool(self.api_token)

    def actor_input(self, options: ScrapeOptions) -> dict:
        body = {
            "keyword": [options.job_title],
            "location": options.location or "United States",
            "maxItems": options.max_results or self.default_max_results,
            "saveOnlyUniqueItems": True,
        }
        published = DATE_RANGES.get(options.date_range or "last24hours")
        if published:
            body["publishedAt"] = published
        return body

    async def start_run(self, options: ScrapeOptions) -> ScrapeRun:
        # not retried: a rejected submission won't fix itself
        async with self._client() as client:
            r = await send(client, "POST", f"/acts/{self.actor_id}/runs", json=self.actor_input(options))
            if r.status_code >= 400:
                raise TerminalRunFailure(f"Apify API error: {r.status_code} {r.reason_phrase}")
            data = r.json().get("data") or {}

        if not data.get("id") or not data.get("defaultDatasetId"):
            raise TerminalRunFailure("Apify API returned no run id")
        log.info("apify run %s started for %r", data["id"], options.job_title)
        return ScrapeRun(
            run_id=data["id"],
            dataset_id=data["defaultDatasetId"],
            status=map_run_status(data.get("status")),
        )

    async def poll_run(self, run_id: str, dataset_id: str, offset: int) -> RunPage:
        async with self._client() as client:
            # status first: once SUCCEEDED, the page read below is complete
            r = await send(client, "GET", f"/actor-runs/{run_id}")
            if r.status_code >= 400:
                raise TerminalRunFailure(f"Failed to check run status: {r.status_code}")
            status = map_run_status((r.json().get("data") or {}).get("status"))

            r = await send(
                client, "GET", f"/datasets/{dataset_id}/items",
                params={"format": "json", "clean": "true", "offset": offset},
            )
            if r.status_code >= 400:
                raise TerminalRunFailure(f"Failed to fetch dataset: {r.status_code}")
            items = r.json()

        if not isinstance(items, list):
            items = []
        return RunPage(status=status, items=items, offset=offset + len(items))
