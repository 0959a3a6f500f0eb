# Icypeas: LinkedIn company scrape + domain email search, billed in credits
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .base import EnrichmentProvider, enriched
from .http import send
from ..errors import ConfigurationError, TransientNetworkError
from ..schemas import CompanyEnrichment, Credits, EnrichedJob, Job

log = logging.getLogger(__name__)

ICYPEAS_API = "https://app.icypeas.com/api"
SEARCH_POLL_SECONDS = 2.0
SEARCH_POLL_ATTEMPTS = 30

COMPANY_SCRAPE_CREDITS = 0.5
DOMAIN_SEARCH_CREDITS = 1.0

_RANGES = {
    "1-10": "1-10",
    "2-10": "1-10",
    "11-50": "11-50",
    "51-200": "51-200",
    "201-500": "201-500",
    "501-1000": "501-1000",
    "1001-5000": "1001-5000",
    "5001-10000": "5001-10000",
    "10001+": "10001+",
    "10001-50000": "10001+",
    "50001+": "10001+",
}


def normalize_employee_range(raw: str | None) -> str | None:
    if not raw:
        return None
    return _RANGES.get(raw.replace(" ", "").replace(",", ""))


def company_from_scrape(raw: dict) -> CompanyEnrichment:
    return CompanyEnrichment(
        linked_in_company_url=raw.get("linkedInUrl"),
        employee_count=raw.get("employeeCount"),
        employee_count_range=normalize_employee_range(raw.get("employeeCountRange")),
        industry=raw.get("industry"),
        founded=raw.get("founded"),
        company_type=raw.get("type"),
        headquarters=raw.get("headquarter"),
        description=raw.get("description"),
        tagline=raw.get("tagline"),
        website=raw.get("website"),
        phone=raw.get("phone"),
        specialties=raw.get("specialties"),
        source="icypeas",
        enriched_at=datetime.now(timezone.utc),
    )


_read_retry = retry(
    retry=retry_if_exception_type(TransientNetworkError),
    wait=wait_exponential(min=1, max=8),
    stop=stop_after_attempt(3),
    reraise=True,
)


class IcypeasEnrichment(EnrichmentProvider):
    id = "icypeas"
    name = "Icypeas"

    def __init__(
        self,
        api_key: str | None,
        *,
        poll_seconds: float = SEARCH_POLL_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.poll_seconds = poll_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise ConfigurationError("ICYPEAS_API_KEY environment variable is not set")
        return httpx.AsyncClient(
            base_url=ICYPEAS_API,
            timeout=30,
            # no Bearer prefix for this API
            headers={"Authorization": self.api_key},
            transport=self._transport,
        )

    async def is_configured(self) -> bool:
        return bool(self.api_key)

    @_read_retry
    async def get_credits(self) -> Credits | None:
        async with self._client() as client:
            r = await send(client, "POST", "/a/actions/subscription-information", json={})
        if r.status_code >= 400:
            log.warning("failed to check Icypeas credits: %s", r.status_code)
            return None
        data = r.json()
        remaining = data.get("credits_remaining") or 0
        used = data.get("credits_used") or 0
        return Credits(remaining=remaining, total=remaining + used)

    @_read_retry
    async def scrape_company(self, linkedin_url: str) -> dict | None:
        async with self._client() as client:
            r = await send(client, "GET", "/scrape/company", params={"url": linkedin_url})
        if r.status_code == 404:
            log.warning("company not found on Icypeas: %s", linkedin_url)
            return None
        r.raise_for_status()
        return r.json()

    async def search_domain(self, domain_or_company: str) -> dict | None:
        async with self._client() as client:
            r = await send(client, "POST", "/domain-search", json={"domainOrCompany": domain_or_company})
            r.raise_for_status()
            data = r.json()
            if not data.get("success"):
                return None
            item = data.get("item") or {}
            if item.get("status") == "DEBITED":
                return data
            return await self._wait_for_search(client, item.get("_id"))

    async def _wait_for_search(self, client: httpx.AsyncClient, search_id: str | None) -> dict | None:
        if not search_id:
            return None
        for attempt in range(SEARCH_POLL_ATTEMPTS):
            await asyncio.sleep(self.poll_seconds)
            r = await send(
                client, "POST", "/bulk-single-searchs/read",
                json={"mode": "single", "id": search_id, "limit": 1, "next": False},
            )
            if r.status_code >= 400:
                log.warning("search %s poll %d failed: %s", search_id, attempt + 1, r.status_code)
                continue
            data = r.json()
            if (data.get("item") or {}).get("status") == "DEBITED":
                return data
        log.warning("polling timed out for search %s", search_id)
        return None

    async def enrich_job(self, job: Job) -> EnrichedJob:
        company: CompanyEnrichment | None = None

        if job.company_linked_in:
            scraped = await self.scrape_company(job.company_linked_in)
            if scraped:
                company = company_from_scrape(scraped)

        domain = job.company_url or (company.website if company else None)
        if domain:
            found = await self.search_domain(domain)
            if found:
                company = company or CompanyEnrichment(source="icypeas", enriched_at=datetime.now(timezone.utc))
                if not company.website:
                    company = company.model_copy(update={"website": domain})

        if company is None:
            log.warning("no Icypeas data for job %s (%s)", job.id, job.company)
        return enriched(job, company_data=company)
