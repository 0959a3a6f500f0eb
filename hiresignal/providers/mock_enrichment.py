# Fake firmographics for development; no network, no credits
from __future__ import annotations

import asyncio
import hashlib
import re
from datetime import datetime, timezone

from .base import EnrichmentProvider, enriched
from ..schemas import CompanyEnrichment, Credits, EnrichedJob, Job, Person

INDUSTRIES = ["Software", "Financial Services", "Healthcare", "Retail", "Logistics", "Media"]
RANGES = ["11-50", "51-200", "201-500", "501-1000", "1001-5000"]
STAGES = ["Seed", "Series A", "Series B", "Series C", "Public"]


def _pick(options: list[str], name: str, salt: str) -> str:
    digest = hashlib.sha1(f"{salt}:{name.lower()}".encode()).digest()
    return options[digest[0] % len(options)]


class MockEnrichment(EnrichmentProvider):
    id = "mock"
    name = "Mock Enrichment (Development)"

    def __init__(self, *, latency: float = 0.1):
        self.latency = latency

    async def is_configured(self) -> bool:
        return True

    async def get_credits(self) -> Credits | None:
        return Credits(remaining=9999, total=10000)

    async def enrich_job(self, job: Job) -> EnrichedJob:
        await asyncio.sleep(self.latency)
        slug = re.sub(r"[^a-z0-9]+", "", job.company.lower()) or "company"
        domain = f"{slug}.com"
        company = CompanyEnrichment(
            industry=_pick(INDUSTRIES, job.company, "industry"),
            employee_count_range=_pick(RANGES, job.company, "size"),
            headquarters=job.location,
            description=f"{job.company} is hiring for {job.title}.",
            website=f"https://{domain}",
            funding_stage=_pick(STAGES, job.company, "stage"),
            technologies=["Python", "AWS"],
            source="mock",
            enriched_at=datetime.now(timezone.utc),
        )
        people = [
            Person(name="Alex Morgan", title="Head of Talent", email=f"alex.morgan@{domain}"),
            Person(name="Sam Taylor", title="VP Engineering", email=f"sam.taylor@{domain}",
                   linked_in_url=f"https://www.linkedin.com/in/sam-taylor-{slug}"),
        ]
        return enriched(job, company_data=company, decision_makers=people)
