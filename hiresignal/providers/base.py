from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Protocol

from ..schemas import (
    CompanyEnrichment,
    Credits,
    EnrichedJob,
    EnrichmentBatchProgress,
    Job,
    Person,
    RunStatus,
    ScrapeOptions,
    ScrapeResult,
    ScrapeRun,
)

if TYPE_CHECKING:
    from ..services.cancellation import CancelToken
    from ..services.enrichment import BatchOutcome


@dataclass
class RunPage:
    status: RunStatus
    items: list[dict] = field(default_factory=list)
    offset: int = 0

    @property
    def new_count(self) -> int:
        return len(self.items)


class DataSourceProvider(Protocol):
    """A remote scraper: submit a run, then poll status and read result pages."""

    id: str
    name: str

    async def is_configured(self) -> bool:
        ...

    async def start_run(self, options: ScrapeOptions) -> ScrapeRun:
        ...

    async def poll_run(self, run_id: str, dataset_id: str, offset: int) -> RunPage:
        ...

    async def scrape(self, options: ScrapeOptions, token: "CancelToken | None" = None) -> ScrapeResult:
        from ..services.scrape import ScrapeOrchestrator

        return await ScrapeOrchestrator(self).run(options, token=token)


ProgressCallback = Callable[[EnrichmentBatchProgress], None]


def enriched(
    job: Job,
    company_data: CompanyEnrichment | None = None,
    decision_makers: list[Person] | None = None,
) -> EnrichedJob:
    """A fresh EnrichedJob; any earlier enrichment on `job` is dropped, not merged."""
    base = job.model_dump(include=set(Job.model_fields))
    return EnrichedJob(
        **base,
        enriched=True,
        company_data=company_data,
        decision_makers=decision_makers,
        enriched_at=datetime.now(timezone.utc),
    )


class EnrichmentProvider(Protocol):
    id: str
    name: str

    async def is_configured(self) -> bool:
        ...

    async def get_credits(self) -> Credits | None:
        ...

    async def enrich_job(self, job: Job) -> EnrichedJob:
        ...

    async def enrich_jobs(
        self,
        jobs: list[Job],
        *,
        concurrency: int = 3,
        delay: float = 1.0,
        on_progress: ProgressCallback | None = None,
        token: "CancelToken | None" = None,
    ) -> "BatchOutcome":
        from ..services.enrichment import enrich_in_windows

        return await enrich_in_windows(
            self, jobs, concurrency=concurrency, delay=delay, on_progress=on_progress, token=token,
        )
