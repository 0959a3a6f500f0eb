"""Windowed batch enrichment.

Jobs are split into windows of `concurrency`; the calls in a window run
together, windows run one after another with `delay` seconds between them.
A job that errors or comes back without company data still yields an
EnrichedJob and is counted as failed; it never aborts the batch.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .cancellation import CancelToken
from ..errors import EnrichmentCancelled, HireSignalError
from ..providers.base import enriched
from ..schemas import EnrichedJob, EnrichmentBatchProgress, Job, Person

if TYPE_CHECKING:
    from ..providers.base import EnrichmentProvider
    from ..providers.reoon import ReoonVerifier

log = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_DELAY_SECONDS = 1.0


@dataclass
class BatchOutcome:
    results: list[EnrichedJob] = field(default_factory=list)
    progress: EnrichmentBatchProgress = field(default_factory=EnrichmentBatchProgress)

    @property
    def enriched_count(self) -> int:
        return sum(1 for r in self.results if r.company_data is not None)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.enriched_count


async def _enrich_one(provider: "EnrichmentProvider", job: Job) -> tuple[EnrichedJob, bool]:
    try:
        result = await provider.enrich_job(job)
    except Exception as exc:
        log.warning("enrichment of job %s (%s) failed: %s", job.id, job.company, exc)
        return enriched(job), False
    return result, result.company_data is not None


async def enrich_in_windows(
    provider: "EnrichmentProvider",
    jobs: list[Job],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    delay: float = DEFAULT_DELAY_SECONDS,
    on_progress: Callable[[EnrichmentBatchProgress], None] | None = None,
    token: CancelToken | None = None,
) -> BatchOutcome:
    token = token or CancelToken()
    size = max(1, concurrency)
    outcome = BatchOutcome(progress=EnrichmentBatchProgress(total=len(jobs)))

    log.info("starting %s enrichment of %d jobs (window %d)", provider.id, len(jobs), size)

    for start in range(0, len(jobs), size):
        if start:
            await token.sleep(delay, EnrichmentCancelled)
        token.raise_if_cancelled(EnrichmentCancelled)

        window = jobs[start : start + size]
        pairs = await asyncio.gather(*(_enrich_one(provider, j) for j in window))
        token.raise_if_cancelled(EnrichmentCancelled)

        for result, ok in pairs:
            outcome.results.append(result)
            if not ok:
                outcome.progress.failed += 1
        outcome.progress.completed += len(window)

        if on_progress is not None:
            on_progress(outcome.progress.model_copy())

    log.info(
        "%s enrichment complete: %d enriched, %d failed",
        provider.id, outcome.enriched_count, outcome.failed_count,
    )
    return outcome


class EnrichmentRunner:
    """One active batch per caller; starting another cancels the first."""

    def __init__(
        self,
        provider: "EnrichmentProvider",
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        delay: float = DEFAULT_DELAY_SECONDS,
        on_progress: Callable[[EnrichmentBatchProgress], None] | None = None,
    ):
        self.provider = provider
        self.concurrency = concurrency
        self.delay = delay
        self.on_progress = on_progress
        self.progress: EnrichmentBatchProgress | None = None
        self._token: CancelToken | None = None

    @property
    def active(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
            self.progress = None

    async def run(self, jobs: list[Job]) -> BatchOutcome:
        self.cancel()
        token = CancelToken()
        self._token = token
        self.progress = EnrichmentBatchProgress(total=len(jobs))

        def report(p: EnrichmentBatchProgress) -> None:
            if token.cancelled:
                return
            self.progress = p
            if self.on_progress is not None:
                self.on_progress(p)

        try:
            return await self.provider.enrich_jobs(
                jobs,
                concurrency=self.concurrency,
                delay=self.delay,
                on_progress=report,
                token=token,
            )
        finally:
            if self._token is token:
                self._token = None


async def verify_decision_makers(verifier: "ReoonVerifier", results: list[EnrichedJob]) -> list[EnrichedJob]:
    """Attach an email status to every decision maker that has an email."""
    out: list[EnrichedJob] = []
    for r in results:
        if not r.decision_makers:
            out.append(r)
            continue
        people: list[Person] = []
        for p in r.decision_makers:
            if not p.email:
                people.append(p)
                continue
            try:
                check = await verifier.verify_email(p.email)
            except HireSignalError as exc:
                log.warning("could not verify %s: %s", p.email, exc)
                people.append(p)
                continue
            people.append(p.model_copy(update={"email_status": check.status}))
        out.append(r.model_copy(update={"decision_makers": people}))
    return out
