"""Per-caller search context: one search slot, one enrichment slot, one refresh timer."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .auto_refresh import AutoRefresh
from .credits import preflight
from .enrichment import EnrichmentRunner, verify_decision_makers
from .scrape import ScrapeOrchestrator
from .store import CreditLedger, JobStore
from ..errors import CancellationError, HireSignalError
from ..schemas import EnrichedJob, Job, ScrapeOptions

if TYPE_CHECKING:
    from ..providers.base import DataSourceProvider, EnrichmentProvider
    from ..providers.reoon import ReoonVerifier

log = logging.getLogger(__name__)


@dataclass
class SessionSettings:
    poll_interval: float = 2.0
    max_poll_retries: int = 3
    max_run_seconds: float = 300.0
    enrich_concurrency: int = 3
    enrich_delay: float = 1.0
    monthly_cap: int = 0


class SearchSession:
    def __init__(
        self,
        sid: str,
        *,
        source: "DataSourceProvider",
        scheduler: AsyncIOScheduler,
        enrichment_provider: "EnrichmentProvider | None" = None,
        verifier: "ReoonVerifier | None" = None,
        store: JobStore | None = None,
        ledger: CreditLedger | None = None,
        config: SessionSettings | None = None,
    ):
        cfg = config or SessionSettings()
        self.sid = sid
        self.config = cfg
        self.enrichment_provider = enrichment_provider
        self.verifier = verifier
        self.ledger = ledger

        self.orchestrator = ScrapeOrchestrator(
            source,
            store=store,
            poll_interval=cfg.poll_interval,
            max_poll_retries=cfg.max_poll_retries,
            max_run_seconds=cfg.max_run_seconds,
        )
        self.auto_refresh = AutoRefresh(scheduler, self.orchestrator, job_id=f"refresh:{sid}")
        self.enrichment = (
            EnrichmentRunner(
                enrichment_provider,
                concurrency=cfg.enrich_concurrency,
                delay=cfg.enrich_delay,
            )
            if enrichment_provider is not None
            else None
        )

        self.enriched: dict[str, EnrichedJob] = {}
        self.enrich_state = "idle"
        self.enrich_error: str | None = None
        self._enrich_task: asyncio.Task | None = None

    def search(self, options: ScrapeOptions) -> asyncio.Task:
        task = self.orchestrator.start(options)
        self.auto_refresh.rearm()
        return task

    def cancel_search(self) -> None:
        self.orchestrator.cancel()

    def jobs(self) -> list[Job]:
        """Latest search results with enrichment merged in by job id."""
        return [self.enriched.get(j.id, j) for j in self.orchestrator.jobs]

    async def enrich(self, job_ids: list[str]) -> asyncio.Task:
        """Pre-flight synchronously, then enrich the selected jobs in the background.

        Raises ConfigurationError or BudgetExceededError before anything is spent.
        """
        by_id = {j.id: j for j in self.orchestrator.jobs}
        selected = [by_id[i] for i in job_ids if i in by_id]
        if not selected:
            raise ValueError("none of the given job ids are in the current results")

        used = self.ledger.used_this_month() if self.ledger else 0
        estimated, _ = await preflight(
            self.enrichment_provider, len(selected),
            used_this_month=used, monthly_cap=self.config.monthly_cap,
        )

        self.cancel_enrichment()
        self.enrich_state = "running"
        self.enrich_error = None
        self._enrich_task = asyncio.create_task(self._run_enrichment(selected, estimated))
        return self._enrich_task

    def _superseded(self) -> bool:
        return self._enrich_task is not asyncio.current_task()

    async def _run_enrichment(self, jobs: list[Job], estimated: float) -> None:
        runner = self.enrichment
        if self._superseded():
            return
        try:
            outcome = await runner.run(jobs)
            results = outcome.results
            if self.verifier is not None:
                results = await verify_decision_makers(self.verifier, results)
        except CancellationError:
            return
        except HireSignalError as exc:
            if self._superseded():
                return
            self.enrich_state = "failed"
            self.enrich_error = str(exc)
            log.error("session %s enrichment failed: %s", self.sid, exc)
            return
        if self._superseded():
            # cancelled or replaced while verifying
            return
        if self.ledger is not None:
            self.ledger.record(runner.provider.id, estimated)
        for r in results:
            self.enriched[r.id] = r
        self.enrich_state = "done"

    def cancel_enrichment(self) -> None:
        task = self._enrich_task
        if task is None or task.done():
            return
        if self.enrichment is not None and self.enrichment.active:
            self.enrichment.cancel()
        self._enrich_task = None
        self.enrich_state = "cancelled"

    def close(self) -> None:
        self.auto_refresh.disarm()
        self.orchestrator.cancel()
        self.cancel_enrichment()


class SessionRegistry:
    def __init__(self, factory: Callable[[str], SearchSession]):
        self._factory = factory
        self._sessions: dict[str, SearchSession] = {}

    def get(self, sid: str) -> SearchSession | None:
        return self._sessions.get(sid)

    def get_or_create(self, sid: str) -> SearchSession:
        if sid not in self._sessions:
            self._sessions[sid] = self._factory(sid)
        return self._sessions[sid]

    def remove(self, sid: str) -> bool:
        s = self._sessions.pop(sid, None)
        if s is None:
            return False
        s.close()
        return True

    def close_all(self) -> None:
        for s in self._sessions.values():
            s.close()
        self._sessions.clear()
