"""Drives one remote scrape run from submission to a terminal state.

Idle -> Starting -> Polling -> Succeeded | Failed, with Cancelled reachable
from Starting and Polling. Every poll feeds the accumulated raw items
through transform + post_process and reports the growing job list.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .cancellation import CancelToken
from .post_process import post_process_jobs
from .store import JobStore
from .transform import transform_raw_job
from ..errors import (
    CancellationError,
    HireSignalError,
    SearchCancelled,
    TerminalRunFailure,
    TransientNetworkError,
)
from ..schemas import Job, RunStatus, ScrapeOptions, ScrapeResult, ScrapeRun

if TYPE_CHECKING:
    from ..providers.base import DataSourceProvider

log = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 2.0
MAX_POLL_RETRIES = 3
MAX_RUN_SECONDS = 300.0
MAX_BACKOFF_SECONDS = 30.0


class SearchState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class SearchSnapshot:
    state: SearchState
    run: ScrapeRun | None = None
    jobs: list[Job] = field(default_factory=list)
    error: str | None = None


class ScrapeOrchestrator:
    """At most one active run per instance; a new search cancels the old one."""

    def __init__(
        self,
        source: "DataSourceProvider",
        *,
        store: JobStore | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_poll_retries: int = MAX_POLL_RETRIES,
        max_run_seconds: float = MAX_RUN_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        on_update: Callable[[SearchSnapshot], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.store = store
        self.poll_interval = poll_interval
        self.max_poll_retries = max_poll_retries
        self.max_run_seconds = max_run_seconds
        self.max_backoff = max_backoff
        self.on_update = on_update
        self._clock = clock

        self.state = SearchState.IDLE
        self.run_info: ScrapeRun | None = None
        self.jobs: list[Job] = []
        self.error: str | None = None
        self.last_options: ScrapeOptions | None = None

        self._token: CancelToken | None = None
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self.state in (SearchState.STARTING, SearchState.POLLING) and not (
            self._token is not None and self._token.cancelled
        )

    def snapshot(self) -> SearchSnapshot:
        return SearchSnapshot(state=self.state, run=self.run_info, jobs=list(self.jobs), error=self.error)

    def start(self, options: ScrapeOptions) -> asyncio.Task:
        """Run a search in the background, cancelling any search in flight."""
        self.cancel()
        token = CancelToken()
        self._token = token
        # active from here on, before the task gets its first turn
        self.state = SearchState.STARTING
        self.last_options = options
        self._task = asyncio.create_task(self._run_quietly(options, token))
        return self._task

    def cancel(self) -> None:
        if self._token is None or self._token.cancelled:
            return
        self._token.cancel()
        if self.state in (SearchState.STARTING, SearchState.POLLING):
            # caller-initiated; no callback fires for it
            self.state = SearchState.CANCELLED
            log.info("search %r cancelled", self.last_options.job_title if self.last_options else None)

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _run_quietly(self, options: ScrapeOptions, token: CancelToken) -> ScrapeResult | None:
        try:
            return await self.run(options, token=token)
        except HireSignalError:
            # state and error already recorded
            return None

    async def run(self, options: ScrapeOptions, *, token: CancelToken | None = None) -> ScrapeResult:
        """Run one search to completion.

        Raises SearchCancelled, TerminalRunFailure or ConfigurationError.
        """
        token = token or CancelToken()
        token.raise_if_cancelled(SearchCancelled)
        if self._token is not None and self._token is not token:
            self.cancel()
        self._token = token
        self.last_options = options

        previous_keys = self.store.get_previous_dedupe_keys() if self.store else set()
        self._emit(token, state=SearchState.STARTING, run_info=None, jobs=[], error=None)

        try:
            run = await self.source.start_run(options)
        except CancellationError:
            raise
        except TransientNetworkError as exc:
            token.raise_if_cancelled(SearchCancelled)
            raise self._fail(token, TerminalRunFailure(f"could not start scrape: {exc}")) from exc
        except Exception as exc:
            token.raise_if_cancelled(SearchCancelled)
            raise self._fail(token, exc)

        token.raise_if_cancelled(SearchCancelled)
        log.info("search %r polling run %s", options.job_title, run.run_id)
        self._emit(token, state=SearchState.POLLING, run_info=run)

        started = self._clock()
        transformed: list[Job] = []
        jobs: list[Job] = []
        errors = 0
        delay = self.poll_interval

        while True:
            await token.sleep(delay, SearchCancelled)
            if self._clock() - started > self.max_run_seconds:
                raise self._fail(
                    token,
                    TerminalRunFailure(f"run {run.run_id} timed out after {self.max_run_seconds:g}s"),
                )

            try:
                page = await self.source.poll_run(run.run_id, run.dataset_id, run.offset)
            except TransientNetworkError as exc:
                token.raise_if_cancelled(SearchCancelled)
                errors += 1
                if errors > self.max_poll_retries:
                    raise self._fail(
                        token,
                        TerminalRunFailure(f"polling failed {errors} times in a row: {exc}"),
                    ) from exc
                delay = min(self.poll_interval * 2 ** errors, self.max_backoff)
                log.warning(
                    "poll of run %s failed (%d/%d): %s; retrying in %.1fs",
                    run.run_id, errors, self.max_poll_retries, exc, delay,
                )
                continue
            except Exception as exc:
                token.raise_if_cancelled(SearchCancelled)
                raise self._fail(token, exc)

            token.raise_if_cancelled(SearchCancelled)
            errors = 0
            delay = self.poll_interval

            run = run.model_copy(update={"offset": run.offset + page.new_count, "status": page.status})
            if page.items:
                transformed.extend(transform_raw_job(it) for it in page.items)
                jobs = post_process_jobs(transformed, previous_keys)
                self._emit(token, run_info=run, jobs=jobs)
            else:
                self.run_info = run

            if page.status is RunStatus.SUCCEEDED:
                if self.store:
                    self.store.persist_results(jobs)
                log.info("search %r succeeded with %d jobs", options.job_title, len(jobs))
                self._emit(token, state=SearchState.SUCCEEDED, run_info=run)
                return ScrapeResult(run_id=run.run_id, jobs=jobs, total_count=len(jobs))

            if page.status is RunStatus.FAILED:
                raise self._fail(token, TerminalRunFailure(f"run {run.run_id} ended with status FAILED"))

    def _emit(self, token: CancelToken, **changes) -> None:
        if token.cancelled:
            return
        for k, v in changes.items():
            setattr(self, k, v)
        if self.on_update is not None:
            self.on_update(self.snapshot())

    def _fail(self, token: CancelToken, exc: Exception) -> Exception:
        log.error("search %r failed: %s", self.last_options.job_title if self.last_options else None, exc)
        self._emit(token, state=SearchState.FAILED, error=str(exc))
        return exc
