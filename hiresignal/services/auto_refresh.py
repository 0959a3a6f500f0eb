from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .scrape import ScrapeOrchestrator

log = logging.getLogger(__name__)

INTERVALS: dict[str, int | None] = {
    "30m": 30 * 60,
    "1h": 60 * 60,
    "2h": 2 * 60 * 60,
    "4h": 4 * 60 * 60,
    "off": None,
}


class AutoRefresh:
    """Re-runs the orchestrator's last query on an interval.

    One scheduler job per search slot. Arming again replaces the job, so a
    slot never has two timers, and a tick is skipped while a cycle runs.
    """

    def __init__(self, scheduler: AsyncIOScheduler, orchestrator: ScrapeOrchestrator, job_id: str):
        self.scheduler = scheduler
        self.orchestrator = orchestrator
        self.job_id = job_id
        self.interval = "off"

    def arm(self, interval: str) -> None:
        if interval not in INTERVALS:
            raise ValueError(f"unknown refresh interval {interval!r}")
        self.disarm()
        self.interval = interval
        seconds = INTERVALS[interval]
        if seconds is None:
            return
        self.scheduler.add_job(
            self.tick, "interval", seconds=seconds, id=self.job_id, replace_existing=True,
        )
        log.info("auto-refresh %s armed every %s", self.job_id, interval)

    def rearm(self) -> None:
        # a manual search restarts the countdown
        if self.interval != "off":
            self.arm(self.interval)

    def disarm(self) -> None:
        if self.scheduler.get_job(self.job_id) is not None:
            self.scheduler.remove_job(self.job_id)
        self.interval = "off"

    async def tick(self) -> bool:
        if self.orchestrator.last_options is None:
            return False
        if self.orchestrator.active:
            log.info("auto-refresh %s skipped: previous cycle still running", self.job_id)
            return False
        log.info("auto-refresh %s re-running %r", self.job_id, self.orchestrator.last_options.job_title)
        self.orchestrator.start(self.orchestrator.last_options)
        return True
