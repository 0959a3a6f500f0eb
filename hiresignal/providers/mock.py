"""Fake data source for development without scraper credentials.

Set DATA_SOURCE=mock. Each run serves its results over a few polls, the way
a real actor fills its dataset while running.
"""
from __future__ import annotations

import itertools
import logging
from datetime import datetime, timedelta, timezone

from .base import DataSourceProvider, RunPage
from ..errors import TerminalRunFailure
from ..schemas import RunStatus, ScrapeOptions, ScrapeRun

log = logging.getLogger(__name__)


def _item(n: int, title: str, company: str, location: str, days_ago: int, **extra) -> dict:
    posted = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc) - timedelta(days=days_ago)
    return {
        "jobId": f"mock-{n}",
        "jobTitle": title,
        "companyName": company,
        "location": location,
        "publishedAt": posted.isoformat(),
        "jobUrl": f"https://www.linkedin.com/jobs/view/{9000 + n}/?trk=mock",
        **extra,
    }


MOCK_ITEMS: list[dict] = [
    _item(1, "Senior Python Engineer", "Acme Analytics", "London, United Kingdom", 0,
          salaryInfo=["£70000", "£90000"], applicationsCount="Be among the first 25 applicants",
          companyUrl="https://www.acme-analytics.io",
          jobDescription="Build data pipelines in Python and FastAPI. Show more Show less"),
    _item(2, "Data Engineer", "Northwind Labs", "Manchester, United Kingdom", 1,
          salaryInfo=["£55000"], applicationsCount=48,
          jobDescription="Spark, Airflow and Python on AWS."),
    _item(3, "Python Developer", "Hays Technology", "Leeds, United Kingdom", 0,
          jobDescription="Our client is hiring. Recruitment for a leading fintech."),
    _item(4, "Backend Engineer (Python)", "Globex", "Remote", 2,
          salary="$120,000 - $150,000", applicationsCount=130,
          jobDescription="Django, PostgreSQL, Kubernetes."),
    _item(5, "Senior Python Engineer", "Acme Analytics", "Bristol, United Kingdom", 0,
          jobDescription="Second team, same role. Python and FastAPI."),
    _item(6, "Machine Learning Engineer", "Initech", "Edinburgh, United Kingdom", 5,
          salary="£600 per day", jobDescription="PyTorch and Python in production."),
    _item(7, "Platform Engineer", "Umbrella Systems", "Remote", 3,
          salary="$75/hr", jobDescription="Terraform, Go and a little Python."),
    _item(8, "Python Contractor", "Randstad Digital", "Birmingham, United Kingdom", 1,
          salary="£450 daily", jobDescription="Staffing for an enterprise client."),
]


class MockDataSource(DataSourceProvider):
    id = "mock"
    name = "Mock Data (Development)"

    def __init__(self, *, page_size: int = 3, items: list[dict] | None = None):
        self.page_size = page_size
        self.items = MOCK_ITEMS if items is None else items
        self._ids = itertools.count(1)
        self._runs: dict[str, list[dict]] = {}

    async def is_configured(self) -> bool:
        return True

    async def start_run(self, options: ScrapeOptions) -> ScrapeRun:
        keywords = [w for w in options.job_title.lower().split() if len(w) > 2]
        matched = [
            it for it in self.items
            if not keywords
            or any(
                w in it["jobTitle"].lower() or w in (it.get("jobDescription") or "").lower()
                for w in keywords
            )
        ]
        if options.max_results:
            matched = matched[: options.max_results]

        n = next(self._ids)
        run_id, dataset_id = f"mock-run-{n}", f"mock-dataset-{n}"
        self._runs[run_id] = matched
        log.info("mock run %s started for %r (%d items)", run_id, options.job_title, len(matched))
        return ScrapeRun(run_id=run_id, dataset_id=dataset_id)

    async def poll_run(self, run_id: str, dataset_id: str, offset: int) -> RunPage:
        if run_id not in self._runs:
            raise TerminalRunFailure(f"unknown run {run_id}")
        items = self._runs[run_id]
        page = items[offset : offset + self.page_size]
        new_offset = offset + len(page)
        status = RunStatus.SUCCEEDED if new_offset >= len(items) else RunStatus.RUNNING
        return RunPage(status=status, items=page, offset=new_offset)
