import asyncio

import pytest

from hiresignal.errors import (
    ConfigurationError,
    SearchCancelled,
    TerminalRunFailure,
    TransientNetworkError,
)
from hiresignal.providers.base import DataSourceProvider, RunPage
from hiresignal.providers.mock import MOCK_ITEMS, MockDataSource
from hiresignal.schemas import RunStatus, ScrapeOptions, ScrapeRun
from hiresignal.services.cancellation import CancelToken
from hiresignal.services.scrape import ScrapeOrchestrator, SearchState

OPTIONS = ScrapeOptions(job_title="python")


class FlakySource(DataSourceProvider):
    """Fails the first `failures` polls with a transient error, then finishes."""

    id = "flaky"
    name = "Flaky"

    def __init__(self, failures: int, items=None):
        self.failures = failures
        self.items = items if items is not None else MOCK_ITEMS[:2]
        self.poll_calls = 0

    async def is_configured(self):
        return True

    async def start_run(self, options):
        return ScrapeRun(run_id="r1", dataset_id="d1")

    async def poll_run(self, run_id, dataset_id, offset):
        self.poll_calls += 1
        if self.poll_calls <= self.failures:
            raise TransientNetworkError("upstream 503")
        return RunPage(status=RunStatus.SUCCEEDED, items=self.items[offset:])


class SlowSource(FlakySource):
    """Never finishes; one item per poll."""

    async def poll_run(self, run_id, dataset_id, offset):
        self.poll_calls += 1
        return RunPage(status=RunStatus.RUNNING, items=[dict(MOCK_ITEMS[0], jobId=f"slow-{offset}")])


def orchestrator(source, **kw):
    kw.setdefault("poll_interval", 0.001)
    kw.setdefault("max_backoff", 0.01)
    return ScrapeOrchestrator(source, **kw)


class TestPolling:
    @pytest.mark.asyncio
    async def test_mock_source_runs_to_completion(self):
        updates = []
        orch = orchestrator(MockDataSource(page_size=3), on_update=updates.append)
        result = await orch.run(ScrapeOptions(job_title="python"))

        assert orch.state is SearchState.SUCCEEDED
        assert result.total_count == len(result.jobs) > 0
        # jobs grow page by page
        counts = [len(u.jobs) for u in updates if u.state is SearchState.POLLING]
        assert counts == sorted(counts)
        assert updates[0].state is SearchState.STARTING
        assert updates[-1].state is SearchState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_results_are_post_processed(self):
        result = await orchestrator(MockDataSource()).run(ScrapeOptions(job_title="python"))
        by_company = {}
        for j in result.jobs:
            by_company.setdefault(j.company, []).append(j)
        acme = by_company["Acme Analytics"]
        assert [j.repeat_count for j in acme] == [1, 2]
        assert all(j.is_recruiter for j in by_company["Hays Technology"])

    @pytest.mark.asyncio
    async def test_transient_errors_recover(self):
        source = FlakySource(failures=2)
        orch = orchestrator(source)
        result = await orch.run(OPTIONS)
        assert source.poll_calls == 3
        assert orch.state is SearchState.SUCCEEDED
        assert result.total_count == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        source = FlakySource(failures=100)
        orch = orchestrator(source)
        with pytest.raises(TerminalRunFailure):
            await orch.run(OPTIONS)
        assert source.poll_calls == 4
        assert orch.state is SearchState.FAILED
        assert "4 times" in orch.error

    @pytest.mark.asyncio
    async def test_upstream_reports_failure(self):
        class Failing(FlakySource):
            async def poll_run(self, run_id, dataset_id, offset):
                return RunPage(status=RunStatus.FAILED)

        orch = orchestrator(Failing(0))
        with pytest.raises(TerminalRunFailure):
            await orch.run(OPTIONS)
        assert orch.state is SearchState.FAILED

    @pytest.mark.asyncio
    async def test_wall_clock_ceiling(self):
        ticks = iter(range(0, 10_000, 100))
        orch = orchestrator(SlowSource(0), max_run_seconds=250, clock=lambda: next(ticks))
        with pytest.raises(TerminalRunFailure, match="timed out"):
            await orch.run(OPTIONS)
        assert orch.state is SearchState.FAILED


class TestSubmission:
    @pytest.mark.asyncio
    async def test_submission_failure(self):
        class Rejecting(FlakySource):
            async def start_run(self, options):
                raise TerminalRunFailure("Apify API error: 400 Bad Request")

        source = Rejecting(0)
        orch = orchestrator(source)
        with pytest.raises(TerminalRunFailure):
            await orch.run(OPTIONS)
        assert source.poll_calls == 0
        assert orch.state is SearchState.FAILED

    @pytest.mark.asyncio
    async def test_transient_submission_failure_is_terminal(self):
        class Down(FlakySource):
            async def start_run(self, options):
                raise TransientNetworkError("timeout")

        orch = orchestrator(Down(0))
        with pytest.raises(TerminalRunFailure, match="could not start"):
            await orch.run(OPTIONS)

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        class Unconfigured(FlakySource):
            async def start_run(self, options):
                raise ConfigurationError("APIFY_API_TOKEN not configured")

        orch = orchestrator(Unconfigured(0))
        with pytest.raises(ConfigurationError):
            await orch.run(OPTIONS)
        assert orch.state is SearchState.FAILED


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_stops_polling_and_callbacks(self):
        updates = []
        source = SlowSource(0)
        orch = orchestrator(source, poll_interval=0.01, on_update=updates.append)
        token = CancelToken()
        task = asyncio.create_task(orch.run(OPTIONS, token=token))
        await asyncio.sleep(0.05)

        token.cancel()
        with pytest.raises(SearchCancelled):
            await task
        calls, seen = source.poll_calls, len(updates)

        await asyncio.sleep(0.05)
        assert source.poll_calls == calls
        assert len(updates) == seen
        assert not any(u.state is SearchState.FAILED for u in updates)

    @pytest.mark.asyncio
    async def test_cancel_via_orchestrator(self):
        orch = orchestrator(SlowSource(0), poll_interval=0.01)
        task = orch.start(OPTIONS)
        await asyncio.sleep(0.03)
        orch.cancel()
        await task
        assert orch.state is SearchState.CANCELLED
        assert orch.error is None
        assert not orch.active

    @pytest.mark.asyncio
    async def test_new_search_cancels_previous(self):
        first_source = SlowSource(0)
        orch = orchestrator(first_source, poll_interval=0.01)
        first = orch.start(ScrapeOptions(job_title="first"))
        await asyncio.sleep(0.03)

        orch.source = FlakySource(0)
        second = orch.start(ScrapeOptions(job_title="second"))
        await second
        await first

        calls = first_source.poll_calls
        await asyncio.sleep(0.03)
        assert first_source.poll_calls == calls
        assert orch.state is SearchState.SUCCEEDED
        assert orch.last_options.job_title == "second"
        assert len(orch.jobs) == 2


class TestStore:
    @pytest.mark.asyncio
    async def test_previous_keys_mark_repeats(self):
        class MemoryStore:
            def __init__(self):
                self.keys = set()

            def get_previous_dedupe_keys(self):
                return set(self.keys)

            def persist_results(self, jobs):
                self.keys |= {j.dedupe_key for j in jobs}
                return len(jobs)

        store = MemoryStore()
        first = await orchestrator(FlakySource(0), store=store).run(OPTIONS)
        assert not any(j.is_repeat_hiring for j in first.jobs)

        second = await orchestrator(FlakySource(0), store=store).run(OPTIONS)
        assert all(j.is_repeat_hiring for j in second.jobs)


class TestProviderScrape:
    @pytest.mark.asyncio
    async def test_scrape_contract(self):
        result = await MockDataSource(page_size=50).scrape(ScrapeOptions(job_title="engineer"))
        assert result.run_id == "mock-run-1"
        assert result.total_count == len(result.jobs)
