import json

import httpx
import pytest

from conftest import make_job
from hiresignal.config import Settings
from hiresignal.errors import ConfigurationError, TerminalRunFailure, TransientNetworkError
from hiresignal.providers.apify import ApifyDataSource, map_run_status
from hiresignal.providers.crawl4ai import Crawl4AIEnrichment, company_from_crawl, extract_meta_description
from hiresignal.providers.factory import build_data_source, build_enrichment_provider, build_verifier
from hiresignal.providers.icypeas import IcypeasEnrichment, normalize_employee_range
from hiresignal.providers.mock import MockDataSource
from hiresignal.providers.reoon import ReoonVerifier, map_status
from hiresignal.schemas import RunStatus, ScrapeOptions


class TestApify:
    def test_status_mapping(self):
        assert map_run_status("SUCCEEDED") is RunStatus.SUCCEEDED
        assert map_run_status("TIMED-OUT") is RunStatus.FAILED
        assert map_run_status("ABORTED") is RunStatus.FAILED
        assert map_run_status("READY") is RunStatus.RUNNING
        assert map_run_status(None) is RunStatus.RUNNING

    def test_actor_input(self):
        source = ApifyDataSource("t", "actor", default_max_results=150)
        body = source.actor_input(ScrapeOptions(job_title="data engineer", date_range="7d"))
        assert body["keyword"] == ["data engineer"]
        assert body["maxItems"] == 150
        assert body["publishedAt"] == "r604800"
        assert body["location"] == "United States"

    @pytest.mark.asyncio
    async def test_start_run(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"data": {"id": "run-1", "defaultDatasetId": "ds-1", "status": "READY"}})

        source = ApifyDataSource("secret", "my~actor", transport=httpx.MockTransport(handler))
        run = await source.start_run(ScrapeOptions(job_title="python", max_results=20))
        assert (run.run_id, run.dataset_id, run.status) == ("run-1", "ds-1", RunStatus.RUNNING)
        assert seen["path"] == "/v2/acts/my~actor/runs"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["maxItems"] == 20

    @pytest.mark.asyncio
    async def test_start_run_rejected(self):
        source = ApifyDataSource("t", "a", transport=httpx.MockTransport(lambda r: httpx.Response(400)))
        with pytest.raises(TerminalRunFailure):
            await source.start_run(ScrapeOptions(job_title="python"))

    @pytest.mark.asyncio
    async def test_no_token(self):
        source = ApifyDataSource(None, "a")
        assert not await source.is_configured()
        with pytest.raises(ConfigurationError):
            await source.start_run(ScrapeOptions(job_title="python"))

    @pytest.mark.asyncio
    async def test_poll_run_pages_by_offset(self):
        def handler(request: httpx.Request):
            if request.url.path.startswith("/v2/actor-runs/"):
                return httpx.Response(200, json={"data": {"status": "RUNNING"}})
            assert request.url.params["offset"] == "5"
            return httpx.Response(200, json=[{"jobId": "a"}, {"jobId": "b"}])

        source = ApifyDataSource("t", "a", transport=httpx.MockTransport(handler))
        page = await source.poll_run("run-1", "ds-1", 5)
        assert page.status is RunStatus.RUNNING
        assert page.new_count == 2
        assert page.offset == 7

    @pytest.mark.asyncio
    async def test_poll_server_error_is_transient(self):
        source = ApifyDataSource("t", "a", transport=httpx.MockTransport(lambda r: httpx.Response(502)))
        with pytest.raises(TransientNetworkError):
            await source.poll_run("run-1", "ds-1", 0)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("reset", request=request)

        source = ApifyDataSource("t", "a", transport=httpx.MockTransport(handler))
        with pytest.raises(TransientNetworkError):
            await source.poll_run("run-1", "ds-1", 0)


class TestMockSource:
    @pytest.mark.asyncio
    async def test_pages_then_succeeds(self):
        source = MockDataSource(page_size=3)
        run = await source.start_run(ScrapeOptions(job_title="python"))
        offset, statuses = 0, []
        while True:
            page = await source.poll_run(run.run_id, run.dataset_id, offset)
            offset += page.new_count
            statuses.append(page.status)
            if page.status is RunStatus.SUCCEEDED:
                break
        assert offset == 8
        assert statuses == [RunStatus.RUNNING, RunStatus.RUNNING, RunStatus.SUCCEEDED]

    @pytest.mark.asyncio
    async def test_unknown_run(self):
        with pytest.raises(TerminalRunFailure):
            await MockDataSource().poll_run("nope", "nope", 0)


class TestIcypeas:
    def test_employee_range(self):
        assert normalize_employee_range("51-200") == "51-200"
        assert normalize_employee_range("10,001+") == "10001+"
        assert normalize_employee_range("2 - 10") == "1-10"
        assert normalize_employee_range(None) is None

    @pytest.mark.asyncio
    async def test_credits(self):
        def handler(request: httpx.Request):
            assert request.headers["authorization"] == "key"
            return httpx.Response(200, json={"credits_remaining": 120, "credits_used": 30})

        provider = IcypeasEnrichment("key", transport=httpx.MockTransport(handler))
        credits = await provider.get_credits()
        assert (credits.remaining, credits.total) == (120, 150)

    @pytest.mark.asyncio
    async def test_credits_retried_on_server_error(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"credits_remaining": 5, "credits_used": 0})

        provider = IcypeasEnrichment("key", transport=httpx.MockTransport(handler))
        assert (await provider.get_credits()).remaining == 5
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_enrich_job_from_company_page(self):
        def handler(request: httpx.Request):
            if request.url.path == "/api/scrape/company":
                return httpx.Response(200, json={
                    "industry": "Software", "employeeCountRange": "51-200",
                    "website": "https://acme.io", "headquarter": "London",
                })
            if request.url.path == "/api/domain-search":
                return httpx.Response(200, json={"success": True, "item": {"status": "DEBITED"}})
            return httpx.Response(404)

        provider = IcypeasEnrichment("key", transport=httpx.MockTransport(handler))
        job = make_job(1, company_linked_in="https://www.linkedin.com/company/acme")
        result = await provider.enrich_job(job)
        assert result.company_data.industry == "Software"
        assert result.company_data.employee_count_range == "51-200"
        assert result.company_data.source == "icypeas"

    @pytest.mark.asyncio
    async def test_enrich_job_without_data(self):
        provider = IcypeasEnrichment("key", transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        result = await provider.enrich_job(make_job(1, company_linked_in="https://www.linkedin.com/company/x"))
        assert result.enriched is True
        assert result.company_data is None


class TestCrawl4AI:
    def test_company_from_crawl(self):
        markdown = (
            "Acme builds data tools for analysts everywhere\n\n"
            "## About Us\n\nAcme is headquartered in London and builds Python and Kubernetes tooling.\n\n"
            "## Services\n\n- Data pipelines\n- Analytics\n"
        )
        company = company_from_crawl({"success": True, "markdown": markdown}, "https://acme.io")
        assert company.description.startswith("Acme is headquartered in London")
        assert company.tagline == "Acme builds data tools for analysts everywhere"
        assert company.specialties == ["Data pipelines", "Analytics"]
        assert "Python" in company.technologies and "Kubernetes" in company.technologies
        assert company.website == "https://acme.io"

    def test_meta_description_fallback(self):
        html = '<html><head><meta name="description" content=" We make widgets. "></head></html>'
        assert extract_meta_description(html) == "We make widgets."
        company = company_from_crawl({"markdown": "", "html": html}, "https://acme.io")
        assert company.description == "We make widgets."

    @pytest.mark.asyncio
    async def test_enrich_job(self):
        def handler(request: httpx.Request):
            if request.url.path == "/health":
                return httpx.Response(200, json={"status": "ok"})
            return httpx.Response(200, json={"results": [{"success": True, "markdown": "Built with Python on AWS."}]})

        provider = Crawl4AIEnrichment("http://crawler:11235", transport=httpx.MockTransport(handler))
        assert await provider.is_configured()
        assert await provider.get_credits() is None
        result = await provider.enrich_job(make_job(1, company_url="acme.io"))
        assert result.company_data.website == "https://acme.io"
        assert result.company_data.technologies == ["Python", "AWS"]

    @pytest.mark.asyncio
    async def test_failed_crawl_has_no_company_data(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"success": False, "error_message": "blocked"}))
        result = await Crawl4AIEnrichment(transport=transport).enrich_job(make_job(1, company_url="https://acme.io"))
        assert result.company_data is None

    @pytest.mark.asyncio
    async def test_no_url(self):
        result = await Crawl4AIEnrichment().enrich_job(make_job(1))
        assert result.company_data is None


class TestReoon:
    def test_map_status(self):
        assert map_status("safe", "power") == "safe"
        assert map_status("safe", "quick") == "unknown"
        assert map_status("weird", "power") == "unknown"

    @pytest.mark.asyncio
    async def test_verify(self):
        def handler(request: httpx.Request):
            assert request.url.params["email"] == "a@acme.io"
            assert request.url.params["mode"] == "power"
            return httpx.Response(200, json={"email": "a@acme.io", "status": "catch_all", "is_safe_to_send": False, "overall_score": 60})

        check = await ReoonVerifier("k", transport=httpx.MockTransport(handler)).verify_email("a@acme.io")
        assert (check.status, check.is_safe_to_send, check.score) == ("catch_all", False, 60)

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            await ReoonVerifier(None).verify_email("a@acme.io")


class TestFactory:
    def test_builds_from_settings(self):
        cfg = Settings(DATA_SOURCE="mock", ENRICHMENT="crawl4ai", EMAIL_VERIFICATION="reoon", REOON_API_KEY="k")
        assert build_data_source(cfg).id == "mock"
        assert build_enrichment_provider(cfg).id == "crawl4ai"
        assert build_verifier(cfg).id == "reoon"

    def test_none_enrichment(self):
        cfg = Settings(ENRICHMENT="none", EMAIL_VERIFICATION="none")
        assert build_enrichment_provider(cfg) is None
        assert build_verifier(cfg) is None

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            build_data_source(Settings(DATA_SOURCE="indeed"))
        with pytest.raises(ConfigurationError):
            build_enrichment_provider(Settings(ENRICHMENT="clearbit"))
