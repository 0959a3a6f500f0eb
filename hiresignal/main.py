# hiresignal/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from . import models  # noqa: F401  registers tables on Base
from .config import settings
from .db import Base, SessionLocal, engine
from .errors import (
    BudgetExceededError,
    CancellationError,
    ConfigurationError,
    HireSignalError,
    TerminalRunFailure,
    TransientNetworkError,
)
from .log import setup_logging
from .providers.base import DataSourceProvider, EnrichmentProvider
from .providers.factory import build_data_source, build_enrichment_provider, build_verifier
from .providers.reoon import ReoonVerifier
from .schemas import (
    AutoRefreshIn,
    CreditsOut,
    CreditUsage,
    EnrichIn,
    EnrichmentState,
    EnrichOut,
    PollScrapeIn,
    PollScrapeOut,
    ScrapeOptions,
    SessionEnrichIn,
    SessionOut,
    StartScrapeOut,
)
from .services.credits import preflight, usage_level
from .services.enrichment import verify_decision_makers
from .services.filters import FilterOptions, MatchMode, SortOption, filter_and_sort
from .services.session import SearchSession, SessionRegistry, SessionSettings
from .services.store import CreditLedger, SqlJobStore
from .services.transform import transform_raw_job

log = logging.getLogger(__name__)


def _new_session(app: FastAPI, sid: str) -> SearchSession:
    return SearchSession(
        sid,
        source=app.state.data_source,
        scheduler=app.state.scheduler,
        enrichment_provider=app.state.enrichment,
        verifier=app.state.verifier,
        store=app.state.store,
        ledger=app.state.ledger,
        config=SessionSettings(
            poll_interval=settings.POLL_INTERVAL_SECONDS,
            max_poll_retries=settings.MAX_POLL_RETRIES,
            max_run_seconds=settings.MAX_RUN_SECONDS,
            enrich_concurrency=settings.ENRICH_CONCURRENCY,
            enrich_delay=settings.ENRICH_DELAY_SECONDS,
            monthly_cap=settings.MONTHLY_CREDIT_CAP,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    log.info("[db] using %s", engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=engine)

    app.state.data_source = build_data_source(settings)
    app.state.enrichment = build_enrichment_provider(settings)
    app.state.verifier = build_verifier(settings)
    app.state.store = SqlJobStore(SessionLocal)
    app.state.ledger = CreditLedger(SessionLocal)
    log.info(
        "[providers] data source=%s enrichment=%s verification=%s",
        app.state.data_source.id,
        app.state.enrichment.id if app.state.enrichment else "none",
        app.state.verifier.id if app.state.verifier else "none",
    )

    sched = AsyncIOScheduler()
    sched.start()
    app.state.scheduler = sched
    app.state.sessions = SessionRegistry(lambda sid: _new_session(app, sid))

    yield

    app.state.sessions.close_all()
    sched.shutdown(wait=False)


app = FastAPI(title="HireSignal", lifespan=lifespan)


# --- error mapping ---

def _error(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


@app.exception_handler(RequestValidationError)
async def on_validation_error(request: Request, exc: RequestValidationError):
    errs = exc.errors()
    if not errs:
        return _error(400, "invalid request")
    first = errs[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "invalid value")
    return _error(400, f"{field}: {msg}" if field else msg)


@app.exception_handler(StarletteHTTPException)
async def on_http_error(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(BudgetExceededError)
async def on_budget_error(request: Request, exc: BudgetExceededError):
    return _error(
        402, str(exc),
        creditsRemaining=exc.credits_remaining,
        creditsNeeded=exc.credits_needed,
    )


@app.exception_handler(ConfigurationError)
async def on_config_error(request: Request, exc: ConfigurationError):
    return _error(503, str(exc))


@app.exception_handler(TerminalRunFailure)
@app.exception_handler(TransientNetworkError)
async def on_upstream_error(request: Request, exc: HireSignalError):
    log.error("%s %s upstream failure: %s", request.method, request.url.path, exc)
    return _error(502, str(exc))


@app.exception_handler(CancellationError)
async def on_cancelled(request: Request, exc: CancellationError):
    return _error(409, str(exc) or "cancelled", cancelled=True)


@app.exception_handler(HireSignalError)
async def on_app_error(request: Request, exc: HireSignalError):
    log.exception("%s %s failed", request.method, request.url.path)
    return _error(500, str(exc) or "An unexpected error occurred")


# --- dependencies ---

def get_data_source(request: Request) -> DataSourceProvider:
    return request.app.state.data_source


def get_enrichment(request: Request) -> EnrichmentProvider | None:
    return request.app.state.enrichment


def get_verifier(request: Request) -> ReoonVerifier | None:
    return request.app.state.verifier


def get_ledger(request: Request) -> CreditLedger:
    return request.app.state.ledger


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


# --- scrape ---

@app.post("/api/jobs/scrape", response_model=StartScrapeOut)
async def api_start_scrape(options: ScrapeOptions, source: DataSourceProvider = Depends(get_data_source)):
    if not await source.is_configured():
        raise ConfigurationError(f'Data source "{source.id}" is not configured. Check API keys.')
    run = await source.start_run(options)
    log.info("[scrape] started run %s for %r", run.run_id, options.job_title)
    return StartScrapeOut(run_id=run.run_id, dataset_id=run.dataset_id)


@app.post("/api/jobs/scrape/poll", response_model=PollScrapeOut)
async def api_poll_scrape(payload: PollScrapeIn, source: DataSourceProvider = Depends(get_data_source)):
    page = await source.poll_run(payload.run_id, payload.dataset_id, payload.offset)
    return PollScrapeOut(
        status=page.status,
        jobs=[transform_raw_job(it) for it in page.items],
        new_count=page.new_count,
        offset=payload.offset + page.new_count,
    )


# --- credits / enrichment ---

@app.get("/api/credits", response_model=CreditsOut)
async def api_credits(
    provider: EnrichmentProvider | None = Depends(get_enrichment),
    ledger: CreditLedger = Depends(get_ledger),
):
    cap = settings.MONTHLY_CREDIT_CAP
    used = ledger.used_this_month()
    usage = CreditUsage(used=used, level=usage_level(used, cap))
    if provider is None:
        return CreditsOut(provider="none", credits=None, monthly_cap=cap, usage=usage)

    configured = await provider.is_configured()
    credits = await provider.get_credits() if configured else None
    return CreditsOut(
        provider=provider.id, credits=credits, configured=configured, monthly_cap=cap, usage=usage,
    )


@app.post("/api/jobs/enrich", response_model=EnrichOut)
async def api_enrich(
    payload: EnrichIn,
    provider: EnrichmentProvider | None = Depends(get_enrichment),
    verifier: ReoonVerifier | None = Depends(get_verifier),
    ledger: CreditLedger = Depends(get_ledger),
):
    estimated, _ = await preflight(
        provider, len(payload.jobs),
        used_this_month=ledger.used_this_month(), monthly_cap=settings.MONTHLY_CREDIT_CAP,
    )
    log.info("[enrich] %s: %d jobs, ~%g credits", provider.id, len(payload.jobs), estimated)

    outcome = await provider.enrich_jobs(
        payload.jobs,
        concurrency=settings.ENRICH_CONCURRENCY,
        delay=settings.ENRICH_DELAY_SECONDS,
    )
    results = outcome.results
    if verifier is not None:
        results = await verify_decision_makers(verifier, results)
    ledger.record(provider.id, estimated)

    try:
        updated = await provider.get_credits()
    except HireSignalError as exc:
        # batch already paid for; report the results without a fresh balance
        log.warning("[enrich] could not refresh %s balance: %s", provider.id, exc)
        updated = None
    return EnrichOut(
        results=results,
        enriched_count=outcome.enriched_count,
        failed_count=outcome.failed_count,
        credits_used=estimated,
        credits_remaining=updated.remaining if updated else None,
    )


# --- sessions ---

def _session_out(s: SearchSession, jobs) -> SessionOut:
    runner = s.enrichment
    return SessionOut(
        session_id=s.sid,
        state=s.orchestrator.state.value,
        run=s.orchestrator.run_info,
        error=s.orchestrator.error,
        auto_refresh=s.auto_refresh.interval,
        total_count=len(s.orchestrator.jobs),
        jobs=jobs,
        enrichment=EnrichmentState(
            state=s.enrich_state,
            progress=runner.progress if runner else None,
            error=s.enrich_error,
        ),
    )


def _require_session(sessions: SessionRegistry, sid: str) -> SearchSession:
    s = sessions.get(sid)
    if s is None:
        raise HTTPException(404, f"session {sid} not found")
    return s


@app.post("/api/sessions/{sid}/search", response_model=SessionOut, status_code=202)
async def api_session_search(
    sid: str,
    options: ScrapeOptions,
    sessions: SessionRegistry = Depends(get_sessions),
    source: DataSourceProvider = Depends(get_data_source),
):
    if not await source.is_configured():
        raise ConfigurationError(f'Data source "{source.id}" is not configured. Check API keys.')
    s = sessions.get_or_create(sid)
    s.search(options)
    return _session_out(s, [])


@app.get("/api/sessions/{sid}", response_model=SessionOut)
async def api_session(
    sid: str,
    exclude_recruiters: bool | None = Query(None),
    exclude_companies: str | None = Query(None, description="comma-separated company names"),
    match_mode: MatchMode = Query(MatchMode.OFF),
    sort: SortOption = Query(SortOption.RECENT),
    sessions: SessionRegistry = Depends(get_sessions),
):
    s = _require_session(sessions, sid)
    last = s.orchestrator.last_options

    if exclude_recruiters is None:
        exclude_recruiters = bool(last and last.exclude_recruiters)
    if exclude_companies is not None:
        excluded = [c.strip() for c in exclude_companies.split(",") if c.strip()]
    else:
        excluded = list(last.exclude_companies or []) if last else []

    opts = FilterOptions(
        exclude_recruiters=exclude_recruiters,
        exclude_companies=excluded,
        match_mode=match_mode,
        query=last.job_title if last else "",
    )
    return _session_out(s, filter_and_sort(s.jobs(), opts, sort))


@app.delete("/api/sessions/{sid}", status_code=204)
async def api_session_delete(sid: str, sessions: SessionRegistry = Depends(get_sessions)):
    if not sessions.remove(sid):
        raise HTTPException(404, f"session {sid} not found")
    log.info("[sessions] closed %s", sid)


@app.delete("/api/sessions/{sid}/search", response_model=SessionOut)
async def api_session_cancel(sid: str, sessions: SessionRegistry = Depends(get_sessions)):
    s = _require_session(sessions, sid)
    s.cancel_search()
    return _session_out(s, s.jobs())


@app.put("/api/sessions/{sid}/auto-refresh", response_model=SessionOut)
async def api_session_auto_refresh(
    sid: str,
    payload: AutoRefreshIn,
    sessions: SessionRegistry = Depends(get_sessions),
):
    s = _require_session(sessions, sid)
    s.auto_refresh.arm(payload.interval)
    return _session_out(s, s.jobs())


@app.post("/api/sessions/{sid}/enrich", response_model=SessionOut, status_code=202)
async def api_session_enrich(
    sid: str,
    payload: SessionEnrichIn,
    sessions: SessionRegistry = Depends(get_sessions),
):
    s = _require_session(sessions, sid)
    try:
        await s.enrich(payload.job_ids)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _session_out(s, s.jobs())


@app.delete("/api/sessions/{sid}/enrich", response_model=SessionOut)
async def api_session_cancel_enrich(sid: str, sessions: SessionRegistry = Depends(get_sessions)):
    s = _require_session(sessions, sid)
    s.cancel_enrichment()
    return _session_out(s, s.jobs())
