"""Credit costs, usage levels and the enrichment pre-flight budget check."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from ..errors import BudgetExceededError, ConfigurationError
from ..schemas import Credits

if TYPE_CHECKING:
    from ..providers.base import EnrichmentProvider

log = logging.getLogger(__name__)

UsageLevel = Literal["ok", "warning", "high", "critical"]

# credits charged per enriched job
CREDITS_PER_JOB: dict[str, float] = {
    "icypeas": 1.5,  # company scrape (0.5) + domain search (1)
    "crawl4ai": 0,
    "mock": 0,
    "none": 0,
}

# fractions of the monthly cap
USAGE_THRESHOLDS = {
    "warning": 0.50,
    "high": 0.80,
    "critical": 0.95,
}


def estimate_credits(job_count: int, provider_id: str) -> float:
    return job_count * CREDITS_PER_JOB.get(provider_id, 0)


def usage_level(used: float, cap: float) -> UsageLevel:
    # cap <= 0 means no cap configured
    if cap <= 0:
        return "ok"
    fraction = used / cap
    if fraction >= USAGE_THRESHOLDS["critical"]:
        return "critical"
    if fraction >= USAGE_THRESHOLDS["high"]:
        return "high"
    if fraction >= USAGE_THRESHOLDS["warning"]:
        return "warning"
    return "ok"


def check_budget(
    *,
    job_count: int,
    provider_id: str,
    balance: Credits | None,
    used_this_month: float = 0,
    monthly_cap: int = 0,
) -> float:
    """Raise BudgetExceededError before any provider call if the batch can't be paid for.

    Returns the estimated cost.
    """
    estimated = estimate_credits(job_count, provider_id)
    if estimated <= 0:
        return estimated

    if balance is not None and balance.remaining < estimated:
        log.warning("credit pre-flight rejected: need %s, have %s", estimated, balance.remaining)
        raise BudgetExceededError(
            f"Insufficient credits. Need ~{estimated:g}, have {balance.remaining:g}.",
            credits_remaining=balance.remaining,
            credits_needed=estimated,
        )

    if monthly_cap > 0 and used_this_month + estimated > monthly_cap:
        left = max(monthly_cap - used_this_month, 0)
        log.warning(
            "credit pre-flight rejected: monthly cap %s, used %s, need %s",
            monthly_cap, used_this_month, estimated,
        )
        raise BudgetExceededError(
            f"Monthly credit cap reached. Need ~{estimated:g}, {left:g} left this month.",
            credits_remaining=left,
            credits_needed=estimated,
        )

    return estimated


async def preflight(
    provider: "EnrichmentProvider | None",
    job_count: int,
    *,
    used_this_month: float = 0,
    monthly_cap: int = 0,
) -> tuple[float, Credits | None]:
    """Checks run before any enrichment spend. Returns (estimated cost, balance)."""
    if provider is None:
        raise ConfigurationError("No enrichment provider configured. Set ENRICHMENT in environment.")
    if not await provider.is_configured():
        raise ConfigurationError(f'Enrichment provider "{provider.id}" is not configured. Check API keys.')
    balance = await provider.get_credits()
    estimated = check_budget(
        job_count=job_count,
        provider_id=provider.id,
        balance=balance,
        used_this_month=used_this_month,
        monthly_cap=monthly_cap,
    )
    return estimated, balance
