"""Build providers from settings.

Called once at startup; the instances are handed to the API through
`app.state`, never kept in module globals.
"""
from __future__ import annotations

import logging

from .apify import ApifyDataSource
from .base import DataSourceProvider, EnrichmentProvider
from .crawl4ai import Crawl4AIEnrichment
from .icypeas import IcypeasEnrichment
from .mock import MockDataSource
from .mock_enrichment import MockEnrichment
from .reoon import ReoonVerifier
from ..config import Settings
from ..errors import ConfigurationError

log = logging.getLogger(__name__)


def build_data_source(cfg: Settings) -> DataSourceProvider:
    kind = cfg.DATA_SOURCE.lower()
    if kind == "apify":
        return ApifyDataSource(
            cfg.APIFY_API_TOKEN, cfg.APIFY_ACTOR_ID, default_max_results=cfg.DEFAULT_MAX_RESULTS,
        )
    if kind == "mock":
        return MockDataSource()
    raise ConfigurationError(f"Unknown data source provider: {cfg.DATA_SOURCE}")


def build_enrichment_provider(cfg: Settings) -> EnrichmentProvider | None:
    kind = cfg.ENRICHMENT.lower()
    if kind == "none":
        return None
    if kind == "icypeas":
        return IcypeasEnrichment(cfg.ICYPEAS_API_KEY)
    if kind == "crawl4ai":
        return Crawl4AIEnrichment(cfg.CRAWL4AI_BASE_URL, cfg.CRAWL4AI_API_TOKEN)
    if kind == "mock":
        return MockEnrichment()
    raise ConfigurationError(f"Unknown enrichment provider: {cfg.ENRICHMENT}")


def build_verifier(cfg: Settings) -> ReoonVerifier | None:
    kind = cfg.EMAIL_VERIFICATION.lower()
    if kind == "none":
        return None
    if kind == "reoon":
        return ReoonVerifier(cfg.REOON_API_KEY)
    raise ConfigurationError(f"Unknown verification provider: {cfg.EMAIL_VERIFICATION}")
