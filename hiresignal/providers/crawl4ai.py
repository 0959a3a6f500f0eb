# Crawl4AI sidecar: crawl the company website and pull firmographics out of the page
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .base import EnrichmentProvider, enriched
from .http import send
from ..errors import TransientNetworkError
from ..schemas import CompanyEnrichment, Credits, EnrichedJob, Job

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11235"

_MD_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")

_ABOUT = re.compile(
    r"#{1,3}\s*(?:about\s*(?:us)?|who\s+we\s+are|our\s+(?:mission|story|company))\s*\n+([\s\S]*?)(?=\n#{1,3}\s|\n---|\n\*\*\*|$)",
    re.I,
)
_SERVICES = re.compile(
    r"#{1,3}\s*(?:services|solutions|what\s+we\s+do|specialties|capabilities|expertise)\s*\n+([\s\S]*?)(?=\n#{1,3}\s|\n---|\n\*\*\*|$)",
    re.I,
)
_HQ_PATS = [
    re.compile(r"(?:based|headquartered|located)\s+in\s+([A-Z][a-zA-Z\s,]+(?:,\s*[A-Z]{2})?)", re.I),
    re.compile(r"(?:headquarters?|office|address)\s*:\s*([A-Z][a-zA-Z0-9\s,]+(?:,\s*[A-Z]{2})?)", re.I),
]
_PHONE = re.compile(r"(?:\+?1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}")

_TECH_TERMS = [
    "JavaScript", "TypeScript", "Python", "Java", "Go", "Rust", "Ruby", "PHP", "C++", "C#",
    "Swift", "Kotlin", "Scala", "Elixir",
    "React", "Angular", "Vue.js", "Next.js", "Svelte", "Tailwind",
    "Node.js", "Django", "Flask", "Spring", "Rails", "Express", "FastAPI", "GraphQL", "REST API",
    "AWS", "Azure", "Google Cloud", "GCP", "Kubernetes", "Docker", "Terraform", "Vercel", "Heroku",
    "PostgreSQL", "MongoDB", "Redis", "Elasticsearch", "MySQL", "DynamoDB", "Snowflake", "BigQuery",
    "Kafka", "RabbitMQ",
    "Machine Learning", "Deep Learning", "TensorFlow", "PyTorch", "OpenAI", "LLM", "NLP",
    "Computer Vision", "Blockchain", "IoT", "Microservices", "CI/CD", "DevOps", "SaaS",
]


def _term_regex(term: str) -> re.Pattern:
    return re.compile(rf"(?<![A-Za-z0-9]){re.escape(term)}(?![A-Za-z0-9])", re.I)

_TERM_PATS = [(t, _term_regex(t)) for t in _TECH_TERMS]


def extract_description(markdown: str) -> Optional[str]:
    m = _ABOUT.search(markdown)
    if m and m.group(1).strip():
        raw = _MD_LINK.sub(r"\1", m.group(1).strip())[:500]
        last = raw.rfind(".")
        return raw[: last + 1] if last > 100 else raw

    paragraphs = [
        p.strip() for p in re.split(r"\n{2,}", markdown)
        if len(p.strip()) > 80 and not p.strip().startswith(("#", "|"))
    ]
    if paragraphs:
        return _MD_LINK.sub(r"\1", paragraphs[0])[:500]
    return None


def extract_meta_description(html: str) -> Optional[str]:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content", "").strip():
            return tag["content"].strip()[:500]
    return None


def extract_tagline(markdown: str) -> Optional[str]:
    lines = [l.strip() for l in markdown.split("\n") if l.strip()]
    for line in lines[:10]:
        if 20 <= len(line) <= 150 and not line.startswith(("#", "[", "|", "*")):
            return _MD_LINK.sub(r"\1", line)
    return None


def extract_headquarters(markdown: str) -> Optional[str]:
    for pat in _HQ_PATS:
        m = pat.search(markdown)
        if m:
            loc = m.group(1).strip()
            if 3 < len(loc) < 100:
                return loc
    return None


def extract_phone(markdown: str) -> Optional[str]:
    m = _PHONE.search(markdown)
    return m.group(0).strip() if m else None


def extract_specialties(markdown: str) -> Optional[List[str]]:
    m = _SERVICES.search(markdown)
    if not m:
        return None
    items = [re.sub(r"^[-*•]\s*", "", l).strip() for l in m.group(1).split("\n")]
    items = [i for i in items if 2 < len(i) < 100]
    return items[:10] or None


def extract_technologies(markdown: str) -> List[str]:
    return [term for term, pat in _TERM_PATS if pat.search(markdown)]


def company_from_crawl(result: dict, source_url: str) -> CompanyEnrichment:
    markdown = result.get("markdown") or ""
    if isinstance(markdown, dict):
        # newer crawl4ai builds nest the markdown variants
        markdown = markdown.get("raw_markdown") or ""
    description = extract_description(markdown) or extract_meta_description(
        result.get("cleaned_html") or result.get("html") or ""
    )
    return CompanyEnrichment(
        website=source_url,
        linked_in_company_url=source_url if "linkedin.com" in source_url else None,
        description=description,
        tagline=extract_tagline(markdown),
        headquarters=extract_headquarters(markdown),
        phone=extract_phone(markdown),
        specialties=extract_specialties(markdown),
        technologies=extract_technologies(markdown) or None,
        source="crawl4ai",
        enriched_at=datetime.now(timezone.utc),
    )


class Crawl4AIEnrichment(EnrichmentProvider):
    id = "crawl4ai"
    name = "Crawl4AI"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self._transport = transport

    def _client(self, timeout: float = 30) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, headers=headers, transport=self._transport,
        )

    async def is_configured(self) -> bool:
        try:
            async with self._client(timeout=5) as client:
                r = await client.get("/health")
            return r.is_success
        except httpx.HTTPError:
            return False

    async def get_credits(self) -> Credits | None:
        # self-hosted, no credit system
        return None

    @retry(
        retry=retry_if_exception_type(TransientNetworkError),
        wait=wait_exponential(min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def crawl(self, url: str) -> dict:
        body = {
            "urls": [url],
            "browser_config": {"headless": True, "viewport_width": 1280, "viewport_height": 720},
            "crawler_config": {"cache_mode": "ENABLED", "wait_for": "networkidle", "remove_overlay_elements": True},
        }
        async with self._client() as client:
            r = await send(client, "POST", "/crawl", json=body)
        if r.status_code >= 400:
            raise RuntimeError(f"Crawl4AI API error: {r.status_code} - {r.text[:200]}")
        data = r.json()
        if isinstance(data, list):
            return data[0] if data else {}
        if isinstance(data.get("results"), list) and data["results"]:
            return data["results"][0]
        if isinstance(data.get("result"), dict):
            return data["result"]
        return data

    async def enrich_job(self, job: Job) -> EnrichedJob:
        url = job.company_url or job.company_linked_in
        if not url:
            log.warning("no company url to crawl for job %s (%s)", job.id, job.company)
            return enriched(job)

        crawl_url = url if url.startswith("http") else f"https://{url}"
        log.info("crawling company website %s", crawl_url)
        result = await self.crawl(crawl_url)
        if not result.get("success", True):
            log.warning(
                "crawl of %s failed: %s",
                crawl_url, result.get("error_message") or result.get("status_code"),
            )
            return enriched(job)
        return enriched(job, company_data=company_from_crawl(result, crawl_url))
