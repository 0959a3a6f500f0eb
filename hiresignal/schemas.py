from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Person(WireModel):
    name: str
    title: str
    email: str | None = None
    phone: str | None = None
    linked_in_url: str | None = None
    email_status: str | None = None


class CompanyEnrichment(WireModel):
    industry: str | None = None
    employee_count: int | None = None
    employee_count_range: str | None = None
    headquarters: str | None = None
    description: str | None = None
    tagline: str | None = None
    website: str | None = None
    phone: str | None = None
    specialties: list[str] | None = None
    technologies: list[str] | None = None
    funding_stage: str | None = None
    revenue: str | None = None
    founded: int | None = None
    company_type: str | None = None
    linked_in_company_url: str | None = None
    source: str | None = None
    enriched_at: datetime | None = None


class Job(WireModel):
    id: str
    title: str
    company: str
    company_url: str | None = None
    company_linked_in: str | None = None
    company_logo: str | None = None
    location: str
    posted_at: datetime | None = None
    posted_at_relative: str | None = None
    url: str
    description: str | None = None
    salary: str | None = None
    employment_type: str | None = None
    experience_level: str | None = None
    applicant_count: int | None = None

    # signal fields, set by services.post_process
    dedupe_key: str | None = None
    is_repeat_hiring: bool = False
    repeat_count: int | None = None
    is_recruiter: bool = False


class EnrichedJob(Job):
    enriched: Literal[True] = True
    company_data: CompanyEnrichment | None = None
    decision_makers: list[Person] | None = None
    enriched_at: datetime


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class ScrapeRun(WireModel):
    run_id: str
    dataset_id: str
    offset: int = 0
    status: RunStatus = RunStatus.RUNNING


class ScrapeOptions(WireModel):
    job_title: str
    location: str | None = None
    date_range: str | None = None
    max_results: int | None = Field(default=None, ge=1)
    company_sizes: list[str] | None = None
    exclude_recruiters: bool | None = None
    exclude_companies: list[str] | None = None

    @field_validator("job_title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("jobTitle is required and must be a non-empty string")
        return v


class StartScrapeOut(WireModel):
    run_id: str
    dataset_id: str
    status: RunStatus = RunStatus.RUNNING


class PollScrapeIn(WireModel):
    run_id: str = Field(min_length=1)
    dataset_id: str = Field(min_length=1)
    offset: int = Field(default=0, ge=0)


class PollScrapeOut(WireModel):
    status: RunStatus
    jobs: list[Job] = []
    new_count: int
    offset: int


class ScrapeResult(WireModel):
    run_id: str
    jobs: list[Job] = []
    total_count: int


class Credits(WireModel):
    remaining: float
    total: float


class CreditUsage(WireModel):
    used: float
    level: Literal["ok", "warning", "high", "critical"]


class CreditsOut(WireModel):
    provider: str
    credits: Credits | None = None
    configured: bool | None = None
    monthly_cap: int
    usage: CreditUsage | None = None


class EnrichIn(WireModel):
    jobs: list[Job] = Field(min_length=1)


class EnrichOut(WireModel):
    results: list[EnrichedJob]
    enriched_count: int
    failed_count: int
    credits_used: float
    credits_remaining: float | None = None


class EnrichmentBatchProgress(WireModel):
    completed: int = 0
    total: int = 0
    failed: int = 0


class SessionEnrichIn(WireModel):
    job_ids: list[str] = Field(min_length=1)


class AutoRefreshIn(WireModel):
    interval: Literal["30m", "1h", "2h", "4h", "off"]


class EnrichmentState(WireModel):
    state: str = "idle"
    progress: EnrichmentBatchProgress | None = None
    error: str | None = None


class SessionOut(WireModel):
    session_id: str
    state: str
    run: ScrapeRun | None = None
    error: str | None = None
    auto_refresh: str = "off"
    total_count: int = 0
    jobs: list[EnrichedJob | Job] = []
    enrichment: EnrichmentState = EnrichmentState()
