from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ..schemas import Job


class MatchMode(str, Enum):
    EXACT_TITLE = "exact-title"
    ALL_TITLE = "all-title"
    ALL_ANYWHERE = "all-anywhere"
    BROAD = "broad"
    OFF = "off"


class SortOption(str, Enum):
    RECENT = "recent"
    SALARY_HIGH = "salary-high"
    APPLICANTS = "applicants"
    COMPANY_AZ = "company-az"
    RELEVANCE = "relevance"
    PRIME_PICKS = "prime-picks"


@dataclass
class FilterOptions:
    exclude_recruiters: bool = False
    exclude_companies: list[str] = field(default_factory=list)
    match_mode: MatchMode = MatchMode.OFF
    query: str = ""
    # older clients send a boolean instead of a mode
    must_contain_keywords: bool = False

    def effective_mode(self) -> MatchMode:
        if self.match_mode is MatchMode.OFF and self.must_contain_keywords:
            return MatchMode.BROAD
        return self.match_mode


def query_keywords(query: str | None) -> list[str]:
    return [w for w in (query or "").lower().split() if len(w) > 2]


def _matches(job: Job, mode: MatchMode, query: str, words: list[str]) -> bool:
    title = job.title.lower()
    desc = (job.description or "").lower()
    if mode is MatchMode.EXACT_TITLE:
        return " ".join(query.lower().split()) in " ".join(title.split())
    if mode is MatchMode.ALL_TITLE:
        return all(w in title for w in words)
    if mode is MatchMode.ALL_ANYWHERE:
        return all(w in title or w in desc for w in words)
    return any(w in title or w in desc for w in words)


def apply_filters(jobs: list[Job], opts: FilterOptions) -> list[Job]:
    result = jobs

    if opts.exclude_recruiters:
        result = [j for j in result if not j.is_recruiter]

    excluded = [c.lower() for c in opts.exclude_companies if c.strip()]
    if excluded:
        result = [j for j in result if not any(e in j.company.lower() for e in excluded)]

    mode = opts.effective_mode()
    words = query_keywords(opts.query)
    if mode is not MatchMode.OFF and words:
        result = [j for j in result if _matches(j, mode, opts.query, words)]

    return result


def parse_salary(salary: str | None) -> float:
    """Annual-equivalent leading number of a free-text salary, -1 if none."""
    if not salary:
        return -1
    cleaned = re.sub(r"[£$€,]", "", salary)
    m = re.search(r"(\d+(?:\.\d+)?)", cleaned)
    if not m:
        return -1
    num = float(m.group(1))
    if re.search(r"\d+(?:\.\d+)?\s?k", cleaned, re.I):
        num *= 1000
    if num < 200 and re.search(r"hr|hour", salary, re.I):
        num *= 2000
    if 200 <= num <= 2000 and re.search(r"day|daily", salary, re.I):
        num *= 250
    return num


def keyword_score(job: Job, query: str) -> int:
    title = job.title.lower()
    desc = (job.description or "").lower()
    score = 0
    for w in query_keywords(query):
        if w in title:
            score += 2
        if w in desc:
            score += 1
    return score


def _hours_ago(job: Job, now: datetime) -> float | None:
    if job.posted_at_relative:
        rel = job.posted_at_relative.lower()
        m = re.search(r"(\d+)", rel)
        if m:
            n = int(m.group(1))
            if "min" in rel:
                return n / 60
            if "hour" in rel or "hr" in rel:
                return float(n)
            if "day" in rel:
                return n * 24.0
            if "week" in rel:
                return n * 168.0
            if "month" in rel:
                return n * 720.0
    if job.posted_at:
        return (now - job.posted_at).total_seconds() / 3600
    return None


def power_score(job: Job, now: datetime | None = None) -> tuple[int, str | None, list[str]]:
    """Opportunity score 0-10 with tier ("power" >= 7, "strong" >= 4) and reasons."""
    now = now or datetime.now(timezone.utc)
    score = 0
    reasons: list[str] = []

    if job.applicant_count:
        if job.applicant_count < 10:
            score += 3
            reasons.append("Very few applicants")
        elif job.applicant_count < 25:
            score += 2
            reasons.append("Low competition")
        elif job.applicant_count < 50:
            score += 1
            reasons.append("Moderate competition")
    else:
        score += 1

    hours = _hours_ago(job, now)
    if hours is not None:
        if hours < 24:
            score += 3
            reasons.append("Posted today")
        elif hours < 72:
            score += 2
            reasons.append("Posted this week")
        elif hours < 168:
            score += 1

    if job.salary:
        score += 2
        reasons.append("Salary listed")
        if parse_salary(job.salary) >= 100_000:
            score += 1
            reasons.append("High salary")

    score = min(score, 10)
    tier = "power" if score >= 7 else "strong" if score >= 4 else None
    return score, tier, reasons


def _posted_ts(job: Job) -> float:
    return job.posted_at.timestamp() if job.posted_at else float("-inf")


def apply_sorting(jobs: list[Job], sort_by: SortOption, query: str | None = None) -> list[Job]:
    # sorted() is stable, also with reverse=True
    if sort_by is SortOption.RECENT:
        return sorted(jobs, key=_posted_ts, reverse=True)
    if sort_by is SortOption.SALARY_HIGH:
        return sorted(jobs, key=lambda j: parse_salary(j.salary), reverse=True)
    if sort_by is SortOption.APPLICANTS:
        return sorted(jobs, key=lambda j: j.applicant_count or 0, reverse=True)
    if sort_by is SortOption.COMPANY_AZ:
        return sorted(jobs, key=lambda j: j.company.casefold())
    if sort_by is SortOption.RELEVANCE:
        if not query:
            return list(jobs)
        return sorted(jobs, key=lambda j: keyword_score(j, query), reverse=True)
    if sort_by is SortOption.PRIME_PICKS:
        now = datetime.now(timezone.utc)
        return sorted(jobs, key=lambda j: power_score(j, now)[0], reverse=True)
    return list(jobs)


def filter_and_sort(jobs: list[Job], opts: FilterOptions, sort_by: SortOption) -> list[Job]:
    return apply_sorting(apply_filters(jobs, opts), sort_by, opts.query)
