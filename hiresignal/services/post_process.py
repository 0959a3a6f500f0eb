from __future__ import annotations

import re
from typing import Iterable

from ..schemas import Job

RECRUITER_KEYWORDS: tuple[str, ...] = (
    "recruitment", "recruiting", "recruiter", "staffing",
    "talent acquisition", "headhunter", "placement",
    "hays", "robert half", "michael page", "randstad",
    "adecco", "manpower", "kelly services", "kforce",
    "reed", "spencer ogden", "page group", "pagegroup",
    "hudson", "antal", "allegis", "modis",
)

_RECRUITER_PATS = [
    re.compile(rf"(?<![a-z0-9]){re.escape(k)}(?:s|es)?(?![a-z0-9])") for k in RECRUITER_KEYWORDS
]


def _norm(s: str | None) -> str:
    return re.sub(r"\s+", " ", (s or "").lower()).strip()


def make_dedupe_key(job: Job) -> str:
    """company|title|YYYY-MM-DD, lower-cased and whitespace-collapsed."""
    day = job.posted_at.date().isoformat() if job.posted_at else "undated"
    return f"{_norm(job.company)}|{_norm(job.title)}|{day}"


def is_recruiter(company: str, description: str | None) -> bool:
    company_l = company.lower()
    desc_l = (description or "").lower()
    return any(p.search(company_l) or p.search(desc_l) for p in _RECRUITER_PATS)


def _with_keys(jobs: list[Job]) -> list[Job]:
    return [j.model_copy(update={"dedupe_key": make_dedupe_key(j)}) for j in jobs]


def _flag_duplicates(jobs: list[Job]) -> list[Job]:
    seen: dict[str, int] = {}
    out: list[Job] = []
    for j in jobs:
        count = seen.get(j.dedupe_key, 0) + 1
        seen[j.dedupe_key] = count
        out.append(j.model_copy(update={"is_repeat_hiring": count > 1, "repeat_count": count}))
    return out


def _flag_repeat_hiring(jobs: list[Job], previous_keys: set[str]) -> list[Job]:
    return [
        j.model_copy(update={"is_repeat_hiring": True}) if j.dedupe_key in previous_keys else j
        for j in jobs
    ]


def _detect_recruiters(jobs: list[Job]) -> list[Job]:
    return [j.model_copy(update={"is_recruiter": is_recruiter(j.company, j.description)}) for j in jobs]


def post_process_jobs(jobs: Iterable[Job], previous_keys: set[str] | None = None) -> list[Job]:
    """Attach dedupe/repeat-hiring/recruiter signals to a batch.

    Runs key generation, within-batch duplicates, cross-batch repeats and
    recruiter detection in that order. Each step only adds flags. Input
    records are not modified.
    """
    result = _with_keys(list(jobs))
    result = _flag_duplicates(result)
    if previous_keys:
        result = _flag_repeat_hiring(result, previous_keys)
    return _detect_recruiters(result)
