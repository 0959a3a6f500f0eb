from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

from ..schemas import Job

MAX_ID_LENGTH = 100

_SHOW_MORE = re.compile(r"\s*Show more Show less\s*$", re.I)


def _first(item: dict, *keys: str) -> Any:
    for k in keys:
        v = item.get(k)
        if v not in (None, ""):
            return v
    return None


def parse_posted_at(val: Any) -> datetime | None:
    if isinstance(val, datetime):
        return val if val.tzinfo else val.replace(tzinfo=timezone.utc)
    if isinstance(val, (int, float)):
        # epoch seconds or milliseconds
        ts = val / 1000 if val > 10**11 else val
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    if isinstance(val, str) and val.strip():
        try:
            dt = datetime.fromisoformat(val.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


def _slug(s: str) -> str:
    return re.sub(r"\s+", "-", s.strip().lower())


def generate_job_id(item: dict) -> str:
    """Source id when present, otherwise company-title-date built from the item.

    The fallback never uses the current time: the same posting must get the
    same id on every scrape.
    """
    source_id = _first(item, "jobId", "id")
    if source_id is not None and str(source_id).strip():
        return str(source_id).strip()

    company = _slug(str(_first(item, "companyName", "company") or "unknown"))
    title = _slug(str(_first(item, "jobTitle", "title") or "unknown"))
    posted = parse_posted_at(_first(item, "publishedAt", "postedAt"))
    date = posted.date().isoformat() if posted else "undated"
    raw = f"{company}-{title}-{date}"
    return re.sub(r"[^a-z0-9-]", "", raw)[:MAX_ID_LENGTH]


def clean_linkedin_url(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.hostname and "linkedin.com" in parts.hostname:
        return f"{parts.scheme}://{parts.netloc}{parts.path}"
    return url


def parse_applicant_count(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    if not isinstance(raw, str) or not raw:
        return None
    m = re.search(r"(\d+)", raw.replace(",", ""))
    return int(m.group(1)) if m else None


def format_salary(raw: Any) -> str | None:
    """`["$50000", "$70000"]` -> `"$50K - $70K"`; strings pass through."""
    if isinstance(raw, str):
        return raw or None
    if not isinstance(raw, list) or not raw:
        return None

    out: list[str] = []
    for v in raw[:2]:
        s = str(v)
        digits = re.sub(r"[^0-9.]", "", s)
        try:
            num = float(digits)
        except ValueError:
            out.append(s)
            continue
        m = re.match(r"^[^0-9]*", s)
        currency = (m.group(0) if m else "") or "$"
        if num >= 1000:
            out.append(f"{currency}{round(num / 1000)}K")
        else:
            out.append(f"{currency}{num:g}")
    if len(out) == 1:
        return out[0]
    return f"{out[0]} - {out[1]}"


def clean_description(raw: str | None) -> str | None:
    if not raw:
        return None
    return _SHOW_MORE.sub("", raw).strip() or None


def company_logo_url(company_logo: str | None, company_url: str | None) -> str | None:
    if company_logo:
        return company_logo
    if company_url:
        try:
            host = urlsplit(company_url if "//" in company_url else f"//{company_url}").hostname
        except ValueError:
            return None
        if host:
            return f"https://logo.clearbit.com/{host.removeprefix('www.')}"
    return None


def transform_raw_job(item: dict) -> Job:
    company_url = _first(item, "companyUrl")
    return Job(
        id=generate_job_id(item),
        title=_first(item, "jobTitle", "title") or "Unknown Title",
        company=_first(item, "companyName", "company") or "Unknown Company",
        company_url=company_url,
        company_linked_in=_first(item, "companyLinkedIn", "companyLinkedinUrl"),
        company_logo=company_logo_url(_first(item, "companyLogo"), company_url),
        location=_first(item, "location") or "Unknown Location",
        posted_at=parse_posted_at(_first(item, "publishedAt", "postedAt")),
        posted_at_relative=_first(item, "postedTime", "postedAtRelative"),
        url=clean_linkedin_url(_first(item, "jobUrl", "url") or "#"),
        description=clean_description(_first(item, "jobDescription", "description")),
        salary=format_salary(_first(item, "salaryInfo", "salary")),
        employment_type=_first(item, "contractType", "employmentType"),
        experience_level=_first(item, "experienceLevel"),
        applicant_count=parse_applicant_count(_first(item, "applicationsCount", "applicantCount")),
    )
