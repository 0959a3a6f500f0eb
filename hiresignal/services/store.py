from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from ..models import CreditUsage, SeenJob
from ..schemas import Job


class JobStore(Protocol):
    def get_previous_dedupe_keys(self) -> set[str]:
        ...

    def persist_results(self, jobs: Iterable[Job]) -> int:
        ...


class SqlJobStore:
    """Remembers dedupe keys of earlier searches for repeat-hiring detection."""

    CHUNK = 500

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_previous_dedupe_keys(self) -> set[str]:
        with self._session_factory() as db:
            return {k for (k,) in db.query(SeenJob.dedupe_key).all()}

    def persist_results(self, jobs: Iterable[Job]) -> int:
        """Upsert by dedupe key; returns the number of new keys."""
        by_key: dict[str, Job] = {}
        for j in jobs:
            if j.dedupe_key and j.dedupe_key not in by_key:
                by_key[j.dedupe_key] = j
        if not by_key:
            return 0

        with self._session_factory() as db:
            existing = self._load_existing(db, list(by_key))
            added = 0
            for key, job in by_key.items():
                row = existing.get(key)
                if row is not None:
                    row.times_seen = (row.times_seen or 0) + 1
                    row.last_seen_at = datetime.now(timezone.utc)
                    continue
                db.add(SeenJob(
                    dedupe_key=key,
                    job_id=job.id,
                    title=job.title,
                    company=job.company,
                    times_seen=1,
                ))
                added += 1
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
        return added

    def _load_existing(self, db: Session, keys: list[str]) -> dict[str, SeenJob]:
        found: dict[str, SeenJob] = {}
        for i in range(0, len(keys), self.CHUNK):
            chunk = keys[i : i + self.CHUNK]
            for row in db.query(SeenJob).filter(SeenJob.dedupe_key.in_(chunk)).all():
                found[row.dedupe_key] = row
        return found


def current_month(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m")


class CreditLedger:
    """Credits charged per calendar month, summed over providers."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def used_this_month(self, month: str | None = None) -> float:
        with self._session_factory() as db:
            total = (
                db.query(func.coalesce(func.sum(CreditUsage.credits), 0.0))
                .filter(CreditUsage.month == (month or current_month()))
                .scalar()
            )
            return float(total or 0)

    def record(self, provider_id: str, credits: float, month: str | None = None) -> None:
        if credits <= 0:
            return
        month = month or current_month()
        with self._session_factory() as db:
            row = (
                db.query(CreditUsage)
                .filter(CreditUsage.month == month, CreditUsage.provider == provider_id)
                .first()
            )
            if row is None:
                db.add(CreditUsage(month=month, provider=provider_id, credits=credits))
            else:
                row.credits = (row.credits or 0) + credits
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
