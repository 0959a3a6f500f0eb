import os

# must run before hiresignal.config is imported
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("DATA_SOURCE", "mock")
os.environ.setdefault("ENRICHMENT", "mock")
os.environ.setdefault("EMAIL_VERIFICATION", "none")
os.environ.setdefault("POLL_INTERVAL_SECONDS", "0.01")
os.environ.setdefault("ENRICH_DELAY_SECONDS", "0")
os.environ.setdefault("MONTHLY_CREDIT_CAP", "500")

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from hiresignal.db import Base, make_engine
from hiresignal.schemas import Job


def make_job(n: int = 1, **kw) -> Job:
    fields = {
        "id": f"job-{n}",
        "title": "Python Developer",
        "company": f"Company {n}",
        "location": "London",
        "url": f"https://www.linkedin.com/jobs/view/{n}",
        "posted_at": datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc),
    }
    fields.update(kw)
    return Job(**fields)


@pytest.fixture
def session_factory():
    from hiresignal import models  # noqa: F401

    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()
