from sqlalchemy import Column, Integer, String, DateTime, Float, UniqueConstraint
from sqlalchemy.sql import func
from .db import Base

class SeenJob(Base):
    __tablename__ = "seen_jobs"
    id = Column(Integer, primary_key=True)
    dedupe_key = Column(String(700), unique=True, index=True)
    job_id = Column(String(200), index=True)
    title = Column(String(300))
    company = Column(String(300), index=True)
    times_seen = Column(Integer, default=1)

    first_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CreditUsage(Base):
    __tablename__ = "credit_usage"
    id = Column(Integer, primary_key=True)
    month = Column(String(7), index=True)  # YYYY-MM
    provider = Column(String(50), index=True)
    credits = Column(Float, default=0)

    __table_args__ = (
        UniqueConstraint("month", "provider", name="uq_month_provider"),
    )
