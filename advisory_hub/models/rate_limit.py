"""Shared rate-limit counter model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from advisory_hub.database import Base


class RateLimitCounter(Base):
    """Request count for one key within one fixed window.

    Kept in the database so every server instance sees the same counts.
    """
    __tablename__ = "rate_limit_counters"
    __table_args__ = (UniqueConstraint("key", "window_start", name="uq_rate_limit_window"),)

    id = Column(Integer, primary_key=True)
    key = Column(String, nullable=False, index=True)
    window_start = Column(DateTime, nullable=False)
    count = Column(Integer, nullable=False, default=0)
