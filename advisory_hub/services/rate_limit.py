"""Fixed-window rate limiting on a counter table shared by all instances."""

from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from advisory_hub.core.errors import RateLimitExceeded
from advisory_hub.models.rate_limit import RateLimitCounter


def window_start_for(now: datetime, window_seconds: int) -> datetime:
    epoch = datetime(1970, 1, 1)
    elapsed = int((now - epoch).total_seconds())
    return epoch + timedelta(seconds=elapsed - elapsed % window_seconds)


def hit(db: Session, key: str, max_requests: int, window_seconds: int, now: datetime | None = None) -> int:
    """Count one request for ``key`` and return the count in the current window.

    Raises ``RateLimitExceeded`` once ``max_requests`` have been counted.
    The increment is a conditional UPDATE so concurrent requests cannot
    overshoot the limit.
    """
    now = now or datetime.now()
    window_start = window_start_for(now, window_seconds)

    updated = db.query(RateLimitCounter).filter(
        RateLimitCounter.key == key,
        RateLimitCounter.window_start == window_start,
        RateLimitCounter.count < max_requests,
    ).update({RateLimitCounter.count: RateLimitCounter.count + 1}, synchronize_session=False)

    if not updated:
        exists = db.query(RateLimitCounter.id).filter(
            RateLimitCounter.key == key,
            RateLimitCounter.window_start == window_start,
        ).first()
        if exists:
            db.rollback()
            retry_after = int((window_start + timedelta(seconds=window_seconds) - now).total_seconds())
            raise RateLimitExceeded(key, max(retry_after, 1))

        db.add(RateLimitCounter(key=key, window_start=window_start, count=1))
        try:
            db.commit()
        except IntegrityError:
            # Another instance opened the window first.
            db.rollback()
            return hit(db, key, max_requests, window_seconds, now)
        return 1

    db.commit()
    count = db.query(RateLimitCounter.count).filter(
        RateLimitCounter.key == key,
        RateLimitCounter.window_start == window_start,
    ).scalar()
    return count or 0


def purge_expired_windows(db: Session, window_seconds: int, now: datetime | None = None) -> int:
    now = now or datetime.now()
    cutoff = window_start_for(now, window_seconds)
    deleted = db.query(RateLimitCounter).filter(
        RateLimitCounter.window_start < cutoff,
    ).delete(synchronize_session=False)
    db.commit()
    return deleted
