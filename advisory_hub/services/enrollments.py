"""The single definition of a "currently active" enrollment.

An enrollment is active iff its stored status is ACTIVE and it has not
expired. Expiry is evaluated against ``now`` on every read and is never
written back to the row.
"""

from datetime import datetime

from sqlalchemy import and_, or_

from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import EnrollmentStatus


def is_enrollment_active(status: EnrollmentStatus | str, expires_at: datetime | None, now: datetime) -> bool:
    return status == EnrollmentStatus.ACTIVE and (expires_at is None or expires_at > now)


def active_enrollment_clause(now: datetime):
    """SQL form of ``is_enrollment_active`` for use in query filters."""
    return and_(
        Enrollment.status == EnrollmentStatus.ACTIVE,
        or_(Enrollment.expires_at.is_(None), Enrollment.expires_at > now),
    )


def lapsed_enrollment_clause(now: datetime):
    """Enrollments still stored as ACTIVE whose expiry has passed."""
    return and_(
        Enrollment.status == EnrollmentStatus.ACTIVE,
        Enrollment.expires_at.is_not(None),
        Enrollment.expires_at < now,
    )
