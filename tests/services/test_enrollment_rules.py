from datetime import datetime, timedelta

import pytest

from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import EnrollmentStatus
from advisory_hub.services.enrollments import (
    active_enrollment_clause,
    is_enrollment_active,
    lapsed_enrollment_clause,
)

NOW = datetime(2026, 1, 10, 8, 0, 0)


@pytest.mark.parametrize(
    ('status', 'expires_at', 'expected'),
    [
        (EnrollmentStatus.ACTIVE, None, True),
        (EnrollmentStatus.ACTIVE, NOW + timedelta(seconds=1), True),
        (EnrollmentStatus.ACTIVE, NOW, False),
        (EnrollmentStatus.ACTIVE, NOW - timedelta(days=1), False),
        (EnrollmentStatus.PAUSED, None, False),
        (EnrollmentStatus.CANCELLED, NOW + timedelta(days=1), False),
        (EnrollmentStatus.COMPLETED, None, False),
        ('ACTIVE', None, True),
    ],
)
def test_is_enrollment_active(status, expires_at, expected) -> None:
    assert is_enrollment_active(status, expires_at, NOW) is expected


def test_sql_clauses_agree_with_predicate(db, make_user, make_enrollment) -> None:
    user = make_user()
    cases = [
        (EnrollmentStatus.ACTIVE, None),
        (EnrollmentStatus.ACTIVE, NOW + timedelta(days=2)),
        (EnrollmentStatus.ACTIVE, NOW - timedelta(days=2)),
        (EnrollmentStatus.PAUSED, None),
        (EnrollmentStatus.CANCELLED, NOW - timedelta(days=2)),
    ]
    created = [make_enrollment(user.id, expires_at=expires_at, status=status) for status, expires_at in cases]

    active_ids = {row.id for row in db.query(Enrollment).filter(active_enrollment_clause(NOW))}
    lapsed_ids = {row.id for row in db.query(Enrollment).filter(lapsed_enrollment_clause(NOW))}

    expected_active = {
        enrollment.id
        for enrollment in created
        if is_enrollment_active(enrollment.status, enrollment.expires_at, NOW)
    }
    assert active_ids == expected_active
    assert lapsed_ids == {created[2].id}
