"""Persistence collaborator used by the session lifecycle manager."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import distinct, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.core.errors import PersistenceError
from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import SessionStatus
from advisory_hub.models.user import User
from advisory_hub.services.enrollments import active_enrollment_clause, lapsed_enrollment_clause


@dataclass(frozen=True)
class UserSessionState:
    status: SessionStatus
    activated_at: datetime | None
    activated_by: str | None


class SessionStore(Protocol):
    def find_active_enrollment_count(self, user_id: int, now: datetime) -> int:
        ...

    def find_users_with_lapsed_active_enrollments(self, now: datetime) -> list[int]:
        ...

    def get_user_session_status(self, user_id: int) -> UserSessionState | None:
        ...

    def set_user_session_status(
        self,
        user_id: int,
        status: SessionStatus,
        activated_at: datetime | None,
        activated_by: str | None,
        expected_status: SessionStatus | None = None,
    ) -> bool:
        """Write the session fields, returning False when nothing was updated.

        With ``expected_status`` the write only happens while the stored
        status still equals it.
        """
        ...


class SqlSessionStore:
    """``SessionStore`` backed by a SQLAlchemy session.

    Every write commits immediately. Any ``SQLAlchemyError``, on a read or a
    write, is rolled back so the session stays usable for the next user and
    re-raised as ``PersistenceError``.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_active_enrollment_count(self, user_id: int, now: datetime) -> int:
        try:
            return self.db.query(func.count(Enrollment.id)).filter(
                Enrollment.user_id == user_id,
                active_enrollment_clause(now),
            ).scalar() or 0
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f'Could not count enrollments for user {user_id}') from exc

    def find_users_with_lapsed_active_enrollments(self, now: datetime) -> list[int]:
        try:
            rows = self.db.query(distinct(Enrollment.user_id)).filter(
                lapsed_enrollment_clause(now),
            ).order_by(Enrollment.user_id).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError('Could not list users with lapsed enrollments') from exc
        return [user_id for (user_id,) in rows]

    def get_user_session_status(self, user_id: int) -> UserSessionState | None:
        try:
            row = self.db.query(
                User.session_status,
                User.session_activated_at,
                User.session_activated_by,
            ).filter(User.id == user_id).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f'Could not load session status for user {user_id}') from exc

        if row is None:
            return None
        return UserSessionState(status=row[0], activated_at=row[1], activated_by=row[2])

    def set_user_session_status(
        self,
        user_id: int,
        status: SessionStatus,
        activated_at: datetime | None,
        activated_by: str | None,
        expected_status: SessionStatus | None = None,
    ) -> bool:
        query = self.db.query(User).filter(User.id == user_id)
        if expected_status is not None:
            query = query.filter(User.session_status == expected_status)

        try:
            updated = query.update(
                {
                    User.session_status: status,
                    User.session_activated_at: activated_at,
                    User.session_activated_by: activated_by,
                },
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f'Could not update session status for user {user_id}') from exc

        # Rows already loaded in this session would otherwise keep the old status.
        self.db.expire_all()
        return updated > 0
