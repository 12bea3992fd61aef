"""Keeps ``User.session_status`` in line with the user's active enrollments.

A session is ACTIVE while the user holds at least one currently-active
enrollment. Reconciliation only ever writes ACTIVE or INACTIVE, so a
SUSPENDED status set by an admin is never changed here.
"""

import logging
from datetime import datetime
from typing import Callable, Literal

from pydantic import BaseModel

from advisory_hub.core import config
from advisory_hub.core.errors import PersistenceError, UserNotFound
from advisory_hub.models.enums import SessionStatus
from advisory_hub.services.session_store import SessionStore

logger = logging.getLogger(__name__)

ReconcileAction = Literal['activated', 'deactivated', 'no_change']


class ReconcileResult(BaseModel):
    success: bool
    action: ReconcileAction | None = None
    active_enrollments: int = 0
    current_status: SessionStatus | None = None
    error: str | None = None


class SweepError(BaseModel):
    user_id: int
    error: str


class SweepResult(BaseModel):
    success: bool
    processed_users: int
    deactivated_users: int = 0
    errors: list[SweepError] = []


class SessionLifecycleManager:
    def __init__(self, store: SessionStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def reconcile_user(self, user_id: int) -> ReconcileResult:
        """Recompute one user's session status from their enrollments.

        A missing user is reported as a failed result. ``PersistenceError``
        propagates to the caller.
        """
        try:
            return self._reconcile(user_id, self.clock(), allow_activation=True)
        except UserNotFound as exc:
            return ReconcileResult(success=False, error=str(exc))

    def sweep_expired(self) -> SweepResult:
        """Deactivate sessions whose last active enrollment has lapsed.

        Only users holding an ACTIVE enrollment past its ``expires_at`` are
        visited. Lapsed enrollments keep their stored status. A failure for one
        user is recorded and the sweep moves on to the next.
        """
        now = self.clock()
        user_ids = self.store.find_users_with_lapsed_active_enrollments(now)
        logger.info('Session sweep found %d users with lapsed enrollments', len(user_ids))

        errors: list[SweepError] = []
        deactivated = 0
        for user_id in user_ids:
            try:
                result = self._reconcile(user_id, now, allow_activation=False)
            except (UserNotFound, PersistenceError) as exc:
                logger.warning('Session sweep failed for user %s: %s', user_id, exc)
                errors.append(SweepError(user_id=user_id, error=str(exc)))
                continue

            if result.action == 'deactivated':
                deactivated += 1

        return SweepResult(
            success=not errors,
            processed_users=len(user_ids),
            deactivated_users=deactivated,
            errors=errors,
        )

    def _reconcile(self, user_id: int, now: datetime, allow_activation: bool) -> ReconcileResult:
        active_count = self.store.find_active_enrollment_count(user_id, now)
        state = self.store.get_user_session_status(user_id)
        if state is None:
            raise UserNotFound(user_id)

        if active_count > 0 and state.status == SessionStatus.INACTIVE and allow_activation:
            if self.store.set_user_session_status(
                user_id,
                SessionStatus.ACTIVE,
                activated_at=now,
                activated_by=config.SYSTEM_ACTOR,
                expected_status=state.status,
            ):
                logger.info('Activated session for user %s (%d active enrollments)', user_id, active_count)
                return ReconcileResult(
                    success=True,
                    action='activated',
                    active_enrollments=active_count,
                    current_status=SessionStatus.ACTIVE,
                )
            return self._no_change(user_id, active_count)

        if active_count == 0 and state.status == SessionStatus.ACTIVE:
            if self.store.set_user_session_status(
                user_id,
                SessionStatus.INACTIVE,
                activated_at=None,
                activated_by=None,
                expected_status=SessionStatus.ACTIVE,
            ):
                logger.info('Deactivated session for user %s, no active enrollments', user_id)
                return ReconcileResult(
                    success=True,
                    action='deactivated',
                    active_enrollments=0,
                    current_status=SessionStatus.INACTIVE,
                )
            return self._no_change(user_id, active_count)

        return ReconcileResult(
            success=True,
            action='no_change',
            active_enrollments=active_count,
            current_status=state.status,
        )

    def _no_change(self, user_id: int, active_count: int) -> ReconcileResult:
        # Another writer changed the status between our read and the
        # conditional update; report what is stored now.
        state = self.store.get_user_session_status(user_id)
        if state is None:
            raise UserNotFound(user_id)
        return ReconcileResult(
            success=True,
            action='no_change',
            active_enrollments=active_count,
            current_status=state.status,
        )
