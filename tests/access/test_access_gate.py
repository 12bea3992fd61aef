from datetime import datetime, timedelta, timezone

import jwt
import pytest

from advisory_hub.access.gate import (
    ADMIN_DASHBOARD_PATH,
    PENDING_PATH,
    REJECTED_PATH,
    SIGN_IN_PATH,
    UNAUTHORIZED_PATH,
    AccessGate,
    RouteTable,
    get_user_status_redirect,
    sign_in_redirect,
)
from advisory_hub.auth import jwt_handler
from advisory_hub.auth.jwt_handler import SessionClaims
from advisory_hub.core import config
from advisory_hub.models.enums import UserRole
from advisory_hub.models.user import User

gate = AccessGate()

PUBLIC_PATHS = sorted(RouteTable().public_paths)
PROTECTED_PATHS = [
    '/dashboard',
    '/dashboard/calendar',
    '/dashboard/roadmap',
    '/dashboard/messages',
    '/dashboard/messages/12',
    '/admin',
    '/admin/users',
    '/admin/dashboard',
    '/profile',
]


def _claims(
    role: UserRole = UserRole.CLIENT,
    is_confirmed: bool | None = True,
    rejection_reason: str | None = None,
) -> SessionClaims:
    return SessionClaims(
        user_id=1,
        email='someone@example.com',
        role=role,
        is_confirmed=is_confirmed,
        rejection_reason=rejection_reason,
    )


@pytest.mark.parametrize('reason', [None, '', 'Incomplete application'])
@pytest.mark.parametrize('path', ['/dashboard', '/admin/users', '/'])
def test_get_user_status_redirect_confirmed_needs_no_redirect(reason, path) -> None:
    assert get_user_status_redirect(True, reason, path) is None


@pytest.mark.parametrize('path', ['/dashboard', '/admin', '/services'])
def test_get_user_status_redirect_unconfirmed(path) -> None:
    assert get_user_status_redirect(False, 'some reason', path) == REJECTED_PATH
    assert get_user_status_redirect(False, None, path) == PENDING_PATH
    assert get_user_status_redirect(False, '', path) == PENDING_PATH


@pytest.mark.parametrize('reason', [None, '', 'anything'])
def test_get_user_status_redirect_undecided_goes_to_sign_in(reason) -> None:
    assert get_user_status_redirect(None, reason, '/dashboard') == SIGN_IN_PATH


@pytest.mark.parametrize('path', PUBLIC_PATHS + ['/images/logo.png', '/icons/a.svg', '/animations/x.json'])
def test_public_paths_allowed_without_token(path) -> None:
    assert gate.decide(path, None).allowed
    assert gate.evaluate(path, None).allowed


def test_service_detail_pages_are_public_for_every_token_state() -> None:
    for claims in (None, _claims(is_confirmed=False), _claims(is_confirmed=False, rejection_reason='no')):
        assert gate.decide('/services/42', claims).allowed


def test_root_is_not_a_prefix_for_everything() -> None:
    decision = gate.decide('/dashboard', None)

    assert decision.redirect_to == sign_in_redirect('/dashboard')


def test_missing_token_redirects_to_sign_in_with_callback() -> None:
    decision = gate.decide('/dashboard/roadmap', None)

    assert decision.redirect_to == '/auth/signin?callbackUrl=%2Fdashboard%2Froadmap'
    assert decision.reason == 'unauthenticated'


@pytest.mark.parametrize('path', PROTECTED_PATHS)
def test_pending_user_redirected_to_pending(path) -> None:
    assert gate.decide(path, _claims(is_confirmed=False)).redirect_to == PENDING_PATH


@pytest.mark.parametrize('path', PROTECTED_PATHS)
def test_rejected_user_redirected_to_rejected(path) -> None:
    decision = gate.decide(path, _claims(is_confirmed=False, rejection_reason='Not a fit'))

    assert decision.redirect_to == REJECTED_PATH


def test_undecided_confirmation_in_token_is_treated_as_pending() -> None:
    assert gate.decide('/dashboard', _claims(is_confirmed=None)).redirect_to == PENDING_PATH


def test_messaging_pages_do_not_bypass_confirmation() -> None:
    decision = gate.decide('/dashboard/messages/3', _claims(is_confirmed=False))

    assert decision.redirect_to == PENDING_PATH


@pytest.mark.parametrize('role', [UserRole.CLIENT, UserRole.ADMIN])
@pytest.mark.parametrize('path', PROTECTED_PATHS)
def test_confirmed_users_never_sent_to_status_pages(role, path) -> None:
    decision = gate.decide(path, _claims(role=role, rejection_reason='stale reason'))

    assert decision.redirect_to not in (PENDING_PATH, REJECTED_PATH)


@pytest.mark.parametrize('path', ['/admin', '/admin/users', '/admin/dashboard'])
def test_admin_pages_require_admin_role(path) -> None:
    assert gate.decide(path, _claims(role=UserRole.CLIENT)).redirect_to == UNAUTHORIZED_PATH
    assert gate.decide(path, _claims(role=UserRole.ADMIN)).allowed


def test_admin_prefix_does_not_match_similar_paths() -> None:
    assert gate.decide('/administrivia', _claims(role=UserRole.CLIENT)).allowed


def test_dashboard_root_normalized_for_admins_only() -> None:
    assert gate.decide('/dashboard', _claims(role=UserRole.ADMIN)).redirect_to == ADMIN_DASHBOARD_PATH
    assert gate.decide('/dashboard', _claims(role=UserRole.CLIENT)).allowed
    assert gate.decide('/dashboard/calendar', _claims(role=UserRole.ADMIN)).allowed


def _token_for(**overrides) -> str:
    user = User(
        id=7,
        email='client@example.com',
        role=overrides.get('role', UserRole.CLIENT),
        is_confirmed=overrides.get('is_confirmed', True),
        rejection_reason=overrides.get('rejection_reason'),
    )
    return jwt_handler.create_access_token(user)


def test_evaluate_reads_claims_from_signed_token() -> None:
    assert gate.evaluate('/dashboard', _token_for()).allowed
    assert gate.evaluate('/dashboard', _token_for(role=UserRole.ADMIN)).redirect_to == ADMIN_DASHBOARD_PATH
    assert gate.evaluate('/dashboard', _token_for(is_confirmed=False)).redirect_to == PENDING_PATH
    assert gate.evaluate(
        '/dashboard',
        _token_for(is_confirmed=False, rejection_reason='Duplicate account'),
    ).redirect_to == REJECTED_PATH


def test_evaluate_fails_closed_for_tampered_token() -> None:
    forged = jwt.encode(
        {'sub': '1', 'role': 'ADMIN', 'is_confirmed': True},
        'not-the-secret',
        algorithm='HS256',
    )

    decision = gate.evaluate('/admin/users', forged)

    assert decision.redirect_to == sign_in_redirect('/admin/users')


def test_evaluate_fails_closed_for_expired_token() -> None:
    expired = jwt.encode(
        {
            'sub': '1',
            'role': 'CLIENT',
            'is_confirmed': True,
            'exp': datetime.now(timezone.utc) - timedelta(minutes=5),
        },
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    assert gate.evaluate('/dashboard', expired).redirect_to == sign_in_redirect('/dashboard')


def test_evaluate_fails_closed_for_garbage_and_unknown_role() -> None:
    unknown_role = jwt.encode(
        {'sub': '1', 'role': 'OWNER', 'is_confirmed': True},
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    assert gate.evaluate('/dashboard', 'not.a.jwt').redirect_to == sign_in_redirect('/dashboard')
    assert gate.evaluate('/dashboard', unknown_role).redirect_to == sign_in_redirect('/dashboard')


def test_evaluate_never_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(self, path, claims):
        raise RuntimeError('boom')

    monkeypatch.setattr(AccessGate, 'decide', explode)

    decision = AccessGate().evaluate('/dashboard', _token_for())

    assert decision.redirect_to == sign_in_redirect('/dashboard')
    assert decision.reason == 'error'
