"""Page access decisions.

``AccessGate.decide`` maps a request path and the caller's session claims to
either "continue" or a redirect. Rules are checked in order and the first
match wins:

1. public paths and public prefixes
2. service detail pages
3. no (valid) token -> sign-in, with the requested path as callback
4. messaging pages for confirmed users
5. unconfirmed -> /rejected when a reason is recorded, else /pending
6. admin pages for non-admins -> /unauthorized
7. admins on the generic dashboard -> admin dashboard

The gate never touches the database and never raises: anything unexpected
resolves to the sign-in redirect.
"""

import logging
from dataclasses import dataclass, field
from urllib.parse import urlencode

from advisory_hub.auth import jwt_handler
from advisory_hub.auth.jwt_handler import SessionClaims
from advisory_hub.models.enums import UserRole

logger = logging.getLogger(__name__)

SIGN_IN_PATH = '/auth/signin'
PENDING_PATH = '/pending'
REJECTED_PATH = '/rejected'
UNAUTHORIZED_PATH = '/unauthorized'
ADMIN_DASHBOARD_PATH = '/admin/dashboard'
CALLBACK_PARAM = 'callbackUrl'


@dataclass(frozen=True)
class RouteTable:
    public_paths: frozenset[str] = frozenset({
        '/',
        '/about',
        '/blogs',
        '/videos',
        '/insights',
        '/calendar',
        '/services',
        '/pricing',
        '/contact',
        '/newsletters',
        '/privacy',
        '/terms',
        '/cookies',
        '/register',
        SIGN_IN_PATH,
        '/auth/signup',
        '/auth/forgot-password',
        PENDING_PATH,
        REJECTED_PATH,
        UNAUTHORIZED_PATH,
    })
    public_prefixes: tuple[str, ...] = (
        '/animations/',
        '/data/',
        '/images/',
        '/icons/',
        '/static/',
        '/favicon.ico',
    )
    service_detail_prefix: str = '/services/'
    confirmed_messaging_prefix: str = '/dashboard/messages'
    admin_prefix: str = '/admin'
    dashboard_root: str = '/dashboard'
    admin_dashboard_root: str = ADMIN_DASHBOARD_PATH

    def is_public(self, path: str) -> bool:
        if path in self.public_paths:
            return True
        if path.startswith(self.public_prefixes):
            return True
        return any(
            route != '/' and path.startswith(route + '/')
            for route in self.public_paths
        )


@dataclass(frozen=True)
class AccessDecision:
    redirect_to: str | None = None
    reason: str = 'allowed'

    @property
    def allowed(self) -> bool:
        return self.redirect_to is None


def sign_in_redirect(callback_path: str) -> str:
    return f'{SIGN_IN_PATH}?{urlencode({CALLBACK_PARAM: callback_path})}'


def get_user_status_redirect(
    is_confirmed: bool | None,
    rejection_reason: str | None,
    current_path: str,
) -> str | None:
    """Where a user in the given confirmation state must be sent, if anywhere.

    ``None`` confirmation means no decision is available and resolves like a
    missing session. An empty rejection reason counts as no reason.
    """
    del current_path
    if is_confirmed is True:
        return None
    if is_confirmed is False:
        return REJECTED_PATH if rejection_reason else PENDING_PATH
    return SIGN_IN_PATH


def _is_under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip('/') + '/')


@dataclass(frozen=True)
class AccessGate:
    routes: RouteTable = field(default_factory=RouteTable)

    def decide(self, path: str, claims: SessionClaims | None) -> AccessDecision:
        routes = self.routes

        if routes.is_public(path):
            return AccessDecision(reason='public')

        if path.startswith(routes.service_detail_prefix):
            return AccessDecision(reason='service_detail')

        if claims is None:
            return AccessDecision(redirect_to=sign_in_redirect(path), reason='unauthenticated')

        if claims.is_confirmed and _is_under(path, routes.confirmed_messaging_prefix):
            return AccessDecision(reason='messaging')

        if not claims.is_confirmed:
            if claims.rejection_reason:
                return AccessDecision(redirect_to=REJECTED_PATH, reason='rejected')
            return AccessDecision(redirect_to=PENDING_PATH, reason='pending')

        is_admin = claims.role == UserRole.ADMIN

        if _is_under(path, routes.admin_prefix) and not is_admin:
            return AccessDecision(redirect_to=UNAUTHORIZED_PATH, reason='not_admin')

        if path == routes.dashboard_root and is_admin:
            return AccessDecision(redirect_to=routes.admin_dashboard_root, reason='admin_dashboard')

        return AccessDecision()

    def evaluate(self, path: str, token: str | None) -> AccessDecision:
        """Decide access for a raw token, failing closed on any error."""
        try:
            try:
                claims = jwt_handler.read_session_claims(token) if token else None
            except Exception:
                logger.debug('Ignoring unverifiable session token for %s', path)
                claims = None
            return self.decide(path, claims)
        except Exception:
            logger.exception('Access decision failed for %s', path)
            return AccessDecision(redirect_to=sign_in_redirect(path), reason='error')
