from urllib.parse import quote

from fastapi.testclient import TestClient

from advisory_hub.auth import jwt_handler
from advisory_hub.core import config
from advisory_hub.main import app
from advisory_hub.models.enums import UserRole
from advisory_hub.models.user import User

client = TestClient(app)


def _token(role: UserRole = UserRole.CLIENT, is_confirmed: bool | None = True, rejection_reason: str | None = None) -> str:
    return jwt_handler.create_access_token(
        User(
            id=3,
            email='member@example.com',
            role=role,
            is_confirmed=is_confirmed,
            rejection_reason=rejection_reason,
        )
    )


def _cookie(token: str) -> dict[str, str]:
    return {'Cookie': f'{config.SESSION_COOKIE_NAME}={token}'}


def test_public_root_served_without_token() -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'Advisory Hub API Running'}


def test_protected_page_redirects_to_sign_in_with_callback() -> None:
    response = client.get('/dashboard/roadmap', follow_redirects=False)

    assert response.status_code == 307
    assert response.headers['location'] == f"/auth/signin?callbackUrl={quote('/dashboard/roadmap', safe='')}"


def test_sign_in_redirect_lands_on_sign_in_page() -> None:
    redirect = client.get('/dashboard/roadmap', follow_redirects=False)

    page = client.get(redirect.headers['location'])

    assert page.status_code == 200
    assert page.json()['login_endpoint'] == '/api/auth/login'
    assert page.json()['callback_url'] == '/dashboard/roadmap'


def test_pending_user_redirected_via_cookie() -> None:
    response = client.get(
        '/dashboard',
        headers=_cookie(_token(is_confirmed=False)),
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers['location'] == '/pending'


def test_admin_dashboard_redirect_via_bearer_header() -> None:
    response = client.get(
        '/dashboard',
        headers={'Authorization': f'Bearer {_token(role=UserRole.ADMIN)}'},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers['location'] == '/admin/dashboard'


def test_client_blocked_from_admin_pages() -> None:
    response = client.get(
        '/admin/users',
        headers=_cookie(_token()),
        follow_redirects=False,
    )

    assert response.headers['location'] == '/unauthorized'


def test_rejected_page_shows_reason_from_token() -> None:
    token = _token(is_confirmed=False, rejection_reason='Incomplete profile')

    redirect = client.get('/dashboard', headers=_cookie(token), follow_redirects=False)
    page = client.get('/rejected', headers=_cookie(token))

    assert redirect.headers['location'] == '/rejected'
    assert page.status_code == 200
    assert page.json()['reason'] == 'Incomplete profile'


def test_api_paths_are_not_gated() -> None:
    response = client.get('/api/auth/me', follow_redirects=False)

    assert response.status_code == 401
