import pytest
from fastapi import HTTPException, Response
from pydantic import ValidationError

from advisory_hub.auth import jwt_handler
from advisory_hub.auth.passwords import hash_password, verify_password
from advisory_hub.core import config
from advisory_hub.models.enums import ConfirmationState, SessionStatus, UserRole
from advisory_hub.models.user import User
from advisory_hub.routes.auth_routes import (
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    login,
    logout,
    me,
    refresh_session,
    register,
    update_profile,
)


def test_register_request_normalizes_fields() -> None:
    request = RegisterRequest(email=' New.Client@Example.COM ', name='  Ada Lovelace ', password='correct-horse')

    assert request.email == 'new.client@example.com'
    assert request.name == 'Ada Lovelace'


@pytest.mark.parametrize(
    ('email', 'name', 'password'),
    [
        ('not-an-email', 'Ada', 'correct-horse'),
        ('@example.com', 'Ada', 'correct-horse'),
        ('ada@example.com', 'A', 'correct-horse'),
        ('ada@example.com', 'Ada', 'short'),
    ],
)
def test_register_request_rejects_invalid_input(email: str, name: str, password: str) -> None:
    with pytest.raises(ValidationError):
        RegisterRequest(email=email, name=name, password=password)


def test_register_creates_pending_client_with_inactive_session(db) -> None:
    user = register(RegisterRequest(email='ada@example.com', name='Ada', password='correct-horse'), db=db)

    assert user.role == UserRole.CLIENT
    assert user.is_confirmed is False
    assert user.rejection_reason is None
    assert user.confirmation_state == ConfirmationState.PENDING
    assert user.session_status == SessionStatus.INACTIVE
    assert user.hashed_password != 'correct-horse'
    assert verify_password('correct-horse', user.hashed_password)


def test_register_rejects_duplicate_email(db, make_user) -> None:
    make_user(email='ada@example.com')

    with pytest.raises(HTTPException) as exception_info:
        register(RegisterRequest(email='ADA@example.com', name='Ada', password='correct-horse'), db=db)

    assert exception_info.value.status_code == 409


def test_login_issues_token_with_confirmation_claims(db) -> None:
    db.add(User(
        email='grace@example.com',
        name='Grace Hopper',
        hashed_password=hash_password('compilers!'),
        role=UserRole.CLIENT,
        is_confirmed=False,
        rejection_reason='Missing references',
        session_status=SessionStatus.INACTIVE,
    ))
    db.commit()
    response = Response()

    token_response = login(LoginRequest(email=' GRACE@example.com', password='compilers!'), response=response, db=db)

    claims = jwt_handler.read_session_claims(token_response.access_token)
    assert claims.email == 'grace@example.com'
    assert claims.role == UserRole.CLIENT
    assert claims.is_confirmed is False
    assert claims.rejection_reason == 'Missing references'
    assert token_response.user.confirmation_state == ConfirmationState.REJECTED
    assert config.SESSION_COOKIE_NAME in response.headers['set-cookie']


@pytest.mark.parametrize(('email', 'password'), [('grace@example.com', 'wrong-password'), ('nobody@example.com', 'compilers!')])
def test_login_rejects_bad_credentials(db, email: str, password: str) -> None:
    db.add(User(email='grace@example.com', hashed_password=hash_password('compilers!'), role=UserRole.CLIENT))
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        login(LoginRequest(email=email, password=password), response=Response(), db=db)

    assert exception_info.value.status_code == 401


def test_refresh_session_reflects_current_confirmation(make_user) -> None:
    user = make_user(is_confirmed=True)

    token_response = refresh_session(response=Response(), current_user=user)

    assert jwt_handler.read_session_claims(token_response.access_token).is_confirmed is True


def test_logout_clears_cookie() -> None:
    response = Response()

    logout(response)

    assert f'{config.SESSION_COOKIE_NAME}=' in response.headers['set-cookie']


def test_me_returns_current_user(make_user) -> None:
    user = make_user()

    assert me(current_user=user) is user


def test_update_profile_changes_name_and_email(db, make_user) -> None:
    user = make_user(name='Old Name')

    updated = update_profile(
        UpdateProfileRequest(name=' New Name ', email=' New@Example.com '),
        db=db,
        current_user=user,
    )

    assert updated.name == 'New Name'
    assert updated.email == 'new@example.com'


def test_update_profile_rejects_taken_email(db, make_user) -> None:
    make_user(email='taken@example.com')
    user = make_user(email='mine@example.com')

    with pytest.raises(HTTPException) as exception_info:
        update_profile(UpdateProfileRequest(email='taken@example.com'), db=db, current_user=user)

    assert exception_info.value.status_code == 409
    db.expire_all()
    assert db.query(User).filter(User.id == user.id).one().email == 'mine@example.com'


def test_update_profile_requires_a_field(db, make_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_profile(UpdateProfileRequest(), db=db, current_user=make_user())

    assert exception_info.value.status_code == 400
