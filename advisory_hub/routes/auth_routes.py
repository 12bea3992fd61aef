from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth import jwt_handler
from advisory_hub.auth.dependencies import get_current_user
from advisory_hub.auth.passwords import hash_password, verify_password
from advisory_hub.core import config
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enums import ConfirmationState, SessionStatus, UserRole
from advisory_hub.models.user import User

router = APIRouter(tags=['auth'])


def normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized or '@' not in normalized or normalized.startswith('@') or normalized.endswith('@'):
        raise ValueError('Invalid email address.')
    return normalized


class RegisterRequest(BaseModel):
    email: str
    name: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 2:
            raise ValueError('Name must be at least 2 characters.')
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < config.PASSWORD_MIN_LENGTH:
            raise ValueError(f'Password must be at least {config.PASSWORD_MIN_LENGTH} characters.')
        return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return value.strip().lower()


class UpdateProfileRequest(BaseModel):
    name: str | None = None
    email: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return None if value is None else normalize_email(value)

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name cannot be empty.')
        return normalized


class UserProfileResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    role: UserRole
    is_confirmed: bool | None = None
    confirmation_state: ConfirmationState
    rejection_reason: str | None = None
    session_status: SessionStatus
    session_activated_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    user: UserProfileResponse


def issue_session(user: User, response: Response) -> TokenResponse:
    token = jwt_handler.create_access_token(user)
    response.set_cookie(
        config.SESSION_COOKIE_NAME,
        token,
        max_age=config.JWT_EXPIRES_MINUTES * 60,
        httponly=True,
        secure=config.SESSION_COOKIE_SECURE,
        samesite='lax',
    )
    return TokenResponse(access_token=token, user=UserProfileResponse.model_validate(user))


@router.post('/register', response_model=UserProfileResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    try:
        existing_user = db.query(User).filter(User.email == data.email).first()
        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='User with this email already exists.',
            )

        user = User(
            email=data.email,
            name=data.name,
            hashed_password=hash_password(data.password),
            role=UserRole.CLIENT,
            is_confirmed=False,
            rejection_reason=None,
            session_status=SessionStatus.INACTIVE,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        return user
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password.')

    return issue_session(user, response)


@router.get('/session', response_model=TokenResponse)
def refresh_session(response: Response, current_user: User = Depends(get_current_user)):
    """Re-issue the token so approval or rejection reaches the claims."""
    return issue_session(current_user, response)


@router.post('/logout', status_code=status.HTTP_204_NO_CONTENT)
def logout(response: Response):
    response.delete_cookie(config.SESSION_COOKIE_NAME)


@router.get('/me', response_model=UserProfileResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.put('/me', response_model=UserProfileResponse)
def update_profile(
    data: UpdateProfileRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if data.name is None and data.email is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Provide a name or an email to update.',
        )

    try:
        if data.email is not None and data.email != current_user.email:
            taken = db.query(User.id).filter(User.email == data.email, User.id != current_user.id).first()
            if taken:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='Email address is already in use.',
                )
            current_user.email = data.email
        if data.name is not None:
            current_user.name = data.name

        db.commit()
        db.refresh(current_user)
        return current_user
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
