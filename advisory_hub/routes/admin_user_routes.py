from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enums import ConfirmationState, SessionStatus, UserRole
from advisory_hub.models.user import User
from advisory_hub.routes.auth_routes import UserProfileResponse
from advisory_hub.services import newsletter

router = APIRouter(tags=['admin-users'])

MAX_PAGE_SIZE = 100


class RejectUserRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Rejection reason is required.')
        return normalized


class SessionStatusRequest(BaseModel):
    session_status: SessionStatus


class UserListResponse(BaseModel):
    users: list[UserProfileResponse]
    page: int
    limit: int
    total: int
    pages: int


def filter_by_confirmation(query, confirmation: ConfirmationState | None):
    if confirmation == ConfirmationState.CONFIRMED:
        return query.filter(User.is_confirmed.is_(True))
    if confirmation == ConfirmationState.REJECTED:
        return query.filter(User.is_confirmed.is_not(True), User.rejection_reason.is_not(None))
    if confirmation == ConfirmationState.PENDING:
        return query.filter(User.is_confirmed.is_not(True), User.rejection_reason.is_(None))
    return query


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found.')
    return user


@router.get('', response_model=UserListResponse)
def list_users(
    confirmation: ConfirmationState | None = Query(default=None, alias='status'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    del admin
    try:
        query = filter_by_confirmation(db.query(User).filter(User.role == UserRole.CLIENT), confirmation)
        total = query.count()
        users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return UserListResponse(
        users=[UserProfileResponse.model_validate(user) for user in users],
        page=page,
        limit=limit,
        total=total,
        pages=(total + limit - 1) // limit,
    )


@router.get('/pending', response_model=list[UserProfileResponse])
def list_pending_users(
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    del admin
    try:
        query = filter_by_confirmation(db.query(User).filter(User.role == UserRole.CLIENT), ConfirmationState.PENDING)
        return query.order_by(User.created_at.asc(), User.id.asc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{user_id}/approve', response_model=UserProfileResponse)
def approve_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    """Confirm an account, including one that was previously rejected."""
    try:
        user = get_user_or_404(db, user_id)
        if user.is_confirmed is True:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='User already confirmed.')

        user.is_confirmed = True
        user.confirmed_at = datetime.now()
        user.confirmed_by = admin.id
        user.rejection_reason = None

        first_name, last_name = newsletter.split_name(user.name)
        newsletter.subscribe(db, user.email, first_name, last_name, source='user-confirmation')

        db.commit()
        db.refresh(user)
        return user
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{user_id}/reject', response_model=UserProfileResponse)
def reject_user(
    user_id: int,
    data: RejectUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    try:
        user = get_user_or_404(db, user_id)
        if user.is_confirmed is True:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='User already confirmed.')

        user.is_confirmed = False
        user.confirmed_at = None
        user.confirmed_by = admin.id
        user.rejection_reason = data.reason

        db.commit()
        db.refresh(user)
        return user
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.put('/{user_id}/session-status', response_model=UserProfileResponse)
def override_session_status(
    user_id: int,
    data: SessionStatusRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_SESSIONS)),
):
    """Admin override; the only way a session becomes SUSPENDED."""
    try:
        user = get_user_or_404(db, user_id)
        user.session_status = data.session_status
        if data.session_status == SessionStatus.ACTIVE:
            user.session_activated_at = datetime.now()
            user.session_activated_by = str(admin.id)
        else:
            user.session_activated_at = None
            user.session_activated_by = None

        db.commit()
        db.refresh(user)
        return user
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
