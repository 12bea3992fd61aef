from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from advisory_hub.auth.dependencies import get_confirmed_user, require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enums import ServiceType, UserRole
from advisory_hub.models.feedback import Feedback
from advisory_hub.models.user import User

router = APIRouter(tags=['feedback'])
admin_router = APIRouter(tags=['admin-feedback'])

MAX_PUBLIC_LIMIT = 50
MAX_PAGE_SIZE = 100


class FeedbackRequest(BaseModel):
    rating: int
    title: str
    content: str
    service_type: ServiceType | None = None
    is_public: bool = True

    @field_validator('rating')
    @classmethod
    def validate_rating(cls, value: int) -> int:
        if not 1 <= value <= 5:
            raise ValueError('Rating must be between 1 and 5.')
        return value

    @field_validator('title', 'content')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title and content are required.')
        return normalized


class FeedbackApprovalRequest(BaseModel):
    is_approved: bool


class FeedbackResponse(BaseModel):
    id: int
    user_id: int
    user_name: str | None = None
    rating: int
    title: str
    content: str
    service_type: ServiceType | None = None
    is_public: bool
    is_approved: bool
    created_at: datetime | None = None


class FeedbackListResponse(BaseModel):
    feedback: list[FeedbackResponse]
    page: int
    limit: int
    total: int
    pages: int


def to_feedback_response(feedback: Feedback) -> FeedbackResponse:
    return FeedbackResponse(
        id=feedback.id,
        user_id=feedback.user_id,
        user_name=feedback.user.name if feedback.user else None,
        rating=feedback.rating,
        title=feedback.title,
        content=feedback.content,
        service_type=feedback.service_type,
        is_public=feedback.is_public,
        is_approved=feedback.is_approved,
        created_at=feedback.created_at,
    )


@router.get('', response_model=list[FeedbackResponse])
def list_public_feedback(
    limit: int = Query(default=10, ge=1, le=MAX_PUBLIC_LIMIT),
    db: Session = Depends(get_db),
):
    """Testimonials: feedback the author made public and an admin approved."""
    try:
        rows = db.query(Feedback).options(joinedload(Feedback.user)).filter(
            Feedback.is_public.is_(True),
            Feedback.is_approved.is_(True),
        ).order_by(Feedback.created_at.desc(), Feedback.id.desc()).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return [to_feedback_response(feedback) for feedback in rows]


@router.post('', response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
def submit_feedback(
    data: FeedbackRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    if current_user.role != UserRole.CLIENT:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Only clients can submit feedback.')

    try:
        feedback = Feedback(
            user_id=current_user.id,
            rating=data.rating,
            title=data.title,
            content=data.content,
            service_type=data.service_type,
            is_public=data.is_public,
            is_approved=False,
        )
        db.add(feedback)
        db.commit()
        db.refresh(feedback)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return to_feedback_response(feedback)


@admin_router.get('', response_model=FeedbackListResponse)
def list_feedback(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    approved: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_FEEDBACK)),
):
    del admin
    try:
        query = db.query(Feedback)
        if approved is not None:
            query = query.filter(Feedback.is_approved.is_(approved))
        total = query.count()
        rows = query.options(joinedload(Feedback.user)).order_by(
            Feedback.created_at.desc(),
            Feedback.id.desc(),
        ).offset((page - 1) * limit).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return FeedbackListResponse(
        feedback=[to_feedback_response(feedback) for feedback in rows],
        page=page,
        limit=limit,
        total=total,
        pages=(total + limit - 1) // limit,
    )


@admin_router.patch('/{feedback_id}', response_model=FeedbackResponse)
def set_feedback_approval(
    feedback_id: int,
    data: FeedbackApprovalRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_FEEDBACK)),
):
    del admin
    try:
        feedback = db.query(Feedback).filter(Feedback.id == feedback_id).first()
        if feedback is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Feedback not found.')

        feedback.is_approved = data.is_approved
        db.commit()
        db.refresh(feedback)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return to_feedback_response(feedback)


@admin_router.delete('/{feedback_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_feedback(
    feedback_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_FEEDBACK)),
):
    del admin
    try:
        feedback = db.query(Feedback).filter(Feedback.id == feedback_id).first()
        if feedback is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Feedback not found.')

        db.delete(feedback)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
