from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import get_confirmed_user, require_capability
from advisory_hub.auth.permissions import Capability, has_capability
from advisory_hub.core.timestamps import to_local_naive
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import MeetingStatus, SessionStatus
from advisory_hub.models.meeting import Meeting
from advisory_hub.models.user import User
from advisory_hub.services.enrollments import is_enrollment_active

router = APIRouter(tags=['meetings'])

MAX_MEETINGS_LIMIT = 200
INACTIVE_SESSION_DETAIL = 'Your session access is not active. Please contact an admin to enable booking.'


def normalize_video_link(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized.startswith(('https://', 'http://')):
        raise ValueError('Video link must be a URL.')
    return normalized


class CreateMeetingRequest(BaseModel):
    enrollment_id: int
    title: str
    scheduled_at: datetime
    duration_minutes: int
    description: str | None = None
    video_link: str | None = None
    agenda: str | None = None
    hours_consumed: int | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        return normalized

    @field_validator('scheduled_at')
    @classmethod
    def normalize_scheduled_at(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Duration must be positive.')
        return value

    @field_validator('hours_consumed')
    @classmethod
    def validate_hours_consumed(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError('Hours consumed must be positive.')
        return value

    @field_validator('video_link')
    @classmethod
    def validate_video_link(cls, value: str | None) -> str | None:
        return normalize_video_link(value)


class MeetingStatusRequest(BaseModel):
    status: MeetingStatus
    notes: str | None = None


class MeetingResponse(BaseModel):
    id: int
    enrollment_id: int
    title: str
    description: str | None = None
    scheduled_at: datetime
    duration_minutes: int
    status: MeetingStatus
    video_link: str | None = None
    agenda: str | None = None
    notes: str | None = None
    hours_consumed: int | None = None

    class Config:
        from_attributes = True


def consume_hours(db: Session, enrollment_id: int, hours: int) -> bool:
    """Atomically take ``hours`` from a metered enrollment.

    Returns False when the enrollment has fewer hours left.
    """
    updated = db.query(Enrollment).filter(
        Enrollment.id == enrollment_id,
        Enrollment.hours_remaining.is_not(None),
        Enrollment.hours_remaining >= hours,
    ).update(
        {Enrollment.hours_remaining: Enrollment.hours_remaining - hours},
        synchronize_session=False,
    )
    return updated > 0


@router.get('', response_model=list[MeetingResponse])
def list_meetings(
    enrollment_id: int | None = Query(default=None),
    meeting_status: MeetingStatus | None = Query(default=None, alias='status'),
    limit: int = Query(default=50, ge=1, le=MAX_MEETINGS_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        query = db.query(Meeting).join(Enrollment, Meeting.enrollment_id == Enrollment.id)
        if not has_capability(current_user.role, Capability.MANAGE_MEETINGS):
            query = query.filter(Enrollment.user_id == current_user.id)
        if enrollment_id is not None:
            query = query.filter(Meeting.enrollment_id == enrollment_id)
        if meeting_status is not None:
            query = query.filter(Meeting.status == meeting_status)

        return query.order_by(Meeting.scheduled_at.desc()).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('', response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
def create_meeting(
    data: CreateMeetingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.BOOK_MEETINGS)),
):
    is_admin = has_capability(current_user.role, Capability.MANAGE_MEETINGS)

    try:
        enrollment = db.query(Enrollment).filter(Enrollment.id == data.enrollment_id).first()
        if enrollment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Enrollment not found.')

        if not is_admin and enrollment.user_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied to this enrollment.')

        if not is_admin and current_user.session_status != SessionStatus.ACTIVE:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=INACTIVE_SESSION_DETAIL)

        if not is_enrollment_active(enrollment.status, enrollment.expires_at, datetime.now()):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This enrollment is no longer active.',
            )

        if data.hours_consumed and enrollment.hours_remaining is not None:
            if not consume_hours(db, enrollment.id, data.hours_consumed):
                db.rollback()
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Not enough hours remaining in package.',
                )

        meeting = Meeting(
            enrollment_id=enrollment.id,
            title=data.title,
            description=data.description,
            scheduled_at=data.scheduled_at,
            duration_minutes=data.duration_minutes,
            video_link=data.video_link,
            agenda=data.agenda,
            hours_consumed=data.hours_consumed,
            status=MeetingStatus.SCHEDULED,
        )
        db.add(meeting)
        db.commit()
        db.refresh(meeting)
        return meeting
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.put('/{meeting_id}/status', response_model=MeetingResponse)
def update_meeting_status(
    meeting_id: int,
    data: MeetingStatusRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_MEETINGS)),
):
    del admin
    try:
        meeting = db.query(Meeting).filter(Meeting.id == meeting_id).first()
        if meeting is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Meeting not found.')

        meeting.status = data.status
        if data.notes is not None:
            meeting.notes = data.notes.strip() or None
        db.commit()
        db.refresh(meeting)
        return meeting
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
