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
from advisory_hub.models.enums import MeetingRequestStatus, MeetingStatus, SessionStatus
from advisory_hub.models.meeting import Meeting
from advisory_hub.models.meeting_request import MeetingRequest
from advisory_hub.models.user import User
from advisory_hub.routes.meeting_routes import INACTIVE_SESSION_DETAIL, normalize_video_link
from advisory_hub.services.enrollments import is_enrollment_active

router = APIRouter(tags=['meeting-requests'])

MAX_REQUESTS_LIMIT = 200
DEFAULT_DURATION_MINUTES = 60
REVIEWABLE_STATUSES = (MeetingRequestStatus.PENDING, MeetingRequestStatus.PROPOSED_ALTERNATIVE)


class CreateMeetingRequestRequest(BaseModel):
    enrollment_id: int
    title: str
    requested_at: datetime
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    description: str | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        return normalized

    @field_validator('requested_at')
    @classmethod
    def normalize_requested_at(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Duration must be positive.')
        return value


class ReviewMeetingRequestRequest(BaseModel):
    status: MeetingRequestStatus
    admin_notes: str | None = None
    proposed_at: datetime | None = None
    video_link: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: MeetingRequestStatus) -> MeetingRequestStatus:
        if value == MeetingRequestStatus.PENDING:
            raise ValueError('Status must be APPROVED, REJECTED or PROPOSED_ALTERNATIVE.')
        return value

    @field_validator('proposed_at')
    @classmethod
    def normalize_proposed_at(cls, value: datetime | None) -> datetime | None:
        return to_local_naive(value)

    @field_validator('video_link')
    @classmethod
    def validate_video_link(cls, value: str | None) -> str | None:
        return normalize_video_link(value)


class MeetingRequestResponse(BaseModel):
    id: int
    enrollment_id: int
    user_id: int
    title: str
    description: str | None = None
    requested_at: datetime
    duration_minutes: int
    status: MeetingRequestStatus
    admin_notes: str | None = None
    proposed_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: int | None = None
    meeting_id: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def _load_visible_request(db: Session, request_id: int, current_user: User) -> MeetingRequest:
    meeting_request = db.query(MeetingRequest).filter(MeetingRequest.id == request_id).first()
    if meeting_request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Meeting request not found.')
    if not has_capability(current_user.role, Capability.MANAGE_MEETINGS) and meeting_request.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied to this meeting request.')
    return meeting_request


@router.get('', response_model=list[MeetingRequestResponse])
def list_meeting_requests(
    request_status: MeetingRequestStatus | None = Query(default=None, alias='status'),
    enrollment_id: int | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=MAX_REQUESTS_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        query = db.query(MeetingRequest)
        if not has_capability(current_user.role, Capability.MANAGE_MEETINGS):
            query = query.filter(MeetingRequest.user_id == current_user.id)
        if request_status is not None:
            query = query.filter(MeetingRequest.status == request_status)
        if enrollment_id is not None:
            query = query.filter(MeetingRequest.enrollment_id == enrollment_id)

        return query.order_by(MeetingRequest.created_at.desc(), MeetingRequest.id.desc()).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('', response_model=MeetingRequestResponse, status_code=status.HTTP_201_CREATED)
def create_meeting_request(
    data: CreateMeetingRequestRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.BOOK_MEETINGS)),
):
    if has_capability(current_user.role, Capability.MANAGE_MEETINGS):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Admins schedule meetings directly instead of requesting them.',
        )
    if current_user.session_status != SessionStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=INACTIVE_SESSION_DETAIL)

    try:
        enrollment = db.query(Enrollment).filter(
            Enrollment.id == data.enrollment_id,
            Enrollment.user_id == current_user.id,
        ).first()
        if enrollment is None or not is_enrollment_active(enrollment.status, enrollment.expires_at, datetime.now()):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Invalid or inactive enrollment.',
            )
        if enrollment.hours_remaining is not None and enrollment.hours_remaining <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='No hours remaining in this enrollment.',
            )

        meeting_request = MeetingRequest(
            enrollment_id=enrollment.id,
            user_id=current_user.id,
            title=data.title,
            description=data.description,
            requested_at=data.requested_at,
            duration_minutes=data.duration_minutes,
            status=MeetingRequestStatus.PENDING,
        )
        db.add(meeting_request)
        db.commit()
        db.refresh(meeting_request)
        return meeting_request
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{request_id}', response_model=MeetingRequestResponse)
def get_meeting_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        return _load_visible_request(db, request_id, current_user)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.put('/{request_id}', response_model=MeetingRequestResponse)
def review_meeting_request(
    request_id: int,
    data: ReviewMeetingRequestRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_MEETINGS)),
):
    """Approve, reject or counter-propose a request.

    Approval schedules the meeting at the proposed time when one exists,
    otherwise at the requested time.
    """
    try:
        meeting_request = db.query(MeetingRequest).filter(MeetingRequest.id == request_id).first()
        if meeting_request is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Meeting request not found.')
        if meeting_request.status not in REVIEWABLE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Meeting request has already been reviewed.',
            )
        if data.status == MeetingRequestStatus.PROPOSED_ALTERNATIVE and data.proposed_at is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='A proposed time is required when suggesting an alternative.',
            )

        now = datetime.now()
        enrollment = meeting_request.enrollment
        if data.status == MeetingRequestStatus.APPROVED and not is_enrollment_active(
            enrollment.status, enrollment.expires_at, now
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This enrollment is no longer active.',
            )

        if data.proposed_at is not None:
            meeting_request.proposed_at = data.proposed_at
        if data.admin_notes is not None:
            meeting_request.admin_notes = data.admin_notes.strip() or None

        if data.status == MeetingRequestStatus.APPROVED:
            meeting = Meeting(
                enrollment_id=meeting_request.enrollment_id,
                title=meeting_request.title,
                description=meeting_request.description,
                scheduled_at=meeting_request.proposed_at or meeting_request.requested_at,
                duration_minutes=meeting_request.duration_minutes,
                video_link=data.video_link,
                status=MeetingStatus.SCHEDULED,
            )
            db.add(meeting)
            db.flush()
            meeting_request.meeting_id = meeting.id
            meeting_request.approved_at = now
            meeting_request.approved_by = admin.id

        meeting_request.status = data.status
        db.commit()
        db.refresh(meeting_request)
        return meeting_request
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.delete('/{request_id}', status_code=status.HTTP_204_NO_CONTENT)
def cancel_meeting_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        meeting_request = _load_visible_request(db, request_id, current_user)
        if meeting_request.status != MeetingRequestStatus.PENDING:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Only pending meeting requests can be cancelled.',
            )

        db.delete(meeting_request)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
