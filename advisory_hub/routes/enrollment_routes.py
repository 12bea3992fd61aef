from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import get_confirmed_user, require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.core import config
from advisory_hub.core.timestamps import to_local_naive
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import EnrollmentStatus, PlanType, ServiceStatus, ServiceType
from advisory_hub.models.meeting import Meeting
from advisory_hub.models.meeting_request import MeetingRequest
from advisory_hub.models.roadmap import Roadmap
from advisory_hub.models.service import Service
from advisory_hub.models.user import User
from advisory_hub.routes.session_routes import get_session_manager
from advisory_hub.services.enrollments import active_enrollment_clause, is_enrollment_active
from advisory_hub.services.session_lifecycle import ReconcileResult, SessionLifecycleManager

router = APIRouter(tags=['enrollments'])
admin_router = APIRouter(tags=['admin-enrollments'])

MAX_PAGE_SIZE = 100


class AssignEnrollmentRequest(BaseModel):
    user_id: int
    service_id: int
    expires_at: datetime
    plan_type: PlanType = PlanType.SINGLE_SESSION
    hours_remaining: int | None = config.DEFAULT_ASSIGNMENT_HOURS

    @field_validator('expires_at')
    @classmethod
    def normalize_expires_at(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @field_validator('hours_remaining')
    @classmethod
    def validate_hours(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError('Hours remaining cannot be negative.')
        return value


class EnrollmentStatusRequest(BaseModel):
    status: EnrollmentStatus


class EnrollmentResponse(BaseModel):
    id: int
    user_id: int
    service_id: int
    service_name: str
    service_type: ServiceType
    plan_type: PlanType
    status: EnrollmentStatus
    enrolled_at: datetime
    expires_at: datetime | None = None
    hours_remaining: int | None = None
    is_active: bool


class EnrollmentChangeResponse(BaseModel):
    enrollment: EnrollmentResponse | None = None
    session: ReconcileResult


class EnrollmentListResponse(BaseModel):
    enrollments: list[EnrollmentResponse]
    page: int
    limit: int
    total: int
    pages: int


def to_enrollment_response(enrollment: Enrollment, now: datetime) -> EnrollmentResponse:
    return EnrollmentResponse(
        id=enrollment.id,
        user_id=enrollment.user_id,
        service_id=enrollment.service_id,
        service_name=enrollment.service.name,
        service_type=enrollment.service.type,
        plan_type=enrollment.plan_type,
        status=enrollment.status,
        enrolled_at=enrollment.enrolled_at,
        expires_at=enrollment.expires_at,
        hours_remaining=enrollment.hours_remaining,
        is_active=is_enrollment_active(enrollment.status, enrollment.expires_at, now),
    )


@router.get('', response_model=list[EnrollmentResponse])
def list_my_enrollments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        now = datetime.now()
        enrollments = db.query(Enrollment).filter(
            Enrollment.user_id == current_user.id,
            active_enrollment_clause(now),
        ).order_by(Enrollment.enrolled_at.desc()).all()

        return [to_enrollment_response(enrollment, now) for enrollment in enrollments]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@admin_router.get('', response_model=EnrollmentListResponse)
def list_enrollments(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    user_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_ENROLLMENTS)),
):
    del admin
    try:
        now = datetime.now()
        query = db.query(Enrollment)
        if user_id is not None:
            query = query.filter(Enrollment.user_id == user_id)
        total = query.count()
        enrollments = query.order_by(
            Enrollment.enrolled_at.desc(),
            Enrollment.id.desc(),
        ).offset((page - 1) * limit).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return EnrollmentListResponse(
        enrollments=[to_enrollment_response(enrollment, now) for enrollment in enrollments],
        page=page,
        limit=limit,
        total=total,
        pages=(total + limit - 1) // limit,
    )


@admin_router.post('', response_model=EnrollmentChangeResponse, status_code=status.HTTP_201_CREATED)
def assign_enrollment(
    data: AssignEnrollmentRequest,
    db: Session = Depends(get_db),
    manager: SessionLifecycleManager = Depends(get_session_manager),
    admin: User = Depends(require_capability(Capability.MANAGE_ENROLLMENTS)),
):
    del admin
    now = datetime.now()
    if data.expires_at <= now:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Expiry date must be in the future.')

    try:
        user = db.query(User).filter(User.id == data.user_id).first()
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found.')
        if not user.is_confirmed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='User must be confirmed before assigning services.',
            )

        service = db.query(Service).filter(Service.id == data.service_id).first()
        if service is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service not found.')
        if service.status != ServiceStatus.PUBLISHED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Service must be published to be assigned.',
            )

        existing = db.query(Enrollment.id).filter(
            Enrollment.user_id == data.user_id,
            Enrollment.service_id == data.service_id,
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='User is already enrolled in this service.',
            )

        enrollment = Enrollment(
            user_id=data.user_id,
            service_id=data.service_id,
            plan_type=data.plan_type,
            status=EnrollmentStatus.ACTIVE,
            enrolled_at=now,
            expires_at=data.expires_at,
            hours_remaining=data.hours_remaining,
        )
        db.add(enrollment)
        db.commit()
        db.refresh(enrollment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    session_result = manager.reconcile_user(data.user_id)
    return EnrollmentChangeResponse(
        enrollment=to_enrollment_response(enrollment, datetime.now()),
        session=session_result,
    )


@admin_router.put('/{enrollment_id}/status', response_model=EnrollmentChangeResponse)
def update_enrollment_status(
    enrollment_id: int,
    data: EnrollmentStatusRequest,
    db: Session = Depends(get_db),
    manager: SessionLifecycleManager = Depends(get_session_manager),
    admin: User = Depends(require_capability(Capability.MANAGE_ENROLLMENTS)),
):
    del admin
    try:
        enrollment = db.query(Enrollment).filter(Enrollment.id == enrollment_id).first()
        if enrollment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Enrollment not found.')

        enrollment.status = data.status
        db.commit()
        db.refresh(enrollment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    session_result = manager.reconcile_user(enrollment.user_id)
    return EnrollmentChangeResponse(
        enrollment=to_enrollment_response(enrollment, datetime.now()),
        session=session_result,
    )


@admin_router.delete('/{enrollment_id}', response_model=EnrollmentChangeResponse)
def remove_enrollment(
    enrollment_id: int,
    db: Session = Depends(get_db),
    manager: SessionLifecycleManager = Depends(get_session_manager),
    admin: User = Depends(require_capability(Capability.MANAGE_ENROLLMENTS)),
):
    del admin
    try:
        enrollment = db.query(Enrollment).filter(Enrollment.id == enrollment_id).first()
        if enrollment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Enrollment not found.')

        has_meetings = db.query(Meeting.id).filter(Meeting.enrollment_id == enrollment_id).first() is not None
        has_requests = db.query(MeetingRequest.id).filter(MeetingRequest.enrollment_id == enrollment_id).first() is not None
        has_roadmaps = db.query(Roadmap.id).filter(Roadmap.enrollment_id == enrollment_id).first() is not None
        if has_meetings or has_requests or has_roadmaps:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Enrollment has meetings or roadmaps; cancel it instead.',
            )

        user_id = enrollment.user_id
        db.delete(enrollment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return EnrollmentChangeResponse(session=manager.reconcile_user(user_id))
