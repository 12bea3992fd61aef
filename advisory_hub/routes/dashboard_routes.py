from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import get_confirmed_user, require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.conversation import ConversationParticipant
from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import ConfirmationState, MeetingStatus, ServiceType, SessionStatus, UserRole
from advisory_hub.models.meeting import Meeting
from advisory_hub.models.service import Service
from advisory_hub.models.user import User
from advisory_hub.routes.admin_user_routes import filter_by_confirmation
from advisory_hub.routes.enrollment_routes import EnrollmentResponse, to_enrollment_response
from advisory_hub.routes.meeting_routes import MeetingResponse
from advisory_hub.services.enrollments import active_enrollment_clause

router = APIRouter(tags=['dashboard'])
admin_router = APIRouter(tags=['admin-dashboard'])

UPCOMING_MEETINGS_LIMIT = 5


class AdminDashboardStats(BaseModel):
    total_users: int
    pending_users: int
    confirmed_users: int
    rejected_users: int
    total_enrollments: int
    active_enrollments: int
    mentorship_enrollments: int
    advisory_enrollments: int
    active_sessions: int
    suspended_sessions: int
    unread_messages: int


class UserDashboard(BaseModel):
    session_status: SessionStatus
    session_activated_at: datetime | None = None
    enrollments: list[EnrollmentResponse]
    upcoming_meetings: list[MeetingResponse]
    unread_messages: int


def count_unread(db: Session, user_id: int) -> int:
    total = db.query(func.coalesce(func.sum(ConversationParticipant.unread_count), 0)).filter(
        ConversationParticipant.user_id == user_id,
    ).scalar()
    return total or 0


@admin_router.get('/stats', response_model=AdminDashboardStats)
def admin_dashboard_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.VIEW_ADMIN_DASHBOARD)),
):
    try:
        now = datetime.now()
        clients = db.query(User).filter(User.role == UserRole.CLIENT)

        def enrollments_of_type(service_type: ServiceType) -> int:
            return db.query(Enrollment).join(Service, Enrollment.service_id == Service.id).filter(
                Service.type == service_type,
            ).count()

        return AdminDashboardStats(
            total_users=clients.count(),
            pending_users=filter_by_confirmation(clients, ConfirmationState.PENDING).count(),
            confirmed_users=filter_by_confirmation(clients, ConfirmationState.CONFIRMED).count(),
            rejected_users=filter_by_confirmation(clients, ConfirmationState.REJECTED).count(),
            total_enrollments=db.query(Enrollment).count(),
            active_enrollments=db.query(Enrollment).filter(active_enrollment_clause(now)).count(),
            mentorship_enrollments=enrollments_of_type(ServiceType.MENTORSHIP),
            advisory_enrollments=enrollments_of_type(ServiceType.ADVISORY),
            active_sessions=clients.filter(User.session_status == SessionStatus.ACTIVE).count(),
            suspended_sessions=clients.filter(User.session_status == SessionStatus.SUSPENDED).count(),
            unread_messages=count_unread(db, admin.id),
        )
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('', response_model=UserDashboard)
def user_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        now = datetime.now()
        enrollments = db.query(Enrollment).filter(
            Enrollment.user_id == current_user.id,
            active_enrollment_clause(now),
        ).order_by(Enrollment.enrolled_at.desc()).all()

        upcoming = db.query(Meeting).join(Enrollment, Meeting.enrollment_id == Enrollment.id).filter(
            Enrollment.user_id == current_user.id,
            Meeting.status == MeetingStatus.SCHEDULED,
            Meeting.scheduled_at >= now,
        ).order_by(Meeting.scheduled_at.asc()).limit(UPCOMING_MEETINGS_LIMIT).all()

        return UserDashboard(
            session_status=current_user.session_status,
            session_activated_at=current_user.session_activated_at,
            enrollments=[to_enrollment_response(enrollment, now) for enrollment in enrollments],
            upcoming_meetings=[MeetingResponse.model_validate(meeting) for meeting in upcoming],
            unread_messages=count_unread(db, current_user.id),
        )
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
