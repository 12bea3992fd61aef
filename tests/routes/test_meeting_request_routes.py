from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from advisory_hub.models.enums import EnrollmentStatus, MeetingRequestStatus, MeetingStatus, SessionStatus
from advisory_hub.models.meeting import Meeting
from advisory_hub.models.meeting_request import MeetingRequest
from advisory_hub.routes.meeting_request_routes import (
    CreateMeetingRequestRequest,
    ReviewMeetingRequestRequest,
    cancel_meeting_request,
    create_meeting_request,
    get_meeting_request,
    list_meeting_requests,
    review_meeting_request,
)
from advisory_hub.routes.meeting_routes import INACTIVE_SESSION_DETAIL

REQUESTED_AT = datetime(2030, 5, 4, 15, 0)


def _request(enrollment_id: int) -> CreateMeetingRequestRequest:
    return CreateMeetingRequestRequest(
        enrollment_id=enrollment_id,
        title=' Pricing review ',
        requested_at=REQUESTED_AT,
        description='Go over the new pricing page.',
    )


@pytest.fixture
def client_with_enrollment(make_user, make_enrollment):
    user = make_user(session_status=SessionStatus.ACTIVE)
    enrollment = make_enrollment(user.id, expires_at=datetime.now() + timedelta(days=30), hours_remaining=4)
    return user, enrollment


def test_create_request_defaults_and_normalizes(db, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment

    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)

    assert created.title == 'Pricing review'
    assert created.status == MeetingRequestStatus.PENDING
    assert created.duration_minutes == 60
    assert created.user_id == user.id
    assert created.meeting_id is None


def test_request_times_with_offset_are_stored_in_local_time() -> None:
    data = CreateMeetingRequestRequest.model_validate({
        'enrollment_id': 1,
        'title': 'Kickoff',
        'requested_at': '2030-05-04T15:00:00Z',
    })

    assert data.requested_at == datetime(2030, 5, 4, 15, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)


@pytest.mark.parametrize('overrides', [{'title': ' '}, {'duration_minutes': 0}])
def test_create_request_validation(overrides: dict) -> None:
    payload = {'enrollment_id': 1, 'title': 'Kickoff', 'requested_at': REQUESTED_AT}
    payload.update(overrides)

    with pytest.raises(ValidationError):
        CreateMeetingRequestRequest(**payload)


def test_review_cannot_reset_to_pending() -> None:
    with pytest.raises(ValidationError):
        ReviewMeetingRequestRequest(status=MeetingRequestStatus.PENDING)


def test_inactive_session_cannot_request(db, make_user, make_enrollment) -> None:
    user = make_user(session_status=SessionStatus.INACTIVE)
    enrollment = make_enrollment(user.id)

    with pytest.raises(HTTPException) as exception_info:
        create_meeting_request(_request(enrollment.id), db=db, current_user=user)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == INACTIVE_SESSION_DETAIL


def test_admin_cannot_file_requests(db, admin, make_enrollment) -> None:
    enrollment = make_enrollment(admin.id)

    with pytest.raises(HTTPException) as exception_info:
        create_meeting_request(_request(enrollment.id), db=db, current_user=admin)

    assert exception_info.value.status_code == 403


@pytest.mark.parametrize(
    'expires_delta, status',
    [(timedelta(days=-1), EnrollmentStatus.ACTIVE), (timedelta(days=5), EnrollmentStatus.PAUSED)],
)
def test_request_needs_active_enrollment(db, make_user, make_enrollment, expires_delta, status) -> None:
    user = make_user(session_status=SessionStatus.ACTIVE)
    enrollment = make_enrollment(user.id, expires_at=datetime.now() + expires_delta, status=status)

    with pytest.raises(HTTPException) as exception_info:
        create_meeting_request(_request(enrollment.id), db=db, current_user=user)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid or inactive enrollment.'


def test_request_on_someone_elses_enrollment_is_rejected(db, make_user, make_enrollment) -> None:
    user = make_user(session_status=SessionStatus.ACTIVE)
    other = make_enrollment(make_user().id)

    with pytest.raises(HTTPException) as exception_info:
        create_meeting_request(_request(other.id), db=db, current_user=user)

    assert exception_info.value.status_code == 400


def test_request_needs_hours_left(db, make_user, make_enrollment) -> None:
    user = make_user(session_status=SessionStatus.ACTIVE)
    enrollment = make_enrollment(user.id, hours_remaining=0)

    with pytest.raises(HTTPException) as exception_info:
        create_meeting_request(_request(enrollment.id), db=db, current_user=user)

    assert exception_info.value.detail == 'No hours remaining in this enrollment.'


def test_clients_see_only_their_requests(db, admin, make_user, make_enrollment, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    mine = create_meeting_request(_request(enrollment.id), db=db, current_user=user)
    other_user = make_user(session_status=SessionStatus.ACTIVE)
    other = create_meeting_request(_request(make_enrollment(other_user.id).id), db=db, current_user=other_user)

    own_rows = list_meeting_requests(request_status=None, enrollment_id=None, limit=50, db=db, current_user=user)
    admin_rows = list_meeting_requests(request_status=None, enrollment_id=None, limit=50, db=db, current_user=admin)

    assert [row.id for row in own_rows] == [mine.id]
    assert {row.id for row in admin_rows} == {mine.id, other.id}

    with pytest.raises(HTTPException) as exception_info:
        get_meeting_request(other.id, db=db, current_user=user)
    assert exception_info.value.status_code == 403


def test_approval_schedules_meeting_at_requested_time(db, admin, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)

    reviewed = review_meeting_request(
        created.id,
        ReviewMeetingRequestRequest(
            status=MeetingRequestStatus.APPROVED,
            admin_notes=' See you then ',
            video_link='https://meet.example.com/xyz',
        ),
        db=db,
        admin=admin,
    )

    assert reviewed.status == MeetingRequestStatus.APPROVED
    assert reviewed.approved_by == admin.id
    assert reviewed.approved_at is not None
    assert reviewed.admin_notes == 'See you then'

    meeting = db.query(Meeting).filter(Meeting.id == reviewed.meeting_id).one()
    assert meeting.enrollment_id == enrollment.id
    assert meeting.scheduled_at == REQUESTED_AT
    assert meeting.status == MeetingStatus.SCHEDULED
    assert meeting.video_link == 'https://meet.example.com/xyz'


def test_counter_proposal_then_approval_uses_proposed_time(db, admin, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)
    proposed_at = REQUESTED_AT + timedelta(days=1)

    proposed = review_meeting_request(
        created.id,
        ReviewMeetingRequestRequest(status=MeetingRequestStatus.PROPOSED_ALTERNATIVE, proposed_at=proposed_at),
        db=db,
        admin=admin,
    )
    assert proposed.status == MeetingRequestStatus.PROPOSED_ALTERNATIVE
    assert proposed.approved_at is None
    assert proposed.meeting_id is None

    approved = review_meeting_request(
        created.id,
        ReviewMeetingRequestRequest(status=MeetingRequestStatus.APPROVED),
        db=db,
        admin=admin,
    )

    assert approved.status == MeetingRequestStatus.APPROVED
    assert db.query(Meeting).filter(Meeting.id == approved.meeting_id).one().scheduled_at == proposed_at


def test_counter_proposal_needs_a_time(db, admin, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)

    with pytest.raises(HTTPException) as exception_info:
        review_meeting_request(
            created.id,
            ReviewMeetingRequestRequest(status=MeetingRequestStatus.PROPOSED_ALTERNATIVE),
            db=db,
            admin=admin,
        )

    assert exception_info.value.status_code == 400


def test_rejected_request_is_closed(db, admin, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)
    review_meeting_request(
        created.id,
        ReviewMeetingRequestRequest(status=MeetingRequestStatus.REJECTED),
        db=db,
        admin=admin,
    )

    with pytest.raises(HTTPException) as exception_info:
        review_meeting_request(
            created.id,
            ReviewMeetingRequestRequest(status=MeetingRequestStatus.APPROVED),
            db=db,
            admin=admin,
        )

    assert exception_info.value.status_code == 409
    assert db.query(Meeting).count() == 0


def test_approval_refused_once_enrollment_lapsed(db, admin, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)
    enrollment.status = EnrollmentStatus.CANCELLED
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        review_meeting_request(
            created.id,
            ReviewMeetingRequestRequest(status=MeetingRequestStatus.APPROVED),
            db=db,
            admin=admin,
        )

    assert exception_info.value.status_code == 400
    db.expire_all()
    assert db.query(MeetingRequest).filter(MeetingRequest.id == created.id).one().status == MeetingRequestStatus.PENDING


def test_owner_cancels_pending_request(db, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)

    cancel_meeting_request(created.id, db=db, current_user=user)

    assert db.query(MeetingRequest).count() == 0


def test_reviewed_request_cannot_be_cancelled(db, admin, client_with_enrollment) -> None:
    user, enrollment = client_with_enrollment
    created = create_meeting_request(_request(enrollment.id), db=db, current_user=user)
    review_meeting_request(
        created.id,
        ReviewMeetingRequestRequest(status=MeetingRequestStatus.APPROVED),
        db=db,
        admin=admin,
    )

    with pytest.raises(HTTPException) as exception_info:
        cancel_meeting_request(created.id, db=db, current_user=user)

    assert exception_info.value.status_code == 400


def test_unknown_request_returns_404(db, admin) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_meeting_request(404, db=db, current_user=admin)

    assert exception_info.value.status_code == 404
