import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('BCRYPT_ROUNDS', '4')

from advisory_hub.database import Base  # noqa: E402
from advisory_hub.models import (  # noqa: E402,F401
    conversation,
    enrollment,
    feedback,
    meeting,
    meeting_request,
    newsletter,
    rate_limit,
    roadmap,
    service,
    user,
)
from advisory_hub.models.enrollment import Enrollment  # noqa: E402
from advisory_hub.models.enums import (  # noqa: E402
    EnrollmentStatus,
    ServiceStatus,
    ServiceType,
    SessionStatus,
    UserRole,
)
from advisory_hub.models.service import Service  # noqa: E402
from advisory_hub.models.user import User  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    counter = iter(range(1, 10_000))

    def _make_user(
        role: UserRole = UserRole.CLIENT,
        is_confirmed: bool | None = True,
        rejection_reason: str | None = None,
        session_status: SessionStatus = SessionStatus.INACTIVE,
        email: str | None = None,
        name: str = 'Test User',
    ) -> User:
        created = User(
            email=email or f'user{next(counter)}@example.com',
            name=name,
            hashed_password='',
            role=role,
            is_confirmed=is_confirmed,
            rejection_reason=rejection_reason,
            session_status=session_status,
        )
        db.add(created)
        db.commit()
        db.refresh(created)
        return created

    return _make_user


@pytest.fixture
def admin(make_user) -> User:
    return make_user(role=UserRole.ADMIN, email='admin@example.com', name='Site Admin')


@pytest.fixture
def published_service(db) -> Service:
    created = Service(
        name='Career Mentorship',
        description='Monthly one-to-one mentorship.',
        type=ServiceType.MENTORSHIP,
        status=ServiceStatus.PUBLISHED,
        monthly_plan_price=20000,
    )
    db.add(created)
    db.commit()
    db.refresh(created)
    return created


@pytest.fixture
def make_enrollment(db, published_service):
    def _make_enrollment(
        user_id: int,
        expires_at: datetime | None = None,
        status: EnrollmentStatus = EnrollmentStatus.ACTIVE,
        hours_remaining: int | None = None,
        service_id: int | None = None,
    ) -> Enrollment:
        created = Enrollment(
            user_id=user_id,
            service_id=service_id or published_service.id,
            status=status,
            enrolled_at=datetime.now() - timedelta(days=30),
            expires_at=expires_at,
            hours_remaining=hours_remaining,
        )
        db.add(created)
        db.commit()
        db.refresh(created)
        return created

    return _make_enrollment
