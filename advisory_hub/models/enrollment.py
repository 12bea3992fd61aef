"""Enrollment model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer
from sqlalchemy.orm import relationship
from advisory_hub.database import Base
from advisory_hub.models.enums import EnrollmentStatus, PlanType


class Enrollment(Base):
    """A user's purchased or assigned access to a service.

    ``expires_at`` NULL means the enrollment never expires and
    ``hours_remaining`` NULL means it is not hour-metered. Expiry is never
    written back to ``status``.
    """
    __tablename__ = "enrollments"
    __table_args__ = (
        Index("idx_enrollments_user_status", "user_id", "status"),
        Index("idx_enrollments_status_expires", "status", "expires_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    plan_type = Column(Enum(PlanType, native_enum=False, length=20), nullable=False, default=PlanType.SINGLE_SESSION)
    status = Column(Enum(EnrollmentStatus, native_enum=False, length=16), nullable=False, default=EnrollmentStatus.ACTIVE)
    enrolled_at = Column(DateTime, nullable=False, default=datetime.now)
    expires_at = Column(DateTime, nullable=True)
    hours_remaining = Column(Integer, nullable=True)

    user = relationship("User")
    service = relationship("Service")
