"""Meeting request model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from advisory_hub.database import Base
from advisory_hub.models.enums import MeetingRequestStatus


class MeetingRequest(Base):
    """A client's request for a meeting, reviewed by an admin.

    Approval creates the ``Meeting`` and links it through ``meeting_id``;
    ``approved_at`` and ``approved_by`` are only set on approval.
    """
    __tablename__ = "meeting_requests"
    __table_args__ = (
        Index("idx_meeting_requests_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    requested_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    status = Column(
        Enum(MeetingRequestStatus, native_enum=False, length=24),
        nullable=False,
        default=MeetingRequestStatus.PENDING,
    )
    admin_notes = Column(Text)
    proposed_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    enrollment = relationship("Enrollment")
    user = relationship("User", foreign_keys=[user_id])
    meeting = relationship("Meeting")
