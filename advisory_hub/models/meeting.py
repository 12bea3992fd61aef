"""Meeting model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from advisory_hub.database import Base
from advisory_hub.models.enums import MeetingStatus


class Meeting(Base):
    """A scheduled session held under an enrollment."""
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(Enum(MeetingStatus, native_enum=False, length=16), nullable=False, default=MeetingStatus.SCHEDULED)
    video_link = Column(String)
    agenda = Column(Text)
    notes = Column(Text)
    hours_consumed = Column(Integer)
    created_at = Column(DateTime, default=datetime.now)

    enrollment = relationship("Enrollment")
