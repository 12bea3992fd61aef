"""Feedback model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from advisory_hub.database import Base
from advisory_hub.models.enums import ServiceType


class Feedback(Base):
    """A client's rating and review; only approved public rows are shown publicly."""
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    service_type = Column(Enum(ServiceType, native_enum=False, length=16), nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    is_approved = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, default=datetime.now)

    user = relationship("User")
