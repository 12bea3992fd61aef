"""Service catalog model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text
from advisory_hub.database import Base
from advisory_hub.models.enums import ServiceStatus, ServiceType


class Service(Base):
    """A mentorship or advisory offering. Prices are stored in cents."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    type = Column(Enum(ServiceType, native_enum=False, length=16), nullable=False)
    status = Column(Enum(ServiceStatus, native_enum=False, length=16), nullable=False, default=ServiceStatus.DRAFT)
    single_session_price = Column(Integer, nullable=True)
    monthly_plan_price = Column(Integer, nullable=True)
    hourly_rate = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
