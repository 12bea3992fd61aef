"""Newsletter subscriber and campaign model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from advisory_hub.database import Base
from advisory_hub.models.enums import CampaignStatus, SubscriberStatus


class NewsletterSubscriber(Base):
    __tablename__ = "newsletter_subscribers"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String)
    last_name = Column(String)
    interests = Column(JSON, nullable=False, default=list)
    source = Column(String)
    status = Column(Enum(SubscriberStatus, native_enum=False, length=16), nullable=False, default=SubscriberStatus.ACTIVE)
    subscribed_at = Column(DateTime, default=datetime.now)
    unsubscribed_at = Column(DateTime, nullable=True)


class NewsletterCampaign(Base):
    __tablename__ = "newsletter_campaigns"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    status = Column(Enum(CampaignStatus, native_enum=False, length=16), nullable=False, default=CampaignStatus.DRAFT)
    scheduled_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
