from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.core.timestamps import to_local_naive
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enums import CampaignStatus, SubscriberStatus
from advisory_hub.models.newsletter import NewsletterCampaign, NewsletterSubscriber
from advisory_hub.models.user import User
from advisory_hub.routes.auth_routes import normalize_email
from advisory_hub.services import newsletter

router = APIRouter(tags=['newsletter'])
admin_router = APIRouter(tags=['admin-newsletter'])

MAX_PAGE_SIZE = 200


class SubscribeRequest(BaseModel):
    email: str
    first_name: str | None = None
    last_name: str | None = None
    interests: list[str] = []
    source: str = 'landing-page'

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class UnsubscribeRequest(BaseModel):
    email: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class SubscriptionResponse(BaseModel):
    success: bool
    message: str
    subscriber_id: int | None = None


class SubscriberResponse(BaseModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    interests: list[str] = []
    source: str | None = None
    status: SubscriberStatus
    subscribed_at: datetime | None = None
    unsubscribed_at: datetime | None = None

    class Config:
        from_attributes = True


class CampaignRequest(BaseModel):
    title: str
    subject: str
    content: str
    status: CampaignStatus = CampaignStatus.DRAFT
    scheduled_at: datetime | None = None

    @field_validator('title', 'subject', 'content')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title, subject and content are required.')
        return normalized

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: CampaignStatus) -> CampaignStatus:
        if value == CampaignStatus.SENT:
            raise ValueError('Campaigns cannot be marked as sent directly.')
        return value

    @field_validator('scheduled_at')
    @classmethod
    def normalize_scheduled_at(cls, value: datetime | None) -> datetime | None:
        return to_local_naive(value)


class CampaignResponse(BaseModel):
    id: int
    title: str
    subject: str
    content: str
    status: CampaignStatus
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    created_by: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


SUBSCRIBE_MESSAGES = {
    'created': 'Successfully subscribed to our newsletter!',
    'already_active': 'You are already subscribed to our newsletter!',
    'reactivated': 'Welcome back! You have been resubscribed to our newsletter.',
}


@router.post('/subscribe', response_model=SubscriptionResponse)
def subscribe(data: SubscribeRequest, db: Session = Depends(get_db)):
    try:
        subscriber, outcome = newsletter.subscribe(
            db,
            data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            interests=data.interests,
            source=data.source,
        )
        if subscriber is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This email address cannot be subscribed due to previous delivery issues.',
            )
        db.commit()
        db.refresh(subscriber)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return SubscriptionResponse(success=True, message=SUBSCRIBE_MESSAGES[outcome], subscriber_id=subscriber.id)


@router.post('/unsubscribe', response_model=SubscriptionResponse)
def unsubscribe(data: UnsubscribeRequest, db: Session = Depends(get_db)):
    try:
        subscriber = newsletter.unsubscribe(db, data.email)
        if subscriber is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Subscriber not found.')
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return SubscriptionResponse(
        success=True,
        message='You have been unsubscribed from our newsletter.',
        subscriber_id=subscriber.id,
    )


@admin_router.get('/subscribers', response_model=list[SubscriberResponse])
def list_subscribers(
    subscriber_status: SubscriberStatus | None = Query(default=None, alias='status'),
    limit: int = Query(default=100, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_NEWSLETTER)),
):
    del admin
    try:
        query = db.query(NewsletterSubscriber)
        if subscriber_status is not None:
            query = query.filter(NewsletterSubscriber.status == subscriber_status)
        return query.order_by(NewsletterSubscriber.subscribed_at.desc()).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@admin_router.get('/campaigns', response_model=list[CampaignResponse])
def list_campaigns(
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_NEWSLETTER)),
):
    del admin
    try:
        return db.query(NewsletterCampaign).order_by(
            NewsletterCampaign.created_at.desc(),
            NewsletterCampaign.id.desc(),
        ).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@admin_router.post('/campaigns', response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
def create_campaign(
    data: CampaignRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_NEWSLETTER)),
):
    if data.status == CampaignStatus.SCHEDULED and data.scheduled_at is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Scheduled campaigns need a send time.')

    try:
        campaign = NewsletterCampaign(
            title=data.title,
            subject=data.subject,
            content=data.content,
            status=data.status,
            scheduled_at=data.scheduled_at,
            created_by=admin.id,
        )
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_editable_campaign(db: Session, campaign_id: int) -> NewsletterCampaign:
    campaign = db.query(NewsletterCampaign).filter(NewsletterCampaign.id == campaign_id).first()
    if campaign is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Campaign not found.')
    if campaign.status == CampaignStatus.SENT:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Sent campaigns cannot be changed.')
    return campaign


@admin_router.put('/campaigns/{campaign_id}', response_model=CampaignResponse)
def update_campaign(
    campaign_id: int,
    data: CampaignRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_NEWSLETTER)),
):
    del admin
    if data.status == CampaignStatus.SCHEDULED and data.scheduled_at is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Scheduled campaigns need a send time.')

    try:
        campaign = get_editable_campaign(db, campaign_id)
        campaign.title = data.title
        campaign.subject = data.subject
        campaign.content = data.content
        campaign.status = data.status
        campaign.scheduled_at = data.scheduled_at
        db.commit()
        db.refresh(campaign)
        return campaign
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@admin_router.delete('/campaigns/{campaign_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(
    campaign_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_NEWSLETTER)),
):
    del admin
    try:
        campaign = get_editable_campaign(db, campaign_id)
        db.delete(campaign)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
