from datetime import datetime
from typing import Literal

from sqlalchemy.orm import Session

from advisory_hub.models.enums import SubscriberStatus
from advisory_hub.models.newsletter import NewsletterSubscriber

SubscribeOutcome = Literal['created', 'already_active', 'reactivated', 'blocked']


def split_name(name: str | None) -> tuple[str | None, str | None]:
    parts = (name or '').split()
    if not parts:
        return None, None
    return parts[0], ' '.join(parts[1:]) or None


def subscribe(
    db: Session,
    email: str,
    first_name: str | None = None,
    last_name: str | None = None,
    interests: list[str] | None = None,
    source: str | None = None,
) -> tuple[NewsletterSubscriber | None, SubscribeOutcome]:
    """Add or reactivate a subscriber. The caller commits.

    Addresses that bounced or complained are never resubscribed.
    """
    subscriber = db.query(NewsletterSubscriber).filter(NewsletterSubscriber.email == email).first()

    if subscriber is None:
        subscriber = NewsletterSubscriber(
            email=email,
            first_name=first_name,
            last_name=last_name,
            interests=interests or [],
            source=source,
            status=SubscriberStatus.ACTIVE,
        )
        db.add(subscriber)
        return subscriber, 'created'

    if subscriber.status == SubscriberStatus.ACTIVE:
        return subscriber, 'already_active'

    if subscriber.status == SubscriberStatus.UNSUBSCRIBED:
        subscriber.status = SubscriberStatus.ACTIVE
        subscriber.first_name = first_name or subscriber.first_name
        subscriber.last_name = last_name or subscriber.last_name
        subscriber.interests = interests or subscriber.interests
        subscriber.source = source or subscriber.source
        subscriber.unsubscribed_at = None
        return subscriber, 'reactivated'

    return None, 'blocked'


def unsubscribe(db: Session, email: str, now: datetime | None = None) -> NewsletterSubscriber | None:
    subscriber = db.query(NewsletterSubscriber).filter(NewsletterSubscriber.email == email).first()
    if subscriber is None:
        return None
    if subscriber.status == SubscriberStatus.ACTIVE:
        subscriber.status = SubscriberStatus.UNSUBSCRIBED
        subscriber.unsubscribed_at = now or datetime.now()
    return subscriber
