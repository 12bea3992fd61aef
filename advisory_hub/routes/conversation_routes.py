from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import get_confirmed_user, require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.core import config
from advisory_hub.core.errors import RateLimitExceeded
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.conversation import Conversation, ConversationParticipant, Message
from advisory_hub.models.enums import MessageType, UserRole
from advisory_hub.models.user import User
from advisory_hub.services import rate_limit

router = APIRouter(tags=['conversations'])
messages_router = APIRouter(tags=['messages'])

MAX_MESSAGE_LENGTH = 5000
MAX_PAGE_SIZE = 100
SUPPORT_CONVERSATION_TITLE = 'Support Conversation'


def normalize_content(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > MAX_MESSAGE_LENGTH:
        raise ValueError(f'Messages must be {MAX_MESSAGE_LENGTH} characters or fewer.')
    return normalized


class CreateConversationRequest(BaseModel):
    participant_ids: list[int]
    title: str | None = None
    initial_message: str | None = None

    @field_validator('participant_ids')
    @classmethod
    def validate_participants(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError('Participant IDs are required.')
        return value

    @field_validator('initial_message')
    @classmethod
    def validate_initial_message(cls, value: str | None) -> str | None:
        return normalize_content(value)


class SupportConversationRequest(BaseModel):
    title: str | None = None
    initial_message: str | None = None

    @field_validator('initial_message')
    @classmethod
    def validate_initial_message(cls, value: str | None) -> str | None:
        return normalize_content(value)


class SendMessageRequest(BaseModel):
    content: str

    @field_validator('content')
    @classmethod
    def validate_content(cls, value: str) -> str:
        normalized = normalize_content(value)
        if normalized is None:
            raise ValueError('Message content is required.')
        return normalized


class ParticipantResponse(BaseModel):
    user_id: int
    unread_count: int
    last_read_at: datetime | None = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    message_type: MessageType
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationResponse(BaseModel):
    id: int
    title: str | None = None
    is_archived: bool
    last_message_at: datetime | None = None
    created_at: datetime | None = None
    participants: list[ParticipantResponse]

    class Config:
        from_attributes = True


class ConversationListResponse(BaseModel):
    conversations: list[ConversationResponse]
    page: int
    limit: int
    total: int
    pages: int


class UnreadCountResponse(BaseModel):
    unread_count: int


def add_message(db: Session, conversation: Conversation, sender_id: int, content: str) -> Message:
    """Append a message and bump every other participant's unread count. The caller commits."""
    now = datetime.now()
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content,
        message_type=MessageType.TEXT,
        created_at=now,
    )
    db.add(message)
    conversation.last_message_at = now

    db.query(ConversationParticipant).filter(
        ConversationParticipant.conversation_id == conversation.id,
        ConversationParticipant.user_id != sender_id,
    ).update(
        {ConversationParticipant.unread_count: ConversationParticipant.unread_count + 1},
        synchronize_session=False,
    )
    return message


def get_participation(db: Session, conversation_id: int, user: User) -> tuple[Conversation, ConversationParticipant | None]:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Conversation not found.')

    participant = db.query(ConversationParticipant).filter(
        ConversationParticipant.conversation_id == conversation_id,
        ConversationParticipant.user_id == user.id,
    ).first()
    if participant is None and user.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied to this conversation.')
    return conversation, participant


def enforce_message_rate_limit(db: Session, user: User) -> None:
    try:
        rate_limit.hit(
            db,
            key=f'messages:{user.id}',
            max_requests=config.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        )
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail='Too many requests.',
            headers={'Retry-After': str(exc.retry_after_seconds)},
        ) from exc


@router.get('', response_model=ConversationListResponse)
def list_conversations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        query = db.query(Conversation).join(
            ConversationParticipant,
            ConversationParticipant.conversation_id == Conversation.id,
        ).filter(
            ConversationParticipant.user_id == current_user.id,
            Conversation.is_archived.is_(False),
        )
        total = query.count()
        conversations = query.order_by(
            Conversation.last_message_at.desc(),
            Conversation.id.desc(),
        ).offset((page - 1) * limit).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return ConversationListResponse(
        conversations=[ConversationResponse.model_validate(conversation) for conversation in conversations],
        page=page,
        limit=limit,
        total=total,
        pages=(total + limit - 1) // limit,
    )


@router.post('', response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
def create_conversation(
    data: CreateConversationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.SEND_MESSAGES)),
):
    participant_ids = list(dict.fromkeys([current_user.id, *data.participant_ids]))

    try:
        found = db.query(func.count(User.id)).filter(User.id.in_(participant_ids)).scalar()
        if found != len(participant_ids):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='One or more participants not found.')

        conversation = Conversation(title=data.title, is_archived=False)
        conversation.participants = [
            ConversationParticipant(user_id=user_id, unread_count=0) for user_id in participant_ids
        ]
        db.add(conversation)
        db.flush()

        if data.initial_message:
            add_message(db, conversation, current_user.id, data.initial_message)

        db.commit()
        db.refresh(conversation)
        return conversation
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/support', response_model=ConversationResponse)
def open_support_conversation(
    data: SupportConversationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.SEND_MESSAGES)),
):
    """Open, or reuse, the client's conversation with an admin."""
    if current_user.role != UserRole.CLIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only clients can open support conversations.',
        )

    try:
        admin = db.query(User).filter(User.role == UserRole.ADMIN).order_by(User.id.asc()).first()
        if admin is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No admin user found.')

        client_conversations = db.query(ConversationParticipant.conversation_id).filter(
            ConversationParticipant.user_id == current_user.id,
        )
        existing = db.query(Conversation).join(
            ConversationParticipant,
            ConversationParticipant.conversation_id == Conversation.id,
        ).filter(
            ConversationParticipant.user_id == admin.id,
            Conversation.id.in_(client_conversations),
            Conversation.is_archived.is_(False),
        ).order_by(Conversation.id.asc()).first()
        if existing is not None:
            return existing

        conversation = Conversation(title=data.title or SUPPORT_CONVERSATION_TITLE, is_archived=False)
        conversation.participants = [
            ConversationParticipant(user_id=current_user.id, unread_count=0),
            ConversationParticipant(user_id=admin.id, unread_count=0),
        ]
        db.add(conversation)
        db.flush()

        if data.initial_message:
            add_message(db, conversation, current_user.id, data.initial_message)

        db.commit()
        db.refresh(conversation)
        return conversation
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{conversation_id}/messages', response_model=list[MessageResponse])
def list_messages(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        conversation, participant = get_participation(db, conversation_id, current_user)
        messages = db.query(Message).filter(
            Message.conversation_id == conversation.id,
        ).order_by(Message.created_at.asc(), Message.id.asc()).all()

        if participant is not None and participant.unread_count:
            participant.unread_count = 0
            participant.last_read_at = datetime.now()
            db.commit()

        return messages
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{conversation_id}/messages', response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    conversation_id: int,
    data: SendMessageRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.SEND_MESSAGES)),
):
    try:
        conversation, participant = get_participation(db, conversation_id, current_user)
        if participant is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only participants can post to this conversation.',
            )
        if conversation.is_archived:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Conversation is archived.')

        enforce_message_rate_limit(db, current_user)

        message = add_message(db, conversation, current_user.id, data.content)
        db.commit()
        db.refresh(message)
        return message
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@messages_router.get('/unread-count', response_model=UnreadCountResponse)
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        total = db.query(func.coalesce(func.sum(ConversationParticipant.unread_count), 0)).filter(
            ConversationParticipant.user_id == current_user.id,
        ).scalar()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
    return UnreadCountResponse(unread_count=total or 0)
