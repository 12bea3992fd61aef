"""User model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from advisory_hub.database import Base
from advisory_hub.models.enums import ConfirmationState, SessionStatus, UserRole


class User(Base):
    """Represents a registered client or admin.

    ``is_confirmed`` is tri-state: True once an admin approves the account,
    False while pending or after rejection, and NULL when no decision has been
    recorded for a legacy row. A non-null ``rejection_reason`` always comes
    with ``is_confirmed`` False.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    hashed_password = Column(String)
    role = Column(Enum(UserRole, native_enum=False, length=16), nullable=False, default=UserRole.CLIENT)

    is_confirmed = Column(Boolean, nullable=True, default=False)
    confirmed_at = Column(DateTime, nullable=True)
    confirmed_by = Column(Integer, nullable=True)
    rejection_reason = Column(String, nullable=True)

    session_status = Column(
        Enum(SessionStatus, native_enum=False, length=16),
        nullable=False,
        default=SessionStatus.INACTIVE,
        index=True,
    )
    session_activated_at = Column(DateTime, nullable=True)
    session_activated_by = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def confirmation_state(self) -> ConfirmationState:
        if self.is_confirmed:
            return ConfirmationState.CONFIRMED
        if self.rejection_reason:
            return ConfirmationState.REJECTED
        return ConfirmationState.PENDING
