from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from advisory_hub.core import config
from advisory_hub.core.errors import TokenInvalid
from advisory_hub.models.enums import UserRole
from advisory_hub.models.user import User


@dataclass(frozen=True)
class SessionClaims:
    """Identity and confirmation state carried by a signed session token."""

    user_id: int
    email: str
    role: UserRole
    is_confirmed: bool | None
    rejection_reason: str | None


def create_access_token(user: User, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": UserRole(user.role).value,
        "is_confirmed": user.is_confirmed,
        "rejection_reason": user.rejection_reason,
        "exp": now + timedelta(minutes=expire_minutes),
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        raise TokenInvalid(str(exc)) from exc


def read_session_claims(token: str | None) -> SessionClaims:
    if not token:
        raise TokenInvalid("Missing token")

    payload = decode_access_token(token)
    try:
        return SessionClaims(
            user_id=int(payload["sub"]),
            email=payload.get("email") or "",
            role=UserRole(payload.get("role")),
            is_confirmed=payload.get("is_confirmed"),
            rejection_reason=payload.get("rejection_reason"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenInvalid("Malformed token claims") from exc
