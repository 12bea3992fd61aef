from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from advisory_hub.auth import jwt_handler
from advisory_hub.auth.permissions import Capability, has_capability
from advisory_hub.core.errors import TokenInvalid
from advisory_hub.database import get_db
from advisory_hub.models.user import User

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    try:
        claims = jwt_handler.read_session_claims(credentials.credentials)
    except TokenInvalid as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user = db.query(User).filter(User.id == claims.user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def ensure_confirmed(user: User) -> User:
    if user.is_confirmed:
        return user
    if user.rejection_reason:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account application was rejected.")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account is pending admin approval.")


def get_confirmed_user(current_user: User = Depends(get_current_user)) -> User:
    return ensure_confirmed(current_user)


def ensure_capability(user: User, capability: Capability) -> User:
    if not has_capability(user.role, capability):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return user


def require_capability(capability: Capability):
    def dependency(current_user: User = Depends(get_confirmed_user)) -> User:
        return ensure_capability(current_user, capability)

    return dependency
