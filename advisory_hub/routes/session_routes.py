from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.database import get_db
from advisory_hub.models.user import User
from advisory_hub.services.session_lifecycle import ReconcileResult, SessionLifecycleManager, SweepResult
from advisory_hub.services.session_store import SqlSessionStore

router = APIRouter(tags=['sessions'])


def get_session_manager(db: Session = Depends(get_db)) -> SessionLifecycleManager:
    return SessionLifecycleManager(SqlSessionStore(db))


@router.post('/{user_id}/reconcile', response_model=ReconcileResult)
def reconcile_user_session(
    user_id: int,
    manager: SessionLifecycleManager = Depends(get_session_manager),
    admin: User = Depends(require_capability(Capability.MANAGE_SESSIONS)),
):
    del admin
    result = manager.reconcile_user(user_id)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return result


@router.post('/sweep', response_model=SweepResult)
def sweep_expired_sessions(
    manager: SessionLifecycleManager = Depends(get_session_manager),
    admin: User = Depends(require_capability(Capability.MANAGE_SESSIONS)),
):
    del admin
    return manager.sweep_expired()
