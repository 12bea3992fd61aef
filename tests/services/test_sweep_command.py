import json
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from advisory_hub import sweep_sessions
from advisory_hub.core.errors import PersistenceError
from advisory_hub.models.enums import SessionStatus
from advisory_hub.routes.session_routes import reconcile_user_session, sweep_expired_sessions
from advisory_hub.services.session_lifecycle import SessionLifecycleManager
from advisory_hub.services.session_store import SqlSessionStore


@pytest.fixture
def use_test_session(db, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(sweep_sessions, 'SessionLocal', lambda: db)
    monkeypatch.setattr(sweep_sessions, 'ensure_schema', lambda: None)


def test_sweep_command_prints_result(use_test_session, make_user, make_enrollment, capsys) -> None:
    user = make_user(session_status=SessionStatus.ACTIVE)
    make_enrollment(user.id, expires_at=datetime.now() - timedelta(days=1))

    sweep_sessions.main()

    output = json.loads(capsys.readouterr().out)
    assert output == {'success': True, 'processed_users': 1, 'deactivated_users': 1, 'errors': []}


def test_sweep_command_exits_non_zero_on_errors(use_test_session, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    def failing_lookup(self, now):
        return [1]

    def failing_status(self, user_id):
        raise PersistenceError('database went away')

    monkeypatch.setattr(SqlSessionStore, 'find_users_with_lapsed_active_enrollments', failing_lookup)
    monkeypatch.setattr(SqlSessionStore, 'get_user_session_status', failing_status)

    with pytest.raises(SystemExit) as exit_info:
        sweep_sessions.main()

    assert exit_info.value.code == 1
    assert json.loads(capsys.readouterr().out)['errors'] == [{'user_id': 1, 'error': 'database went away'}]


def test_admin_reconcile_endpoint(db, admin, make_user, make_enrollment) -> None:
    user = make_user()
    make_enrollment(user.id)
    manager = SessionLifecycleManager(SqlSessionStore(db))

    result = reconcile_user_session(user.id, manager=manager, admin=admin)
    assert result.action == 'activated'

    with pytest.raises(HTTPException) as exception_info:
        reconcile_user_session(9999, manager=manager, admin=admin)
    assert exception_info.value.status_code == 404

    assert sweep_expired_sessions(manager=manager, admin=admin).processed_users == 0
