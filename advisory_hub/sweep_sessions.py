"""Deactivate sessions whose enrollments have all lapsed.

Meant for a cron job or scheduled task:
    python -m advisory_hub.sweep_sessions

Exits non-zero when any user could not be processed.
"""
import json
import logging
import sys

from advisory_hub.core import config
from advisory_hub.database import SessionLocal, ensure_schema
from advisory_hub.services import rate_limit
from advisory_hub.services.session_lifecycle import SessionLifecycleManager
from advisory_hub.services.session_store import SqlSessionStore


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    ensure_schema()

    db = SessionLocal()
    try:
        result = SessionLifecycleManager(SqlSessionStore(db)).sweep_expired()
        rate_limit.purge_expired_windows(db, config.RATE_LIMIT_WINDOW_SECONDS)
    finally:
        db.close()

    print(json.dumps(result.model_dump()))
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
