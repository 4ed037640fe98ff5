"""
Command-line entry point for the scheduled jobs.

    python -m app.worker reconcile [limit]
    python -m app.worker dispatch [limit]
    python -m app.worker auto-complete [limit]
"""
import sys

from app.database import session_scope
from app.logging_config import configure_logging
from app.services.auto_completion import run_auto_completion
from app.services.reconciliation import reconcile_all
from app.services.side_effects import dispatch_pending
from app.utils.logger import get_logger, set_request_context

logger = get_logger(__name__)

def _reconcile(limit=None):
    with session_scope() as db:
        report = reconcile_all(db, limit=limit)
    return report.__dict__

def _dispatch(limit=None):
    with session_scope() as db:
        report = dispatch_pending(db, limit=limit)
    return report.__dict__

def _auto_complete(limit=None):
    with session_scope() as db:
        report = run_auto_completion(db, limit=limit)
        # Completion side effects go out in the same run
        dispatch_pending(db)
    return report.__dict__

COMMANDS = {
    "reconcile": _reconcile,
    "dispatch": _dispatch,
    "auto-complete": _auto_complete,
}

def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] not in COMMANDS:
        print(f"usage: python -m app.worker {{{'|'.join(COMMANDS)}}} [limit]")
        return 2
    command = argv[0]
    try:
        limit = int(argv[1]) if len(argv) > 1 else None
    except ValueError:
        print(f"usage: python -m app.worker {command} [limit]: limit must be an integer, got {argv[1]!r}")
        return 2
    configure_logging()
    set_request_context(f"job:{command}")
    try:
        result = COMMANDS[command](limit)
    except Exception as e:
        logger.exception(f"Job {command} failed: {e}")
        return 1
    logger.info(f"Job {command} finished: {result}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
