from contextlib import contextmanager
from unittest.mock import patch

from app import worker
from app.crud.connections import ConnectionsCRUD
from app.models import Notification
from app.security.rules import AuthContext


def _scope_for(db):
    @contextmanager
    def scope():
        yield db
    return scope


def test_unknown_command_prints_usage(capsys):
    assert worker.main([]) == 2
    assert worker.main(["vacuum"]) == 2
    assert "usage" in capsys.readouterr().out


def test_dispatch_job(db, users):
    ConnectionsCRUD.create_connection(db, AuthContext(uid="alice"), "alice", "bob")

    with patch("app.worker.session_scope", _scope_for(db)):
        assert worker.main(["dispatch"]) == 0

    notifications = db.query(Notification).filter(Notification.user_id == "bob").all()
    assert len(notifications) == 1
    assert notifications[0].related_id == "alice"


def test_failing_job_returns_error_code(db):
    with patch("app.worker.reconcile_all", side_effect=RuntimeError("db down")), \
            patch("app.worker.session_scope", _scope_for(db)):
        assert worker.main(["reconcile"]) == 1


def test_non_numeric_limit_prints_usage(capsys):
    assert worker.main(["dispatch", "abc"]) == 2
    assert "limit must be an integer" in capsys.readouterr().out


def test_auto_complete_job_passes_limit(db):
    with patch("app.worker.run_auto_completion", wraps=worker.run_auto_completion) as run, \
            patch("app.worker.session_scope", _scope_for(db)):
        assert worker.main(["auto-complete", "5"]) == 0

    assert run.call_args.kwargs["limit"] == 5
