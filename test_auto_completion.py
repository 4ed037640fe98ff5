from datetime import datetime, timedelta

import pytest

from app.crud import outbox
from app.models import OutboxEvent, Trade
from app.services import auto_completion
from app.services.auto_completion import days_remaining, run_auto_completion, should_auto_complete, should_send_reminder

T0 = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture
def pending_trade(db, users):
    trade = Trade(
        id="t1",
        title="Mixing for a mural",
        creator_id="alice",
        participant_id="bob",
        status="pending-confirmation",
        completion_requested_by="alice",
        completion_requested_at=T0,
        reminders_sent=0,
    )
    db.add(trade)
    db.commit()
    return trade


def _notifications_for(db, user_id):
    return [
        e for e in db.query(OutboxEvent).filter(OutboxEvent.event_type == outbox.NOTIFICATION_CREATE).all()
        if e.payload["user_id"] == user_id
    ]


def test_days_remaining_rounds_up():
    assert days_remaining(T0, T0) == 3
    assert days_remaining(T0, T0 + timedelta(days=2, seconds=1)) == 1
    assert days_remaining(T0, T0 + timedelta(days=3)) == 0
    assert days_remaining(T0, T0 + timedelta(days=10)) == 0


def test_nothing_happens_early(db, pending_trade):
    report = run_auto_completion(db, now=T0 + timedelta(hours=12))

    assert report.completed == []
    assert report.reminded == []


def test_reminders_follow_schedule_once_each(db, pending_trade):
    report = run_auto_completion(db, now=T0 + timedelta(days=1, hours=12))
    assert report.reminded == ["t1"]
    reminders = _notifications_for(db, "bob")
    assert len(reminders) == 1
    assert "2 days" in reminders[0].payload["content"]

    # Same window: already reminded
    assert run_auto_completion(db, now=T0 + timedelta(days=1, hours=14)).reminded == []

    report = run_auto_completion(db, now=T0 + timedelta(days=2, hours=12))
    assert report.reminded == ["t1"]
    assert any("1 day." in e.payload["content"] for e in _notifications_for(db, "bob"))
    assert db.query(Trade).filter(Trade.id == "t1").one().reminders_sent == 2
    assert run_auto_completion(db, now=T0 + timedelta(days=2, hours=20)).reminded == []


def test_auto_completes_after_window(db, pending_trade):
    report = run_auto_completion(db, now=T0 + timedelta(days=3, minutes=1))

    assert report.completed == ["t1"]
    trade = db.query(Trade).filter(Trade.id == "t1").one()
    assert trade.status == "completed"
    assert trade.auto_completed is True
    assert trade.auto_completion_reason == "No response after 3 days"

    awards = db.query(OutboxEvent).filter(OutboxEvent.event_type == outbox.XP_AWARD).all()
    assert sorted(e.payload["user_id"] for e in awards) == ["alice", "bob"]
    # First trade bonus applies; auto-completion never earns the quick response bonus
    assert all(e.payload["amount"] == 200 for e in awards)

    assert run_auto_completion(db, now=T0 + timedelta(days=4)).completed == []


def test_only_pending_confirmation_trades_qualify(db, pending_trade):
    pending_trade.status = "change-requested"
    db.commit()

    late = T0 + timedelta(days=5)
    assert should_auto_complete(pending_trade, late) is False
    assert should_send_reminder(pending_trade, late) is False
    assert run_auto_completion(db, now=late).completed == []


def test_calculate_auto_completion_date():
    assert auto_completion.calculate_auto_completion_date(T0) == T0 + timedelta(days=3)
    assert auto_completion.calculate_auto_completion_date(T0, days=14) == T0 + timedelta(days=14)


def test_late_run_sends_one_reminder_for_latest_mark(db, pending_trade):
    # Job did not run while the "2 days" mark was current
    report = run_auto_completion(db, now=T0 + timedelta(days=2, hours=12))

    assert report.reminded == ["t1"]
    reminders = _notifications_for(db, "bob")
    assert len(reminders) == 1
    assert "1 day." in reminders[0].payload["content"]
    assert db.query(Trade).filter(Trade.id == "t1").one().reminders_sent == 2

    assert run_auto_completion(db, now=T0 + timedelta(days=2, hours=13)).reminded == []
    assert len(_notifications_for(db, "bob")) == 1


def test_limit_caps_trades_examined(db, users):
    for i in range(3):
        db.add(Trade(
            id=f"t{i}",
            title="Overdue",
            creator_id="alice",
            participant_id="bob",
            status="pending-confirmation",
            completion_requested_by="alice",
            completion_requested_at=T0 + timedelta(minutes=i),
            reminders_sent=0,
        ))
    db.commit()

    report = run_auto_completion(db, now=T0 + timedelta(days=4), limit=2)

    assert report.completed == ["t0", "t1"]
    assert db.query(Trade).filter(Trade.id == "t2").one().status == "pending-confirmation"
