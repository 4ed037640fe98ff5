"""
Scheduled completion of trades left waiting for confirmation.

A trade that stays in pending-confirmation for TRADE_AUTO_COMPLETE_DAYS after
its completion request is completed on the counterparty's behalf. Before that
the counterparty is reminded as each entry of TRADE_REMINDER_DAYS (days
remaining) is reached, tracked through ``Trade.reminders_sent``. A late run
sends one reminder for the latest mark reached, not one per missed mark.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import outbox
from app.crud.trades import TradesCRUD
from app.models.trade import Trade, TradeStatus
from app.services import trade_state
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AutoCompletionReport:
    completed: List[str] = field(default_factory=list)
    reminded: List[str] = field(default_factory=list)


def calculate_auto_completion_date(requested_at: datetime, days: Optional[int] = None) -> datetime:
    return requested_at + timedelta(days=days if days is not None else settings.TRADE_AUTO_COMPLETE_DAYS)


def days_remaining(requested_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days left before auto-completion, rounded up; 0 once due."""
    now = now or utcnow()
    left = calculate_auto_completion_date(requested_at) - now
    if left.total_seconds() <= 0:
        return 0
    return math.ceil(left.total_seconds() / 86400)


def should_auto_complete(trade: Trade, now: Optional[datetime] = None) -> bool:
    if trade.status != TradeStatus.PENDING_CONFIRMATION.value or not trade.completion_requested_at:
        return False
    return (now or utcnow()) >= calculate_auto_completion_date(trade.completion_requested_at)


def reminders_due(trade: Trade, now: Optional[datetime] = None) -> int:
    """How many TRADE_REMINDER_DAYS marks the trade has reached so far."""
    remaining = days_remaining(trade.completion_requested_at, now)
    if remaining <= 0:
        return 0
    return sum(1 for mark in settings.TRADE_REMINDER_DAYS if remaining <= mark)


def should_send_reminder(trade: Trade, now: Optional[datetime] = None) -> bool:
    """
    True when a reminder mark has been reached since the last reminder.

    Marks passed while the job was not running are covered by a single
    reminder for the latest one.
    """
    if trade.status != TradeStatus.PENDING_CONFIRMATION.value or not trade.completion_requested_at:
        return False
    return reminders_due(trade, now) > (trade.reminders_sent or 0)


def _auto_complete(db: Session, trade: Trade, now: datetime) -> None:
    trade_state.ensure_transition(trade.status, TradeStatus.COMPLETED.value)
    trade.status = TradeStatus.COMPLETED.value
    trade.completion_confirmed_at = now
    trade.auto_completed = True
    trade.auto_completion_reason = (
        f"No response after {settings.TRADE_AUTO_COMPLETE_DAYS} days"
    )
    trade.updated_at = now
    db.flush()
    TradesCRUD.enqueue_completion_effects(db, trade)


def _remind(db: Session, trade: Trade, now: datetime) -> None:
    recipient = trade.counterparty_of(trade.completion_requested_by)
    remaining = days_remaining(trade.completion_requested_at, now)
    if recipient:
        outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
            "user_id": recipient,
            "type": "trade_reminder",
            "title": "Reminder: Trade Completion",
            "content": (
                f"Please confirm completion of \"{trade.title}\". It will be "
                f"completed automatically in {remaining} day{'s' if remaining != 1 else ''}."
            ),
            "related_id": trade.id,
        })
    trade.reminders_sent = reminders_due(trade, now)


def run_auto_completion(db: Session, now: Optional[datetime] = None, limit: Optional[int] = None) -> AutoCompletionReport:
    """
    Complete overdue trades and send due reminders, committing once.
    ``limit`` caps the trades examined, oldest completion request first.
    """
    now = now or utcnow()
    report = AutoCompletionReport()
    query = db.query(Trade).filter(
        Trade.status == TradeStatus.PENDING_CONFIRMATION.value,
        Trade.completion_requested_at.isnot(None)
    ).order_by(Trade.completion_requested_at.asc())
    if limit:
        query = query.limit(limit)
    pending = query.all()

    try:
        for trade in pending:
            if should_auto_complete(trade, now):
                _auto_complete(db, trade, now)
                report.completed.append(trade.id)
            elif should_send_reminder(trade, now):
                _remind(db, trade, now)
                report.reminded.append(trade.id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Auto-completion: {len(report.completed)} completed, {len(report.reminded)} reminded")
    return report
