"""
Post-commit side effects.

State-changing operations stage ``OutboxEvent`` rows in their own transaction;
this module consumes them. Each event runs inside its own savepoint so one
failing handler cannot undo another's work or the state change that produced
it. Failures are logged and recorded on the event for a later retry, never
raised to the caller.

A dispatcher claims the events it is about to run before running them, so
dispatchers running side by side (background tasks and the worker job) never
handle the same event twice.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import outbox
from app.crud.gamification import award_xp
from app.crud.notifications import create_notification
from app.crud.portfolio import generate_challenge_portfolio_item, generate_trade_portfolio_item
from app.database import session_scope
from app.models.challenge import UserChallenge
from app.models.trade import Trade
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

Handler = Callable[[Session, Dict[str, Any]], Any]


def _award_xp(db: Session, payload: Dict[str, Any]):
    return award_xp(
        db,
        user_id=payload["user_id"],
        amount=int(payload["amount"]),
        source=payload["source"],
        source_id=payload.get("source_id", ""),
        description=payload.get("description"),
    )


def _generate_portfolio(db: Session, payload: Dict[str, Any]):
    source_type = payload["source_type"]
    if source_type == "trade":
        trade = db.query(Trade).filter(Trade.id == payload["source_id"]).first()
        if trade is None:
            raise LookupError(f"Trade {payload['source_id']} no longer exists")
        return generate_trade_portfolio_item(
            db, trade, payload["user_id"], visible=settings.PORTFOLIO_DEFAULT_VISIBLE
        )
    if source_type == "challenge":
        record = db.query(UserChallenge).filter(UserChallenge.id == payload["source_id"]).first()
        if record is None:
            raise LookupError(f"Challenge participation {payload['source_id']} no longer exists")
        return generate_challenge_portfolio_item(db, record, visible=settings.PORTFOLIO_DEFAULT_VISIBLE)
    raise ValueError(f"Unknown portfolio source type: {source_type}")


def _create_notification(db: Session, payload: Dict[str, Any]):
    return create_notification(
        db,
        user_id=payload["user_id"],
        type=payload.get("type", "system"),
        title=payload["title"],
        content=payload.get("content", ""),
        related_id=payload.get("related_id"),
    )


HANDLERS: Dict[str, Handler] = {
    outbox.XP_AWARD: _award_xp,
    outbox.PORTFOLIO_GENERATE: _generate_portfolio,
    outbox.NOTIFICATION_CREATE: _create_notification,
}


@dataclass
class DispatchReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


def dispatch_pending(
    db: Session,
    limit: Optional[int] = None,
    handlers: Optional[Dict[str, Handler]] = None,
) -> DispatchReport:
    """Run due outbox events and commit their results."""
    handlers = HANDLERS if handlers is None else handlers
    report = DispatchReport()
    due = outbox.fetch_due(
        db,
        limit=limit or settings.OUTBOX_BATCH_SIZE,
        max_attempts=settings.OUTBOX_MAX_ATTEMPTS,
        stale_before=utcnow() - timedelta(seconds=settings.OUTBOX_CLAIM_TIMEOUT_SECONDS),
    )
    events = [event for event in due if outbox.claim(db, event)]
    if len(events) < len(due):
        logger.info(f"Skipped {len(due) - len(events)} outbox events claimed by another dispatcher")
    # Claims become visible to other dispatchers before any handler runs
    db.commit()
    for event in events:
        report.processed += 1
        handler = handlers.get(event.event_type)
        if handler is None:
            logger.error(f"No handler for outbox event {event.id} ({event.event_type})")
            outbox.mark_failed(event, f"unknown event type {event.event_type}")
            report.failed += 1
            continue
        try:
            with db.begin_nested():
                handler(db, dict(event.payload or {}))
        except Exception as e:
            logger.exception(f"Side effect {event.event_type} failed for event {event.id}: {e}")
            outbox.mark_failed(event, f"{type(e).__name__}: {e}")
            report.failed += 1
        else:
            outbox.mark_done(event)
            report.succeeded += 1
    db.commit()
    if report.processed:
        logger.info(
            f"Dispatched {report.processed} outbox events "
            f"({report.succeeded} ok, {report.failed} failed)"
        )
    return report


def dispatch_in_background() -> None:
    """Entry point for FastAPI background tasks; opens its own session."""
    try:
        with session_scope() as db:
            dispatch_pending(db)
    except Exception as e:
        logger.exception(f"Outbox dispatch aborted: {e}")
