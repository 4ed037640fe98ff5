from datetime import datetime
from sqlalchemy import or_, and_
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from app.models.outbox import OutboxEvent, OutboxStatus
from app.utils.clock import utcnow

# Event types consumed by app.services.side_effects
XP_AWARD = "xp.award"
PORTFOLIO_GENERATE = "portfolio.generate"
NOTIFICATION_CREATE = "notification.create"

def enqueue(db: Session, event_type: str, payload: Dict[str, Any]) -> OutboxEvent:
    """Stage a side effect in the caller's transaction. Nothing is committed here."""
    event = OutboxEvent(event_type=event_type, payload=payload, status=OutboxStatus.PENDING.value)
    db.add(event)
    return event

def fetch_due(db: Session, limit: int, max_attempts: int, stale_before: Optional[datetime] = None) -> List[OutboxEvent]:
    """
    Pending events plus failed ones that still have attempts left, oldest first.
    With ``stale_before``, events claimed before that time and never finished
    are due again.
    """
    due = [
        OutboxEvent.status == OutboxStatus.PENDING.value,
        and_(
            OutboxEvent.status == OutboxStatus.FAILED.value,
            OutboxEvent.attempts < max_attempts
        ),
    ]
    if stale_before is not None:
        due.append(and_(
            OutboxEvent.status == OutboxStatus.PROCESSING.value,
            OutboxEvent.claimed_at < stale_before
        ))
    return db.query(OutboxEvent).filter(
        or_(*due)
    ).order_by(OutboxEvent.created_at.asc()).limit(limit).all()

def claim(db: Session, event: OutboxEvent) -> bool:
    """
    Mark ``event`` as processing if it is still in the state it was read in.

    The update is conditional on the status, attempt count and claim time seen
    by ``fetch_due``, so of two dispatchers holding the same row only one gets
    a match. Returns False for the loser. The caller commits.
    """
    claimed_at = utcnow()
    matched = db.query(OutboxEvent).filter(
        OutboxEvent.id == event.id,
        OutboxEvent.status == event.status,
        OutboxEvent.attempts == event.attempts,
        OutboxEvent.claimed_at.is_(None) if event.claimed_at is None else OutboxEvent.claimed_at == event.claimed_at,
    ).update(
        {OutboxEvent.status: OutboxStatus.PROCESSING.value, OutboxEvent.claimed_at: claimed_at},
        synchronize_session=False,
    )
    if matched != 1:
        return False
    event.status = OutboxStatus.PROCESSING.value
    event.claimed_at = claimed_at
    return True

def mark_done(event: OutboxEvent) -> None:
    event.status = OutboxStatus.DONE.value
    event.attempts += 1
    event.last_error = None
    event.processed_at = utcnow()

def mark_failed(event: OutboxEvent, error: str) -> None:
    event.status = OutboxStatus.FAILED.value
    event.attempts += 1
    event.last_error = error[:2000]
    event.processed_at = utcnow()

def count_by_status(db: Session) -> Dict[str, int]:
    counts = {status.value: 0 for status in OutboxStatus}
    for event in db.query(OutboxEvent.status).all():
        counts[event.status] = counts.get(event.status, 0) + 1
    return counts
