"""
Repair of diverged connection pairs.

Reconciliation treats one record as the source and re-derives its mirror from
it: a missing mirror is created, a mirror with a different status is updated.
Sync issues recorded by ConnectionsCRUD.update_connection_status name the
source explicitly; pairs found by scanning use the more recently updated
record.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session, aliased

from app.config import settings
from app.crud.connections import ConnectionsCRUD
from app.models.connection import Connection, ConnectionSyncIssue
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    IN_SYNC = "in_sync"
    MISSING_SOURCE = "missing_source"


@dataclass
class ReconcileReport:
    created: int = 0
    updated: int = 0
    in_sync: int = 0
    missing_source: int = 0
    issues_resolved: int = 0
    pairs: List[str] = field(default_factory=list)

    def record(self, outcome: ReconcileOutcome, owner_id: str, counterpart_id: str) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)
        if outcome in (ReconcileOutcome.CREATED, ReconcileOutcome.UPDATED):
            self.pairs.append(f"{owner_id}<->{counterpart_id}")


def _sync_from(db: Session, source: Connection) -> ReconcileOutcome:
    mirror = ConnectionsCRUD.find_mirror(db, source)
    now = utcnow()
    if mirror is None:
        db.add(Connection(
            id=Connection.make_id(source.counterpart_user_id, source.owner_user_id),
            owner_user_id=source.counterpart_user_id,
            counterpart_user_id=source.owner_user_id,
            initiator_user_id=source.initiator_user_id,
            status=source.status,
            message=source.message,
            created_at=source.created_at,
            updated_at=now,
        ))
        logger.info(f"Reconcile: created mirror for {source.path} ({source.status})")
        return ReconcileOutcome.CREATED
    if mirror.status != source.status:
        logger.info(f"Reconcile: {mirror.path} {mirror.status} -> {source.status}")
        mirror.status = source.status
        mirror.updated_at = now
        return ReconcileOutcome.UPDATED
    return ReconcileOutcome.IN_SYNC


def reconcile_connection(db: Session, owner_id: str, counterpart_id: str, commit: bool = True) -> ReconcileOutcome:
    """Re-synchronize the mirror of ``owner_id``'s record for ``counterpart_id``."""
    source = ConnectionsCRUD.get_connection(db, owner_id, counterpart_id)
    if source is None:
        logger.warning(f"Reconcile: no record in users/{owner_id}/connections for {counterpart_id}")
        outcome = ReconcileOutcome.MISSING_SOURCE
    else:
        outcome = _sync_from(db, source)
        ConnectionsCRUD.resolve_sync_issues(db, owner_id, counterpart_id)
    if commit:
        db.commit()
    return outcome


def _orphans(db: Session, limit: int) -> List[Connection]:
    mirror = aliased(Connection)
    return db.query(Connection).outerjoin(
        mirror,
        and_(
            mirror.owner_user_id == Connection.counterpart_user_id,
            mirror.counterpart_user_id == Connection.owner_user_id,
        )
    ).filter(mirror.id.is_(None)).order_by(Connection.updated_at.desc()).limit(limit).all()


def _drifted_sources(db: Session, limit: int) -> List[Connection]:
    """For each pair whose statuses differ, the more recently updated record."""
    mirror = aliased(Connection)
    rows = db.query(Connection, mirror).join(
        mirror,
        and_(
            mirror.owner_user_id == Connection.counterpart_user_id,
            mirror.counterpart_user_id == Connection.owner_user_id,
        )
    ).filter(
        Connection.status != mirror.status,
        Connection.owner_user_id < Connection.counterpart_user_id,
    ).limit(limit).all()
    return [a if a.updated_at >= b.updated_at else b for a, b in rows]


def reconcile_all(db: Session, limit: Optional[int] = None) -> ReconcileReport:
    """
    One reconciliation pass: open sync issues first, then pairs with a missing
    mirror, then pairs whose statuses disagree. Commits once at the end.
    """
    limit = limit or settings.RECONCILE_BATCH_SIZE
    report = ReconcileReport()

    for issue in ConnectionsCRUD.open_sync_issues(db, limit=limit):
        if issue.resolved_at is not None:
            continue
        source = ConnectionsCRUD.get_connection(db, issue.owner_user_id, issue.counterpart_user_id)
        if source is None:
            # Nothing left to sync from; a surviving mirror is picked up by the orphan scan
            report.record(ReconcileOutcome.MISSING_SOURCE, issue.owner_user_id, issue.counterpart_user_id)
            issue.resolved_at = utcnow()
            issue.detail = "source removed"
            report.issues_resolved += 1
            continue
        outcome = _sync_from(db, source)
        report.record(outcome, issue.owner_user_id, issue.counterpart_user_id)
        report.issues_resolved += ConnectionsCRUD.resolve_sync_issues(db, issue.owner_user_id, issue.counterpart_user_id)
    db.flush()

    for source in _orphans(db, limit):
        report.record(_sync_from(db, source), source.owner_user_id, source.counterpart_user_id)
        report.issues_resolved += ConnectionsCRUD.resolve_sync_issues(db, source.owner_user_id, source.counterpart_user_id)
    db.flush()

    for source in _drifted_sources(db, limit):
        report.record(_sync_from(db, source), source.owner_user_id, source.counterpart_user_id)
        report.issues_resolved += ConnectionsCRUD.resolve_sync_issues(db, source.owner_user_id, source.counterpart_user_id)

    db.commit()
    logger.info(
        f"Reconcile pass: created={report.created} updated={report.updated} "
        f"missing_source={report.missing_source} issues_resolved={report.issues_resolved}"
    )
    return report
