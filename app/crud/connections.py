from dataclasses import dataclass
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from app.crud import documents, outbox
from app.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from app.models.connection import Connection, ConnectionStatus, ConnectionSyncIssue
from app.models.user import User
from app.security.rules import AuthContext
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

@dataclass
class ConnectionUpdateResult:
    record: Connection
    mirror: Optional[Connection]
    mirror_updated: bool
    sync_issue: Optional[ConnectionSyncIssue] = None

class ConnectionsCRUD:
    """
    Dual-write maintenance of connections.

    A connection between A and B is two records: one in A's connections
    (counterpart B) and its mirror in B's connections (counterpart A). Both are
    written in the same transaction. When a status change finds the mirror
    missing, the caller's own record is still updated and the divergence is
    recorded as a sync issue for reconciliation.
    """

    ALLOWED_TRANSITIONS = {
        ConnectionStatus.PENDING.value: {ConnectionStatus.ACCEPTED.value, ConnectionStatus.REJECTED.value},
        ConnectionStatus.ACCEPTED.value: {ConnectionStatus.REJECTED.value},
        ConnectionStatus.REJECTED.value: set(),
    }

    @staticmethod
    def get_connection(db: Session, owner_id: str, counterpart_id: str) -> Optional[Connection]:
        """Read the record in ``owner_id``'s connections that points at ``counterpart_id``."""
        return db.query(Connection).filter(
            Connection.owner_user_id == owner_id,
            Connection.counterpart_user_id == counterpart_id
        ).first()

    @staticmethod
    def find_mirror(db: Session, record: Connection) -> Optional[Connection]:
        return ConnectionsCRUD.get_connection(db, record.counterpart_user_id, record.owner_user_id)

    @staticmethod
    def create_connection(
        db: Session,
        auth: AuthContext,
        initiator_id: str,
        counterpart_id: str,
        message: Optional[str] = None,
    ) -> Tuple[Connection, Connection]:
        """Create the initiator's record and its mirror; returns (own, mirror)."""
        if initiator_id == counterpart_id:
            raise ValidationError("Cannot connect with yourself")

        if db.query(User).filter(User.id == counterpart_id).first() is None:
            raise NotFoundError("User not found", details={"user_id": counterpart_id})

        own = ConnectionsCRUD.get_connection(db, initiator_id, counterpart_id)
        mirror = ConnectionsCRUD.get_connection(db, counterpart_id, initiator_id)
        if any(r is not None and r.status != ConnectionStatus.REJECTED.value for r in (own, mirror)):
            raise ConflictError(
                "A connection or pending request already exists between these users",
                details={"counterpart_user_id": counterpart_id},
            )

        now = utcnow()
        records: List[Connection] = []
        try:
            for owner, other, existing in ((initiator_id, counterpart_id, own), (counterpart_id, initiator_id, mirror)):
                fields = dict(
                    owner_user_id=owner,
                    counterpart_user_id=other,
                    initiator_user_id=initiator_id,
                    status=ConnectionStatus.PENDING.value,
                    message=message,
                    created_at=now,
                    updated_at=now,
                )
                if existing is None:
                    record = Connection(id=Connection.make_id(owner, other), **fields)
                    documents.authorize(db, auth, "create", record.path, data=record)
                    db.add(record)
                else:
                    # Re-request after a rejection reuses the deterministic IDs
                    documents.authorize(db, auth, "update", existing.path, resource=existing)
                    record = documents.set_fields(existing, **fields)
                records.append(record)

            outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                "user_id": counterpart_id,
                "type": "connection",
                "title": "New connection request",
                "content": message or "",
                "related_id": initiator_id,
            })
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Concurrent connection create {initiator_id} -> {counterpart_id}: {e}")
            raise ConflictError("Connection was created concurrently", details={"counterpart_user_id": counterpart_id})
        except Exception:
            db.rollback()
            raise

        logger.info(f"Connection requested {initiator_id} -> {counterpart_id}")
        return records[0], records[1]

    @staticmethod
    def update_connection_status(
        db: Session,
        auth: AuthContext,
        owner_id: str,
        counterpart_id: str,
        new_status: str,
    ) -> ConnectionUpdateResult:
        """
        Move the owner's record and its mirror to ``new_status``.

        The owner's record is the canonical side: it is updated even when the
        mirror cannot be found, in which case a warning is logged and a
        ConnectionSyncIssue is recorded instead of failing the call.
        """
        try:
            target = ConnectionStatus(new_status).value
        except ValueError:
            raise ValidationError(f"Invalid connection status: {new_status}")

        record = ConnectionsCRUD.get_connection(db, owner_id, counterpart_id)
        if record is None:
            raise NotFoundError(
                "Connection not found",
                details={"owner_user_id": owner_id, "counterpart_user_id": counterpart_id},
            )

        documents.authorize(db, auth, "update", record.path, resource=record)

        changed = record.status != target
        if changed:
            if target not in ConnectionsCRUD.ALLOWED_TRANSITIONS.get(record.status, set()):
                raise InvalidTransitionError(
                    f"Cannot move connection from {record.status} to {target}",
                    details={"from": record.status, "to": target},
                )
            if target == ConnectionStatus.ACCEPTED.value and auth.uid == record.initiator_user_id and not auth.is_admin:
                raise PermissionDeniedError("Only the invited user can accept a connection request")

        now = utcnow()
        sync_issue = None
        mirror_updated = False
        try:
            if changed:
                documents.set_fields(record, status=target, updated_at=now)

            mirror = ConnectionsCRUD.find_mirror(db, record)
            if mirror is None:
                logger.warning(
                    f"Mirror record missing for {record.path}: "
                    f"{counterpart_id}'s side not updated to {target}"
                )
                sync_issue = ConnectionSyncIssue(
                    owner_user_id=owner_id,
                    counterpart_user_id=counterpart_id,
                    expected_status=target,
                    detail="mirror record missing",
                    detected_at=now,
                )
                db.add(sync_issue)
            else:
                if mirror.status != target:
                    documents.authorize(db, auth, "update", mirror.path, resource=mirror)
                    documents.set_fields(mirror, status=target, updated_at=now)
                mirror_updated = True

            if changed and target == ConnectionStatus.ACCEPTED.value:
                outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                    "user_id": record.initiator_user_id,
                    "type": "connection",
                    "title": "Connection accepted",
                    "content": "",
                    "related_id": owner_id if record.initiator_user_id != owner_id else counterpart_id,
                })
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Connection {record.path} -> {target} (mirror_updated={mirror_updated})")
        return ConnectionUpdateResult(record=record, mirror=mirror, mirror_updated=mirror_updated, sync_issue=sync_issue)

    @staticmethod
    def remove_connection(db: Session, auth: AuthContext, owner_id: str, counterpart_id: str) -> bool:
        """Delete both records; returns whether the mirror was found and removed."""
        record = ConnectionsCRUD.get_connection(db, owner_id, counterpart_id)
        if record is None:
            raise NotFoundError(
                "Connection not found",
                details={"owner_user_id": owner_id, "counterpart_user_id": counterpart_id},
            )
        documents.authorize(db, auth, "delete", record.path, resource=record)

        try:
            mirror = ConnectionsCRUD.find_mirror(db, record)
            if mirror is None:
                logger.warning(f"Mirror record missing while removing {record.path}")
            else:
                documents.authorize(db, auth, "delete", mirror.path, resource=mirror)
                db.delete(mirror)
            db.delete(record)
            resolved = ConnectionsCRUD.resolve_sync_issues(db, owner_id, counterpart_id, detail="connection removed")
            db.commit()
        except Exception:
            db.rollback()
            raise
        if resolved:
            logger.info(f"Removing {record.path} resolved {resolved} open sync issue(s)")
        return mirror is not None

    @staticmethod
    def list_connections(
        db: Session,
        user_id: str,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Connection], int]:
        """The user's own connection records, newest first."""
        query = db.query(Connection).filter(Connection.owner_user_id == user_id)
        if status:
            query = query.filter(Connection.status == status)
        query = query.order_by(Connection.created_at.desc(), Connection.id)
        total = query.count()
        items = query.offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    @staticmethod
    def resolve_sync_issues(db: Session, user_a: str, user_b: str, detail: Optional[str] = None) -> int:
        """Close the open sync issues recorded for the pair, in either direction. The caller commits."""
        now = utcnow()
        issues = db.query(ConnectionSyncIssue).filter(
            ConnectionSyncIssue.resolved_at.is_(None),
            ConnectionSyncIssue.owner_user_id.in_([user_a, user_b]),
            ConnectionSyncIssue.counterpart_user_id.in_([user_a, user_b]),
        ).all()
        resolved = 0
        for issue in issues:
            # Issues resolved earlier in the same transaction are not flushed yet
            if issue.resolved_at is None:
                issue.resolved_at = now
                if detail:
                    issue.detail = detail
                resolved += 1
        return resolved

    @staticmethod
    def open_sync_issues(db: Session, limit: int = 100) -> List[ConnectionSyncIssue]:
        return db.query(ConnectionSyncIssue).filter(
            ConnectionSyncIssue.resolved_at.is_(None)
        ).order_by(ConnectionSyncIssue.detected_at.asc()).limit(limit).all()
