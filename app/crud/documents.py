"""
Path-addressed access to stored records.

Records are addressed the way clients and the security rules see them
(``users/{uid}/connections/{id}``, ``trades/{id}/proposals/{id}``,
``userChallenges/{id}``...). This module maps those paths onto ORM models and
wraps the read/query/write primitives the CRUD modules build on, including the
rule check that guards every client-initiated write.
"""
import re
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy.orm import Session

from app.models import (
    User, Connection, Trade, TradeProposal, UserChallenge,
    PortfolioItem, Notification, UserXP, XpTransaction,
)
from app.security.rules import RULES, AuthContext
from app.utils.clock import utcnow

# (path regex, model, {column: group name})
_PATHS: List[Tuple[re.Pattern, Type, Dict[str, str]]] = [
    (re.compile(r"^users/(?P<uid>[^/]+)$"), User, {"id": "uid"}),
    (re.compile(r"^users/(?P<uid>[^/]+)/connections/(?P<id>[^/]+)$"), Connection,
     {"owner_user_id": "uid", "id": "id"}),
    (re.compile(r"^users/(?P<uid>[^/]+)/portfolio/(?P<id>[^/]+)$"), PortfolioItem,
     {"user_id": "uid", "id": "id"}),
    (re.compile(r"^trades/(?P<id>[^/]+)$"), Trade, {"id": "id"}),
    (re.compile(r"^trades/(?P<tid>[^/]+)/proposals/(?P<id>[^/]+)$"), TradeProposal,
     {"trade_id": "tid", "id": "id"}),
    (re.compile(r"^userChallenges/(?P<id>[^/]+)$"), UserChallenge, {"id": "id"}),
    (re.compile(r"^notifications/(?P<id>[^/]+)$"), Notification, {"id": "id"}),
    (re.compile(r"^userXP/(?P<uid>[^/]+)$"), UserXP, {"user_id": "uid"}),
    (re.compile(r"^xpTransactions/(?P<id>[^/]+)$"), XpTransaction, {"id": "id"}),
]


def resolve(path: str) -> Tuple[Type, Dict[str, str]]:
    """Map a document path onto its model and key columns."""
    for pattern, model, columns in _PATHS:
        m = pattern.match(path.strip("/"))
        if m:
            return model, {column: m.group(group) for column, group in columns.items()}
    raise ValueError(f"Unknown document path: {path}")


def get_document(db: Session, path: str) -> Optional[Any]:
    """Read one record by path; None when it does not exist."""
    model, keys = resolve(path)
    return db.query(model).filter_by(**keys).first()


def set_fields(record: Any, **fields) -> Any:
    """Apply a partial update and bump ``updated_at`` when the model has one."""
    for name, value in fields.items():
        setattr(record, name, value)
    if hasattr(record, "updated_at") and "updated_at" not in fields:
        record.updated_at = utcnow()
    return record


def authorize(
    db: Session,
    auth: AuthContext,
    operation: str,
    path: str,
    resource: Any = None,
    data: Any = None,
) -> None:
    """Evaluate the security rules for a write or read; raises PermissionDeniedError."""
    RULES.enforce(
        operation, path, auth,
        resource=resource, data=data,
        get=lambda other: get_document(db, other),
    )
