"""
Declarative authorization rules for client-initiated document writes.

Each rule binds a document path pattern such as
``users/{userId}/connections/{connectionId}`` to predicates keyed by
operation (``read``, ``create``, ``update``, ``delete``; ``write`` is shorthand
for the last three). A predicate receives the :class:`RuleRequest` and the
wildcards captured from the path. Access is granted when the predicate for the
requested operation on the first matching rule returns True; anything else is
denied.

Predicates only see the request: the authenticated identity, the stored
document (``resource``, None when the document does not exist yet), the
incoming document (``data``) and a ``get`` callable for reading other
documents by path.
"""
import re
from dataclasses import dataclass, field as dc_field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from app.errors import PermissionDeniedError
from app.utils.logger import get_logger

logger = get_logger(__name__)

OPERATIONS = ("read", "create", "update", "delete")

Predicate = Callable[["RuleRequest", Dict[str, str]], bool]


@dataclass(frozen=True)
class AuthContext:
    """Identity the rules are evaluated against."""
    uid: Optional[str]
    is_admin: bool = False
    # Trusted server-side writers (jobs, side-effect handlers) skip rule checks
    is_system: bool = False

    @classmethod
    def system(cls) -> "AuthContext":
        return cls(uid=None, is_admin=True, is_system=True)


@dataclass
class RuleRequest:
    auth: Optional[AuthContext]
    path: str
    resource: Any = None
    data: Any = None
    get: Callable[[str], Any] = dc_field(default=lambda path: None)

    @property
    def uid(self) -> Optional[str]:
        return self.auth.uid if self.auth else None

    @property
    def doc_id(self) -> str:
        return self.path.rsplit("/", 1)[-1]


def field(doc: Any, name: str, default: Any = None) -> Any:
    """Read a field from a mapping or an ORM object."""
    if doc is None:
        return default
    if isinstance(doc, Mapping):
        return doc.get(name, default)
    return getattr(doc, name, default)


# -------------------------
# Predicate building blocks
# -------------------------

def signed_in(req: RuleRequest) -> bool:
    return bool(req.uid)

def admin(req: RuleRequest) -> bool:
    return bool(req.auth and req.auth.is_admin and req.uid)

def id_owned_by(doc_id: str, uid: Optional[str]) -> bool:
    """True when ``doc_id`` has the form ``{uid}_{suffix}`` with a non-empty suffix."""
    if not uid:
        return False
    return re.fullmatch(rf"{re.escape(uid)}_.+", doc_id, flags=re.DOTALL) is not None

def requester_is(req: RuleRequest, *candidates: Any) -> bool:
    return signed_in(req) and any(c is not None and c == req.uid for c in candidates)


class Rule:
    def __init__(self, pattern: str, **allow: Predicate):
        self.pattern = pattern
        self._segments = pattern.split("/")
        self.allow: Dict[str, Predicate] = {}
        write = allow.pop("write", None)
        if write is not None:
            for op in ("create", "update", "delete"):
                self.allow[op] = write
        unknown = set(allow) - set(OPERATIONS)
        if unknown:
            raise ValueError(f"Unknown operations in rule {pattern}: {sorted(unknown)}")
        self.allow.update(allow)

    def match(self, path: str) -> Optional[Dict[str, str]]:
        parts = path.strip("/").split("/")
        if len(parts) != len(self._segments):
            return None
        params: Dict[str, str] = {}
        for segment, part in zip(self._segments, parts):
            if not part:
                return None
            if segment.startswith("{") and segment.endswith("}"):
                params[segment[1:-1]] = part
            elif segment != part:
                return None
        return params


class RuleSet:
    def __init__(self, rules: Iterable[Rule]):
        self.rules: List[Rule] = list(rules)

    def evaluate(
        self,
        operation: str,
        path: str,
        auth: Optional[AuthContext],
        resource: Any = None,
        data: Any = None,
        get: Optional[Callable[[str], Any]] = None,
    ) -> bool:
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        if auth is not None and auth.is_system:
            return True
        request = RuleRequest(auth=auth, path=path, resource=resource, data=data)
        if get is not None:
            request.get = get
        for rule in self.rules:
            params = rule.match(path)
            if params is None:
                continue
            predicate = rule.allow.get(operation)
            if predicate is None:
                return False
            return bool(predicate(request, params))
        return False

    def enforce(
        self,
        operation: str,
        path: str,
        auth: Optional[AuthContext],
        resource: Any = None,
        data: Any = None,
        get: Optional[Callable[[str], Any]] = None,
    ) -> None:
        if not self.evaluate(operation, path, auth, resource=resource, data=data, get=get):
            uid = auth.uid if auth else None
            logger.warning(f"Permission denied: {operation} {path} by {uid or 'anonymous'}")
            raise PermissionDeniedError(
                f"Missing or insufficient permissions to {operation} {path}",
                details={"operation": operation, "path": path},
            )


# -------------------------
# Rule predicates per collection
# -------------------------

def _connection_party(req: RuleRequest, params: Dict[str, str]) -> bool:
    # Either side of the relationship may change its status, whichever
    # subcollection physically holds the record.
    if req.resource is None:
        return False
    return admin(req) or requester_is(
        req,
        params["userId"],
        field(req.resource, "owner_user_id"),
        field(req.resource, "counterpart_user_id"),
        field(req.resource, "initiator_user_id"),
    )

def _connection_read(req: RuleRequest, params: Dict[str, str]) -> bool:
    return admin(req) or requester_is(req, params["userId"], field(req.resource, "counterpart_user_id"))

def _connection_create(req: RuleRequest, params: Dict[str, str]) -> bool:
    data = req.data
    if data is None or not signed_in(req):
        return False
    owner = field(data, "owner_user_id")
    counterpart = field(data, "counterpart_user_id")
    return (
        owner == params["userId"]
        and req.doc_id == f"{owner}_{counterpart}"
        and field(data, "initiator_user_id") == req.uid
        and req.uid in (owner, counterpart)
    )

def _user_challenge_access(req: RuleRequest, params: Dict[str, str]) -> bool:
    if admin(req):
        return True
    if req.resource is None:
        # Nothing stored yet: authorize on the ID structure "{uid}_{challengeId}"
        return id_owned_by(params["docId"], req.uid)
    return requester_is(req, field(req.resource, "user_id"))

def _user_challenge_create(req: RuleRequest, params: Dict[str, str]) -> bool:
    if admin(req):
        return True
    if req.resource is not None or not id_owned_by(params["docId"], req.uid):
        return False
    return req.data is None or field(req.data, "user_id") == req.uid

def _user_challenge_update(req: RuleRequest, params: Dict[str, str]) -> bool:
    if req.resource is None:
        return False
    return admin(req) or requester_is(req, field(req.resource, "user_id"))

def _trade_party(req: RuleRequest, params: Dict[str, str]) -> bool:
    if req.resource is None:
        return False
    return admin(req) or requester_is(
        req, field(req.resource, "creator_id"), field(req.resource, "participant_id")
    )

def _trade_delete(req: RuleRequest, params: Dict[str, str]) -> bool:
    if req.resource is None:
        return False
    return admin(req) or (
        requester_is(req, field(req.resource, "creator_id")) and field(req.resource, "status") == "open"
    )

def _proposal_read(req: RuleRequest, params: Dict[str, str]) -> bool:
    trade = req.get(f"trades/{params['tradeId']}")
    return admin(req) or requester_is(
        req, field(req.resource, "proposer_user_id"), field(trade, "creator_id")
    )

def _proposal_create(req: RuleRequest, params: Dict[str, str]) -> bool:
    trade = req.get(f"trades/{params['tradeId']}")
    if trade is None or req.data is None:
        return False
    return (
        requester_is(req, field(req.data, "proposer_user_id"))
        and field(req.data, "trade_id") == params["tradeId"]
        and field(trade, "creator_id") != req.uid
    )

def _proposal_update(req: RuleRequest, params: Dict[str, str]) -> bool:
    trade = req.get(f"trades/{params['tradeId']}")
    return admin(req) or requester_is(req, field(trade, "creator_id"))

def _owner_of_path(req: RuleRequest, params: Dict[str, str]) -> bool:
    return admin(req) or requester_is(req, params["userId"])

def _portfolio_read(req: RuleRequest, params: Dict[str, str]) -> bool:
    return _owner_of_path(req, params) or (signed_in(req) and bool(field(req.resource, "visible")))

def _notification_owner(req: RuleRequest, params: Dict[str, str]) -> bool:
    return admin(req) or requester_is(req, field(req.resource, "user_id"))

def _admin_only(req: RuleRequest, params: Dict[str, str]) -> bool:
    return admin(req)

def _signed_in(req: RuleRequest, params: Dict[str, str]) -> bool:
    return signed_in(req)


RULES = RuleSet([
    Rule(
        "users/{userId}",
        read=_signed_in,
        create=_owner_of_path,
        update=_owner_of_path,
        delete=_admin_only,
    ),
    Rule(
        "users/{userId}/connections/{connectionId}",
        read=_connection_read,
        create=_connection_create,
        update=_connection_party,
        delete=_connection_party,
    ),
    Rule(
        "users/{userId}/portfolio/{itemId}",
        read=_portfolio_read,
        write=_owner_of_path,
    ),
    Rule(
        "userChallenges/{docId}",
        read=_user_challenge_access,
        create=_user_challenge_create,
        update=_user_challenge_update,
        delete=_user_challenge_update,
    ),
    Rule(
        "trades/{tradeId}",
        read=_signed_in,
        create=lambda req, params: requester_is(req, field(req.data, "creator_id")),
        update=_trade_party,
        delete=_trade_delete,
    ),
    Rule(
        "trades/{tradeId}/proposals/{proposalId}",
        read=_proposal_read,
        create=_proposal_create,
        update=_proposal_update,
        delete=_admin_only,
    ),
    Rule(
        "notifications/{notificationId}",
        read=_notification_owner,
        create=_admin_only,
        update=_notification_owner,
        delete=_notification_owner,
    ),
    Rule("userXP/{userId}", read=_owner_of_path, write=_admin_only),
    Rule("xpTransactions/{transactionId}", read=_signed_in, write=_admin_only),
])
