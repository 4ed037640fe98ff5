import pytest

from app.errors import PermissionDeniedError
from app.security.rules import RULES, AuthContext, Rule, RuleSet, id_owned_by

ALICE = AuthContext(uid="alice")
BOB = AuthContext(uid="bob")
CAROL = AuthContext(uid="carol")
ADMIN = AuthContext(uid="root", is_admin=True)

CONNECTION = {
    "owner_user_id": "alice",
    "counterpart_user_id": "bob",
    "initiator_user_id": "alice",
    "status": "pending",
}


def test_user_challenge_create_allowed_for_own_prefix():
    assert RULES.evaluate("create", "userChallenges/alice_ch1", ALICE, resource=None, data={"user_id": "alice"})


def test_user_challenge_create_denied_for_another_users_prefix():
    assert not RULES.evaluate("create", "userChallenges/alice_ch1", BOB, resource=None, data={"user_id": "bob"})


def test_user_challenge_read_of_missing_document_uses_id_prefix():
    assert RULES.evaluate("read", "userChallenges/alice_ch1", ALICE, resource=None)
    assert not RULES.evaluate("read", "userChallenges/alice_ch1", BOB, resource=None)


def test_user_challenge_existing_document_uses_stored_owner():
    stored = {"user_id": "alice", "challenge_id": "ch1"}
    assert RULES.evaluate("update", "userChallenges/alice_ch1", ALICE, resource=stored)
    assert not RULES.evaluate("update", "userChallenges/alice_ch1", BOB, resource=stored)
    # Existing documents cannot be created again
    assert not RULES.evaluate("create", "userChallenges/alice_ch1", ALICE, resource=stored)


@pytest.mark.parametrize("uid, doc_id, expected", [
    ("alice", "alice_ch1", True),
    ("alice", "alice_", False),
    ("alice", "alice", False),
    ("ali", "alice_ch1", False),
    ("alice", "xalice_ch1", False),
    ("a.b", "axb_ch1", False),
    ("a.b", "a.b_ch1", True),
    (None, "alice_ch1", False),
])
def test_id_prefix_is_literal(uid, doc_id, expected):
    assert id_owned_by(doc_id, uid) is expected


@pytest.mark.parametrize("auth, expected", [
    (ALICE, True),
    (BOB, True),
    (CAROL, False),
    (ADMIN, True),
    (AuthContext(uid=None), False),
])
def test_connection_update_any_party_or_admin(auth, expected):
    path = "users/alice/connections/alice_bob"
    assert RULES.evaluate("update", path, auth, resource=CONNECTION) is expected


def test_connection_update_allows_path_owner_of_mirror():
    mirror = dict(CONNECTION, owner_user_id="bob", counterpart_user_id="alice")
    assert RULES.evaluate("update", "users/bob/connections/bob_alice", BOB, resource=mirror)
    assert RULES.evaluate("update", "users/bob/connections/bob_alice", ALICE, resource=mirror)


def test_connection_update_of_missing_record_denied():
    assert not RULES.evaluate("update", "users/alice/connections/alice_bob", ALICE, resource=None)


def test_connection_create_requires_initiator_and_matching_id():
    path = "users/alice/connections/alice_bob"
    assert RULES.evaluate("create", path, ALICE, data=CONNECTION)
    assert not RULES.evaluate("create", path, BOB, data=CONNECTION)
    assert not RULES.evaluate("create", "users/alice/connections/bob_alice", ALICE, data=CONNECTION)
    assert not RULES.evaluate("create", "users/carol/connections/alice_bob", ALICE, data=CONNECTION)


def test_proposal_create_looks_up_trade_creator():
    trades = {"trades/t1": {"creator_id": "alice", "participant_id": None}}
    path = "trades/t1/proposals/p1"

    def get(p):
        return trades.get(p)

    data = {"trade_id": "t1", "proposer_user_id": "bob"}
    assert RULES.evaluate("create", path, BOB, data=data, get=get)
    own_trade = {"trade_id": "t1", "proposer_user_id": "alice"}
    assert not RULES.evaluate("create", path, ALICE, data=own_trade, get=get)
    assert not RULES.evaluate("create", path, CAROL, data=data, get=get)
    assert RULES.evaluate("update", path, ALICE, resource=data, get=get)
    assert not RULES.evaluate("update", path, BOB, resource=data, get=get)


def test_xp_ledger_is_admin_only():
    assert not RULES.evaluate("create", "xpTransactions/x1", ALICE, data={"user_id": "alice"})
    assert RULES.evaluate("create", "xpTransactions/x1", ADMIN, data={"user_id": "alice"})


def test_unmatched_path_and_system_writer():
    assert not RULES.evaluate("read", "secrets/x", ADMIN)
    assert RULES.evaluate("update", "userXP/alice", AuthContext.system())


def test_enforce_raises_permission_denied():
    with pytest.raises(PermissionDeniedError) as exc:
        RULES.enforce("create", "userChallenges/alice_ch1", BOB, resource=None)
    assert exc.value.details["path"] == "userChallenges/alice_ch1"


def test_rule_write_shorthand_and_missing_operation():
    rules = RuleSet([Rule("things/{id}", write=lambda req, params: True)])
    for op in ("create", "update", "delete"):
        assert rules.evaluate(op, "things/1", ALICE)
    assert not rules.evaluate("read", "things/1", ALICE)
    with pytest.raises(ValueError):
        Rule("things/{id}", list=lambda req, params: True)
