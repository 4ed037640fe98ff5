import logging
from datetime import timedelta

import pytest

from app.crud import outbox
from app.crud.connections import ConnectionsCRUD
from app.errors import ConflictError, InvalidTransitionError, PermissionDeniedError, ValidationError
from app.models import Connection, ConnectionSyncIssue, OutboxEvent
from app.security.rules import AuthContext
from app.services import reconciliation
from app.services.reconciliation import ReconcileOutcome

ALICE = AuthContext(uid="alice")
BOB = AuthContext(uid="bob")
CAROL = AuthContext(uid="carol")


def _pair(db, a, b):
    return ConnectionsCRUD.get_connection(db, a, b), ConnectionsCRUD.get_connection(db, b, a)


def test_create_writes_one_record_per_side(db, users):
    own, mirror = ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob", "Let's trade")

    assert own.id == "alice_bob"
    assert own.path == "users/alice/connections/alice_bob"
    assert mirror.id == "bob_alice"
    assert own.created_at == mirror.created_at
    for record in (own, mirror):
        assert record.status == "pending"
        assert record.initiator_user_id == "alice"
        assert record.message == "Let's trade"
    assert db.query(Connection).count() == 2


def test_create_stages_notification_for_counterpart(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    events = db.query(OutboxEvent).filter(OutboxEvent.event_type == outbox.NOTIFICATION_CREATE).all()
    assert len(events) == 1
    assert events[0].payload["user_id"] == "bob"
    assert events[0].payload["related_id"] == "alice"


def test_cannot_connect_with_yourself(db, users):
    with pytest.raises(ValidationError):
        ConnectionsCRUD.create_connection(db, ALICE, "alice", "alice")


def test_duplicate_request_conflicts_from_either_side(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    with pytest.raises(ConflictError):
        ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    with pytest.raises(ConflictError):
        ConnectionsCRUD.create_connection(db, BOB, "bob", "alice")


def test_cannot_create_on_behalf_of_someone_else(db, users):
    with pytest.raises(PermissionDeniedError):
        ConnectionsCRUD.create_connection(db, CAROL, "alice", "bob")
    assert db.query(Connection).count() == 0


def test_accept_updates_both_sides(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    result = ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "accepted")

    assert result.mirror_updated is True
    assert result.sync_issue is None
    own, mirror = _pair(db, "bob", "alice")
    assert own.status == mirror.status == "accepted"


def test_counterparty_may_update_record_in_initiators_collection(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    # bob is neither the path owner nor the initiator, only the counterpart
    ConnectionsCRUD.update_connection_status(db, BOB, "alice", "bob", "accepted")

    alice_side, bob_side = _pair(db, "alice", "bob")
    assert alice_side.status == bob_side.status == "accepted"


def test_initiator_cannot_accept_own_request(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    with pytest.raises(PermissionDeniedError):
        ConnectionsCRUD.update_connection_status(db, ALICE, "alice", "bob", "accepted")

    alice_side, bob_side = _pair(db, "alice", "bob")
    assert alice_side.status == bob_side.status == "pending"


def test_outsider_cannot_update(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    with pytest.raises(PermissionDeniedError):
        ConnectionsCRUD.update_connection_status(db, CAROL, "alice", "bob", "rejected")


def test_admin_can_update(db, users, make_user):
    make_user("root", is_admin=True)
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    ConnectionsCRUD.update_connection_status(db, AuthContext(uid="root", is_admin=True), "alice", "bob", "rejected")

    alice_side, bob_side = _pair(db, "alice", "bob")
    assert alice_side.status == bob_side.status == "rejected"


def test_rejected_connection_cannot_be_accepted(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "rejected")

    with pytest.raises(InvalidTransitionError):
        ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "accepted")


def test_invalid_status_value(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    with pytest.raises(ValidationError):
        ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "blocked")


def test_rerequest_after_rejection_resets_both_records(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "rejected")

    own, mirror = ConnectionsCRUD.create_connection(db, BOB, "bob", "alice", "Second try")

    assert own.id == "bob_alice"
    assert own.status == mirror.status == "pending"
    assert own.initiator_user_id == mirror.initiator_user_id == "bob"
    assert db.query(Connection).count() == 2


def test_missing_mirror_updates_own_side_and_records_issue(db, users, caplog):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    db.delete(ConnectionsCRUD.get_connection(db, "alice", "bob"))
    db.commit()

    with caplog.at_level(logging.WARNING, logger="app"):
        result = ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "accepted")

    assert result.record.status == "accepted"
    assert result.mirror is None
    assert result.mirror_updated is False
    assert ConnectionsCRUD.get_connection(db, "bob", "alice").status == "accepted"

    issues = db.query(ConnectionSyncIssue).all()
    assert len(issues) == 1
    assert issues[0].owner_user_id == "bob"
    assert issues[0].counterpart_user_id == "alice"
    assert issues[0].expected_status == "accepted"
    assert issues[0].resolved_at is None

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert any("Mirror record missing" in r.getMessage() for r in warnings)


def test_reconcile_recreates_missing_mirror(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    db.delete(ConnectionsCRUD.get_connection(db, "alice", "bob"))
    db.commit()
    ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "accepted")

    outcome = reconciliation.reconcile_connection(db, "bob", "alice")

    assert outcome == ReconcileOutcome.CREATED
    bob_side, alice_side = _pair(db, "bob", "alice")
    assert alice_side is not None
    assert alice_side.id == "alice_bob"
    assert alice_side.status == "accepted"
    assert alice_side.created_at == bob_side.created_at
    assert ConnectionsCRUD.open_sync_issues(db) == []


def test_reconcile_in_sync_pair_is_a_no_op(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    assert reconciliation.reconcile_connection(db, "alice", "bob") == ReconcileOutcome.IN_SYNC


def test_reconcile_reports_missing_source(db, users):
    assert reconciliation.reconcile_connection(db, "alice", "bob") == ReconcileOutcome.MISSING_SOURCE


def _diverge(db):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    db.delete(ConnectionsCRUD.get_connection(db, "alice", "bob"))
    db.commit()
    ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "accepted")
    assert len(ConnectionsCRUD.open_sync_issues(db)) == 1


def test_removing_connection_resolves_its_sync_issues(db, users):
    _diverge(db)

    assert ConnectionsCRUD.remove_connection(db, BOB, "bob", "alice") is False

    assert ConnectionsCRUD.open_sync_issues(db) == []
    issue = db.query(ConnectionSyncIssue).one()
    assert issue.resolved_at is not None
    assert issue.detail == "connection removed"
    for _ in range(3):
        report = reconciliation.reconcile_all(db, limit=1)
        assert report.missing_source == 0
        assert report.created == 0


def test_reconcile_all_resolves_issue_whose_source_was_removed(db, users):
    _diverge(db)
    # Source record deleted outside remove_connection
    db.delete(ConnectionsCRUD.get_connection(db, "bob", "alice"))
    db.commit()

    report = reconciliation.reconcile_all(db, limit=1)

    assert report.missing_source == 1
    assert report.issues_resolved == 1
    assert ConnectionsCRUD.open_sync_issues(db) == []
    assert db.query(ConnectionSyncIssue).one().detail == "source removed"
    assert reconciliation.reconcile_all(db, limit=1).missing_source == 0


def test_reconcile_all_repairs_orphans_and_drift(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "accepted")
    ConnectionsCRUD.create_connection(db, CAROL, "carol", "alice")

    # Drift: alice's record was changed later than bob's
    alice_side = ConnectionsCRUD.get_connection(db, "alice", "bob")
    alice_side.status = "rejected"
    alice_side.updated_at = alice_side.updated_at + timedelta(minutes=5)
    # Orphan: carol's request lost its mirror
    db.delete(ConnectionsCRUD.get_connection(db, "alice", "carol"))
    db.commit()

    report = reconciliation.reconcile_all(db)

    assert report.updated == 1
    assert report.created == 1
    assert ConnectionsCRUD.get_connection(db, "bob", "alice").status == "rejected"
    restored = ConnectionsCRUD.get_connection(db, "alice", "carol")
    assert restored is not None
    assert restored.status == "pending"
    assert restored.initiator_user_id == "carol"


def test_accepted_iff_mirror_accepted_after_mixed_operations(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "carol")
    ConnectionsCRUD.update_connection_status(db, BOB, "alice", "bob", "accepted")
    ConnectionsCRUD.update_connection_status(db, CAROL, "carol", "alice", "rejected")

    for record in db.query(Connection).all():
        mirror = ConnectionsCRUD.find_mirror(db, record)
        assert mirror is not None
        assert (record.status == "accepted") == (mirror.status == "accepted")


def test_remove_connection_deletes_both_sides(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")

    assert ConnectionsCRUD.remove_connection(db, BOB, "bob", "alice") is True
    assert db.query(Connection).count() == 0


def test_list_connections_returns_own_records_only(db, users):
    ConnectionsCRUD.create_connection(db, ALICE, "alice", "bob")
    ConnectionsCRUD.create_connection(db, CAROL, "carol", "alice")
    ConnectionsCRUD.update_connection_status(db, BOB, "bob", "alice", "accepted")

    items, total = ConnectionsCRUD.list_connections(db, "alice")
    assert total == 2
    assert all(c.owner_user_id == "alice" for c in items)

    accepted, total = ConnectionsCRUD.list_connections(db, "alice", status="accepted")
    assert total == 1
    assert accepted[0].counterpart_user_id == "bob"
