import pytest

from app.crud import challenges, gamification, outbox
from app.crud.portfolio import list_portfolio
from app.errors import ConflictError, InvalidTransitionError, PermissionDeniedError, ValidationError
from app.models import OutboxEvent, UserChallenge
from app.security.rules import AuthContext
from app.services import side_effects

ALICE = AuthContext(uid="alice")
BOB = AuthContext(uid="bob")
ADMIN = AuthContext(uid="root", is_admin=True)


@pytest.fixture
def challenge(db, users):
    return challenges.create_challenge(
        db, ADMIN, "Build a portfolio site", description="Ship it in a week", difficulty="advanced"
    )


def _xp_events(db):
    return db.query(OutboxEvent).filter(OutboxEvent.event_type == outbox.XP_AWARD).all()


def test_join_creates_deterministic_record(db, challenge):
    record = challenges.join_challenge(db, ALICE, "alice", challenge.id)

    assert record.id == f"alice_{challenge.id}"
    assert record.path == f"userChallenges/alice_{challenge.id}"
    assert record.status == "active"
    assert record.progress == 0

    events = _xp_events(db)
    assert len(events) == 1
    assert events[0].payload["amount"] == 10
    assert events[0].payload["source"] == "challenge_join"


def test_join_twice_conflicts(db, challenge):
    challenges.join_challenge(db, ALICE, "alice", challenge.id)
    with pytest.raises(ConflictError):
        challenges.join_challenge(db, ALICE, "alice", challenge.id)
    assert db.query(UserChallenge).count() == 1


def test_cannot_join_for_someone_else(db, challenge):
    with pytest.raises(PermissionDeniedError):
        challenges.join_challenge(db, ALICE, "bob", challenge.id)
    assert db.query(UserChallenge).count() == 0


def test_cannot_join_draft_challenge(db, users):
    draft = challenges.create_challenge(db, ADMIN, "Not ready", status="draft")
    with pytest.raises(InvalidTransitionError):
        challenges.join_challenge(db, ALICE, "alice", draft.id)


def test_rejoin_after_abandon_reactivates_same_record(db, challenge):
    challenges.join_challenge(db, ALICE, "alice", challenge.id)
    challenges.update_progress(db, ALICE, "alice", challenge.id, 40)
    challenges.abandon_challenge(db, ALICE, "alice", challenge.id)

    record = challenges.join_challenge(db, ALICE, "alice", challenge.id)

    assert record.status == "active"
    assert record.progress == 0
    assert db.query(UserChallenge).count() == 1
    # The join reward is only paid once
    assert len(_xp_events(db)) == 1


def test_progress_rules(db, challenge):
    challenges.join_challenge(db, ALICE, "alice", challenge.id)
    with pytest.raises(ValidationError):
        challenges.update_progress(db, ALICE, "alice", challenge.id, 101)
    with pytest.raises(PermissionDeniedError):
        challenges.update_progress(db, BOB, "alice", challenge.id, 50)

    assert challenges.update_progress(db, ALICE, "alice", challenge.id, 50).progress == 50


def test_complete_awards_difficulty_xp_and_portfolio_item(db, challenge):
    challenges.join_challenge(db, ALICE, "alice", challenge.id)
    record = challenges.complete_challenge(db, ALICE, "alice", challenge.id)
    assert record.status == "completed"
    assert record.progress == 100

    report = side_effects.dispatch_pending(db)

    assert report.failed == 0
    assert gamification.get_user_xp(db, "alice").total_xp == 10 + 350
    items = list_portfolio(db, "alice")
    assert len(items) == 1
    assert items[0].source_type == "challenge"
    assert items[0].title == "Build a portfolio site"

    with pytest.raises(InvalidTransitionError):
        challenges.abandon_challenge(db, ALICE, "alice", challenge.id)


def test_only_admins_create_challenges(db, users):
    with pytest.raises(PermissionDeniedError):
        challenges.create_challenge(db, ALICE, "Mine")
    with pytest.raises(ValidationError):
        challenges.create_challenge(db, ADMIN, "Bad", difficulty="legendary")


def test_list_my_challenges(db, challenge):
    challenges.join_challenge(db, ALICE, "alice", challenge.id)

    mine, total = challenges.list_my_challenges(db, "alice")
    assert total == 1
    assert mine[0].challenge_id == challenge.id
    assert challenges.list_my_challenges(db, "bob")[1] == 0
