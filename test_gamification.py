from unittest.mock import patch

import pytest

from app.crud import gamification
from app.crud.gamification import XPSource, calculate_level, challenge_completion_xp, trade_completion_amount
from app.models import XpTransaction


@pytest.mark.parametrize("total, level, to_next", [
    (0, 1, 101),
    (100, 1, 1),
    (101, 2, 150),
    (250, 2, 1),
    (251, 3, 250),
    (75000, 11, 1),
    (75001, 12, 0),
    (200000, 12, 0),
])
def test_level_boundaries(total, level, to_next):
    info = calculate_level(total)
    assert info.current_level == level
    assert info.xp_to_next_level == to_next
    assert 0 <= info.progress_percentage <= 100


def test_level_titles():
    assert calculate_level(0).title == "Newcomer"
    assert calculate_level(75001).title == "Immortal"


@pytest.mark.parametrize("quick, first, amount", [
    (False, False, 100),
    (True, False, 150),
    (False, True, 200),
    (True, True, 250),
])
def test_trade_completion_amount(quick, first, amount):
    assert trade_completion_amount(is_quick_response=quick, is_first_trade=first)[0] == amount


def test_challenge_completion_xp():
    assert challenge_completion_xp("beginner") == 100
    assert challenge_completion_xp("expert") == 500
    assert challenge_completion_xp("unknown") == 100
    assert challenge_completion_xp("expert", override=42) == 42


def test_award_xp_updates_total_and_level(db, users):
    result = gamification.award_xp(db, "alice", 80, XPSource.ADMIN_ADJUSTMENT, "a1")
    assert result.leveled_up is False
    assert result.total_xp == 80

    result = gamification.award_xp(db, "alice", 30, XPSource.TRADE_COMPLETION, "t1")
    assert result.leveled_up is True
    assert result.new_level == 2

    xp = gamification.get_user_xp(db, "alice")
    assert xp.total_xp == 110
    assert xp.current_level == 2
    assert xp.xp_to_next_level == 141


def test_award_xp_is_unique_per_source(db, users):
    gamification.award_xp(db, "alice", 100, XPSource.TRADE_COMPLETION, "t1")

    again = gamification.award_xp(db, "alice", 100, XPSource.TRADE_COMPLETION, "t1")

    assert again.duplicate is True
    assert again.xp_awarded == 0
    assert again.total_xp == 100
    assert db.query(XpTransaction).filter(XpTransaction.user_id == "alice").count() == 1
    # A different source id is a separate award
    gamification.award_xp(db, "alice", 100, XPSource.TRADE_COMPLETION, "t2")
    assert gamification.get_user_xp(db, "alice").total_xp == 200
    assert len(gamification.get_xp_history(db, "alice")) == 2


def test_award_xp_reads_total_under_lock(db, users):
    gamification.award_xp(db, "alice", 40, XPSource.TRADE_COMPLETION, "t1")

    with patch("app.crud.gamification.get_user_xp", wraps=gamification.get_user_xp) as read:
        result = gamification.award_xp(db, "alice", 60, XPSource.TRADE_COMPLETION, "t2")

    read.assert_called_once_with(db, "alice", for_update=True)
    assert result.total_xp == 100
