"""
Trade status transitions.

    open -> proposed -> accepted -> in-progress -> pending-confirmation -> completed
                                                   pending-confirmation <-> change-requested

cancelled and disputed can be reached from every non-terminal state.
completed, cancelled and disputed are terminal.
"""
from typing import Dict, FrozenSet, Iterable

from app.errors import InvalidTransitionError
from app.models.trade import TradeStatus

S = TradeStatus

_EXITS = {S.CANCELLED.value, S.DISPUTED.value}

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.OPEN.value: frozenset({S.PROPOSED.value} | _EXITS),
    S.PROPOSED.value: frozenset({S.OPEN.value, S.ACCEPTED.value} | _EXITS),
    S.ACCEPTED.value: frozenset({S.IN_PROGRESS.value} | _EXITS),
    S.IN_PROGRESS.value: frozenset({S.PENDING_CONFIRMATION.value} | _EXITS),
    S.PENDING_CONFIRMATION.value: frozenset({S.COMPLETED.value, S.CHANGE_REQUESTED.value} | _EXITS),
    S.CHANGE_REQUESTED.value: frozenset({S.PENDING_CONFIRMATION.value} | _EXITS),
    S.COMPLETED.value: frozenset(),
    S.CANCELLED.value: frozenset(),
    S.DISPUTED.value: frozenset(),
}

TERMINAL = frozenset(status for status, exits in TRANSITIONS.items() if not exits)


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Trade cannot move from {current} to {target}",
            details={"from": current, "to": target},
        )


def ensure_status(current: str, allowed: Iterable[str], action: str) -> None:
    allowed = tuple(allowed)
    if current not in allowed:
        raise InvalidTransitionError(
            f"Cannot {action} a trade that is {current}",
            details={"status": current, "allowed": list(allowed)},
        )


def is_terminal(status: str) -> bool:
    return status in TERMINAL
