from dataclasses import dataclass
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from app.models.gamification import UserXP, XpTransaction
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

# (level, title, min_xp, max_xp); the last tier is open-ended
LEVEL_TIERS: List[Tuple[int, str, int, Optional[int]]] = [
    (1, "Newcomer", 0, 100),
    (2, "Explorer", 101, 250),
    (3, "Contributor", 251, 500),
    (4, "Specialist", 501, 1000),
    (5, "Expert", 1001, 2000),
    (6, "Master", 2001, 5000),
    (7, "Legend", 5001, 10000),
    (8, "Champion", 10001, 20000),
    (9, "Virtuoso", 20001, 35000),
    (10, "Elite", 35001, 50000),
    (11, "Mythic", 50001, 75000),
    (12, "Immortal", 75001, None),
]

XP_VALUES = {
    "TRADE_COMPLETION": 100,
    "QUICK_RESPONSE_BONUS": 50,
    "FIRST_TRADE_BONUS": 100,
    "EVIDENCE_SUBMISSION": 25,
    "CHALLENGE_JOIN": 10,
    "CHALLENGE_COMPLETION_BEGINNER": 100,
    "CHALLENGE_COMPLETION_INTERMEDIATE": 200,
    "CHALLENGE_COMPLETION_ADVANCED": 350,
    "CHALLENGE_COMPLETION_EXPERT": 500,
}

class XPSource:
    TRADE_COMPLETION = "trade_completion"
    CHALLENGE_JOIN = "challenge_join"
    CHALLENGE_COMPLETION = "challenge_completion"
    EVIDENCE_SUBMISSION = "evidence_submission"
    ADMIN_ADJUSTMENT = "admin_adjustment"

@dataclass
class LevelInfo:
    current_level: int
    title: str
    xp_to_next_level: int
    progress_percentage: float

@dataclass
class XPAwardResult:
    xp_awarded: int
    total_xp: int
    leveled_up: bool
    new_level: Optional[int] = None
    duplicate: bool = False

def calculate_level(total_xp: int) -> LevelInfo:
    """Level, title and distance to the next level for a running XP total."""
    level, title, min_xp, max_xp = LEVEL_TIERS[0]
    for tier in LEVEL_TIERS:
        if total_xp >= tier[2]:
            level, title, min_xp, max_xp = tier

    next_tier = next((t for t in LEVEL_TIERS if t[0] == level + 1), None)
    xp_to_next = max(0, next_tier[2] - total_xp) if next_tier else 0

    span_end = max_xp if max_xp is not None else total_xp + 1000
    span = max(1, span_end - min_xp)
    progress = min(100.0, ((total_xp - min_xp) / span) * 100)
    return LevelInfo(current_level=level, title=title, xp_to_next_level=xp_to_next, progress_percentage=round(progress, 2))

def challenge_completion_xp(difficulty: str, override: Optional[int] = None) -> int:
    if override is not None:
        return override
    key = f"CHALLENGE_COMPLETION_{(difficulty or 'beginner').upper()}"
    return XP_VALUES.get(key, XP_VALUES["CHALLENGE_COMPLETION_BEGINNER"])

def get_user_xp(db: Session, user_id: str, for_update: bool = False) -> Optional[UserXP]:
    query = db.query(UserXP).filter(UserXP.user_id == user_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()

def get_xp_history(db: Session, user_id: str, limit: int = 50) -> List[XpTransaction]:
    return db.query(XpTransaction).filter(
        XpTransaction.user_id == user_id
    ).order_by(XpTransaction.created_at.desc()).limit(limit).all()

def has_award(db: Session, user_id: str, source: str, source_id: str = "") -> bool:
    return db.query(XpTransaction.id).filter(
        XpTransaction.user_id == user_id,
        XpTransaction.source == source,
        XpTransaction.source_id == source_id
    ).first() is not None

def award_xp(
    db: Session,
    user_id: str,
    amount: int,
    source: str,
    source_id: str = "",
    description: Optional[str] = None,
) -> XPAwardResult:
    """
    Append a ledger entry and update the user's running total.

    An award is unique per (user, source, source_id); repeating one returns
    the current total with ``duplicate=True`` and changes nothing. The caller
    commits. The running total is read under a row lock so concurrent awards
    for one user are applied one after the other.
    """
    current = get_user_xp(db, user_id, for_update=True)
    if has_award(db, user_id, source, source_id):
        total = current.total_xp if current else 0
        return XPAwardResult(xp_awarded=0, total_xp=total, leveled_up=False, duplicate=True)

    if current is None:
        current = UserXP(user_id=user_id, total_xp=0, current_level=1,
                         xp_to_next_level=calculate_level(0).xp_to_next_level)
        db.add(current)

    previous_level = current.current_level
    new_total = current.total_xp + amount
    level = calculate_level(new_total)

    current.total_xp = new_total
    current.current_level = level.current_level
    current.xp_to_next_level = level.xp_to_next_level
    current.last_updated = utcnow()

    db.add(XpTransaction(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description or f"{source} reward",
    ))
    db.flush()

    leveled_up = level.current_level > previous_level
    if leveled_up:
        logger.info(f"User {user_id} reached level {level.current_level} ({level.title})")
    return XPAwardResult(
        xp_awarded=amount,
        total_xp=new_total,
        leveled_up=leveled_up,
        new_level=level.current_level if leveled_up else None,
    )

def trade_completion_amount(is_quick_response: bool = False, is_first_trade: bool = False) -> Tuple[int, str]:
    amount = XP_VALUES["TRADE_COMPLETION"]
    description = "Trade completion"
    if is_quick_response:
        amount += XP_VALUES["QUICK_RESPONSE_BONUS"]
        description += " (quick response bonus)"
    if is_first_trade:
        amount += XP_VALUES["FIRST_TRADE_BONUS"]
        description += " (first trade bonus)"
    return amount, description
