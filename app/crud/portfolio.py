from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from app.crud import documents
from app.errors import NotFoundError
from app.models.portfolio import PortfolioItem
from app.models.trade import Trade
from app.models.challenge import UserChallenge
from app.security.rules import AuthContext

def _skill_names(skills: List[Any]) -> List[str]:
    names = []
    for skill in skills or []:
        if isinstance(skill, dict):
            name = skill.get("name")
        else:
            name = str(skill)
        if name:
            names.append(name)
    return names

def get_item_for_source(db: Session, user_id: str, source_type: str, source_id: str) -> Optional[PortfolioItem]:
    return db.query(PortfolioItem).filter(
        PortfolioItem.user_id == user_id,
        PortfolioItem.source_type == source_type,
        PortfolioItem.source_id == source_id
    ).first()

def generate_trade_portfolio_item(db: Session, trade: Trade, user_id: str, visible: bool = True) -> PortfolioItem:
    """
    Build the portfolio entry a completed trade earns ``user_id``.

    The creator showcases the skills they offered, the participant the skills
    the creator wanted. Existing entries for the same trade are returned as is.
    """
    existing = get_item_for_source(db, user_id, "trade", trade.id)
    if existing:
        return existing

    is_creator = user_id == trade.creator_id
    other_id = trade.participant_id if is_creator else trade.creator_id
    item = PortfolioItem(
        user_id=user_id,
        source_type="trade",
        source_id=trade.id,
        title=trade.title,
        description=trade.description or "",
        skills=_skill_names(trade.skills_offered if is_creator else trade.skills_wanted),
        evidence=list(trade.completion_evidence or []),
        collaborators=[{"id": other_id, "role": "participant" if is_creator else "creator"}],
        completed_at=trade.completion_confirmed_at or trade.updated_at,
        visible=visible,
    )
    db.add(item)
    db.flush()
    return item

def generate_challenge_portfolio_item(db: Session, user_challenge: UserChallenge, visible: bool = True) -> PortfolioItem:
    existing = get_item_for_source(db, user_challenge.user_id, "challenge", user_challenge.challenge_id)
    if existing:
        return existing

    challenge = user_challenge.challenge
    item = PortfolioItem(
        user_id=user_challenge.user_id,
        source_type="challenge",
        source_id=user_challenge.challenge_id,
        title=challenge.title if challenge else "Challenge",
        description=(challenge.description if challenge else "") or "",
        skills=[],
        evidence=[],
        collaborators=[],
        completed_at=user_challenge.completed_at,
        visible=visible,
    )
    db.add(item)
    db.flush()
    return item

def list_portfolio(db: Session, user_id: str, include_hidden: bool = False) -> List[PortfolioItem]:
    query = db.query(PortfolioItem).filter(PortfolioItem.user_id == user_id)
    if not include_hidden:
        query = query.filter(PortfolioItem.visible.is_(True))
    return query.order_by(
        PortfolioItem.pinned.desc(),
        PortfolioItem.completed_at.desc()
    ).all()

def update_item_flags(db: Session, auth: AuthContext, user_id: str, item_id: str, flags: Dict[str, bool]) -> PortfolioItem:
    """Set any of visible/featured/pinned on one of the user's items."""
    item = documents.get_document(db, f"users/{user_id}/portfolio/{item_id}")
    if item is None:
        raise NotFoundError("Portfolio item not found", details={"item_id": item_id})
    documents.authorize(db, auth, "update", item.path, resource=item)
    for name in ("visible", "featured", "pinned"):
        if flags.get(name) is not None:
            setattr(item, name, flags[name])
    db.commit()
    return item
