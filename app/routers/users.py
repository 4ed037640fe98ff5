from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List

from app.database import get_db
from app.auth import get_current_user
from app import schemas, crud
from app.crud import gamification, portfolio
from app.dependencies import get_auth_context
from app.security.rules import AuthContext
from app.utils.logger import get_logger

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={404: {"description": "Not found"}}
)

logger = get_logger(__name__)

@router.get("/me", response_model=schemas.UserResponse)
async def read_users_me(
    current_user: schemas.CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get current user's profile."""
    db_user = crud.get_user(db, current_user.id)
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return db_user

@router.patch("/me", response_model=schemas.UserResponse)
async def update_users_me(
    body: schemas.UserUpdate,
    current_user: schemas.CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    db_user = crud.get_user(db, current_user.id)
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return crud.update_user(db, auth, db_user, body.model_dump(exclude_unset=True))

@router.get("/me/xp", response_model=schemas.UserXPResponse)
async def read_my_xp(
    history_limit: int = Query(20, ge=0, le=100),
    current_user: schemas.CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """XP total, level and recent ledger entries."""
    record = gamification.get_user_xp(db, current_user.id)
    total = record.total_xp if record else 0
    level = gamification.calculate_level(total)
    history = gamification.get_xp_history(db, current_user.id, limit=history_limit) if history_limit else []
    return schemas.UserXPResponse(
        user_id=current_user.id,
        total_xp=total,
        current_level=level.current_level,
        level_title=level.title,
        xp_to_next_level=level.xp_to_next_level,
        progress_percentage=level.progress_percentage,
        history=[schemas.XpTransactionResponse.model_validate(t) for t in history],
    )

@router.get("/{user_id}/portfolio", response_model=List[schemas.PortfolioItemResponse])
async def read_portfolio(
    user_id: str,
    include_hidden: bool = Query(False),
    current_user: schemas.CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """A user's portfolio; hidden items are only listed for the owner."""
    show_hidden = include_hidden and (user_id == current_user.id or current_user.is_admin)
    return portfolio.list_portfolio(db, user_id, include_hidden=show_hidden)

@router.patch("/me/portfolio/{item_id}", response_model=schemas.PortfolioItemResponse)
async def update_portfolio_item(
    item_id: str,
    body: schemas.PortfolioItemUpdate,
    current_user: schemas.CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return portfolio.update_item_flags(db, auth, current_user.id, item_id, body.model_dump(exclude_unset=True))
