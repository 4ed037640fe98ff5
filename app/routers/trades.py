from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.auth import get_current_user
from app.crud.trades import TradesCRUD
from app.dependencies import get_auth_context
from app.errors import ServiceError
from app.middleware.rate_limit import limiter, get_rate_limit_for_endpoint
from app.schemas import CurrentUser
from app.schemas.trades import (
    TradeCreate, ProposalCreate, ProposalResponseRequest, CompletionRequest, ChangeRequestCreate,
    CancelRequest, DisputeRequest, ProposalResponse, TradeResponse, TradesListResponse
)
from app.security.rules import AuthContext
from app.services.side_effects import dispatch_in_background
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/trades", tags=["trades"])

def _run(action: str, fn, *args, **kwargs):
    """Call a TradesCRUD operation, letting domain errors reach the app's handler."""
    try:
        return fn(*args, **kwargs)
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Error in {action}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("", response_model=TradeResponse, status_code=201)
@limiter.limit(get_rate_limit_for_endpoint("trade_write"))
async def create_trade(
    body: TradeCreate,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return _run(
        "create_trade", TradesCRUD.create_trade, db, auth, current_user.id,
        body.title, body.description, body.category, body.skills_offered, body.skills_wanted
    )

@router.get("", response_model=TradesListResponse)
async def list_trades(
    mine: bool = Query(False, description="Only trades the caller created or participates in"),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    trades, total = TradesCRUD.list_trades(db, current_user.id if mine else None, status, page, page_size)
    return TradesListResponse(
        trades=[TradeResponse.model_validate(t) for t in trades],
        total_count=total,
        page=page,
        page_size=page_size,
    )

@router.get("/{trade_id}", response_model=TradeResponse)
async def get_trade(
    trade_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return TradesCRUD.get_trade(db, trade_id)

@router.post("/{trade_id}/proposals", response_model=ProposalResponse, status_code=201)
@limiter.limit(get_rate_limit_for_endpoint("proposal"))
async def submit_proposal(
    trade_id: str,
    body: ProposalCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    proposal = _run(
        "submit_proposal", TradesCRUD.submit_proposal, db, auth, trade_id, current_user.id,
        body.message, body.skills_offered, body.skills_wanted, body.evidence
    )
    background_tasks.add_task(dispatch_in_background)
    return proposal

@router.get("/{trade_id}/proposals", response_model=List[ProposalResponse])
async def list_proposals(
    trade_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return TradesCRUD.list_proposals(db, auth, trade_id)

@router.post("/{trade_id}/proposals/{proposal_id}/respond", response_model=TradeResponse)
async def respond_to_proposal(
    trade_id: str,
    proposal_id: str,
    body: ProposalResponseRequest,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    trade = _run("respond_to_proposal", TradesCRUD.respond_to_proposal, db, auth, trade_id, proposal_id, body.accept)
    background_tasks.add_task(dispatch_in_background)
    return trade

@router.post("/{trade_id}/start", response_model=TradeResponse)
async def start_trade(
    trade_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return _run("start_trade", TradesCRUD.start_trade, db, auth, trade_id)

@router.post("/{trade_id}/request-completion", response_model=TradeResponse)
async def request_completion(
    trade_id: str,
    body: CompletionRequest,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    trade = _run(
        "request_completion", TradesCRUD.request_completion, db, auth, trade_id, body.notes, body.evidence
    )
    background_tasks.add_task(dispatch_in_background)
    return trade

@router.post("/{trade_id}/request-changes", response_model=TradeResponse)
async def request_changes(
    trade_id: str,
    body: ChangeRequestCreate,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    trade = _run("request_changes", TradesCRUD.request_changes, db, auth, trade_id, body.reason)
    background_tasks.add_task(dispatch_in_background)
    return trade

@router.post("/{trade_id}/confirm", response_model=TradeResponse)
async def confirm_completion(
    trade_id: str,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Confirm completion as the counterparty; XP and portfolio items follow in the background."""
    trade = _run("confirm_completion", TradesCRUD.confirm_completion, db, auth, trade_id)
    background_tasks.add_task(dispatch_in_background)
    return trade

@router.post("/{trade_id}/cancel", response_model=TradeResponse)
async def cancel_trade(
    trade_id: str,
    body: CancelRequest,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    trade = _run("cancel_trade", TradesCRUD.cancel_trade, db, auth, trade_id, body.reason)
    background_tasks.add_task(dispatch_in_background)
    return trade

@router.post("/{trade_id}/dispute", response_model=TradeResponse)
async def dispute_trade(
    trade_id: str,
    body: DisputeRequest,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    trade = _run("dispute_trade", TradesCRUD.dispute_trade, db, auth, trade_id, body.reason, body.details)
    background_tasks.add_task(dispatch_in_background)
    return trade
