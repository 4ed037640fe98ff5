from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from app.database import get_db, get_pool_status
from app.crud import outbox
from app.crud.connections import ConnectionsCRUD
from app.dependencies import require_admin
from app.schemas import CurrentUser
from app.schemas.connections import ReconcileReportResponse
from app.services import reconciliation
from app.services.auto_completion import run_auto_completion
from app.services.side_effects import dispatch_pending
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

@router.post("/connections/reconcile", response_model=ReconcileReportResponse)
async def reconcile_connections(
    owner_id: Optional[str] = Query(None),
    counterpart_id: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """Repair one pair when both IDs are given, otherwise run a full pass."""
    if owner_id and counterpart_id:
        outcome = reconciliation.reconcile_connection(db, owner_id, counterpart_id)
        report = reconciliation.ReconcileReport()
        report.record(outcome, owner_id, counterpart_id)
    else:
        report = reconciliation.reconcile_all(db, limit=limit)
    return ReconcileReportResponse(**report.__dict__)

@router.get("/connections/sync-issues")
async def list_sync_issues(limit: int = Query(100, ge=1, le=1000), db: Session = Depends(get_db)):
    issues = ConnectionsCRUD.open_sync_issues(db, limit=limit)
    return [
        {
            "id": i.id,
            "owner_user_id": i.owner_user_id,
            "counterpart_user_id": i.counterpart_user_id,
            "expected_status": i.expected_status,
            "detail": i.detail,
            "detected_at": i.detected_at,
        }
        for i in issues
    ]

@router.post("/outbox/dispatch")
async def dispatch_outbox(limit: Optional[int] = Query(None, ge=1, le=1000), db: Session = Depends(get_db)):
    report = dispatch_pending(db, limit=limit)
    return report.__dict__

@router.get("/outbox")
async def outbox_status(db: Session = Depends(get_db)):
    return outbox.count_by_status(db)

@router.post("/trades/auto-complete")
async def auto_complete_trades(current_user: CurrentUser = Depends(require_admin), db: Session = Depends(get_db)):
    report = run_auto_completion(db)
    logger.info(f"Auto-completion triggered by {current_user.id}")
    return report.__dict__

@router.get("/db/pool")
async def pool_status():
    return get_pool_status()
