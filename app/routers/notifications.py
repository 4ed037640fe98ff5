from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.database import get_db
from app.auth import get_current_user
from app.crud import notifications as notifications_crud
from app.dependencies import get_auth_context
from app.schemas import CurrentUser
from app.schemas.notifications import NotificationResponse, NotificationsListResponse
from app.security.rules import AuthContext

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("", response_model=NotificationsListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items, total = notifications_crud.list_notifications(db, current_user.id, unread_only, page, page_size)
    return NotificationsListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        total_count=total,
        unread_only=unread_only,
        page=page,
        page_size=page_size,
    )

@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return notifications_crud.mark_read(db, auth, notification_id)

@router.post("/read-all")
async def mark_all_read(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    updated = notifications_crud.mark_all_read(db, current_user.id)
    return {"updated": updated}
