from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
from app.database import get_db
from app.auth import get_current_user
from app.crud.connections import ConnectionsCRUD
from app.dependencies import get_auth_context
from app.errors import ServiceError
from app.middleware.rate_limit import limiter, get_rate_limit_for_endpoint
from app.schemas import CurrentUser
from app.schemas.connections import (
    ConnectionCreate, ConnectionStatusUpdate, ConnectionResponse, ConnectionUpdateResponse, ConnectionsListResponse
)
from app.security.rules import AuthContext
from app.services.side_effects import dispatch_in_background
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])

@router.post("", response_model=ConnectionResponse, status_code=201)
@limiter.limit(get_rate_limit_for_endpoint("connection_request"))
async def create_connection(
    body: ConnectionCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Send a connection request; writes the caller's record and the counterpart's mirror."""
    try:
        own, _mirror = ConnectionsCRUD.create_connection(
            db, auth, current_user.id, body.counterpart_user_id, body.message
        )
        background_tasks.add_task(dispatch_in_background)
        return own
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Error in create_connection: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.get("", response_model=ConnectionsListResponse)
async def list_connections(
    status: Optional[str] = Query(None, pattern="^(pending|accepted|rejected)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The caller's connection records"""
    items, total = ConnectionsCRUD.list_connections(db, current_user.id, status, page, page_size)
    return ConnectionsListResponse(
        connections=[ConnectionResponse.model_validate(c) for c in items],
        total_count=total,
        page=page,
        page_size=page_size,
    )

@router.patch("/{counterpart_user_id}", response_model=ConnectionUpdateResponse)
@limiter.limit(get_rate_limit_for_endpoint("connection_update"))
async def update_connection_status(
    counterpart_user_id: str,
    body: ConnectionStatusUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    owner_id: Optional[str] = Query(None, description="Owner of the record to update; defaults to the caller"),
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """
    Accept or reject a connection.

    ``owner_id`` addresses a record held in another user's connections,
    which the rules allow for either party of the relationship.
    """
    try:
        result = ConnectionsCRUD.update_connection_status(
            db, auth, owner_id or current_user.id, counterpart_user_id, body.status.value
        )
        background_tasks.add_task(dispatch_in_background)
        return ConnectionUpdateResponse(
            connection=ConnectionResponse.model_validate(result.record),
            mirror_updated=result.mirror_updated,
            sync_issue_recorded=result.sync_issue is not None,
        )
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Error in update_connection_status: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

@router.delete("/{counterpart_user_id}")
@limiter.limit(get_rate_limit_for_endpoint("connection_update"))
async def remove_connection(
    counterpart_user_id: str,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Delete the caller's record and its mirror."""
    try:
        mirror_removed = ConnectionsCRUD.remove_connection(db, auth, current_user.id, counterpart_user_id)
        return {"message": "Connection removed", "mirror_removed": mirror_removed}
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Error in remove_connection: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
