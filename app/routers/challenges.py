from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.auth import get_current_user
from app.crud import challenges as challenges_crud
from app.dependencies import get_auth_context
from app.schemas import CurrentUser
from app.schemas.challenges import (
    ChallengeCreate, ChallengeResponse, ProgressUpdate, UserChallengeResponse, UserChallengesListResponse
)
from app.security.rules import AuthContext
from app.services.side_effects import dispatch_in_background

router = APIRouter(prefix="/challenges", tags=["challenges"])

@router.get("", response_model=List[ChallengeResponse])
async def list_challenges(
    status: Optional[str] = Query("active"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return challenges_crud.list_challenges(db, status)

@router.post("", response_model=ChallengeResponse, status_code=201)
async def create_challenge(
    body: ChallengeCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return challenges_crud.create_challenge(
        db, auth, body.title, body.description, body.difficulty, body.status, body.xp_reward
    )

@router.get("/mine", response_model=UserChallengesListResponse)
async def list_my_challenges(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items, total = challenges_crud.list_my_challenges(db, current_user.id, status, page, page_size)
    return UserChallengesListResponse(
        challenges=[UserChallengeResponse.model_validate(c) for c in items],
        total_count=total,
        page=page,
        page_size=page_size,
    )

@router.post("/{challenge_id}/join", response_model=UserChallengeResponse, status_code=201)
async def join_challenge(
    challenge_id: str,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    record = challenges_crud.join_challenge(db, auth, current_user.id, challenge_id)
    background_tasks.add_task(dispatch_in_background)
    return record

@router.patch("/{challenge_id}/progress", response_model=UserChallengeResponse)
async def update_progress(
    challenge_id: str,
    body: ProgressUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return challenges_crud.update_progress(db, auth, current_user.id, challenge_id, body.progress)

@router.post("/{challenge_id}/complete", response_model=UserChallengeResponse)
async def complete_challenge(
    challenge_id: str,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    record = challenges_crud.complete_challenge(db, auth, current_user.id, challenge_id)
    background_tasks.add_task(dispatch_in_background)
    return record

@router.post("/{challenge_id}/abandon", response_model=UserChallengeResponse)
async def abandon_challenge(
    challenge_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    return challenges_crud.abandon_challenge(db, auth, current_user.id, challenge_id)
