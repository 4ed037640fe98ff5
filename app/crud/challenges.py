import uuid
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from app.crud import documents, outbox
from app.crud.gamification import XP_VALUES, XPSource, challenge_completion_xp
from app.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from app.models.challenge import (
    Challenge, ChallengeDifficulty, ChallengeStatus, UserChallenge, UserChallengeStatus,
)
from app.security.rules import AuthContext
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

def get_challenge(db: Session, challenge_id: str) -> Challenge:
    challenge = db.query(Challenge).filter(Challenge.id == challenge_id).first()
    if challenge is None:
        raise NotFoundError("Challenge not found", details={"challenge_id": challenge_id})
    return challenge

def list_challenges(db: Session, status: Optional[str] = ChallengeStatus.ACTIVE.value) -> List[Challenge]:
    query = db.query(Challenge)
    if status:
        query = query.filter(Challenge.status == status)
    return query.order_by(Challenge.created_at.desc()).all()

def create_challenge(
    db: Session,
    auth: AuthContext,
    title: str,
    description: str = "",
    difficulty: str = ChallengeDifficulty.BEGINNER.value,
    status: str = ChallengeStatus.ACTIVE.value,
    xp_reward: Optional[int] = None,
) -> Challenge:
    """Admin-only: publish a challenge."""
    if not auth.is_admin:
        raise PermissionDeniedError("Only admins can create challenges")
    try:
        difficulty = ChallengeDifficulty(difficulty).value
        status = ChallengeStatus(status).value
    except ValueError as e:
        raise ValidationError(str(e))
    challenge = Challenge(
        id=str(uuid.uuid4()),
        title=title,
        description=description or "",
        difficulty=difficulty,
        status=status,
        xp_reward=xp_reward,
        created_by=auth.uid,
    )
    db.add(challenge)
    db.commit()
    return challenge

def _get_participation(db: Session, user_id: str, challenge_id: str) -> UserChallenge:
    record = db.query(UserChallenge).filter(
        UserChallenge.id == UserChallenge.make_id(user_id, challenge_id)
    ).first()
    if record is None:
        raise NotFoundError("You have not joined this challenge", details={"challenge_id": challenge_id})
    return record

def join_challenge(db: Session, auth: AuthContext, user_id: str, challenge_id: str) -> UserChallenge:
    """
    Join a challenge as ``userChallenges/{user_id}_{challenge_id}``.

    The existence check and the write happen in one transaction. The create
    rule runs against the deterministic ID before anything is stored, so it
    authorizes on the ID prefix. Rejoining an abandoned challenge reactivates
    the same record.
    """
    challenge = get_challenge(db, challenge_id)
    if challenge.status != ChallengeStatus.ACTIVE.value:
        raise InvalidTransitionError(
            "Challenge is not open for participation",
            details={"challenge_id": challenge_id, "status": challenge.status},
        )

    doc_id = UserChallenge.make_id(user_id, challenge_id)
    path = UserChallenge.make_path(doc_id)
    now = utcnow()
    try:
        existing = db.query(UserChallenge).filter(UserChallenge.id == doc_id).with_for_update().first()
        if existing is not None:
            if existing.status != UserChallengeStatus.ABANDONED.value:
                raise ConflictError("Already joined this challenge", details={"challenge_id": challenge_id})
            documents.authorize(db, auth, "update", path, resource=existing)
            documents.set_fields(
                existing,
                status=UserChallengeStatus.ACTIVE.value,
                progress=0,
                joined_at=now,
                completed_at=None,
            )
            record = existing
        else:
            documents.authorize(db, auth, "create", path, resource=None, data={"user_id": user_id})
            record = UserChallenge(
                id=doc_id,
                user_id=user_id,
                challenge_id=challenge_id,
                status=UserChallengeStatus.ACTIVE.value,
                progress=0,
                joined_at=now,
                updated_at=now,
            )
            db.add(record)
            outbox.enqueue(db, outbox.XP_AWARD, {
                "user_id": user_id,
                "amount": XP_VALUES["CHALLENGE_JOIN"],
                "source": XPSource.CHALLENGE_JOIN,
                "source_id": challenge_id,
                "description": f"Joined challenge: {challenge.title}",
            })
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Already joined this challenge", details={"challenge_id": challenge_id})
    except Exception:
        db.rollback()
        raise
    logger.info(f"User {user_id} joined challenge {challenge_id}")
    return record

def update_progress(db: Session, auth: AuthContext, user_id: str, challenge_id: str, progress: int) -> UserChallenge:
    if progress < 0 or progress > 100:
        raise ValidationError("Progress must be between 0 and 100", details={"progress": progress})
    record = _get_participation(db, user_id, challenge_id)
    documents.authorize(db, auth, "update", record.path, resource=record)
    if record.status != UserChallengeStatus.ACTIVE.value:
        raise InvalidTransitionError(f"Cannot update progress of a {record.status} challenge")
    documents.set_fields(record, progress=progress)
    db.commit()
    return record

def complete_challenge(db: Session, auth: AuthContext, user_id: str, challenge_id: str) -> UserChallenge:
    """Mark the participation completed and stage its XP award and portfolio item."""
    record = _get_participation(db, user_id, challenge_id)
    documents.authorize(db, auth, "update", record.path, resource=record)
    if record.status not in (UserChallengeStatus.ACTIVE.value, UserChallengeStatus.SUBMITTED.value):
        raise InvalidTransitionError(f"Cannot complete a {record.status} challenge")

    challenge = record.challenge
    now = utcnow()
    try:
        documents.set_fields(record, status=UserChallengeStatus.COMPLETED.value, progress=100, completed_at=now)
        outbox.enqueue(db, outbox.XP_AWARD, {
            "user_id": user_id,
            "amount": challenge_completion_xp(challenge.difficulty, challenge.xp_reward),
            "source": XPSource.CHALLENGE_COMPLETION,
            "source_id": challenge_id,
            "description": f"Completed challenge: {challenge.title}",
        })
        outbox.enqueue(db, outbox.PORTFOLIO_GENERATE, {
            "source_type": "challenge",
            "source_id": record.id,
            "user_id": user_id,
        })
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"User {user_id} completed challenge {challenge_id}")
    return record

def abandon_challenge(db: Session, auth: AuthContext, user_id: str, challenge_id: str) -> UserChallenge:
    record = _get_participation(db, user_id, challenge_id)
    documents.authorize(db, auth, "update", record.path, resource=record)
    if record.status == UserChallengeStatus.COMPLETED.value:
        raise InvalidTransitionError("Cannot abandon a completed challenge")
    documents.set_fields(record, status=UserChallengeStatus.ABANDONED.value)
    db.commit()
    return record

def list_my_challenges(
    db: Session, user_id: str, status: Optional[str] = None, page: int = 1, page_size: int = 20
) -> Tuple[List[UserChallenge], int]:
    query = db.query(UserChallenge).filter(UserChallenge.user_id == user_id)
    if status:
        query = query.filter(UserChallenge.status == status)
    query = query.order_by(UserChallenge.joined_at.desc())
    total = query.count()
    return query.offset((page - 1) * page_size).limit(page_size).all(), total
