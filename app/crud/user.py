from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional
from app.crud import documents
from app.errors import ConflictError
from app.models import User
from app.security.rules import AuthContext

def get_user(db: Session, user_id: str) -> Optional[User]:
    """Get a user by ID."""
    return db.query(User).filter(User.id == user_id).first()

def create_user(
    db: Session,
    user_id: str,
    email: Optional[str],
    display_name: Optional[str] = None,
    is_admin: bool = False,
) -> User:
    """
    Create a new user.

    Args:
        db: Database session
        user_id: Firebase UID
        email: User email
        display_name: User display name
        is_admin: Mirrors the admin custom claim

    Returns:
        Created User object
    """
    db_user = User(
        id=user_id,
        email=email,
        display_name=display_name,
        is_admin=is_admin,
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A user with this email already exists", details={"email": email})
    db.refresh(db_user)
    return db_user

def sync_user_from_token(
    db: Session,
    user_id: str,
    email: Optional[str],
    display_name: Optional[str],
    is_admin: bool,
) -> User:
    """Create the user on first sight, otherwise refresh the fields carried by the token."""
    db_user = get_user(db, user_id)
    if db_user is None:
        return create_user(db, user_id, email, display_name, is_admin=is_admin)

    changed = False
    if display_name and db_user.display_name != display_name:
        db_user.display_name = display_name
        changed = True
    if db_user.is_admin != is_admin:
        db_user.is_admin = is_admin
        changed = True
    if changed:
        db.commit()
        db.refresh(db_user)
    return db_user

def update_user(db: Session, auth: AuthContext, user: User, update_data: dict) -> User:
    """Update a user's profile fields."""
    documents.authorize(db, auth, "update", f"users/{user.id}", resource=user)
    for field, value in update_data.items():
        if field in ("display_name", "photo_url"):
            setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user
