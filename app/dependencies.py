from fastapi import Depends, HTTPException, status
from app import schemas
from app.auth import get_current_user
from app.security.rules import AuthContext


def get_auth_context(current_user: schemas.CurrentUser = Depends(get_current_user)) -> AuthContext:
    """Identity the security rules are evaluated against for this request."""
    return AuthContext(uid=current_user.id, is_admin=current_user.is_admin)


def require_admin(current_user: schemas.CurrentUser = Depends(get_current_user)) -> schemas.CurrentUser:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user
