from fastapi import Depends, HTTPException, status, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth
from typing import Optional
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app import crud, schemas
from app.utils.logger import get_logger, set_actor_context

logger = get_logger(__name__)

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(HTTPBearer(auto_error=False)),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    db: Session = Depends(get_db)
) -> schemas.CurrentUser:
    """
    Verify Firebase ID token and resolve the calling user.
    Falls back to the X-User-ID header if no bearer token is provided and
    ALLOW_HEADER_AUTH is enabled.

    Users seen for the first time through a token are created. The admin
    custom claim (ADMIN_CLAIM) is copied onto the user record.

    Raises:
        HTTPException: If both token and X-User-ID are invalid or missing
    """
    if credentials is None and x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Either Bearer authentication or X-User-ID header is required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        if credentials:
            try:
                decoded_token = auth.verify_id_token(credentials.credentials)
            except Exception as firebase_error:
                logger.warning(f"Rejected Firebase token: {firebase_error}")
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail=f"Invalid token: {str(firebase_error)}",
                    headers={"WWW-Authenticate": "Bearer"},
                )
            db_user = crud.sync_user_from_token(
                db,
                decoded_token.get("uid"),
                decoded_token.get("email"),
                decoded_token.get("name"),
                bool(decoded_token.get(settings.ADMIN_CLAIM, False)),
            )
        else:
            if not settings.ALLOW_HEADER_AUTH:
                logger.warning(f"Refused X-User-ID authentication for {x_user_id}")
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Bearer authentication is required",
                    headers={"WWW-Authenticate": "Bearer"},
                )
            db_user = crud.get_user(db, x_user_id)
            if not db_user:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid X-User-ID",
                )

        set_actor_context(db_user.id)
        return schemas.CurrentUser(
            id=db_user.id,
            email=db_user.email,
            display_name=db_user.display_name,
            is_admin=bool(db_user.is_admin),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Authentication failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
