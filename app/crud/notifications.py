from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from app.crud import documents
from app.errors import NotFoundError
from app.models.notification import Notification
from app.security.rules import AuthContext

def create_notification(
    db: Session,
    user_id: str,
    type: str,
    title: str,
    content: str = "",
    related_id: Optional[str] = None,
) -> Notification:
    """Add a notification to the session; the caller commits."""
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        content=content,
        related_id=related_id,
        read=False,
    )
    db.add(notification)
    db.flush()
    return notification

def list_notifications(
    db: Session, user_id: str, unread_only: bool = False, page: int = 1, page_size: int = 20
) -> Tuple[List[Notification], int]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    query = query.order_by(Notification.created_at.desc())
    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, total

def mark_read(db: Session, auth: AuthContext, notification_id: str) -> Notification:
    notification = documents.get_document(db, f"notifications/{notification_id}")
    if notification is None:
        raise NotFoundError("Notification not found", details={"notification_id": notification_id})
    documents.authorize(db, auth, "update", notification.path, resource=notification)
    notification.read = True
    db.commit()
    return notification

def mark_all_read(db: Session, user_id: str) -> int:
    updated = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False)
    ).update({Notification.read: True}, synchronize_session=False)
    db.commit()
    return updated
