from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    content: str
    related_id: Optional[str] = None
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True

class NotificationsListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total_count: int
    unread_only: bool
    page: int
    page_size: int
