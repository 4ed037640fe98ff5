from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

class ConnectionStatusValue(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

class ConnectionCreate(BaseModel):
    counterpart_user_id: str = Field(..., description="User to send the connection request to")
    message: Optional[str] = Field(None, max_length=500)

class ConnectionStatusUpdate(BaseModel):
    status: ConnectionStatusValue

class ConnectionResponse(BaseModel):
    id: str
    owner_user_id: str
    counterpart_user_id: str
    initiator_user_id: str
    status: str
    message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ConnectionUpdateResponse(BaseModel):
    connection: ConnectionResponse
    mirror_updated: bool
    sync_issue_recorded: bool = False

class ConnectionsListResponse(BaseModel):
    connections: List[ConnectionResponse]
    total_count: int
    page: int
    page_size: int

class ReconcileReportResponse(BaseModel):
    created: int
    updated: int
    in_sync: int
    missing_source: int
    issues_resolved: int
    pairs: List[str] = []
