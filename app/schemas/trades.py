from pydantic import BaseModel, Field
from typing import Any, List, Optional
from datetime import datetime

class TradeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: Optional[str] = None
    skills_offered: List[Any] = []
    skills_wanted: List[Any] = []

class ProposalCreate(BaseModel):
    message: str = ""
    skills_offered: List[Any] = []
    skills_wanted: List[Any] = []
    evidence: List[Any] = []

class ProposalResponseRequest(BaseModel):
    accept: bool

class CompletionRequest(BaseModel):
    notes: Optional[str] = None
    evidence: List[Any] = []

class ChangeRequestCreate(BaseModel):
    reason: str = Field(..., min_length=1)

class CancelRequest(BaseModel):
    reason: Optional[str] = None

class DisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    details: Optional[str] = None

class ChangeRequestResponse(BaseModel):
    sequence: int
    reason: str
    requested_by: str
    requested_at: datetime
    status: str
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ProposalResponse(BaseModel):
    id: str
    trade_id: str
    proposer_user_id: str
    status: str
    message: str
    skills_offered: List[Any] = []
    skills_wanted: List[Any] = []
    evidence: List[Any] = []
    created_at: datetime

    class Config:
        from_attributes = True

class TradeResponse(BaseModel):
    id: str
    title: str
    description: str
    category: Optional[str] = None
    creator_id: str
    participant_id: Optional[str] = None
    skills_offered: List[Any] = []
    skills_wanted: List[Any] = []
    status: str
    accepted_at: Optional[datetime] = None
    completion_requested_by: Optional[str] = None
    completion_requested_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    completion_evidence: List[Any] = []
    completion_confirmed_at: Optional[datetime] = None
    auto_completed: bool = False
    auto_completion_reason: Optional[str] = None
    cancel_reason: Optional[str] = None
    dispute_reason: Optional[str] = None
    change_requests: List[ChangeRequestResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class TradesListResponse(BaseModel):
    trades: List[TradeResponse]
    total_count: int
    page: int
    page_size: int
