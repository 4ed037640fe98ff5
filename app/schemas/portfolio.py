from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime

class PortfolioItemResponse(BaseModel):
    id: str
    user_id: str
    source_type: str
    source_id: str
    title: str
    description: str
    skills: List[str] = []
    evidence: List[Any] = []
    collaborators: List[Dict[str, Any]] = []
    completed_at: Optional[datetime] = None
    visible: bool
    featured: bool
    pinned: bool

    class Config:
        from_attributes = True

class PortfolioItemUpdate(BaseModel):
    visible: Optional[bool] = None
    featured: Optional[bool] = None
    pinned: Optional[bool] = None
