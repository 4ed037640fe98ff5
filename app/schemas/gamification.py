from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

class XpTransactionResponse(BaseModel):
    id: str
    amount: int
    source: str
    source_id: str
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class UserXPResponse(BaseModel):
    user_id: str
    total_xp: int
    current_level: int
    level_title: str
    xp_to_next_level: int
    progress_percentage: float
    history: List[XpTransactionResponse] = []
