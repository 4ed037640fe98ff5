from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class ChallengeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    difficulty: str = "beginner"
    status: str = "active"
    xp_reward: Optional[int] = Field(None, ge=0)

class ChallengeResponse(BaseModel):
    id: str
    title: str
    description: str
    difficulty: str
    status: str
    xp_reward: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True

class ProgressUpdate(BaseModel):
    progress: int = Field(..., ge=0, le=100)

class UserChallengeResponse(BaseModel):
    id: str
    user_id: str
    challenge_id: str
    status: str
    progress: int
    joined_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserChallengesListResponse(BaseModel):
    challenges: List[UserChallengeResponse]
    total_count: int
    page: int
    page_size: int
