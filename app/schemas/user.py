from pydantic import BaseModel, EmailStr, validator
from typing import Optional
from datetime import datetime

def _check_display_name(v):
    if v is not None:
        v = v.strip()
        if not v:
            raise ValueError('Display name cannot be empty')
        if len(v) > 80:
            raise ValueError('Display name must be at most 80 characters long')
    return v

class UserBase(BaseModel):
    """Base user schema with common attributes"""
    email: Optional[EmailStr] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    @validator('display_name')
    def validate_display_name(cls, v):
        return _check_display_name(v)

class UserUpdate(BaseModel):
    """Schema for updating user information"""
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    @validator('display_name')
    def validate_display_name(cls, v):
        return _check_display_name(v)

class UserResponse(UserBase):
    """Schema for user response"""
    id: str
    is_admin: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class CurrentUser(BaseModel):
    """Authenticated caller as resolved from the Firebase token"""
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    is_admin: bool = False
