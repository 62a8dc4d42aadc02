from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime

from ..core.security import UserRole


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    role: UserRole
    specialization: Optional[str] = None
    display_id: Optional[str] = None
    profile_created: bool
    is_deleted: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: str
    name: str
    email: str
    display_id: Optional[str] = None

    class Config:
        from_attributes = True


class StaffCreate(BaseModel):
    """Account created by an administrator on someone's behalf."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=20)
    specialization: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
