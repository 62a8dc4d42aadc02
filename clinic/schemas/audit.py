from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from .user import UserSummary


class AuditLogResponse(BaseModel):
    id: int
    user_id: Optional[str] = None
    user: Optional[UserSummary] = None
    action: str
    resource: Optional[str] = None
    details: Optional[str] = None
    ip: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
