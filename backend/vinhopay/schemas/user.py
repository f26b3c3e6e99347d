from typing import Optional
from datetime import datetime
from pydantic import BaseModel, field_validator


class UserResponse(BaseModel):
    id: int
    phone: str
    name: Optional[str] = None
    stage: str
    active_reservation_id: Optional[int] = None
    active_feedback_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SetNameRequest(BaseModel):
    phone: str
    name: str

    @field_validator('name')
    @classmethod
    def name_length(cls, v: str) -> str:
        v = " ".join(v.split())
        if len(v) < 2 or len(v) > 60:
            raise ValueError('Name must be between 2 and 60 characters')
        return v


class DispatchResponse(BaseModel):
    claimed: int
    dispatched: int
    skipped: int
