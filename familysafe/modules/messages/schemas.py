from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class MessageCreate(BaseModel):
    to_user_id: str
    text: str


class MessageUpdate(BaseModel):
    text: str


class MessageResponse(BaseModel):
    id: str
    from_user_id: str
    to_user_id: str
    text: str
    read: bool = False
    edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
