from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class AddChildRequest(BaseModel):
    child_id: str


class ParentChildLink(BaseModel):
    id: Optional[str] = None
    parent_id: str
    child_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
