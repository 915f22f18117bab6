from pydantic import BaseModel
from typing import Literal, List
from datetime import datetime


class PresenceUpdate(BaseModel):
    status: Literal["online", "offline"] = "online"


class PresenceRow(BaseModel):
    user_id: str
    status: str
    last_seen: datetime

    class Config:
        from_attributes = True


class PresenceResponse(BaseModel):
    user_id: str
    status: str  # effective status after the staleness rule
    last_seen: datetime


class PresenceQuery(BaseModel):
    user_ids: List[str]
