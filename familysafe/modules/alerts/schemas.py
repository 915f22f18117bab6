from pydantic import BaseModel
from typing import Literal, Optional
from datetime import datetime

AlertType = Literal["sos", "lost", "arrival", "battery", "other"]


class AlertCreate(BaseModel):
    member_id: str
    type: AlertType = "other"
    message: str


class AlertResponse(BaseModel):
    id: str
    member_id: str
    type: str
    message: str
    read: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
