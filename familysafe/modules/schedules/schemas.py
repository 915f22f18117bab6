from pydantic import BaseModel
from typing import Literal, Optional

ScheduleType = Literal["school", "lesson", "play", "arrival", "other"]


class ScheduleCreate(BaseModel):
    title: str
    time: str
    type: ScheduleType = "other"
    location: Optional[str] = None


class ScheduleResponse(BaseModel):
    id: str
    member_id: str
    date: str
    time: str
    title: str
    type: Optional[str] = "other"
    location: Optional[str] = None
    completed: bool = False

    class Config:
        from_attributes = True


class ScheduleCompletion(BaseModel):
    completed: bool = True
