from pydantic import BaseModel, Field, computed_field
from typing import Optional, List
from datetime import datetime


class GroupCreate(BaseModel):
    name: str
    member_ids: List[str] = Field(default_factory=list)


class GroupResponse(BaseModel):
    id: str
    name: str
    avatar_url: Optional[str] = None
    created_by: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupSummary(GroupResponse):
    member_count: int = 0


class GroupMemberResponse(BaseModel):
    user_id: str
    name: str
    role: Optional[str] = None
    avatar_url: Optional[str] = None
    is_admin: bool = False
    status: str = "offline"
    last_seen: Optional[datetime] = None


class TransferAdminRequest(BaseModel):
    new_admin_id: str


class GroupMessageCreate(BaseModel):
    text: str


class GroupMessageUpdate(BaseModel):
    text: str


class GroupMessageResponse(BaseModel):
    id: str
    group_id: str
    from_user_id: str
    text: str
    edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    user_name: Optional[str] = None
    avatar_url: Optional[str] = None
    read_by: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @computed_field
    @property
    def read_count(self) -> int:
        """Distinct readers other than the author"""
        return len({reader for reader in self.read_by if reader != self.from_user_id})


class MarkReadRequest(BaseModel):
    message_ids: List[str]
