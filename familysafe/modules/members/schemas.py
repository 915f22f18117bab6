from pydantic import BaseModel, Field
from typing import Literal, Optional, List
from datetime import datetime

from familysafe.core.geo import DEFAULT_LATITUDE, DEFAULT_LONGITUDE, UNKNOWN_ADDRESS
from familysafe.modules.schedules.schemas import ScheduleResponse

MemberStatus = Literal["safe", "warning", "danger"]


class MemberRow(BaseModel):
    id: str
    user_id: str
    name: Optional[str] = None
    status: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    battery: Optional[int] = None
    gps_enabled: Optional[bool] = False
    last_update: Optional[datetime] = None

    class Config:
        from_attributes = True


class Location(BaseModel):
    lat: float = DEFAULT_LATITUDE
    lng: float = DEFAULT_LONGITUDE
    address: str = UNKNOWN_ADDRESS


class LocationHistoryEntry(BaseModel):
    address: Optional[str] = None
    lat: float
    lng: float
    timestamp: datetime


class Destination(BaseModel):
    id: Optional[str] = None
    name: str
    lat: float
    lng: float
    category: Optional[str] = None


class DestinationSet(BaseModel):
    name: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    category: Optional[str] = None


class StatusUpdate(BaseModel):
    status: MemberStatus


class GpsToggle(BaseModel):
    enabled: bool


class LocationReport(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    battery: Optional[int] = Field(default=None, ge=0, le=100)


class BatteryUpdate(BaseModel):
    battery: int = Field(ge=0, le=100)


class MemberView(BaseModel):
    """One child as rendered on a dashboard: member row + profile + details."""
    id: str
    user_id: str
    name: str
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    status: str = "safe"
    location: Location = Field(default_factory=Location)
    battery: int = 100
    last_update: Optional[datetime] = None
    gps_active: bool = False
    location_history: List[LocationHistoryEntry] = Field(default_factory=list)
    schedule: List[ScheduleResponse] = Field(default_factory=list)
    destination: Optional[Destination] = None
