from pydantic import AliasChoices, BaseModel, ConfigDict, Field, HttpUrl, field_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from livesync.identity import User, UserRole, UserStatus
from livesync.notifications import NotificationSeverity, NotificationType
from livesync.records import (
    FireSeverity,
    FireStatus,
    Latitude,
    Longitude,
    SecurityPointStatus,
    SecurityPointType,
    TeamMemberStatus,
)

Team = Literal["Security", "Fire", "Management"]
TEAMS: List[str] = ["Security", "Fire", "Management"]
ROLES: List[str] = ["admin", "manager", "responder", "viewer"]


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def changes(self, *nullable: str) -> Dict[str, Any]:
        """Fields the client sent; explicit nulls only where the column allows them."""
        return {k: v for k, v in self.model_dump(exclude_unset=True).items() if v is not None or k in nullable}


# Fire zones
class FireZoneCreate(_Strict):
    name: str = Field(..., min_length=1)
    latitude: Latitude
    longitude: Longitude
    severity: FireSeverity = "Medium"
    status: FireStatus = "Active"
    description: Optional[str] = None
    reported_at: Optional[datetime] = None


class FireZoneUpdate(_Strict):
    name: Optional[str] = Field(None, min_length=1)
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None
    severity: Optional[FireSeverity] = None
    status: Optional[FireStatus] = None
    description: Optional[str] = None


# Security points
class SecurityPointCreate(_Strict):
    name: str = Field(..., min_length=1)
    latitude: Latitude
    longitude: Longitude
    type: SecurityPointType = "Checkpoint"
    status: SecurityPointStatus = "Active"
    description: Optional[str] = None


class SecurityPointUpdate(_Strict):
    name: Optional[str] = Field(None, min_length=1)
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None
    type: Optional[SecurityPointType] = None
    status: Optional[SecurityPointStatus] = None
    description: Optional[str] = None


# Team members
class TeamMemberCreate(_Strict):
    name: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = ""
    avatar: Optional[str] = None
    status: TeamMemberStatus = "Active"
    responsibility: Optional[str] = None
    team: Team
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None
    is_on_map: bool = False


class TeamMemberUpdate(_Strict):
    name: Optional[str] = Field(None, min_length=1)
    role: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, min_length=3)
    phone: Optional[str] = None
    avatar: Optional[str] = None
    status: Optional[TeamMemberStatus] = None
    responsibility: Optional[str] = None
    team: Optional[Team] = None
    latitude: Optional[Latitude] = None
    longitude: Optional[Longitude] = None
    is_on_map: Optional[bool] = None


class TeamMemberStatusUpdate(_Strict):
    status: TeamMemberStatus


class TeamMemberLocationUpdate(_Strict):
    latitude: Latitude
    longitude: Longitude
    is_on_map: bool = True


# Map configuration
class MapConfigCreate(_Strict):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    center_latitude: Latitude
    center_longitude: Longitude
    default_zoom: int = Field(13, ge=0, le=22)
    min_zoom: int = Field(1, ge=0, le=22)
    max_zoom: int = Field(18, ge=0, le=22)
    bounds_north: Optional[Latitude] = None
    bounds_south: Optional[Latitude] = None
    bounds_east: Optional[Longitude] = None
    bounds_west: Optional[Longitude] = None
    is_active: bool = False


class MapConfigUpdate(_Strict):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    center_latitude: Optional[Latitude] = None
    center_longitude: Optional[Longitude] = None
    default_zoom: Optional[int] = Field(None, ge=0, le=22)
    min_zoom: Optional[int] = Field(None, ge=0, le=22)
    max_zoom: Optional[int] = Field(None, ge=0, le=22)
    bounds_north: Optional[Latitude] = None
    bounds_south: Optional[Latitude] = None
    bounds_east: Optional[Longitude] = None
    bounds_west: Optional[Longitude] = None
    is_active: Optional[bool] = None


class MapConfigOut(MapConfigCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime
    updated_at: datetime


# Live feeds
class LiveFeedSettingCreate(_Strict):
    title: str = Field(..., min_length=1)
    stream_url: HttpUrl
    display_order: int = Field(0, ge=0)
    is_enabled: bool = True


class LiveFeedSettingUpdate(_Strict):
    title: Optional[str] = Field(None, min_length=1)
    stream_url: Optional[HttpUrl] = None
    display_order: Optional[int] = Field(None, ge=0)
    is_enabled: Optional[bool] = None


class LiveFeedSettingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    stream_url: str
    display_order: int
    is_enabled: bool
    created_at: datetime
    updated_at: datetime


class LiveFeedOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    stream_url: str


# Notifications
class NotificationCreate(_Strict):
    type: NotificationType
    severity: NotificationSeverity = "medium"
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NotificationReadUpdate(_Strict):
    read: bool = True


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    severity: str
    title: str
    message: str
    created_at: datetime
    read: bool
    user_id: Optional[str] = None
    # The ORM attribute is "details"; the column and the wire name are "metadata".
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("details", "metadata"))

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


# Users and auth
class UserUpdate(_Strict):
    full_name: Optional[str] = Field(None, min_length=1)
    role: Optional[UserRole] = None
    team: Optional[Team] = None
    status: Optional[UserStatus] = None


class SignupIn(BaseModel):
    email: str = Field(..., min_length=3)
    password: str
    full_name: str = Field(..., min_length=1)
    team: Optional[Team] = None


class LoginIn(BaseModel):
    email: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User
