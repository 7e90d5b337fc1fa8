from datetime import datetime
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class UserStatus(str, Enum):
    liber = "Liber"
    asigned = "Asigned"
    in_deplasare = "In Deplasare"


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None
    role: Optional[str] = "user"
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=8)
    profile_photo: Optional[str] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=8)
    profile_photo: Optional[str] = None
    status: Optional[UserStatus] = None
    current_assignment: Optional[str] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        if v is None:
            raise ValueError("name must not be null")
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class UserResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    role: Optional[str] = None
    username: Optional[str] = None
    status: Optional[str] = None
    current_assignment: Optional[str] = None
    total_hours: Optional[float] = None
    profile_photo: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserWithStats(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    current_assignment: Optional[str] = None
    profile_photo: Optional[str] = None
    total_hours: float = 0
    assignment_count: int = 0
    store_count: int = 0
    last_completion_date: Optional[datetime] = None
    current_assignment_start: Optional[datetime] = None
    liber_hours: float = 0
    in_deplasare_hours: float = 0


class UserStatusUpdate(BaseModel):
    status: UserStatus
    assignment_id: Optional[int] = None


class AvailabilityResponse(BaseModel):
    name: str
    available: bool


class HoursByType(BaseModel):
    type: str
    hours: float


class TimelineItem(BaseModel):
    id: int
    date: str
    type: str
    location: str
    hours: float
    kilometers: float
    description: str
    store_points: List[dict] = []
    county: Optional[str] = None
    city: Optional[str] = None
    store_number: Optional[str] = None


class UserStatsResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    total_kilometers: float
    total_hours: float
    work_logs: int
    locations: int
    hours_by_type: List[HoursByType]
    timeline: List[TimelineItem]
