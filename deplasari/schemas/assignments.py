from datetime import datetime
from typing import List, Optional, Any
from enum import Enum

import pytz
from pydantic import BaseModel, Field, field_validator

from ..services.user_status import normalize_members
from ..services.route_calculator import parse_store_ids


class AssignmentStatus(str, Enum):
    asigned = "Asigned"
    in_deplasare = "In Deplasare"
    finalizat = "Finalizat"


def _to_number(v):
    # Forms send numbers as strings; empty means zero
    if v is None or v == "":
        return 0
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ValueError("must be a number")


def _to_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=pytz.UTC)
    return v.astimezone(pytz.UTC)


class AssignmentBase(BaseModel):
    type: str
    location: str
    team_lead: str
    members: List[str] = []
    start_date: datetime
    due_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    status: AssignmentStatus = AssignmentStatus.asigned
    hours: float = 0
    km: float = 0
    store_number: Optional[str] = None
    county: Optional[str] = None
    city: Optional[str] = None
    magazin: Optional[str] = None
    county_code: Optional[str] = None
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    store_points: List[str] = []
    car_plate: Optional[str] = None

    @field_validator('members', mode='before')
    @classmethod
    def parse_members(cls, v):
        return normalize_members(v)

    @field_validator('hours', 'km', mode='before')
    @classmethod
    def parse_number(cls, v):
        return _to_number(v)

    @field_validator('store_points', mode='before')
    @classmethod
    def parse_store_points(cls, v):
        return parse_store_ids(v)

    @field_validator('due_date', 'completion_date', 'store_number', 'county', 'city', 'magazin', 'county_code', 'start_location', 'end_location', 'car_plate', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator('start_date', 'due_date', 'completion_date')
    @classmethod
    def as_utc(cls, v):
        return _to_utc(v)


class AssignmentCreate(AssignmentBase):
    pass


class AssignmentUpdate(BaseModel):
    type: Optional[str] = None
    location: Optional[str] = None
    team_lead: Optional[str] = None
    members: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    status: Optional[AssignmentStatus] = None
    hours: Optional[float] = None
    km: Optional[float] = None
    store_number: Optional[str] = None
    county: Optional[str] = None
    city: Optional[str] = None
    magazin: Optional[str] = None
    county_code: Optional[str] = None
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    store_points: Optional[List[str]] = None
    car_plate: Optional[str] = None

    # May be omitted but never cleared
    @field_validator('type', 'location', 'team_lead', 'status')
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator('members', mode='before')
    @classmethod
    def parse_members(cls, v):
        return normalize_members(v)

    @field_validator('hours', 'km', mode='before')
    @classmethod
    def parse_number(cls, v):
        return _to_number(v)

    @field_validator('store_points', mode='before')
    @classmethod
    def parse_store_points(cls, v):
        return parse_store_ids(v)

    @field_validator('start_date', 'due_date', 'completion_date')
    @classmethod
    def as_utc(cls, v):
        return _to_utc(v)


class AssignmentResponse(BaseModel):
    id: int
    type: str
    location: Optional[str] = None
    team_lead: str
    members: List[str] = []
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    status: str
    hours: Optional[float] = None
    km: Optional[float] = None
    driving_time: Optional[float] = None
    store_number: Optional[str] = None
    county: Optional[str] = None
    city: Optional[str] = None
    magazin: Optional[str] = None
    county_code: Optional[str] = None
    start_location: Optional[str] = None
    end_location: Optional[str] = None
    store_points: List[str] = []
    route_updated: Optional[bool] = None
    car_plate: Optional[str] = None
    gps_start_date: Optional[datetime] = None
    return_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('members', 'store_points', mode='before')
    @classmethod
    def always_list(cls, v):
        # Older rows may hold NULL or a JSON string
        if v is None:
            return []
        return [str(x) for x in normalize_members(v)]

    @field_validator('start_date', 'due_date', 'completion_date', 'gps_start_date', 'return_time', 'created_at', 'updated_at')
    @classmethod
    def as_utc(cls, v):
        return _to_utc(v)

    class Config:
        from_attributes = True


class AssignmentCreated(BaseModel):
    success: bool = True
    id: int


class AssignmentDeleteRequest(BaseModel):
    password: str


class FinalizeRequest(BaseModel):
    completion_date: Optional[datetime] = None
    end_location: Optional[str] = None

    @field_validator('completion_date')
    @classmethod
    def as_utc(cls, v):
        return _to_utc(v)


class FinalizeResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    km: Optional[float] = None
    driving_time: Optional[float] = None
    hours: Optional[float] = None
    real_start_date: Optional[datetime] = None
    real_completion_date: Optional[datetime] = None


class RouteUpdateRequest(BaseModel):
    store_ids: List[str] = Field(default_factory=list)

    @field_validator('store_ids', mode='before')
    @classmethod
    def parse_ids(cls, v):
        return parse_store_ids(v)


class RouteResultRequest(BaseModel):
    store_ids: List[str] = Field(default_factory=list)
    distance: float
    duration: Optional[float] = None

    @field_validator('store_ids', mode='before')
    @classmethod
    def parse_ids(cls, v):
        return parse_store_ids(v)


class DistanceResponse(BaseModel):
    success: bool = True
    km: float
    driving_time: float
    method: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
