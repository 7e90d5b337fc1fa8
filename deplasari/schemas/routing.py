from typing import List, Optional

from pydantic import BaseModel, Field


class DirectionsRequest(BaseModel):
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    waypoints: List[str] = []


class MultiPointRouteRequest(BaseModel):
    stops: List[str] = []


class GeocodeResponse(BaseModel):
    success: bool = True
    latitude: float
    longitude: float
    formatted_address: Optional[str] = None
