from typing import Optional

from fastapi import HTTPException

from ..config import settings
from ..services.maps_client import GoogleMapsClient, MapboxClient
from ..services.gps_client import GpsClient


def parse_id(value: str, label: str = "ID") -> int:
    """Path ids arrive as text; anything non-numeric is a 400."""
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def get_google_client() -> Optional[GoogleMapsClient]:
    if not settings.google_maps_api_key:
        return None
    return GoogleMapsClient()


def get_mapbox_client() -> Optional[MapboxClient]:
    if not settings.mapbox_access_token:
        return None
    return MapboxClient()


def get_gps_client() -> Optional[GpsClient]:
    if not (settings.gps_group_id and settings.gps_username and settings.gps_password):
        return None
    return GpsClient()
