"""
GPS telemetry vendor client.
Fetches live positions and device metadata and merges them per device.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import pytz
import structlog

from ..config import settings


logger = structlog.get_logger(__name__)


class GpsError(Exception):
    pass


class GpsClient:
    """Client for the vendor's positions/devices feeds"""

    def __init__(
        self,
        group_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.group_id = group_id or settings.gps_group_id
        self.username = username or settings.gps_username
        self.password = password or settings.gps_password
        self._client = client

        if not (self.group_id and self.username and self.password):
            raise ValueError("GPS vendor credentials are required")

    def _request(self, url: str) -> Dict[str, Any]:
        params = {"groupID": self.group_id, "userName": self.username, "password": self.password}
        try:
            if self._client is not None:
                response = self._client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            with httpx.Client(timeout=settings.http_timeout_seconds) as client:
                response = client.get(url, params=params)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            # Never log the query string, it carries the password
            logger.error("gps_request_failed", url=url, error=type(e).__name__)
            raise GpsError("Failed to fetch GPS data")

    def positions(self) -> List[Dict[str, Any]]:
        return self._request(settings.gps_positions_url).get("positionList") or []

    def devices(self) -> List[Dict[str, Any]]:
        return self._request(settings.gps_devices_url).get("deviceList") or []

    def vehicles(self) -> List[Dict[str, Any]]:
        return combine_positions(self.positions(), self.devices())


def position_timestamp(date_time: Optional[Dict[str, Any]]) -> Optional[datetime]:
    """The vendor splits timestamps into parts; they are read as UTC."""
    if not date_time:
        return None
    try:
        return datetime(
            int(date_time["year"]),
            int(date_time["month"]),
            int(date_time["day"]),
            int(date_time.get("hour", 0)),
            int(date_time.get("minute", 0)),
            int(date_time.get("seconds", 0)),
            tzinfo=pytz.UTC,
        )
    except (KeyError, TypeError, ValueError):
        return None


def combine_positions(
    positions: List[Dict[str, Any]],
    devices: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """One entry per reported position, enriched with its device details."""
    device_map = {str(d.get("deviceId")): d for d in devices}
    combined = []
    for position in positions:
        device_id = str(position.get("deviceId"))
        device = device_map.get(device_id) or {}
        ts = position_timestamp(position.get("dateTime"))
        stamp = ts.isoformat() if ts else None
        coordinate = position.get("coordinate") or {}
        combined.append({
            "id": device_id,
            "name": device.get("deviceName") or f"Device {device_id}",
            "driver_id": device.get("driverId"),
            "driver_name": device.get("driverName") or "Unknown Driver",
            "status": "online" if position.get("ignitionState") == "ON" else "offline",
            "last_update": stamp,
            "position": {
                "latitude": coordinate.get("latitude"),
                "longitude": coordinate.get("longitude"),
                "heading": position.get("heading"),
                "speed": position.get("speed"),
                "ignition_state": position.get("ignitionState"),
                "temperature": position.get("temperature"),
                "timestamp": stamp,
            },
        })
    return combined
