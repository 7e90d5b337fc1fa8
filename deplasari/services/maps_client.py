"""
Google Maps and Mapbox API clients.
Thin wrappers over the geocoding and directions endpoints; distances are
converted to kilometers and durations to minutes.
"""
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
import structlog

from ..config import settings
from .geofence import round_half_up


logger = structlog.get_logger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
GOOGLE_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
MAPBOX_GEOCODE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"

# Directions API accepts at most 25 points including origin and destination
MAX_WAYPOINTS = 23


class MapsError(Exception):
    """A provider answered with an error status or no usable result"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class _HttpClient:
    """Shared request plumbing; a preconfigured httpx.Client may be injected."""

    def __init__(self, client: Optional[httpx.Client] = None):
        self._client = client

    def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        try:
            if self._client is not None:
                response = self._client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            with httpx.Client(timeout=settings.http_timeout_seconds) as client:
                response = client.get(url, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.error("maps_request_failed", url=url, error=str(e))
            raise MapsError(f"Request to maps provider failed: {e}", status_code=502)


class GoogleMapsClient(_HttpClient):
    """Client for the Google Geocoding and Directions APIs"""

    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.Client] = None):
        super().__init__(client)
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key is required")

    def geocode(self, address: str) -> Dict[str, Any]:
        data = self._get_json(GOOGLE_GEOCODE_URL, {"address": address, "key": self.api_key})
        if data.get("status") != "OK":
            raise MapsError(f"Geocoding failed: {data.get('status')}", status_code=400)
        results = data.get("results") or []
        if not results:
            raise MapsError("No results found for the address", status_code=404)
        location = results[0]["geometry"]["location"]
        return {
            "latitude": location["lat"],
            "longitude": location["lng"],
            "formatted_address": results[0].get("formatted_address"),
        }

    def directions(
        self,
        origin: str,
        destination: str,
        waypoints: Optional[List[str]] = None,
        optimize: bool = True,
    ) -> Dict[str, Any]:
        """
        Driving route from origin to destination through optional waypoints.

        Returns:
            Dict with total_distance (km, 1 decimal), total_duration (minutes),
            segments (one per leg), polyline and waypoint_order
        """
        params = {"origin": origin, "destination": destination, "key": self.api_key}
        if waypoints:
            prefix = "optimize:true|" if optimize else ""
            params["waypoints"] = prefix + "|".join(waypoints[:MAX_WAYPOINTS])
        data = self._get_json(GOOGLE_DIRECTIONS_URL, params)
        if data.get("status") != "OK":
            raise MapsError(f"Directions request failed: {data.get('status')}", status_code=400)
        routes = data.get("routes") or []
        if not routes:
            raise MapsError("No routes found", status_code=404)

        route = routes[0]
        legs = route.get("legs") or []
        segments = []
        total_km = 0.0
        total_min = 0.0
        for leg in legs:
            km = leg["distance"]["value"] / 1000
            minutes = leg["duration"]["value"] / 60
            total_km += km
            total_min += minutes
            segments.append({
                "start_name": leg.get("start_address", "").split(",")[0],
                "end_name": leg.get("end_address", "").split(",")[0],
                "start_address": leg.get("start_address"),
                "end_address": leg.get("end_address"),
                "distance": round_half_up(km, 1),
                "duration": round_half_up(minutes),
                "start_latitude": leg.get("start_location", {}).get("lat"),
                "start_longitude": leg.get("start_location", {}).get("lng"),
                "end_latitude": leg.get("end_location", {}).get("lat"),
                "end_longitude": leg.get("end_location", {}).get("lng"),
                "polyline": "".join(s.get("polyline", {}).get("points", "") for s in leg.get("steps", [])),
            })
        logger.info("directions_calculated", legs=len(legs), km=round_half_up(total_km, 1))
        return {
            "total_distance": round_half_up(total_km, 1),
            "total_duration": round_half_up(total_min),
            "segments": segments,
            "polyline": route.get("overview_polyline", {}).get("points"),
            "waypoint_order": route.get("waypoint_order") or [],
        }


class MapboxClient(_HttpClient):
    """Client for the Mapbox forward geocoding API"""

    def __init__(self, access_token: Optional[str] = None, client: Optional[httpx.Client] = None):
        super().__init__(client)
        self.access_token = access_token or settings.mapbox_access_token
        if not self.access_token:
            raise ValueError("Mapbox token is not configured")

    def geocode(self, address: str) -> Tuple[float, float]:
        """Returns (longitude, latitude) of the best match."""
        url = MAPBOX_GEOCODE_URL.format(query=quote(address, safe=""))
        data = self._get_json(url, {"access_token": self.access_token, "limit": 1})
        features = data.get("features") or []
        if not features:
            raise MapsError(f"No geocoding results found for address: {address}", status_code=404)
        lng, lat = features[0]["center"][:2]
        return float(lng), float(lat)
