"""
Route distance calculation for assignments.

Routes start and end at the depot. The Google Directions answer is
preferred; when it is unavailable the route is estimated segment by segment
from Mapbox coordinates.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Store
from .geofence import haversine_distance, road_estimate, round_half_up
from .maps_client import GoogleMapsClient, MapboxClient, MapsError


logger = structlog.get_logger(__name__)

HQ_ID = "HQ"


def parse_store_ids(raw) -> List[str]:
    """Accepts "1, 2,x" or a list; keeps numeric ids only, in order, without duplicates."""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    ids = []
    for part in parts:
        value = str(part).strip()
        if value.isdigit() and value not in ids:
            ids.append(value)
    return ids


def store_address(store: Store) -> str:
    return ", ".join(p for p in [store.address, store.city, store.county] if p)


def load_stores(db: Session, store_ids: Sequence[str]) -> List[Store]:
    """Stores in the order the ids were given; unknown ids are dropped."""
    if not store_ids:
        return []
    found = {s.store_id: s for s in db.query(Store).filter(Store.store_id.in_(list(store_ids))).all()}
    return [found[sid] for sid in store_ids if sid in found]


def multi_point_route(google: GoogleMapsClient, stops: Sequence[str]) -> Dict[str, Any]:
    """
    Optimised route through all stops; first and last stops stay fixed.

    Raises:
        ValueError: fewer than 2 stops
        MapsError: provider failure
    """
    stops = [s for s in stops if s]
    if len(stops) < 2:
        raise ValueError("At least 2 valid stops are required")
    result = google.directions(stops[0], stops[-1], list(stops[1:-1]))

    last = len(stops) - 1
    # Positions of the submitted stops in the order they are visited
    order = result["waypoint_order"] or list(range(last - 1))
    visits = [0] + [i + 1 for i in order] + [last]

    def _stop_id(index: int) -> str:
        return HQ_ID if index in (0, last) else f"waypoint_{index}"

    segments = []
    for i, segment in enumerate(result["segments"]):
        start_index = visits[i] if i < len(visits) else last
        end_index = visits[i + 1] if i + 1 < len(visits) else last
        segments.append(dict(
            segment,
            start_store_id=_stop_id(start_index),
            end_store_id=_stop_id(end_index),
        ))
    return {
        "distance": result["total_distance"],
        "duration": result["total_duration"],
        "segments": segments,
        "polyline": result["polyline"],
    }


def _coordinates(mapbox: MapboxClient, location: str) -> Tuple[float, float]:
    """(lat, lng) of a location; unknown places fall back to Bucharest."""
    try:
        lng, lat = mapbox.geocode(f"{location}, Romania" if "romania" not in location.lower() else location)
        return lat, lng
    except MapsError as e:
        logger.warning("geocode_fallback", location=location, error=e.message)
        return settings.fallback_lat, settings.fallback_lng


def estimate_route(mapbox: MapboxClient, locations: Sequence[str]) -> Dict[str, int]:
    """
    Segment-by-segment road estimate through the given locations.

    Returns:
        {"distance": km, "duration": minutes}, each at least 1
    """
    points = [_coordinates(mapbox, loc) for loc in locations if loc]
    total_km = 0.0
    total_min = 0.0
    for (lat1, lng1), (lat2, lng2) in zip(points, points[1:]):
        leg = road_estimate(lat1, lng1, lat2, lng2)
        total_km += leg["distance"]
        total_min += leg["duration"]
    return {"distance": max(1, round_half_up(total_km)), "duration": max(1, round_half_up(total_min))}


def depot_round_trip(locations: Sequence[str]) -> List[str]:
    return [settings.depot_address] + [loc for loc in locations if loc] + [settings.depot_address]


def route_distance(
    locations: Sequence[str],
    google: Optional[GoogleMapsClient] = None,
    mapbox: Optional[MapboxClient] = None,
) -> Dict[str, Any]:
    """Depot round trip through ``locations``; Google first, Mapbox estimate second."""
    stops = depot_round_trip(locations)
    if google is not None:
        try:
            route = multi_point_route(google, stops)
            return {"distance": route["distance"], "duration": route["duration"], "method": "google"}
        except MapsError as e:
            if mapbox is None:
                raise
            logger.warning("google_route_failed_using_estimate", error=e.message)
    if mapbox is None:
        raise MapsError("No routing provider is configured", status_code=500)
    estimate = estimate_route(mapbox, stops)
    return {"distance": estimate["distance"], "duration": estimate["duration"], "method": "estimate"}


def calculate_store_route(
    db: Session,
    mapbox: MapboxClient,
    store_ids: Sequence[str],
    include_hq: bool = True,
) -> Dict[str, Any]:
    """
    Straight-line route through stores geocoded with Mapbox.

    Raises:
        ValueError: fewer than 2 valid ids, or fewer than 2 stores geocoded
        LookupError: fewer than 2 of the stores exist
    """
    if len(store_ids) < 2:
        raise ValueError("At least 2 valid store IDs are required to calculate a route")
    stores = load_stores(db, store_ids)
    if len(stores) < 2:
        raise LookupError(
            f"Not enough stores found with the provided IDs. Found: {len(stores)}, Required: at least 2"
        )

    points = []
    for store in stores:
        try:
            lng, lat = mapbox.geocode(store_address(store))
        except MapsError as e:
            logger.warning("store_geocode_failed", store_id=store.store_id, error=e.message)
            continue
        points.append({
            "id": store.store_id,
            "name": store.description,
            "address": store_address(store),
            "lat": lat,
            "lng": lng,
        })
    geocoded = len(points)
    if geocoded < 2:
        raise ValueError("Not enough stores could be geocoded for route calculation")

    if include_hq:
        hq = {
            "id": HQ_ID,
            "name": "HQ",
            "address": settings.depot_address,
            "lat": settings.depot_lat,
            "lng": settings.depot_lng,
        }
        points = [hq] + points + [hq]

    segments = []
    total_km = 0.0
    total_min = 0.0
    for start, end in zip(points, points[1:]):
        km = round_half_up(haversine_distance(start["lat"], start["lng"], end["lat"], end["lng"]), 1)
        minutes = km / settings.average_speed_kmh * 60
        total_km += km
        total_min += minutes
        segments.append({
            "start_store_id": start["id"],
            "end_store_id": end["id"],
            "start_name": start["name"],
            "end_name": end["name"],
            "start_address": start["address"],
            "end_address": end["address"],
            "start_latitude": start["lat"],
            "start_longitude": start["lng"],
            "end_latitude": end["lat"],
            "end_longitude": end["lng"],
            "distance": km,
            "duration": round_half_up(minutes),
        })

    return {
        "route": {
            "total_distance": round_half_up(total_km, 1),
            "total_duration": round_half_up(total_min),
            "segments": segments,
        },
        "calculation_method": "direct",
        "stores_requested": len(store_ids),
        "stores_found": len(stores),
        "stores_geocoded": geocoded,
    }
