from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.routing import DirectionsRequest, MultiPointRouteRequest, GeocodeResponse
from ..services.maps_client import GoogleMapsClient, MapboxClient, MapsError
from ..services.route_calculator import calculate_store_route, multi_point_route, parse_store_ids
from .deps import get_google_client, get_mapbox_client


router = APIRouter(prefix="/api", tags=["maps"])
logger = structlog.get_logger(__name__)


def _require(client, name: str):
    if client is None:
        raise HTTPException(status_code=500, detail=f"{name} is not configured")
    return client


@router.get("/google-maps", response_model=GeocodeResponse)
def geocode(
    address: Optional[str] = Query(None),
    google: Optional[GoogleMapsClient] = Depends(get_google_client),
):
    if not address:
        raise HTTPException(status_code=400, detail="Address is required")
    google = _require(google, "Google Maps API key")
    try:
        return GeocodeResponse(**google.geocode(address))
    except MapsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/google-maps")
def directions(
    payload: DirectionsRequest,
    google: Optional[GoogleMapsClient] = Depends(get_google_client),
):
    google = _require(google, "Google Maps API key")
    try:
        result = google.directions(payload.origin, payload.destination, payload.waypoints)
    except MapsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {
        "success": True,
        "calculation_method": "google",
        "route": {
            "total_distance": result["total_distance"],
            "total_duration": result["total_duration"],
            "segments": result["segments"],
            "polyline": result["polyline"],
        },
    }


@router.post("/calculate-multi-point-route-google")
def multi_point(
    payload: MultiPointRouteRequest,
    google: Optional[GoogleMapsClient] = Depends(get_google_client),
):
    if len([s for s in payload.stops if s]) < 2:
        raise HTTPException(status_code=400, detail="At least 2 valid stops are required")
    google = _require(google, "Google Maps API key")
    try:
        route = multi_point_route(google, payload.stops)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MapsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"success": True, "route": route}


@router.get("/calculate-route")
def calculate_route(
    storeIds: Optional[str] = Query(None),
    includeHQ: bool = Query(True),
    db: Session = Depends(get_db),
    mapbox: Optional[MapboxClient] = Depends(get_mapbox_client),
):
    """Straight-line route through stores, optionally starting and ending at HQ"""
    store_ids = parse_store_ids(storeIds)
    if len(store_ids) < 2:
        raise HTTPException(status_code=400, detail="At least 2 valid store IDs are required to calculate a route")
    mapbox = _require(mapbox, "Mapbox token")
    try:
        result = calculate_store_route(db, mapbox, store_ids, include_hq=includeHQ)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("store_route_calculated", stores=len(store_ids), km=result["route"]["total_distance"])
    return dict(result, success=True)
