import httpx
import pytest

from deplasari.services.gps_client import GpsClient, GpsError, combine_positions, position_timestamp
from deplasari.services.maps_client import GoogleMapsClient, MapboxClient, MapsError
from deplasari.services.geofence import haversine_distance, road_estimate, round_half_up
from deplasari.services.route_calculator import (
    multi_point_route,
    parse_store_ids,
    route_distance,
)


def _leg(start, end, meters, seconds):
    return {
        "start_address": start,
        "end_address": end,
        "distance": {"value": meters},
        "duration": {"value": seconds},
        "start_location": {"lat": 44.5, "lng": 25.9},
        "end_location": {"lat": 44.9, "lng": 26.0},
        "steps": [{"polyline": {"points": "abc"}}, {"polyline": {"points": "def"}}],
    }


def _directions_payload(legs, waypoint_order=None):
    return {
        "status": "OK",
        "routes": [{
            "legs": legs,
            "overview_polyline": {"points": "overview"},
            "waypoint_order": waypoint_order or [],
        }],
    }


def _mapbox_handler(request: httpx.Request) -> httpx.Response:
    # Depot queries resolve to the depot, everything else to Bucharest
    if "Chitila" in request.url.path:
        center = [25.984056, 44.5062199]
    else:
        center = [26.1025, 44.4268]
    return httpx.Response(200, json={"features": [{"center": center}]})


class TestGeofence:
    def test_haversine_zero(self):
        assert haversine_distance(44.5, 26.0, 44.5, 26.0) == 0

    def test_haversine_depot_to_bucharest(self):
        assert haversine_distance(44.5062199, 25.984056, 44.4268, 26.1025) == pytest.approx(12.9, abs=0.1)

    def test_road_estimate_applies_factor(self):
        estimate = road_estimate(44.5062199, 25.984056, 44.4268, 26.1025)
        assert estimate["distance"] == pytest.approx(16.8, abs=0.1)
        assert estimate["duration"] == 17

    def test_halves_round_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2
        assert round_half_up(0.25, 1) == 0.3
        assert isinstance(round_half_up(7.0), int)


class TestGoogleMapsClient:
    def test_requires_key(self, configured):
        configured(google_maps_api_key=None)
        with pytest.raises(ValueError):
            GoogleMapsClient()

    def test_geocode(self, mock_http):
        def handler(request):
            assert request.url.params["address"] == "Chitila"
            assert request.url.params["key"] == "k"
            return httpx.Response(200, json={
                "status": "OK",
                "results": [{"geometry": {"location": {"lat": 44.5, "lng": 25.98}}, "formatted_address": "Chitila, Romania"}],
            })

        result = GoogleMapsClient("k", client=mock_http(handler)).geocode("Chitila")
        assert result == {"latitude": 44.5, "longitude": 25.98, "formatted_address": "Chitila, Romania"}

    def test_geocode_error_status(self, mock_http):
        client = mock_http(lambda r: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))
        with pytest.raises(MapsError) as exc:
            GoogleMapsClient("k", client=client).geocode("nowhere")
        assert exc.value.status_code == 400

    def test_transport_failure_is_bad_gateway(self, mock_http):
        client = mock_http(lambda r: httpx.Response(503))
        with pytest.raises(MapsError) as exc:
            GoogleMapsClient("k", client=client).geocode("x")
        assert exc.value.status_code == 502

    def test_directions_converts_units(self, mock_http):
        captured = {}

        def handler(request):
            captured.update(request.url.params)
            return httpx.Response(200, json=_directions_payload([
                _leg("A St, City", "B St, Town", 12300, 900),
                _leg("B St, Town", "C St, Village", 5000, 300),
            ]))

        result = GoogleMapsClient("k", client=mock_http(handler)).directions("A", "C", ["B"])

        assert captured["waypoints"] == "optimize:true|B"
        assert result["total_distance"] == 17.3
        assert result["total_duration"] == 20
        assert result["segments"][0]["start_name"] == "A St"
        assert result["segments"][0]["distance"] == 12.3
        assert result["segments"][0]["duration"] == 15
        assert result["segments"][0]["polyline"] == "abcdef"
        assert result["polyline"] == "overview"

    def test_directions_rounds_half_minutes_up(self, mock_http):
        payload = _directions_payload([_leg("A", "B", 250, 150)])

        result = GoogleMapsClient("k", client=mock_http(lambda r: httpx.Response(200, json=payload))).directions("A", "B")

        assert result["segments"][0]["duration"] == 3
        assert result["segments"][0]["distance"] == 0.3
        assert result["total_duration"] == 3

    def test_directions_caps_waypoints(self, mock_http):
        captured = {}

        def handler(request):
            captured.update(request.url.params)
            return httpx.Response(200, json=_directions_payload([_leg("A", "B", 1000, 60)]))

        waypoints = [f"W{i}" for i in range(30)]
        GoogleMapsClient("k", client=mock_http(handler)).directions("A", "B", waypoints)
        assert captured["waypoints"].count("|") == 23

    def test_directions_no_routes(self, mock_http):
        client = mock_http(lambda r: httpx.Response(200, json={"status": "OK", "routes": []}))
        with pytest.raises(MapsError) as exc:
            GoogleMapsClient("k", client=client).directions("A", "B")
        assert exc.value.status_code == 404


class TestMapboxClient:
    def test_geocode_returns_lng_lat(self, mock_http):
        lng, lat = MapboxClient("t", client=mock_http(_mapbox_handler)).geocode("Chitila, Romania")
        assert (lng, lat) == (25.984056, 44.5062199)

    def test_no_features(self, mock_http):
        client = mock_http(lambda r: httpx.Response(200, json={"features": []}))
        with pytest.raises(MapsError) as exc:
            MapboxClient("t", client=client).geocode("nowhere")
        assert exc.value.status_code == 404

    def test_requires_token(self, configured):
        configured(mapbox_access_token=None)
        with pytest.raises(ValueError, match="Mapbox token"):
            MapboxClient()


class TestRouteCalculation:
    def test_parse_store_ids(self):
        assert parse_store_ids("101, 102,abc,101, 103") == ["101", "102", "103"]
        assert parse_store_ids([7, "8"]) == ["7", "8"]
        assert parse_store_ids(None) == []

    def test_multi_point_route_labels_segments_in_visit_order(self, mock_http):
        legs = [_leg("HQ", "B", 1000, 60), _leg("B", "A", 2000, 120), _leg("A", "HQ", 3000, 180)]
        client = mock_http(lambda r: httpx.Response(200, json=_directions_payload(legs, [1, 0])))

        route = multi_point_route(GoogleMapsClient("k", client=client), ["HQ", "A", "B", "HQ"])

        ids = [(s["start_store_id"], s["end_store_id"]) for s in route["segments"]]
        assert ids == [("HQ", "waypoint_2"), ("waypoint_2", "waypoint_1"), ("waypoint_1", "HQ")]
        assert route["distance"] == 6.0
        assert route["duration"] == 6

    def test_multi_point_route_needs_two_stops(self, mock_http):
        client = mock_http(lambda r: httpx.Response(500))
        with pytest.raises(ValueError, match="At least 2 valid stops"):
            multi_point_route(GoogleMapsClient("k", client=client), ["HQ", ""])

    def test_route_distance_prefers_google(self, mock_http):
        legs = [_leg("HQ", "X", 40000, 1800), _leg("X", "HQ", 41000, 1900)]
        google = GoogleMapsClient("k", client=mock_http(lambda r: httpx.Response(200, json=_directions_payload(legs))))

        result = route_distance(["Ploiesti, Prahova"], google=google)

        assert result == {"distance": 81.0, "duration": 62, "method": "google"}

    def test_route_distance_falls_back_to_estimate(self, mock_http):
        google = GoogleMapsClient("k", client=mock_http(lambda r: httpx.Response(200, json={"status": "REQUEST_DENIED"})))
        mapbox = MapboxClient("t", client=mock_http(_mapbox_handler))

        result = route_distance(["Ploiesti, Prahova"], google=google, mapbox=mapbox)

        assert result["method"] == "estimate"
        assert 33 <= result["distance"] <= 35
        assert 33 <= result["duration"] <= 35

    def test_route_distance_without_providers(self):
        with pytest.raises(MapsError) as exc:
            route_distance(["Ploiesti"])
        assert exc.value.status_code == 500


class TestGps:
    POSITIONS = [{
        "deviceId": 17,
        "coordinate": {"latitude": 44.5, "longitude": 25.98},
        "heading": 90,
        "speed": 54,
        "ignitionState": "ON",
        "temperature": 21,
        "dateTime": {"year": 2024, "month": 5, "day": 10, "hour": 8, "minute": 5, "seconds": 9},
    }, {
        "deviceId": 99,
        "coordinate": {"latitude": 45.0, "longitude": 26.0},
        "ignitionState": "OFF",
        "dateTime": None,
    }]
    DEVICES = [{"deviceId": 17, "deviceName": "B 100 ABC", "driverId": 3, "driverName": "Ion"}]

    def test_position_timestamp(self):
        ts = position_timestamp({"year": 2024, "month": 5, "day": 10, "hour": 8, "minute": 5, "seconds": 9})
        assert ts.isoformat() == "2024-05-10T08:05:09+00:00"
        assert position_timestamp(None) is None
        assert position_timestamp({"year": "x"}) is None

    def test_combine_positions(self):
        combined = combine_positions(self.POSITIONS, self.DEVICES)

        known, unknown = combined
        assert known["name"] == "B 100 ABC"
        assert known["driver_name"] == "Ion"
        assert known["status"] == "online"
        assert known["last_update"] == "2024-05-10T08:05:09+00:00"
        assert known["position"]["speed"] == 54
        assert unknown["name"] == "Device 99"
        assert unknown["driver_name"] == "Unknown Driver"
        assert unknown["status"] == "offline"
        assert unknown["last_update"] is None

    def test_client_fetches_both_feeds(self, mock_http):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            assert request.url.params["groupID"] == "g"
            assert request.url.params["userName"] == "u"
            if "positions" in request.url.path:
                return httpx.Response(200, json={"positionList": self.POSITIONS})
            return httpx.Response(200, json={"deviceList": self.DEVICES})

        vehicles = GpsClient("g", "u", "p", client=mock_http(handler)).vehicles()

        assert len(vehicles) == 2
        assert len(seen) == 2

    def test_client_failure(self, mock_http):
        client = GpsClient("g", "u", "p", client=mock_http(lambda r: httpx.Response(500)))
        with pytest.raises(GpsError, match="Failed to fetch GPS data"):
            client.positions()

    def test_client_requires_credentials(self, configured):
        configured(gps_group_id=None, gps_username=None, gps_password=None)
        with pytest.raises(ValueError):
            GpsClient()
