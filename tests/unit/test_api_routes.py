"""Unit tests for the HTTP API.

Every test builds its own application around a fake clock and a stubbed
vendor transport, so no state is shared between tests.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeClock, Recorder
from wayfarer.config import Settings
from wayfarer.main import create_app
from wayfarer.services.cache import CacheType
from wayfarer.services.container import build_services

SF_FORECAST = {
    "daily": {
        "time": ["2025-06-15", "2025-06-16"],
        "temperature_2m_max": [21.0, 23.0],
        "temperature_2m_min": [12.0, 13.0],
        "weathercode": [1, 3],
        "precipitation_probability_max": [0, 20],
        "windspeed_10m_max": [18.0, 15.0],
        "relative_humidity_2m_max": [80, 75],
        "uv_index_max": [7.0, 6.0],
        "sunrise": ["2025-06-15T05:47", "2025-06-16T05:47"],
        "sunset": ["2025-06-15T20:34", "2025-06-16T20:34"],
    }
}

BA283 = {
    "response": {
        "flightroute": {
            "airline": {"name": "British Airways", "iata": "BA", "icao": "BAW"},
            "origin": {
                "name": "San Francisco International Airport",
                "iata_code": "SFO",
                "municipality": "San Francisco",
                "country_name": "United States",
                "latitude": 37.619,
                "longitude": -122.375,
            },
            "destination": {
                "name": "London Heathrow Airport",
                "iata_code": "LHR",
                "municipality": "London",
                "country_name": "United Kingdom",
                "latitude": 51.4706,
                "longitude": -0.461941,
            },
        }
    }
}


def default_routes() -> dict:
    return {
        "/v1/forecast": httpx.Response(200, json=SF_FORECAST),
        "/v0/callsign/BA283": httpx.Response(200, json=BA283),
        "/v0/airline/BA": httpx.Response(200, json={"response": [{"name": "British Airways", "iata": "BA", "icao": "BAW"}]}),
        "/routed-car": httpx.Response(200, json={"code": "Ok", "routes": [{"duration": 600, "distance": 4200}]}),
    }


def make_client(routes: dict | None = None, **settings) -> tuple[TestClient, Recorder, FakeClock]:
    vendor = Recorder(routes if routes is not None else default_routes())
    clock = FakeClock()
    services = build_services(Settings(**settings), clock=clock, transport=httpx.MockTransport(vendor))
    return TestClient(create_app(services=services), raise_server_exceptions=False), vendor, clock


def error_of(response: httpx.Response) -> dict:
    body = response.json()
    assert body["success"] is False
    return body["error"]


@pytest.fixture
def client() -> TestClient:
    return make_client()[0]


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["cache"]["total"] == 0


class TestRateLimiting:
    """The per-category budget gates every route before validation."""

    def test_headers_on_success(self, client: TestClient) -> None:
        response = client.get("/api/flights/airlines", params={"q": "BA"})
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "50"
        assert response.headers["X-RateLimit-Remaining"] == "49"
        assert "X-RateLimit-Reset" in response.headers

    def test_429_after_budget_is_spent(self) -> None:
        client, vendor, _ = make_client(rate_limit_max={"flights": 2})
        for _ in range(2):
            assert client.get("/api/flights/airlines", params={"q": "BA"}).status_code == 200

        response = client.get("/api/flights/airlines", params={"q": "BA"})
        assert response.status_code == 429
        assert error_of(response)["code"] == "RATE_LIMITED"
        assert error_of(response)["message"] == "Too many requests"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        # The second request was served from cache; the denied one never reached the vendor
        assert len(vendor.requests) == 1

    def test_invalid_requests_count_against_budget(self) -> None:
        client, _, _ = make_client(rate_limit_max={"routing": 1})
        assert client.get("/api/routing").status_code == 400
        assert client.get("/api/routing").status_code == 429

    def test_categories_are_independent(self) -> None:
        client, _, _ = make_client(rate_limit_max={"flights": 1})
        client.get("/api/flights/airlines", params={"q": "BA"})
        assert client.get("/api/flights/airlines", params={"q": "BA"}).status_code == 429
        assert client.get("/api/routing", params={"fromLat": "1", "fromLon": "1", "toLat": "1", "toLon": "1", "mode": "transit"}).status_code == 200

    def test_clients_identified_by_forwarded_for(self) -> None:
        client, _, _ = make_client(rate_limit_max={"flights": 1})
        first = {"X-Forwarded-For": "203.0.113.7"}
        second = {"X-Forwarded-For": "203.0.113.8"}
        assert client.get("/api/flights/airlines", params={"q": "BA"}, headers=first).status_code == 200
        assert client.get("/api/flights/airlines", params={"q": "BA"}, headers=first).status_code == 429
        assert client.get("/api/flights/airlines", params={"q": "BA"}, headers=second).status_code == 200

    def test_window_resets(self) -> None:
        client, _, clock = make_client(rate_limit_max={"flights": 1})
        client.get("/api/flights/airlines", params={"q": "BA"})
        assert client.get("/api/flights/airlines", params={"q": "BA"}).status_code == 429
        clock.advance(60)
        assert client.get("/api/flights/airlines", params={"q": "BA"}).status_code == 200


class TestWeatherRoute:
    def test_weather(self, client: TestClient) -> None:
        response = client.get(
            "/api/weather",
            params={"lat": "37.7749", "lon": "-122.4194", "dates": "2025-06-16,2025-06-15", "name": "San Francisco"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [day["date"] for day in body["weather"]] == ["2025-06-16", "2025-06-15"]
        assert body["weather"][0]["condition"] == "overcast"
        assert body["weather"][1]["location"]["name"] == "San Francisco"

    @pytest.mark.parametrize(
        "params, message",
        [
            ({"dates": "2025-06-15"}, "Missing or invalid lat/lon parameters"),
            ({"lat": "abc", "lon": "1", "dates": "2025-06-15"}, "Missing or invalid lat/lon parameters"),
            ({"lat": "91", "lon": "1", "dates": "2025-06-15"}, "Latitude must be between -90 and 90"),
            ({"lat": "10", "lon": "-181", "dates": "2025-06-15"}, "Longitude must be between -180 and 180"),
            ({"lat": "10", "lon": "10"}, "Missing dates parameter"),
            ({"lat": "10", "lon": "10", "dates": "June 15"}, "No valid dates provided (expected YYYY-MM-DD format)"),
        ],
    )
    def test_validation(self, client: TestClient, params: dict, message: str) -> None:
        response = client.get("/api/weather", params=params)
        assert response.status_code == 400
        assert error_of(response) == {"code": "VALIDATION_ERROR", "message": message, "user_message": message}

    def test_invalid_timezone(self, client: TestClient) -> None:
        response = client.get(
            "/api/weather", params={"lat": "10", "lon": "10", "dates": "2025-06-15", "timezone": "Mars/Olympus"}
        )
        assert response.status_code == 400
        assert error_of(response)["message"].startswith("Invalid timezone: 'Mars/Olympus'")


class TestUpstreamFailures:
    """Vendor failures are mapped onto client-facing responses."""

    def test_vendor_rate_limit_becomes_503_with_retry_after(self) -> None:
        client, vendor, _ = make_client(
            {"/v1/geocode/autocomplete": httpx.Response(429, headers={"Retry-After": "2"})},
            geoapify_api_key="geo-key",
        )
        response = client.get("/api/cities", params={"q": "paris"})
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "2"
        assert error_of(response)["code"] == "UPSTREAM_RATE_LIMITED"
        assert error_of(response)["message"] == "External API rate limit exceeded"
        assert "X-RateLimit-Limit" in response.headers
        assert len(vendor.requests) == 3

    def test_vendor_rate_limit_without_hint_defaults_to_60(self) -> None:
        client, _, _ = make_client(
            {"/v1/geocode/autocomplete": httpx.Response(429)}, geoapify_api_key="geo-key"
        )
        response = client.get("/api/cities", params={"q": "paris"})
        assert response.headers["Retry-After"] == "60"

    def test_non_finite_retry_after_defaults_to_60(self) -> None:
        client, _, _ = make_client(
            {"/v1/geocode/autocomplete": httpx.Response(429, headers={"Retry-After": "inf"})},
            geoapify_api_key="geo-key",
        )
        response = client.get("/api/cities", params={"q": "paris"})
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "60"

    def test_missing_key_is_not_configured(self, client: TestClient) -> None:
        response = client.get("/api/places/food", params={"lat": "48.86", "lon": "2.34"})
        assert response.status_code == 500
        assert error_of(response)["code"] == "NOT_CONFIGURED"
        assert error_of(response)["message"] == "Places service not configured"
        assert "FOURSQUARE" not in response.text

    def test_server_error_is_service_error(self) -> None:
        client, _, _ = make_client({"/v0/airline": httpx.Response(500)})
        response = client.get("/api/flights/airlines", params={"q": "BA"})
        assert response.status_code == 500
        assert error_of(response) == {
            "code": "SERVICE_ERROR",
            "message": "Flight search service error",
            "user_message": "Flight search service error",
        }


class TestGeocodingRoutes:
    def test_city_search_validation(self, client: TestClient) -> None:
        assert error_of(client.get("/api/cities"))["message"] == "Missing required parameter: q"
        assert error_of(client.get("/api/cities", params={"q": "p"}))["message"] == "Query must be at least 2 characters"
        response = client.get("/api/cities", params={"q": "paris", "limit": "500"})
        assert error_of(response)["message"] == "Limit must be a number between 1 and 50"

    def test_geocoding_validation(self, client: TestClient) -> None:
        assert error_of(client.get("/api/geocoding", params={"address": "ab"}))["message"] == (
            "Address must be at least 3 characters"
        )
        assert error_of(client.get("/api/geocoding"))["message"] == (
            'Missing required parameters. Provide either "address" or "lat" and "lon"'
        )

    def test_no_geocoding_match(self) -> None:
        client, _, _ = make_client({"/v1/geocode/search": httpx.Response(200, json={"results": []})}, geoapify_api_key="k")
        response = client.get("/api/geocoding", params={"address": "nowhere at all"})
        assert response.status_code == 200
        assert response.json()["message"] == "No results found"


class TestPlacesRoutes:
    def test_food_requires_location(self, client: TestClient) -> None:
        response = client.get("/api/places/food")
        assert error_of(response)["message"] == "Missing required parameters: lat and lon"

    def test_radius_bounds(self, client: TestClient) -> None:
        response = client.get("/api/places/attractions", params={"lat": "48.86", "lon": "2.34", "radius": "50"})
        assert error_of(response)["message"] == "Radius must be a number between 100 and 50000 (meters)"

    def test_lodging_requires_query(self, client: TestClient) -> None:
        assert error_of(client.get("/api/places/lodging"))["message"] == "Missing required parameter: query"

    def test_details_requires_id(self, client: TestClient) -> None:
        assert error_of(client.get("/api/places/details"))["message"] == "Missing required parameter: id"

    def test_unknown_place_is_404(self) -> None:
        client, _, _ = make_client({}, foursquare_api_key="fsq-key")
        response = client.get("/api/places/details", params={"id": "fsq-missing"})
        assert response.status_code == 404
        assert error_of(response)["code"] == "NOT_FOUND"

    def test_food_search(self) -> None:
        venue = {
            "fsq_id": "abc",
            "name": "Le Bistro",
            "categories": [{"id": 13065, "name": "French Restaurant"}],
            "geocodes": {"main": {"latitude": 48.86, "longitude": 2.34}},
            "price": 2,
        }
        client, vendor, _ = make_client(
            {"/v3/places/search": httpx.Response(200, json={"results": [venue]})}, foursquare_api_key="fsq-key"
        )
        response = client.get("/api/places/food", params={"lat": "48.86", "lon": "2.34", "priceLevel": "2,3"})
        assert response.status_code == 200
        assert [v["id"] for v in response.json()["venues"]] == ["fsq-abc"]


class TestFlightRoutes:
    def test_search(self, client: TestClient) -> None:
        response = client.get("/api/flights/search", params={"airline": "BA", "flight": "283", "date": "2025-07-01"})
        assert response.status_code == 200
        body = response.json()
        assert body["found"] is True
        assert body["flight"]["departure_date"] == "2025-07-01"
        assert body["flight"]["destination"]["name"] == "London Heathrow Airport (LHR)"

    def test_search_all(self, client: TestClient) -> None:
        response = client.get(
            "/api/flights/search", params={"airline": "BA", "flight": "283", "date": "2025-07-01", "all": "true"}
        )
        body = response.json()
        assert body["found"] is True
        assert len(body["flights"]) == 1

    def test_not_found(self, client: TestClient) -> None:
        response = client.get("/api/flights/search", params={"airline": "ZZ", "flight": "1", "date": "2025-07-01"})
        assert response.status_code == 404
        assert error_of(response)["message"] == "Flight not found"

    @pytest.mark.parametrize(
        "params, message",
        [
            ({"flight": "283", "date": "2025-07-01"}, "Missing airline parameter"),
            ({"airline": "BA", "date": "2025-07-01"}, "Missing flight parameter"),
            ({"airline": "BA", "flight": "283", "date": "07/01/2025"}, "Missing or invalid date parameter (expected YYYY-MM-DD format)"),
        ],
    )
    def test_validation(self, client: TestClient, params: dict, message: str) -> None:
        response = client.get("/api/flights/search", params=params)
        assert response.status_code == 400
        assert error_of(response)["message"] == message

    def test_airlines_accepts_query_alias(self, client: TestClient) -> None:
        response = client.get("/api/flights/airlines", params={"query": "ba"})
        assert [a["code"] for a in response.json()["airlines"]] == ["BA"]


class TestRoutingRoute:
    COORDS = {"fromLat": "40.7580", "fromLon": "-73.9855", "toLat": "40.7829", "toLon": "-73.9654"}

    def test_single_mode(self, client: TestClient) -> None:
        response = client.get("/api/routing", params={**self.COORDS, "mode": "driving"})
        assert response.status_code == 200
        assert response.json()["route"] == {"mode": "driving", "duration": 10, "distance": 4.2, "is_estimate": False}

    def test_all_modes(self, client: TestClient) -> None:
        response = client.get("/api/routing", params={**self.COORDS, "all": "true"})
        routes = response.json()["routes"]
        assert [r["mode"] for r in routes] == ["driving", "walking", "bicycling", "transit"]
        # Only the car router is stubbed; the rest fall back to estimates
        assert [r["is_estimate"] for r in routes] == [False, True, True, True]

    def test_invalid_mode(self, client: TestClient) -> None:
        response = client.get("/api/routing", params={**self.COORDS, "mode": "teleport"})
        assert error_of(response)["message"] == "Invalid mode. Must be one of: driving, walking, bicycling, transit"

    def test_missing_destination(self, client: TestClient) -> None:
        response = client.get("/api/routing", params={"fromLat": "1", "fromLon": "1", "mode": "driving"})
        assert error_of(response)["message"] == "Missing or invalid toLat/toLon parameters"


class TestHousekeeping:
    def test_drops_expired_entries_and_idle_windows(self) -> None:
        clock = FakeClock()
        services = build_services(Settings(), clock=clock)
        services.cache.set("weather:forecast:1.00:1.00:2025-06-15", "sunny", CacheType.WEATHER_FORECAST)
        services.cache.set("timezone:1.00:1.00", "Etc/GMT", CacheType.TIMEZONE)
        services.rate_limiter.check("203.0.113.7", "weather")

        assert services.housekeeping() == (0, 0)
        clock.advance(2 * 60 * 60)
        assert services.housekeeping() == (1, 1)
        assert services.cache.stats().total == 1
