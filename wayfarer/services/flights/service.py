"""Flight route and airline lookup using adsbdb (free, keyless).

adsbdb knows which airports a callsign flies between but has no schedules,
so results carry no departure or arrival times. A route does not depend on
the travel date: it is cached by callsign alone and stamped with the
requested date on every read.

Unknown callsigns and airlines come back as 404 with a plain string body;
both are treated as "no result" rather than errors.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

from wayfarer.models import Address, Airline, FlightSearchResult, GeoLocation, Location
from wayfarer.resilience.errors import ErrorKind, UpstreamError
from wayfarer.services.cache import CacheType, TypedCache
from wayfarer.services.cache.keys import airline_search_key, flight_route_key
from wayfarer.services.http import VendorHttpClient

logger = logging.getLogger(__name__)

VENDOR = "adsbdb"

API_BASE = "https://api.adsbdb.com/v0"

MIN_AIRLINE_QUERY = 2

# Timezones for major hubs; other airports are left without one
AIRPORT_TIMEZONES = {
    "JFK": "America/New_York",
    "LAX": "America/Los_Angeles",
    "SFO": "America/Los_Angeles",
    "ORD": "America/Chicago",
    "DFW": "America/Chicago",
    "DEN": "America/Denver",
    "SEA": "America/Los_Angeles",
    "MIA": "America/New_York",
    "BOS": "America/New_York",
    "ATL": "America/New_York",
    "LHR": "Europe/London",
    "CDG": "Europe/Paris",
    "FRA": "Europe/Berlin",
    "AMS": "Europe/Amsterdam",
    "NRT": "Asia/Tokyo",
    "HND": "Asia/Tokyo",
    "SYD": "Australia/Sydney",
    "SIN": "Asia/Singapore",
    "HKG": "Asia/Hong_Kong",
    "DXB": "Asia/Dubai",
}

_WHITESPACE = re.compile(r"\s+")


def make_callsign(airline_code: str, flight_number: str) -> str:
    """``("ba", " 283")`` -> ``"BA283"``."""
    return _WHITESPACE.sub("", f"{airline_code}{flight_number}").upper()


# ─── Normalization ───


def airport_to_location(airport: dict) -> Location:
    iata = airport.get("iata_code") or airport.get("icao_code") or ""
    city = airport.get("municipality") or ""
    country = airport.get("country_name") or ""
    return Location(
        name=f"{airport.get('name') or 'Unknown airport'} ({iata})",
        address=Address(
            city=city,
            country=country,
            formatted=", ".join(part for part in (iata, city, country) if part),
        ),
        geo=GeoLocation(latitude=airport["latitude"], longitude=airport["longitude"]),
        timezone=AIRPORT_TIMEZONES.get(iata),
    )


def to_airline(raw: dict) -> Airline:
    return Airline(
        name=raw.get("name") or "Unknown",
        code=raw.get("iata") or raw.get("icao") or "",
        icao_code=raw.get("icao"),
        country=raw.get("country"),
    )


def route_to_flight(route: dict, flight_number: str) -> FlightSearchResult:
    """Build an undated flight result from an adsbdb ``flightroute``."""
    airline = route.get("airline") or {}
    return FlightSearchResult(
        airline=airline.get("name") or "Unknown",
        airline_code=airline.get("iata") or airline.get("icao") or "",
        flight_number=flight_number,
        origin=airport_to_location(route["origin"]),
        destination=airport_to_location(route["destination"]),
        departure_date="",
    )


def _response(payload: Any) -> Any:
    if not isinstance(payload, dict) or "response" not in payload:
        raise UpstreamError(ErrorKind.INVALID_RESPONSE, "adsbdb response malformed", vendor=VENDOR)
    return payload["response"]


# ─── Service ───


class FlightService(ABC):
    """Abstract base class for flight lookups."""

    @abstractmethod
    async def search_flight(
        self, airline_code: str, flight_number: str, date: str
    ) -> Optional[FlightSearchResult]:
        pass

    @abstractmethod
    async def search_all_flights(
        self, airline_code: str, flight_number: str, date: str
    ) -> list[FlightSearchResult]:
        pass

    @abstractmethod
    async def search_airlines(self, query: str) -> list[Airline]:
        pass


class AdsbdbFlightService(FlightService):
    """adsbdb flight route adapter."""

    def __init__(self, http: VendorHttpClient, cache: TypedCache) -> None:
        self._http = http
        self._cache = cache

    async def _get(self, path: str) -> Optional[Any]:
        """GET an adsbdb resource; None when adsbdb does not know it."""
        try:
            payload = await self._http.get_json(f"{API_BASE}/{path}", vendor=VENDOR)
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
        response = _response(payload)
        if isinstance(response, str):
            # e.g. "unknown callsign"
            return None
        return response

    async def _route(self, callsign: str, flight_number: str) -> Optional[FlightSearchResult]:
        async def fetch() -> Optional[FlightSearchResult]:
            response = await self._get(f"callsign/{quote(callsign, safe='')}")
            if response is None:
                logger.info(f"[FLIGHTS] Unknown callsign {callsign}")
                return None
            route = response.get("flightroute") if isinstance(response, dict) else None
            if not route:
                return None
            try:
                return route_to_flight(route, flight_number)
            except (KeyError, TypeError) as e:
                raise UpstreamError(
                    ErrorKind.INVALID_RESPONSE, f"adsbdb route incomplete: {e}", vendor=VENDOR
                ) from e

        return await self._cache.dedupe_request(flight_route_key(callsign), fetch, CacheType.FLIGHT_ROUTE)

    async def search_flight(
        self, airline_code: str, flight_number: str, date: str
    ) -> Optional[FlightSearchResult]:
        """Find the route flown under ``airline_code + flight_number``.

        Returns None when the callsign is unknown.
        """
        callsign = make_callsign(airline_code, flight_number)
        number = _WHITESPACE.sub("", flight_number)
        try:
            flight = await self._route(callsign, number)
        except UpstreamError as e:
            logger.warning(f"[FLIGHTS] Lookup failed for {callsign}: {e.message}")
            raise

        if flight is None:
            return None
        return flight.model_copy(update={"departure_date": date})

    async def search_all_flights(
        self, airline_code: str, flight_number: str, date: str
    ) -> list[FlightSearchResult]:
        """Look the flight up under every code the airline is known by.

        A flight may be filed under the IATA (``BA283``) or ICAO
        (``BAW283``) callsign; distinct routes from both are returned.
        """
        number = _WHITESPACE.sub("", flight_number)
        callsigns = [make_callsign(airline_code, number)]
        for airline in await self.search_airlines(airline_code):
            for code in (airline.code, airline.icao_code):
                if code and make_callsign(code, number) not in callsigns:
                    callsigns.append(make_callsign(code, number))

        flights: list[FlightSearchResult] = []
        seen: set[tuple[str, str]] = set()
        for callsign in callsigns:
            flight = await self._route(callsign, number)
            if flight is None:
                continue
            route = (flight.origin.name, flight.destination.name)
            if route in seen:
                continue
            seen.add(route)
            flights.append(flight.model_copy(update={"departure_date": date}))

        logger.info(f"[FLIGHTS] {airline_code}{number}: {len(flights)} route(s) via {callsigns}")
        return flights

    async def search_airlines(self, query: str) -> list[Airline]:
        """Find airlines by IATA (2 letters) or ICAO (3 letters) code."""
        code = query.strip().upper()
        if len(code) < MIN_AIRLINE_QUERY:
            return []

        async def fetch() -> list[Airline]:
            response = await self._get(f"airline/{quote(code, safe='')}")
            if response is None:
                return []
            raw = response if isinstance(response, list) else [response]
            return [to_airline(item) for item in raw if isinstance(item, dict)]

        try:
            return await self._cache.dedupe_request(
                airline_search_key(code), fetch, CacheType.AIRLINE_SEARCH
            )
        except UpstreamError as e:
            logger.warning(f"[FLIGHTS] Airline search failed for {code}: {e.message}")
            raise
