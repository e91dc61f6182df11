"""Business-directory collaborator: vendor search, geocoding, reviews and routes.

``BusinessDirectory`` is the contract the workflow consumes.
``GoogleMapsDirectory`` implements it against the Google Maps web services
with ``httpx`` and the shared tenacity retry policy.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, Protocol

import httpx
import structlog

from negotiator.domain.errors import CollaboratorError
from negotiator.domain.models import Business, GeoPoint, PlaceReviews, Review, RouteEstimate
from negotiator.resilience.retry import resilient_api_call

logger = structlog.get_logger()

MAPS_BASE_URL = "https://maps.googleapis.com/maps/api"
EARTH_RADIUS_KM = 6371.0
MAX_DETAIL_LOOKUPS = 10

# Service kinds mapped to a better directory search phrase
SEARCH_QUERIES: dict[str, str] = {
    "cab": "taxi service",
    "taxi": "taxi service",
    "plumber": "plumber",
    "electrician": "electrician",
    "caterer": "catering service",
    "carpenter": "carpenter",
    "painter": "painter",
    "cleaning": "cleaning service",
    "mover": "packers and movers",
    "mechanic": "car mechanic",
}


class BusinessDirectory(Protocol):
    """Directory lookups the workflow depends on."""

    async def search(
        self, service: str, location: GeoPoint, radius_km: float
    ) -> list[Business]: ...

    async def geocode(self, address: str) -> GeoPoint | None: ...

    async def place_reviews(self, business: Business) -> PlaceReviews | None: ...

    async def route_estimate(self, origin: str, destination: str) -> RouteEstimate | None: ...


def search_query_for(service: str) -> str:
    """Return the directory search phrase for a service kind."""
    return SEARCH_QUERIES.get(service.lower(), service)


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class GoogleMapsDirectory:
    """``BusinessDirectory`` backed by the Google Maps Places, Geocoding and
    Distance Matrix APIs.

    Args:
        api_key: Google Maps API key.
        client: Shared ``httpx.AsyncClient``; the caller owns its lifecycle.
    """

    def __init__(self, api_key: str, client: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._client = client

    @resilient_api_call("google_maps")
    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.get(
            f"{MAPS_BASE_URL}/{path}",
            params={**params, "key": self._api_key},
            timeout=30.0,
        )
        response.raise_for_status()
        return dict(response.json())

    async def search(self, service: str, location: GeoPoint, radius_km: float) -> list[Business]:
        """Find vendors for *service* within *radius_km* of *location*.

        Only businesses with a phone number inside the radius are returned,
        best rated and closest first.

        Raises:
            CollaboratorError: If the Places API reports an error status.
        """
        data = await self._get(
            "place/textsearch/json",
            {
                "query": search_query_for(service),
                "location": f"{location.lat},{location.lng}",
                "radius": int(radius_km * 1000),
            },
        )
        status = data.get("status", "")
        if status not in ("OK", "ZERO_RESULTS"):
            raise CollaboratorError("google_maps", f"text search failed with status {status}")

        places = data.get("results") or []
        phones = await asyncio.gather(
            *(self._phone_number(place["place_id"]) for place in places[:MAX_DETAIL_LOOKUPS])
        )

        businesses: list[Business] = []
        for place, phone in zip(places[:MAX_DETAIL_LOOKUPS], phones, strict=True):
            coords = place["geometry"]["location"]
            distance = haversine_km(location, GeoPoint(lat=coords["lat"], lng=coords["lng"]))
            businesses.append(
                Business(
                    id=place["place_id"],
                    name=place["name"],
                    phone=phone,
                    address=place.get("formatted_address", ""),
                    rating=place.get("rating") or 0.0,
                    review_count=place.get("user_ratings_total") or 0,
                    distance_km=round(distance, 1),
                    place_id=place["place_id"],
                    types=place.get("types", []),
                )
            )

        nearby = [b for b in businesses if b.phone and b.distance_km <= radius_km]
        nearby.sort(key=lambda b: b.rating * 2 - b.distance_km * 0.5, reverse=True)
        logger.info("directory_search_complete", service=service, found=len(nearby))
        return nearby

    async def _phone_number(self, place_id: str) -> str:
        data = await self._get(
            "place/details/json",
            {
                "place_id": place_id,
                "fields": "formatted_phone_number,international_phone_number",
            },
        )
        if data.get("status") != "OK":
            logger.warning(
                "place_details_unavailable", place_id=place_id, status=data.get("status")
            )
            return ""
        result = data.get("result", {})
        return str(
            result.get("formatted_phone_number") or result.get("international_phone_number") or ""
        )

    async def geocode(self, address: str) -> GeoPoint | None:
        """Resolve *address* to coordinates, or ``None`` when it cannot be found."""
        data = await self._get("geocode/json", {"address": address})
        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.warning("geocode_no_result", address=address, status=data.get("status"))
            return None
        coords = results[0]["geometry"]["location"]
        return GeoPoint(lat=coords["lat"], lng=coords["lng"])

    async def place_reviews(self, business: Business) -> PlaceReviews | None:
        """Fetch the rating summary and recent reviews for *business*."""
        if not business.place_id:
            return None
        data = await self._get(
            "place/details/json",
            {"place_id": business.place_id, "fields": "reviews,rating,user_ratings_total"},
        )
        if data.get("status") != "OK" or not data.get("result"):
            return None
        result = data["result"]
        return PlaceReviews(
            rating=result.get("rating") or 0.0,
            review_count=result.get("user_ratings_total") or 0,
            reviews=[
                Review(
                    author=r.get("author_name", ""),
                    rating=r.get("rating") or 0.0,
                    text=r.get("text", ""),
                )
                for r in result.get("reviews", [])
            ],
        )

    async def route_estimate(self, origin: str, destination: str) -> RouteEstimate | None:
        """Driving distance (km) and duration (minutes) between two addresses."""
        data = await self._get(
            "distancematrix/json", {"origins": origin, "destinations": destination}
        )
        rows = data.get("rows") or []
        if data.get("status") != "OK" or not rows or not rows[0].get("elements"):
            logger.warning("distance_matrix_unavailable", status=data.get("status"))
            return None
        element = rows[0]["elements"][0]
        if element.get("status") != "OK":
            return None
        return RouteEstimate(
            distance_km=element["distance"]["value"] / 1000,
            duration_min=element["duration"]["value"] / 60,
        )
