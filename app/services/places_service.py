"""
Google Places and Directions lookups for vendors around Tulum.

Vendors are resolved by place id when one is stored, otherwise by a text
search biased to Tulum Centro. Travel time from Centro drives the arrival
tips saved on itinerary items.
"""
import math
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.core.config import settings
from app.core.errors import ServiceUnavailableError, UpstreamError, ValidationError
from app.core.logging import get_logger
from app.models.schemas import (
    LatLng,
    PlaceReview,
    PlaceReviews,
    Restaurant,
    VendorDirections,
)

logger = get_logger("GOOGLE-PLACES")

GOOGLE_MAPS_API = "https://maps.googleapis.com/maps/api"
ORIGIN_NAME = "Tulum Centro"

VENDOR_SEARCH_RADIUS_M = 20000
REVIEW_SEARCH_RADIUS_M = 5000
RESTAURANT_RADIUS_M = 10000
MIN_RESTAURANT_RATING = 4.0
MAX_RESTAURANTS = 12
GENERIC_PLACE_TYPES = {"restaurant", "food", "point_of_interest", "establishment"}

NO_DIRECTIONS_MESSAGE = "Could not calculate directions"


def generate_arrival_tips(duration_minutes: int) -> List[str]:
    if duration_minutes <= 10:
        tips = [
            f"🚗 Only {duration_minutes} min from Tulum Centro - very convenient!",
            "⏰ Arrive 10-15 minutes early to check in and get settled.",
        ]
    elif duration_minutes <= 20:
        tips = [
            f"🚗 About {duration_minutes} min drive from Tulum Centro.",
            "⏰ Plan to leave 25-30 minutes before your booking time.",
        ]
    elif duration_minutes <= 30:
        tips = [
            f"🚗 {duration_minutes} min drive - moderate distance from Centro.",
            "⏰ Leave 40-45 minutes early to account for traffic and parking.",
        ]
    else:
        tips = [
            f"🚗 {duration_minutes} min drive - plan ahead for this trip!",
            "⏰ Leave at least 1 hour early, especially during peak hours.",
        ]

    tips.append("🛣️ Beach Road (Carretera Tulum-Boca Paila) can have heavy traffic 11am-4pm.")
    tips.append("💡 Consider renting a bike for short distances or during busy periods.")
    return tips


def _location(geometry: Optional[Dict[str, Any]]) -> Optional[LatLng]:
    location = (geometry or {}).get("location") or {}
    if location.get("lat") is None or location.get("lng") is None:
        return None
    return LatLng(lat=location["lat"], lng=location["lng"])


def to_restaurant(place: Dict[str, Any]) -> Restaurant:
    photos = place.get("photos") or []
    return Restaurant(
        id=place["place_id"],
        name=place.get("name") or "",
        rating=place.get("rating"),
        review_count=place.get("user_ratings_total"),
        price_level=place.get("price_level"),
        address=place.get("vicinity"),
        is_open=(place.get("opening_hours") or {}).get("open_now"),
        photo_reference=photos[0].get("photo_reference") if photos else None,
        location=_location(place.get("geometry")),
        types=[t for t in place.get("types") or [] if t not in GENERIC_PLACE_TYPES],
    )


def rank_restaurants(places: List[Dict[str, Any]]) -> List[Restaurant]:
    """Top rated first, review count breaking ties. Anything under 4.0 is dropped."""
    rated = [p for p in places if (p.get("rating") or 0) >= MIN_RESTAURANT_RATING]
    rated.sort(key=lambda p: (-(p.get("rating") or 0), -(p.get("user_ratings_total") or 0)))
    return [to_restaurant(p) for p in rated[:MAX_RESTAURANTS]]


class PlacesSource(Protocol):
    def vendor_directions(self, vendor_name: Optional[str] = None, vendor_address: Optional[str] = None, place_id: Optional[str] = None) -> VendorDirections: ...

    def place_reviews(self, place_id: Optional[str] = None, search_query: Optional[str] = None, lat: Optional[float] = None, lng: Optional[float] = None) -> PlaceReviews: ...

    def top_restaurants(self) -> List[Restaurant]: ...


class GooglePlacesClient:
    def __init__(self, api_key: Optional[str] = None, timeout: float = 15.0):
        self.api_key = api_key or settings.GOOGLE_PLACES_API_KEY
        self.timeout = timeout

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            logger.error("GOOGLE_PLACES_API_KEY not configured")
            raise ServiceUnavailableError("Places API key not configured")

        client = httpx.Client(timeout=self.timeout)
        try:
            response = client.get(f"{GOOGLE_MAPS_API}/{path}", params={**params, "key": self.api_key})
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Google API HTTP error", path=path, status=e.response.status_code)
            raise UpstreamError("Places service error")
        except Exception as e:
            logger.error("Google API request failed", path=path, error=str(e))
            raise UpstreamError("Places service error")
        finally:
            client.close()

    def find_place(self, query: str, fields: str, bias: Optional[str] = None) -> Optional[Dict[str, Any]]:
        params = {"input": query, "inputtype": "textquery", "fields": fields}
        if bias:
            params["locationbias"] = bias
        data = self._get("place/findplacefromtext/json", params)
        candidates = data.get("candidates") or []
        return candidates[0] if candidates else None

    def place_details(self, place_id: str, fields: str) -> Dict[str, Any]:
        return self._get("place/details/json", {"place_id": place_id, "fields": fields})

    def vendor_directions(
        self,
        vendor_name: Optional[str] = None,
        vendor_address: Optional[str] = None,
        place_id: Optional[str] = None,
    ) -> VendorDirections:
        """
        Driving directions from Tulum Centro to a vendor.

        The vendor is located by place id first, then by a text search on its
        address or name. When neither finds it the route is asked for by name.
        """
        if not (vendor_name or vendor_address or place_id):
            raise ValidationError("vendor_name, vendor_address or place_id is required")

        destination = vendor_address or vendor_name or ""
        vendor_location = None

        if place_id:
            details = self.place_details(place_id, "geometry,formatted_address,name")
            result = details.get("result")
            if details.get("status") == "OK" and result:
                vendor_location = _location(result.get("geometry"))
                destination = result.get("formatted_address") or result.get("name") or destination

        if vendor_location is None and (vendor_name or vendor_address):
            centro_lat, centro_lng = settings.DEFAULT_ROUTE_ORIGIN
            candidate = self.find_place(
                vendor_address or f"{vendor_name} Tulum Mexico",
                "place_id,geometry,formatted_address,name",
                bias=f"circle:{VENDOR_SEARCH_RADIUS_M}@{centro_lat},{centro_lng}",
            )
            if candidate:
                vendor_location = _location(candidate.get("geometry"))
                destination = candidate.get("formatted_address") or candidate.get("name") or destination

        origin_lat, origin_lng = settings.DEFAULT_ROUTE_ORIGIN
        target = f"{vendor_location.lat},{vendor_location.lng}" if vendor_location else f"{destination} Tulum Mexico"
        data = self._get("directions/json", {
            "origin": f"{origin_lat},{origin_lng}",
            "destination": target,
            "mode": "driving",
        })

        if data.get("status") != "OK" or not data.get("routes"):
            logger.warning("No directions for vendor", status=data.get("status"), destination=destination)
            return VendorDirections(error=NO_DIRECTIONS_MESSAGE, vendor_location=vendor_location)

        leg = data["routes"][0]["legs"][0]
        seconds = int(leg["duration"]["value"])
        result = VendorDirections(
            distance=leg["distance"]["text"],
            duration=leg["duration"]["text"],
            duration_value=seconds,
            origin=ORIGIN_NAME,
            destination=leg.get("end_address") or destination,
            vendor_location=vendor_location,
            arrival_tips=generate_arrival_tips(math.ceil(seconds / 60)),
        )
        logger.info("Vendor directions", destination=result.destination, duration=result.duration)
        return result

    def place_reviews(
        self,
        place_id: Optional[str] = None,
        search_query: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> PlaceReviews:
        if not place_id and search_query:
            bias = f"circle:{REVIEW_SEARCH_RADIUS_M}@{lat},{lng}" if lat and lng else None
            candidate = self.find_place(search_query, "place_id,name,formatted_address", bias=bias)
            if not candidate:
                logger.info("Place not found", query=search_query)
                return PlaceReviews(error="Place not found")
            place_id = candidate["place_id"]

        if not place_id:
            raise ValidationError("No place ID or search query provided")

        details = self.place_details(place_id, "name,rating,user_ratings_total,reviews,url")
        if details.get("status") != "OK":
            message = details.get("error_message") or "Failed to fetch place details"
            logger.warning("Place details error", status=details.get("status"), error=message)
            return PlaceReviews(error=message)

        result = details.get("result") or {}
        return PlaceReviews(
            place_id=place_id,
            name=result.get("name"),
            rating=result.get("rating"),
            total_reviews=result.get("user_ratings_total"),
            reviews=[PlaceReview(**review) for review in result.get("reviews") or []],
            google_maps_url=result.get("url") or f"https://www.google.com/maps/place/?q=place_id:{place_id}",
        )

    def top_restaurants(self) -> List[Restaurant]:
        lat, lng = settings.DEFAULT_ROUTE_ORIGIN
        data = self._get("place/nearbysearch/json", {
            "location": f"{lat},{lng}",
            "radius": RESTAURANT_RADIUS_M,
            "type": "restaurant",
            "rankby": "prominence",
        })
        status = data.get("status")
        if status not in ("OK", "ZERO_RESULTS"):
            logger.error("Nearby search failed", status=status, error=data.get("error_message"))
            raise UpstreamError(data.get("error_message") or f"Places API error: {status}")

        restaurants = rank_restaurants(data.get("results") or [])
        logger.info("Top restaurants", found=len(data.get("results") or []), returned=len(restaurants))
        return restaurants


def get_places_source() -> PlacesSource:
    return GooglePlacesClient()
