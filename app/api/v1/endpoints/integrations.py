# File: app/api/v1/endpoints/integrations.py

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from supabase import Client

from app.api.deps import client_identifier, get_ai, get_db, get_places, get_reviews
from app.auth.supabase_auth import AuthUser, get_current_user
from app.models.itinerary import TripChatRequest, TripChatResponse
from app.models.schemas import (
    DirectionsRequest,
    DirectionsResponse,
    PlaceReviews,
    PlaceReviewsRequest,
    PriceComparisonRequest,
    PriceComparisonResponse,
    RestaurantsResponse,
    ScrapeReviewsRequest,
    ScrapedReviews,
    VendorDescriptionRequest,
    VendorDescriptionResponse,
    VendorDirections,
    VendorDirectionsRequest,
)
from app.services import ai_service, directions_service
from app.services.ai_service import AIGatewayClient
from app.services.places_service import PlacesSource
from app.services.rate_limit import RateLimitConfig, enforce_rate_limit
from app.services.review_scraper import ReviewSource

router = APIRouter()

TRIP_CHAT_RATE_LIMIT = RateLimitConfig(window_minutes=1, max_requests=20)
PRICE_COMPARISON_RATE_LIMIT = RateLimitConfig(window_minutes=1, max_requests=20)


@router.post("/directions", response_model=DirectionsResponse)
def directions(request: DirectionsRequest):
    """
    Driving route from the origin (Tulum Centro by default) to a destination.
    """
    origin = None
    if request.origin_lat is not None and request.origin_lng is not None:
        origin = (request.origin_lat, request.origin_lng)

    result = directions_service.get_directions((request.destination_lat, request.destination_lng), origin)
    if result is None:
        # Clients read the error field; the status stays 200
        return JSONResponse(status_code=200, content={"error": "Could not calculate route"})
    return result


@router.post("/vendor-directions", response_model=VendorDirections, response_model_exclude_none=True)
def vendor_directions(request: VendorDirectionsRequest, places: PlacesSource = Depends(get_places)):
    """
    Drive from Tulum Centro to a vendor found by place id, address or name,
    with arrival tips sized to the trip. No route still answers 200 with an
    error field.
    """
    return places.vendor_directions(request.vendor_name, request.vendor_address, request.place_id)


@router.post("/google-reviews", response_model=PlaceReviews, response_model_exclude_none=True)
def google_reviews(request: PlaceReviewsRequest, places: PlacesSource = Depends(get_places)):
    return places.place_reviews(request.place_id, request.search_query, request.lat, request.lng)


@router.get("/restaurants", response_model=RestaurantsResponse)
def top_restaurants(places: PlacesSource = Depends(get_places)):
    return RestaurantsResponse(restaurants=places.top_restaurants())


@router.post("/reviews", response_model=ScrapedReviews)
def scrape_reviews(
    request: ScrapeReviewsRequest,
    user: AuthUser = Depends(get_current_user),
    source: ReviewSource = Depends(get_reviews),
):
    return source.fetch_reviews(request.url)


@router.post("/vendor-description", response_model=VendorDescriptionResponse)
def vendor_description(
    request: VendorDescriptionRequest,
    user: AuthUser = Depends(get_current_user),
    ai: AIGatewayClient = Depends(get_ai),
):
    description = ai_service.generate_vendor_description(ai, request)
    return VendorDescriptionResponse(description=description)


@router.post("/price-comparison", response_model=PriceComparisonResponse)
def price_comparison(
    body: PriceComparisonRequest,
    request: Request,
    db: Client = Depends(get_db),
    ai: AIGatewayClient = Depends(get_ai),
):
    """
    Market price check for an experience against similar ones nearby.
    """
    enforce_rate_limit(db, client_identifier(request), "price-comparison", PRICE_COMPARISON_RATE_LIMIT)
    return PriceComparisonResponse(data=ai_service.compare_price(ai, body))


@router.post("/trip-chat", response_model=TripChatResponse)
def trip_chat(
    body: TripChatRequest,
    request: Request,
    db: Client = Depends(get_db),
    ai: AIGatewayClient = Depends(get_ai),
):
    enforce_rate_limit(db, client_identifier(request), "trip-planner-chat", TRIP_CHAT_RATE_LIMIT)
    reply = ai_service.trip_planner_chat(ai, body.messages, body.host_vendors)
    return TripChatResponse(reply=reply)
