from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field
from typing import Any, List, Literal, Optional

Role = Literal["host", "vendor", "user"]
AccountType = Literal["vendor", "host"]
BookingStatus = Literal["completed", "cancelled"]

# --- Roles ---

class RoleAssignmentRequest(BaseModel):
    # Validated in the service so the error message matches the API contract
    role: Optional[str] = None

class RoleAssignmentResponse(BaseModel):
    success: bool = True
    role: Role

# --- Bookings & checkout ---

class CheckoutRequest(BaseModel):
    experience_name: Optional[str] = None
    vendor_name: Optional[str] = None
    vendor_id: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    guests: int = 1
    total_price: float = 0
    promo_code: Optional[str] = None
    discount_amount: Optional[float] = None
    original_amount: Optional[float] = None
    guest_name: Optional[str] = None

class CheckoutResponse(BaseModel):
    url: str

class PaymentSplit(BaseModel):
    total_cents: int
    platform_fee_cents: int
    host_payout_cents: int
    vendor_payout_cents: int

class Booking(BaseModel):
    id: Optional[str] = None
    user_id: str
    vendor_profile_id: Optional[str] = None
    stripe_session_id: str
    stripe_payment_intent_id: Optional[str] = None
    experience_name: str = "Experience"
    vendor_name: Optional[str] = None
    booking_date: str = ""
    booking_time: str = ""
    guests: int = 1
    total_amount: float = 0
    currency: str = "usd"
    status: BookingStatus = "completed"
    vendor_payout_amount: float = 0
    host_payout_amount: float = 0
    platform_fee_amount: float = 0
    payout_status: Literal["pending", "processed"] = "processed"
    host_user_id: Optional[str] = None

class WebhookResponse(BaseModel):
    received: bool = True
    duplicate: Optional[bool] = None
    skipped: Optional[bool] = None
    booking_id: Optional[str] = None

class CancelBookingRequest(BaseModel):
    booking_id: Optional[str] = None
    reason: Optional[str] = None
    guest_cancellation: bool = False

class CancelBookingResponse(BaseModel):
    success: bool = True
    message: str

# --- Stripe Connect ---

class ConnectRequest(BaseModel):
    account_type: AccountType = "host"

class UrlResponse(BaseModel):
    url: str

class ConnectStatusResponse(BaseModel):
    connected: bool
    onboarding_complete: bool
    account_id: Optional[str] = None

# --- Promo codes ---

class PromoValidationRequest(BaseModel):
    # Loosely typed on purpose: bad input must come back as valid=false, not a 400
    code: Any = None
    order_amount: Any = None

class PromoValidationResult(BaseModel):
    valid: bool
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    discount_amount: Optional[float] = None
    message: str

# --- Password reset OTP ---

class SendOtpRequest(BaseModel):
    email: EmailStr

class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str

class OtpSentResponse(BaseModel):
    success: bool = True
    message: str

class OtpVerifiedResponse(BaseModel):
    success: bool = True
    link: Optional[str] = None
    message: str = "OTP verified successfully"

# --- Integrations ---

class DirectionsRequest(BaseModel):
    destination_lat: float
    destination_lng: float
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None

class RouteStep(BaseModel):
    instruction: Optional[str] = None
    distance: float = 0
    duration: float = 0

class DirectionsResponse(BaseModel):
    route: Optional[dict] = None
    duration: float
    duration_text: str
    distance: float
    distance_text: str
    steps: List[RouteStep] = []
    origin: dict
    destination: dict

class LatLng(BaseModel):
    lat: float
    lng: float

class VendorDirectionsRequest(BaseModel):
    vendor_name: Optional[str] = None
    vendor_address: Optional[str] = None
    place_id: Optional[str] = None

class VendorDirections(BaseModel):
    distance: Optional[str] = None
    duration: Optional[str] = None
    duration_value: Optional[int] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    vendor_location: Optional[LatLng] = None
    arrival_tips: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    def travel_fields(self) -> dict:
        """Columns an itinerary item stores for the trip from Centro."""
        if self.error:
            return {}
        return {
            "travel_distance": self.distance,
            "travel_duration": self.duration,
            "travel_duration_seconds": self.duration_value,
            "arrival_tips": self.arrival_tips,
        }

class PlaceReviewsRequest(BaseModel):
    place_id: Optional[str] = None
    search_query: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

class PlaceReview(BaseModel):
    author_name: str = ""
    rating: Optional[float] = None
    relative_time_description: Optional[str] = None
    text: str = ""
    time: Optional[int] = None
    profile_photo_url: Optional[str] = None

class PlaceReviews(BaseModel):
    place_id: Optional[str] = None
    name: Optional[str] = None
    rating: Optional[float] = None
    total_reviews: Optional[int] = None
    reviews: List[PlaceReview] = Field(default_factory=list)
    google_maps_url: Optional[str] = None
    error: Optional[str] = None

class Restaurant(BaseModel):
    id: str
    name: str
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    address: Optional[str] = None
    is_open: Optional[bool] = None
    photo_reference: Optional[str] = None
    location: Optional[LatLng] = None
    types: List[str] = Field(default_factory=list)

class RestaurantsResponse(BaseModel):
    success: bool = True
    restaurants: List[Restaurant]

class PriceComparisonRequest(BaseModel):
    category: str
    experience_name: str
    current_price: float
    duration: Optional[str] = None
    location: str = "Tulum"

class PriceRange(BaseModel):
    low: float
    high: float

# The model answers in camelCase; responses stay snake_case.
class ComparableExperience(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    price_range: Optional[str] = Field(default=None, validation_alias=AliasChoices("price_range", "priceRange"))
    notes: Optional[str] = None

class PriceComparison(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_range: PriceRange = Field(validation_alias=AliasChoices("price_range", "priceRange"))
    price_assessment: Literal["below_average", "average", "above_average", "premium"] = Field(
        validation_alias=AliasChoices("price_assessment", "priceAssessment")
    )
    assessment_text: str = Field(default="", validation_alias=AliasChoices("assessment_text", "assessmentText"))
    comparables: List[ComparableExperience] = Field(default_factory=list)
    market_insight: str = Field(default="", validation_alias=AliasChoices("market_insight", "marketInsight"))

class PriceComparisonResponse(BaseModel):
    success: bool = True
    data: PriceComparison

class HostGuide(BaseModel):
    full_name: Optional[str] = None
    recommendations: Optional[Any] = None

class ScrapeReviewsRequest(BaseModel):
    url: str

class Review(BaseModel):
    reviewer_name: str
    date: str
    comment: str
    rating: Optional[float] = None

class ScrapedReviews(BaseModel):
    reviews: List[Review]
    rating: Optional[float] = None
    url: str

class VendorDescriptionRequest(BaseModel):
    name: str
    category: str
    price_per_person: Optional[float] = None
    duration: Optional[str] = None
    max_guests: Optional[int] = None
    included_items: List[str] = Field(default_factory=list)

class VendorDescriptionResponse(BaseModel):
    success: bool = True
    description: str
