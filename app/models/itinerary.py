from datetime import date, timedelta
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

MIN_TRIP_DAYS = 1
MAX_TRIP_DAYS = 14


class ItineraryItem(BaseModel):
    id: str
    user_id: Optional[str] = None
    vendor_name: str
    vendor_address: Optional[str] = None
    place_id: Optional[str] = None
    travel_distance: Optional[str] = None
    travel_duration: Optional[str] = None
    travel_duration_seconds: Optional[int] = None
    arrival_tips: Optional[List[str]] = None
    notes: Optional[str] = None
    planned_date: Optional[str] = None
    planned_time: Optional[str] = None
    sort_order: int = 0
    created_at: Optional[str] = None


class ItineraryItemCreate(BaseModel):
    vendor_name: str
    vendor_address: Optional[str] = None
    place_id: Optional[str] = None
    travel_distance: Optional[str] = None
    travel_duration: Optional[str] = None
    travel_duration_seconds: Optional[int] = None
    arrival_tips: Optional[List[str]] = None
    notes: Optional[str] = None
    planned_date: Optional[str] = None
    planned_time: Optional[str] = None


class ReorderRequest(BaseModel):
    ordered_ids: List[str]


class ShareResponse(BaseModel):
    share_token: str
    is_public: bool = True


def clamp_days(days: int) -> int:
    return min(MAX_TRIP_DAYS, max(MIN_TRIP_DAYS, int(days)))


class TripWindow(BaseModel):
    """
    Start date plus a day count. The end date is always derived, never stored.
    """
    start_date: date
    days: int = 3

    @field_validator("days")
    @classmethod
    def _clamp_days(cls, v: int) -> int:
        return clamp_days(v)

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=self.days - 1)

    def adjust(self, delta: int) -> "TripWindow":
        return TripWindow(start_date=self.start_date, days=clamp_days(self.days + delta))

    def date_for_day(self, day_number: int) -> date:
        return self.start_date + timedelta(days=day_number - 1)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class HostVendor(BaseModel):
    id: str | int
    name: str
    category: Optional[str] = None
    vendor: Optional[str] = None
    price: Optional[float] = None
    rating: Optional[float] = None
    description: Optional[str] = None
    duration: Optional[str] = None
    max_guests: Optional[int] = None
    included: List[str] = Field(default_factory=list)


class GenerateItineraryRequest(BaseModel):
    start_date: date
    days: int = 3
    destination: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)


class DayPlan(BaseModel):
    day: int
    planned_date: date
    title: Optional[str] = None
    content: str = ""


class GeneratedItinerary(BaseModel):
    destination: Optional[str] = None
    start_date: date
    end_date: date
    total_days: int
    plan: List[DayPlan]


class TripChatRequest(BaseModel):
    # Validated by the chat service so limits can truncate rather than reject
    messages: list = Field(default_factory=list)
    host_vendors: List[HostVendor] = Field(default_factory=list)


class TripChatResponse(BaseModel):
    reply: str
