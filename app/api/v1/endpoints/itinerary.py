# File: app/api/v1/endpoints/itinerary.py

from fastapi import APIRouter, Depends
from supabase import Client
from typing import List

from app.api.deps import get_ai, get_db, get_places
from app.auth.supabase_auth import AuthUser, get_current_user
from app.models.itinerary import (
    GenerateItineraryRequest,
    GeneratedItinerary,
    ItineraryItem,
    ItineraryItemCreate,
    ReorderRequest,
    ShareResponse,
    TripWindow,
)
from app.services import itinerary_service
from app.services.ai_service import AIGatewayClient
from app.services.itinerary_builder import generate_itinerary
from app.services.places_service import PlacesSource

router = APIRouter()


@router.get("/items", response_model=List[ItineraryItem])
def list_items(user: AuthUser = Depends(get_current_user), db: Client = Depends(get_db)):
    return itinerary_service.list_items(db, user.id)


@router.post("/items", response_model=ItineraryItem, status_code=201)
def add_item(
    item: ItineraryItemCreate,
    resolve_travel: bool = False,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
    places: PlacesSource = Depends(get_places),
):
    """
    Appends a vendor to the itinerary. With ?resolve_travel=true the drive
    from Tulum Centro is looked up first.
    """
    if resolve_travel:
        item = itinerary_service.with_travel(item, places)
    return itinerary_service.add_item(db, user.id, item)


@router.delete("/items/{item_id}")
def remove_item(
    item_id: str,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
):
    itinerary_service.remove_item(db, user.id, item_id)
    return {"success": True}


@router.put("/order", response_model=List[ItineraryItem])
def reorder_items(
    request: ReorderRequest,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
):
    """
    Saves a new item order. The body lists every item id in its new position.
    """
    return itinerary_service.reorder(db, user.id, request.ordered_ids)


@router.post("/share", response_model=ShareResponse)
def share(user: AuthUser = Depends(get_current_user), db: Client = Depends(get_db)):
    shared = itinerary_service.share_itinerary(db, user.id)
    return ShareResponse(share_token=shared["share_token"], is_public=shared.get("is_public", True))


@router.get("/shared/{share_token}", response_model=List[ItineraryItem])
def shared_itinerary(share_token: str, db: Client = Depends(get_db)):
    return itinerary_service.get_shared_itinerary(db, share_token)


@router.post("/generate", response_model=GeneratedItinerary)
def generate(
    request: GenerateItineraryRequest,
    user: AuthUser = Depends(get_current_user),
    ai: AIGatewayClient = Depends(get_ai),
):
    """
    Asks the AI gateway for a day-by-day plan covering the trip window.
    """
    window = TripWindow(start_date=request.start_date, days=request.days)
    return generate_itinerary(ai, window, request.destination, request.messages)
