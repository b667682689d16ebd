# app/services/itinerary_service.py
"""
User-ordered itinerary: persistence of items and their sort_order.

Order is stored as ``sort_order = array index``. Reordering writes only the
rows whose index changed; if any write fails the rows already written are put
back, so the stored order is always some complete known permutation.
Concurrent sessions are not reconciled: last writer wins.
"""
from typing import Dict, List, Optional, Protocol

from supabase import Client

from app.core.errors import AppError, NotFoundError, UpstreamError, ValidationError
from app.core.logging import get_logger
from app.db.supabase_client import first_row
from app.models.itinerary import ItineraryItem, ItineraryItemCreate
from app.services.places_service import PlacesSource

logger = get_logger("ITINERARY")

ITEMS_TABLE = "itinerary_items"
SHARED_TABLE = "shared_itineraries"


def sort_items(items: List[ItineraryItem]) -> List[ItineraryItem]:
    return sorted(items, key=lambda i: (i.sort_order, i.created_at or ""))


def move_item(items: List[ItineraryItem], active_id: str, over_id: Optional[str]) -> List[ItineraryItem]:
    """
    Array move for a drag-end event: the dragged item lands at the index of
    the item it was dropped over. Returns a new list.
    """
    if over_id is None or active_id == over_id:
        return list(items)
    ids = [item.id for item in items]
    if active_id not in ids or over_id not in ids:
        return list(items)

    old_index = ids.index(active_id)
    new_index = ids.index(over_id)
    moved = list(items)
    moved.insert(new_index, moved.pop(old_index))
    return moved


def changed_positions(items: List[ItineraryItem]) -> Dict[str, int]:
    """Map of item id -> new sort_order for every item not already at its index."""
    return {item.id: index for index, item in enumerate(items) if item.sort_order != index}


class ItineraryStore(Protocol):
    def update_sort_order(self, item_id: str, sort_order: int) -> None: ...


class SupabaseItineraryStore:
    def __init__(self, db: Client, user_id: str):
        self.db = db
        self.user_id = user_id

    def update_sort_order(self, item_id: str, sort_order: int) -> None:
        self.db.table(ITEMS_TABLE).update({"sort_order": sort_order}).eq("id", item_id).eq("user_id", self.user_id).execute()


def persist_order(store: ItineraryStore, previous: List[ItineraryItem], ordered: List[ItineraryItem]) -> List[ItineraryItem]:
    """
    Write the new positions. On failure restore what was written and raise.
    """
    original = {item.id: item.sort_order for item in previous}
    updates = changed_positions(ordered)
    written: List[str] = []

    try:
        for item_id, sort_order in updates.items():
            store.update_sort_order(item_id, sort_order)
            written.append(item_id)
    except Exception as e:
        logger.error("Reorder failed, restoring previous order", error=str(e), written=len(written))
        for item_id in reversed(written):
            try:
                store.update_sort_order(item_id, original[item_id])
            except Exception as rollback_error:
                logger.error("Rollback write failed", item_id=item_id, error=str(rollback_error))
        raise UpstreamError("Failed to save itinerary order")

    return [item.model_copy(update={"sort_order": index}) for index, item in enumerate(ordered)]


class ItineraryBoard:
    """
    In-memory itinerary as the planner UI holds it.

    ``items`` is what is shown; ``snapshot`` is the last order known to be
    persisted. A drag applies immediately, then becomes the snapshot only
    once the store accepts it.
    """

    def __init__(self, store: ItineraryStore, items: List[ItineraryItem]):
        self.store = store
        self.items = sort_items(items)
        self.snapshot = list(self.items)
        self.last_error: Optional[str] = None

    def drag_end(self, active_id: str, over_id: Optional[str]) -> List[ItineraryItem]:
        moved = move_item(self.items, active_id, over_id)
        if [i.id for i in moved] == [i.id for i in self.items]:
            return self.items
        self.items = moved
        try:
            self.items = persist_order(self.store, self.snapshot, moved)
        except UpstreamError as e:
            self.items = list(self.snapshot)
            self.last_error = e.message
            raise
        self.snapshot = list(self.items)
        self.last_error = None
        return self.items


# --- Persistence operations ---

def list_items(db: Client, user_id: str) -> List[ItineraryItem]:
    response = (
        db.table(ITEMS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("sort_order")
        .execute()
    )
    return sort_items([ItineraryItem(**row) for row in response.data or []])


def add_item(db: Client, user_id: str, item: ItineraryItemCreate) -> ItineraryItem:
    existing = list_items(db, user_id)
    row = {**item.model_dump(exclude_none=True), "user_id": user_id, "sort_order": len(existing)}
    try:
        created = first_row(db.table(ITEMS_TABLE).insert(row).execute())
    except Exception as e:
        logger.error("Failed to add itinerary item", error=str(e))
        raise UpstreamError("Failed to add item to itinerary")
    if not created:
        raise UpstreamError("Failed to add item to itinerary")
    return ItineraryItem(**created)


def with_travel(item: ItineraryItemCreate, places: PlacesSource) -> ItineraryItemCreate:
    """
    Fill travel distance, duration and arrival tips from Tulum Centro.
    A failed lookup leaves the item as it was.
    """
    if item.travel_duration:
        return item
    try:
        directions = places.vendor_directions(item.vendor_name, item.vendor_address, item.place_id)
    except AppError as e:
        logger.warning("Travel lookup failed", vendor_name=item.vendor_name, error=e.message)
        return item
    return item.model_copy(update=directions.travel_fields())


def remove_item(db: Client, user_id: str, item_id: str) -> None:
    response = db.table(ITEMS_TABLE).delete().eq("id", item_id).eq("user_id", user_id).execute()
    if not response.data:
        raise NotFoundError("Itinerary item not found")
    logger.info("Removed itinerary item", item_id=item_id)


def reorder(db: Client, user_id: str, ordered_ids: List[str]) -> List[ItineraryItem]:
    """
    Persist a full new order. ``ordered_ids`` must be a permutation of the
    user's current items.
    """
    current = list_items(db, user_id)
    by_id = {item.id: item for item in current}

    if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(by_id):
        raise ValidationError("ordered_ids must list every itinerary item exactly once")

    ordered = [by_id[item_id] for item_id in ordered_ids]
    result = persist_order(SupabaseItineraryStore(db, user_id), current, ordered)
    logger.info("Itinerary reordered", user_id=user_id, items=len(result))
    return result


def share_itinerary(db: Client, user_id: str) -> Dict:
    shared = first_row(db.table(SHARED_TABLE).select("*").eq("user_id", user_id).limit(1).execute())
    if shared is None:
        shared = first_row(db.table(SHARED_TABLE).insert({"user_id": user_id, "is_public": True}).execute())
    elif not shared.get("is_public"):
        db.table(SHARED_TABLE).update({"is_public": True}).eq("id", shared["id"]).execute()
        shared = {**shared, "is_public": True}

    if not shared or not shared.get("share_token"):
        raise UpstreamError("Failed to share itinerary")
    return shared


def get_shared_itinerary(db: Client, share_token: str) -> List[ItineraryItem]:
    shared = first_row(
        db.table(SHARED_TABLE).select("*").eq("share_token", share_token).eq("is_public", True).limit(1).execute()
    )
    if not shared:
        raise NotFoundError("Shared itinerary not found")
    return list_items(db, shared["user_id"])
