import re
from typing import Optional

from fastapi import Depends, Request
from supabase import Client

from app.auth.session_context import SessionContext
from app.auth.supabase_auth import get_auth_client, oauth2_scheme
from app.core.config import settings
from app.core.logging import get_logger
from app.db.supabase_client import get_admin_client
from app.services.ai_service import AIGatewayClient, get_ai_client
from app.services.notification_service import NotificationService, get_notification_service
from app.services.places_service import PlacesSource, get_places_source
from app.services.review_scraper import ReviewSource, get_review_source
from app.services.stripe_gateway import get_stripe

logger = get_logger("DEPS")

def get_db() -> Client:
    return get_admin_client()


def get_stripe_api():
    return get_stripe()


def get_notifier() -> NotificationService:
    return get_notification_service()


def get_ai() -> AIGatewayClient:
    return get_ai_client()


def get_reviews() -> ReviewSource:
    return get_review_source()


def get_places() -> PlacesSource:
    return get_places_source()


def origin_regex(suffixes: list[str]) -> str | None:
    """
    Regex matching any https origin that ends with one of the suffixes,
    e.g. ".lovable.app" matches "https://preview-123.lovable.app".
    """
    if not suffixes:
        return None
    escaped = "|".join(re.escape(s) for s in suffixes)
    return rf"https://[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*(?:{escaped})"


def is_allowed_origin(origin: Optional[str]) -> bool:
    """Same rule the CORS middleware applies."""
    if not origin:
        return False
    if origin in settings.ALLOWED_ORIGINS:
        return True
    pattern = origin_regex(settings.ALLOWED_ORIGIN_SUFFIXES)
    return bool(pattern and re.fullmatch(pattern, origin))


def get_origin(request: Request) -> str:
    """
    Frontend origin used to build redirect URLs. Anything outside the CORS
    allow-list falls back to DEFAULT_ORIGIN.
    """
    origin = request.headers.get("origin")
    if is_allowed_origin(origin):
        return origin
    if origin:
        logger.warning("Ignoring untrusted origin", origin=origin)
    return settings.DEFAULT_ORIGIN


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_session(
    token: Optional[str] = Depends(oauth2_scheme),
    auth_client: Client = Depends(get_auth_client),
    db: Client = Depends(get_db),
) -> SessionContext:
    return SessionContext(auth_client, db).initialize(token)
