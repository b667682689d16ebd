from functools import lru_cache
from typing import Any, Optional

from supabase import create_client, Client
from app.core.config import settings


@lru_cache
def get_admin_client() -> Client:
    """
    Service-role client. Bypasses row-level security, so only server code uses it.
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env file")

    supabase: Client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    return supabase


@lru_cache
def get_anon_client() -> Client:
    """
    Anon-key client, used to verify end-user access tokens.
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set in .env file")

    return create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)


def first_row(response) -> Optional[dict[str, Any]]:
    """Return the first row of a PostgREST response, or None."""
    data = getattr(response, "data", None) if response is not None else None
    if not data:
        return None
    if isinstance(data, list):
        return data[0]
    return data
