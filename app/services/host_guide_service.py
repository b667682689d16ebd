import uuid

from supabase import Client

from app.core.errors import NotFoundError, UpstreamError, ValidationError
from app.core.logging import get_logger
from app.db.supabase_client import first_row
from app.models.schemas import HostGuide

logger = get_logger("HOST-GUIDE")


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        return False
    return True


def get_host_guide(db: Client, host_id: str) -> HostGuide:
    """
    Public guest guide for a host. Only the display name and the
    recommendations leave the profile row.
    """
    if not host_id or not _is_uuid(host_id):
        raise ValidationError("Invalid hostId")

    try:
        row = first_row(
            db.table("profiles").select("full_name, recommendations").eq("user_id", host_id).limit(1).execute()
        )
    except Exception as e:
        logger.error("Host guide fetch error", error=str(e))
        raise UpstreamError("Unable to load host guide")

    if not row:
        raise NotFoundError("Host not found")
    return HostGuide(full_name=row.get("full_name"), recommendations=row.get("recommendations"))
