from typing import Optional

from supabase import Client

from app.core.errors import UpstreamError, ValidationError
from app.core.logging import get_logger
from app.db.supabase_client import first_row

logger = get_logger("ASSIGN-ROLE")

VALID_ROLES = ("host", "vendor", "user")


def get_role(db: Client, user_id: str) -> Optional[str]:
    row = first_row(
        db.table("user_roles").select("id, role").eq("user_id", user_id).limit(1).execute()
    )
    return row["role"] if row else None


def assign_role(db: Client, user_id: str, role: Optional[str]) -> str:
    """
    Give a user their single active role.

    The roles table has no uniqueness on user_id alone, so the
    one-role-per-user rule lives here: update if a row exists, insert otherwise.
    """
    if not role or role not in VALID_ROLES:
        logger.warning("Invalid role requested", role=role, user_id=user_id)
        raise ValidationError("Invalid role. Must be 'host', 'vendor', or 'user'")

    logger.info("Assigning role", role=role, user_id=user_id)

    try:
        existing = first_row(
            db.table("user_roles").select("id, role").eq("user_id", user_id).limit(1).execute()
        )
    except Exception as e:
        logger.error("Error checking existing role", error=str(e))
        raise UpstreamError("Failed to check existing role")

    try:
        if existing:
            db.table("user_roles").update({"role": role}).eq("user_id", user_id).execute()
            logger.info("Updated role", role=role, user_id=user_id)
        else:
            db.table("user_roles").insert({"user_id": user_id, "role": role}).execute()
            logger.info("Assigned role", role=role, user_id=user_id)
    except Exception as e:
        logger.error("Error writing role", error=str(e))
        raise UpstreamError("Failed to assign role")

    return role
