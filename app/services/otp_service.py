import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from supabase import Client

from app.core.config import settings
from app.core.errors import UpstreamError, ValidationError
from app.core.logging import get_logger
from app.db.supabase_client import first_row
from app.services.notification_service import NotificationService

logger = get_logger("RESET-OTP")

OTP_TABLE = "password_reset_otps"
OTP_PATTERN = re.compile(r"^[0-9]{6}$")
GENERIC_SENT_MESSAGE = "If an account exists, an OTP has been sent."
INVALID_OTP_MESSAGE = "Invalid or expired OTP"
USERS_PAGE_SIZE = 1000


def generate_otp() -> str:
    return f"{secrets.randbelow(900000) + 100000}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _user_exists(db: Client, email: str) -> bool:
    # The admin API pages its user list; a short page is the last one.
    page = 1
    while True:
        users = db.auth.admin.list_users(page=page, per_page=USERS_PAGE_SIZE)
        users = getattr(users, "users", users) or []
        if any((getattr(u, "email", None) or "").lower() == email for u in users):
            return True
        if len(users) < USERS_PAGE_SIZE:
            return False
        page += 1


def _send_via_notifications(email: str, code: str) -> bool:
    return NotificationService().send({
        "type": "password_reset_otp",
        "email": email,
        "otp": code,
        "expiresInMinutes": settings.OTP_TTL_MINUTES,
    })


def send_reset_otp(
    db: Client,
    email: str,
    send_email: Optional[Callable[[str, str], bool]] = None,
    now: Callable[[], datetime] = _utcnow,
) -> str:
    """
    Issue a one-time code for a password reset.

    The returned message is the same whether or not the account exists.
    """
    email = email.strip().lower()

    try:
        exists = _user_exists(db, email)
    except Exception as e:
        logger.error("Error checking user", error=str(e))
        return GENERIC_SENT_MESSAGE

    if not exists:
        logger.info("No account for email")
        return GENERIC_SENT_MESSAGE

    db.rpc("cleanup_expired_otps", {}).execute()
    db.table(OTP_TABLE).delete().eq("email", email).execute()

    code = generate_otp()
    expires_at = now() + timedelta(minutes=settings.OTP_TTL_MINUTES)
    try:
        db.table(OTP_TABLE).insert({
            "email": email,
            "otp_code": code,
            "expires_at": expires_at.isoformat(),
            "verified": False,
        }).execute()
    except Exception as e:
        logger.error("Error storing OTP", error=str(e))
        raise UpstreamError("Failed to generate OTP")

    send_email = send_email or _send_via_notifications
    if not send_email(email, code):
        raise UpstreamError("Failed to send OTP email")

    logger.info("OTP issued")
    return GENERIC_SENT_MESSAGE


def verify_reset_otp(
    db: Client,
    email: str,
    otp: str,
    redirect_origin: Optional[str] = None,
    now: Callable[[], datetime] = _utcnow,
) -> Optional[str]:
    """
    Check a code and exchange it for a recovery link.

    A wrong code, an expired code and a used code all fail with the same error.
    """
    email = email.strip().lower()
    otp = (otp or "").strip()
    if not OTP_PATTERN.match(otp):
        raise ValidationError(INVALID_OTP_MESSAGE)

    current = now()
    try:
        row = first_row(
            db.table(OTP_TABLE)
            .select("*")
            .eq("email", email)
            .eq("otp_code", otp)
            .eq("verified", False)
            .gt("expires_at", current.isoformat())
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.warning("OTP lookup failed", error=str(e))
        row = None

    expires_at = _parse_ts(row.get("expires_at")) if row else None
    if (
        not row
        or row.get("verified")
        or not secrets.compare_digest(str(row.get("otp_code", "")), otp)
        or expires_at is None
        or expires_at <= current
    ):
        logger.info("OTP verification failed")
        raise ValidationError(INVALID_OTP_MESSAGE)

    db.table(OTP_TABLE).update({"verified": True}).eq("id", row["id"]).execute()

    origin = redirect_origin or settings.DEFAULT_ORIGIN
    try:
        link = db.auth.admin.generate_link({
            "type": "recovery",
            "email": email,
            "options": {"redirect_to": f"{origin}/reset-password"},
        })
    except Exception as e:
        logger.error("Error generating reset link", error=str(e))
        raise UpstreamError("Failed to generate reset link")

    db.table(OTP_TABLE).delete().eq("id", row["id"]).execute()

    properties = getattr(link, "properties", None)
    return getattr(properties, "action_link", None)
