from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from math import ceil
from typing import Callable, Dict

from supabase import Client

from app.core.errors import RateLimitedError
from app.core.logging import get_logger
from app.db.supabase_client import first_row

logger = get_logger("RATE-LIMIT")


@dataclass
class RateLimitConfig:
    window_minutes: int
    max_requests: int


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse(value) -> datetime:
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def check_rate_limit(
    db: Client,
    identifier: str,
    endpoint: str,
    config: RateLimitConfig,
    now: Callable[[], datetime] = _utcnow,
) -> RateLimitResult:
    """
    Fixed-window counter stored in ``rate_limits``. Fails open if the table
    cannot be read.
    """
    current = now()
    window = timedelta(minutes=config.window_minutes)

    try:
        existing = first_row(
            db.table("rate_limits")
            .select("id, request_count, window_start")
            .eq("identifier", identifier)
            .eq("endpoint", endpoint)
            .gte("window_start", (current - window).isoformat())
            .order("window_start", desc=True)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error("Rate limit query error", error=str(e))
        return RateLimitResult(allowed=True, remaining=config.max_requests - 1, reset_at=current + window)

    if existing:
        reset_at = _parse(existing["window_start"]) + window
        if existing["request_count"] >= config.max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
        try:
            db.table("rate_limits").update({"request_count": existing["request_count"] + 1}).eq("id", existing["id"]).execute()
        except Exception as e:
            logger.error("Rate limit update error", error=str(e))
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests - existing["request_count"] - 1,
            reset_at=reset_at,
        )

    try:
        db.table("rate_limits").insert({
            "identifier": identifier,
            "endpoint": endpoint,
            "request_count": 1,
            "window_start": current.isoformat(),
        }).execute()
    except Exception as e:
        logger.error("Rate limit insert error", error=str(e))

    return RateLimitResult(allowed=True, remaining=config.max_requests - 1, reset_at=current + window)


def rate_limit_headers(result: RateLimitResult, now: Callable[[], datetime] = _utcnow) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_at.isoformat(),
    }
    if not result.allowed:
        headers["Retry-After"] = str(max(0, ceil((result.reset_at - now()).total_seconds())))
    return headers


def enforce_rate_limit(db: Client, identifier: str, endpoint: str, config: RateLimitConfig) -> RateLimitResult:
    result = check_rate_limit(db, identifier, endpoint, config)
    if not result.allowed:
        logger.warning("Rate limit exceeded", identifier=identifier, endpoint=endpoint)
        raise RateLimitedError(
            "Too many requests. Please wait a moment before trying again.",
            extra={"reset_at": result.reset_at.isoformat()},
            headers=rate_limit_headers(result),
        )
    return result
