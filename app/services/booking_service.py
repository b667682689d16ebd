# File: app/services/booking_service.py
"""
Booking lifecycle: checkout session -> webhook-created booking -> cancellation.

A booking only ever moves ``completed -> cancelled``. It is created once per
Stripe checkout session; ``stripe_session_id`` is the idempotency key.
"""
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from postgrest.exceptions import APIError
from stripe import SignatureVerificationError, StripeError
from supabase import Client

from app.core.config import settings
from app.core.errors import ForbiddenError, NotFoundError, ServiceUnavailableError, UpstreamError, ValidationError
from app.core.logging import get_logger
from app.db.supabase_client import first_row
from app.models.schemas import Booking, CheckoutRequest, PaymentSplit, WebhookResponse
from app.services.connect_service import PayoutGate
from app.services.notification_service import NotificationService

checkout_logger = get_logger("CREATE-BOOKING-CHECKOUT")
webhook_logger = get_logger("STRIPE-WEBHOOK")
cancel_logger = get_logger("CANCEL-BOOKING")

UNIQUE_VIOLATION = "23505"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Checkout ---

def calculate_split(total_price: float, platform_fee_percent: float, host_commission_percent: float) -> PaymentSplit:
    total_cents = int(round(total_price * 100))
    platform_fee_cents = int(round(total_cents * platform_fee_percent / 100))
    host_payout_cents = int(round(total_cents * host_commission_percent / 100))
    return PaymentSplit(
        total_cents=total_cents,
        platform_fee_cents=platform_fee_cents,
        host_payout_cents=host_payout_cents,
        vendor_payout_cents=total_cents - platform_fee_cents - host_payout_cents,
    )


def _platform_fee_percent(db: Client) -> float:
    row = first_row(db.table("platform_settings").select("platform_fee_percentage").limit(1).execute())
    return float((row or {}).get("platform_fee_percentage") or settings.DEFAULT_PLATFORM_FEE_PERCENT)


def create_booking_checkout(db: Client, stripe_api, user_id: str, email: Optional[str], request: CheckoutRequest, origin: str) -> str:
    """
    Create a Stripe Checkout session for an experience and return its URL.
    """
    checkout_logger.info("Booking details received", vendor_id=request.vendor_id, total_price=request.total_price)

    if not email:
        raise ValidationError("User email not available")
    if not request.experience_name or not request.total_price or request.total_price <= 0:
        raise ValidationError("Invalid booking details")

    vendor: Dict[str, Any] = {}
    if request.vendor_id:
        vendor = first_row(
            db.table("vendor_profiles")
            .select("stripe_account_id, stripe_onboarding_complete, host_user_id, host_commission_percentage")
            .eq("id", request.vendor_id)
            .limit(1)
            .execute()
        ) or {}
        if not vendor:
            checkout_logger.warning("Vendor profile not found", vendor_id=request.vendor_id)

    split = calculate_split(
        request.total_price,
        _platform_fee_percent(db),
        float(vendor.get("host_commission_percentage") or settings.DEFAULT_HOST_COMMISSION_PERCENT),
    )
    checkout_logger.info("Payment splits calculated", **split.model_dump())

    guests = max(1, request.guests)
    metadata = {
        "vendor_id": request.vendor_id or "",
        "vendor_name": request.vendor_name or "",
        "experience_name": request.experience_name,
        "date": request.date or "",
        "time": request.time or "",
        "guests": str(guests),
        "user_id": user_id,
        "platform_fee_cents": str(split.platform_fee_cents),
        "vendor_payout_cents": str(split.vendor_payout_cents),
        "host_payout_cents": str(split.host_payout_cents),
        "host_user_id": vendor.get("host_user_id") or "",
    }
    if request.promo_code:
        metadata["promo_code"] = request.promo_code
    if request.discount_amount is not None:
        metadata["discount_amount"] = str(request.discount_amount)
    if request.original_amount is not None:
        metadata["original_amount"] = str(request.original_amount)
    if request.guest_name:
        metadata["guest_name"] = request.guest_name

    try:
        customers = stripe_api.Customer.list(email=email, limit=1)
        customer_id = customers["data"][0]["id"] if customers["data"] else None

        params: Dict[str, Any] = {
            "line_items": [{
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": request.experience_name,
                        "description": f"{request.vendor_name} - {request.date} at {request.time} for {guests} guest{'s' if guests > 1 else ''}",
                    },
                    "unit_amount": split.total_cents,
                },
                "quantity": 1,
            }],
            "mode": "payment",
            "success_url": f"{origin}/booking/{request.vendor_id}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{origin}/vendor/{request.vendor_id}/payment",
            "metadata": metadata,
        }
        if customer_id:
            params["customer"] = customer_id
        else:
            params["customer_email"] = email

        if PayoutGate.can_receive_payouts(vendor):
            params["payment_intent_data"] = {
                "application_fee_amount": split.platform_fee_cents + split.host_payout_cents,
                "transfer_data": {"destination": vendor["stripe_account_id"]},
            }
            checkout_logger.info("Using Stripe Connect vendor destination", vendor_account_id=vendor["stripe_account_id"])
        else:
            checkout_logger.info("Vendor not using Stripe Connect, platform receives full payment")

        session = stripe_api.checkout.Session.create(**params)
    except StripeError as e:
        checkout_logger.error("Stripe error creating checkout session", error=str(e))
        raise UpstreamError("Failed to create checkout session")

    checkout_logger.info("Checkout session created", session_id=session["id"])
    return session["url"]


# --- Webhook ---

def construct_event(stripe_api, payload: bytes, signature: Optional[str], secret: Optional[str]):
    """
    Verify and parse a webhook delivery. Unsigned events are never accepted.
    """
    if not secret:
        webhook_logger.error("STRIPE_WEBHOOK_SECRET is not set, refusing event")
        raise ServiceUnavailableError("Webhook signing secret not configured")
    if not signature:
        raise ValidationError("Missing Stripe signature")
    try:
        return stripe_api.Webhook.construct_event(payload, signature, secret)
    except (ValueError, SignatureVerificationError) as e:
        webhook_logger.warning("Webhook signature verification failed", error=str(e))
        raise ValidationError("Invalid signature")


def _booking_from_session(session: Dict[str, Any]) -> Optional[Booking]:
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    if not user_id:
        return None

    host_payout_cents = int(metadata.get("host_payout_cents") or 0)
    return Booking(
        user_id=user_id,
        vendor_profile_id=metadata.get("vendor_id") or None,
        stripe_session_id=session["id"],
        stripe_payment_intent_id=session.get("payment_intent"),
        experience_name=metadata.get("experience_name") or "Experience",
        vendor_name=metadata.get("vendor_name") or None,
        booking_date=metadata.get("date") or "",
        booking_time=metadata.get("time") or "",
        guests=int(metadata.get("guests") or 1),
        total_amount=(session.get("amount_total") or 0) / 100,
        currency=session.get("currency") or "usd",
        status="completed",
        vendor_payout_amount=int(metadata.get("vendor_payout_cents") or 0) / 100,
        host_payout_amount=host_payout_cents / 100,
        platform_fee_amount=int(metadata.get("platform_fee_cents") or 0) / 100,
        payout_status="pending" if host_payout_cents > 0 else "processed",
        host_user_id=metadata.get("host_user_id") or None,
    )


def _user_email(db: Client, user_id: Optional[str]) -> Optional[str]:
    if not user_id:
        return None
    try:
        response = db.auth.admin.get_user_by_id(user_id)
    except Exception as e:
        webhook_logger.warning("Could not load user", user_id=user_id, error=str(e))
        return None
    user = getattr(response, "user", None)
    return getattr(user, "email", None)


def _vendor_user_id(db: Client, vendor_profile_id: Optional[str]) -> Optional[str]:
    if not vendor_profile_id:
        return None
    row = first_row(db.table("vendor_profiles").select("user_id").eq("id", vendor_profile_id).limit(1).execute())
    return (row or {}).get("user_id")


def _find_booking_by_session(db: Client, session_id: str) -> Optional[Dict[str, Any]]:
    return first_row(db.table("bookings").select("id").eq("stripe_session_id", session_id).limit(1).execute())


def handle_checkout_completed(db: Client, stripe_api, notifier: NotificationService, session: Dict[str, Any]) -> WebhookResponse:
    session_id = session["id"]
    webhook_logger.info("Processing checkout session", session_id=session_id)

    booking = _booking_from_session(session)
    if booking is None:
        webhook_logger.info("No user_id in metadata, skipping booking creation")
        return WebhookResponse(skipped=True)

    # Read before write; the sender redelivers on timeouts.
    existing = _find_booking_by_session(db, session_id)
    if existing:
        webhook_logger.info("Booking already exists", booking_id=existing["id"])
        return WebhookResponse(duplicate=True, booking_id=str(existing["id"]))

    try:
        inserted = first_row(db.table("bookings").insert(booking.model_dump(exclude={"id"})).execute())
    except APIError as e:
        if getattr(e, "code", None) == UNIQUE_VIOLATION:
            webhook_logger.info("Concurrent delivery already created booking", session_id=session_id)
            return WebhookResponse(duplicate=True)
        webhook_logger.error("Failed to insert booking", error=str(e))
        raise UpstreamError("Failed to create booking")

    booking_id = str(inserted["id"]) if inserted else None
    webhook_logger.info("Booking created", booking_id=booking_id)

    _notify_booking_created(db, notifier, session, booking)
    if booking.host_user_id and booking.host_payout_amount > 0:
        _pay_host(db, stripe_api, notifier, session, booking, booking_id)

    return WebhookResponse(booking_id=booking_id)


def _notify_booking_created(db: Client, notifier: NotificationService, session: Dict[str, Any], booking: Booking) -> None:
    metadata = session.get("metadata") or {}
    guest_email = _user_email(db, booking.user_id) or metadata.get("guest_email")
    common = {
        "experienceName": booking.experience_name,
        "date": booking.booking_date,
        "time": booking.booking_time,
        "guests": booking.guests,
        "totalAmount": booking.total_amount,
        "currency": booking.currency,
    }
    promo = {
        "promoCode": metadata.get("promo_code"),
        "discountAmount": float(metadata["discount_amount"]) if metadata.get("discount_amount") else None,
        "originalAmount": float(metadata["original_amount"]) if metadata.get("original_amount") else None,
    }

    notifier.send({"type": "booking", "vendorName": booking.vendor_name, "guestEmail": guest_email, **common, **promo})

    try:
        vendor_email = _user_email(db, _vendor_user_id(db, booking.vendor_profile_id))
    except Exception as e:
        webhook_logger.warning("Vendor lookup failed", error=str(e))
        vendor_email = None
    if vendor_email:
        notifier.send({
            "type": "vendor_booking",
            "vendorEmail": vendor_email,
            "guestEmail": guest_email,
            "vendorPayoutAmount": booking.vendor_payout_amount,
            **common,
        })

    if guest_email:
        notifier.send({
            "type": "guest_confirmation",
            "guestEmail": guest_email,
            "guestName": metadata.get("guest_name"),
            "vendorName": booking.vendor_name,
            **common,
            **promo,
        })


def _pay_host(db: Client, stripe_api, notifier: NotificationService, session: Dict[str, Any], booking: Booking, booking_id: Optional[str]) -> None:
    host_payout_cents = int(round(booking.host_payout_amount * 100))
    try:
        host_profile = first_row(
            db.table("profiles")
            .select("stripe_account_id, stripe_onboarding_complete")
            .eq("user_id", booking.host_user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        webhook_logger.warning("Host profile lookup failed", error=str(e))
        host_profile = None

    if PayoutGate.can_receive_payouts(host_profile):
        try:
            transfer = stripe_api.Transfer.create(
                amount=host_payout_cents,
                currency=booking.currency,
                destination=host_profile["stripe_account_id"],
                transfer_group=session["id"],
                metadata={"booking_id": booking_id or "", "type": "host_commission"},
            )
            webhook_logger.info("Host transfer created", transfer_id=transfer["id"], amount=host_payout_cents)
            if booking_id:
                db.table("bookings").update({"payout_status": "processed"}).eq("id", booking_id).execute()
            else:
                webhook_logger.warning("Insert returned no booking id, payout status not recorded", session_id=session["id"])
        except Exception as e:
            webhook_logger.warning("Host transfer failed", error=str(e))
    else:
        webhook_logger.info("Host not set up for Stripe Connect, skipping transfer", host_user_id=booking.host_user_id)

    host_email = _user_email(db, booking.host_user_id)
    if host_email:
        notifier.send({
            "type": "host_commission",
            "hostEmail": host_email,
            "experienceName": booking.experience_name,
            "vendorName": booking.vendor_name,
            "date": booking.booking_date,
            "time": booking.booking_time,
            "guests": booking.guests,
            "totalAmount": booking.total_amount,
            "hostPayoutAmount": booking.host_payout_amount,
            "currency": booking.currency,
        })


def handle_webhook_event(db: Client, stripe_api, notifier: NotificationService, event) -> WebhookResponse:
    event_type = event["type"]
    webhook_logger.info("Event type", type=event_type)
    if event_type == "checkout.session.completed":
        session = event["data"]["object"]
        if hasattr(session, "to_dict"):
            session = session.to_dict()
        return handle_checkout_completed(db, stripe_api, notifier, session)
    return WebhookResponse()


# --- Cancellation ---

_TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p", "%I %p")


def booking_datetime(booking_date: str, booking_time: Optional[str]) -> datetime:
    day = datetime.strptime(booking_date, "%Y-%m-%d")
    raw = (booking_time or "").strip()
    for fmt in _TIME_FORMATS:
        if not raw:
            break
        try:
            t = datetime.strptime(raw.upper(), fmt).time()
            return datetime.combine(day.date(), t, tzinfo=timezone.utc)
        except ValueError:
            continue
    return day.replace(tzinfo=timezone.utc)


def cancel_booking(
    db: Client,
    notifier: NotificationService,
    user_id: str,
    booking_id: Optional[str],
    reason: Optional[str] = None,
    guest_cancellation: bool = False,
    now: Callable[[], datetime] = _utcnow,
) -> str:
    """
    Cancel a completed booking and notify guest and vendor.

    Cancelling twice is a no-op. Notification failures never undo the
    cancellation.
    """
    cancel_logger.info("Cancellation request received", booking_id=booking_id, guest_cancellation=guest_cancellation, user_id=user_id)

    if not booking_id:
        raise ValidationError("Booking ID is required")

    booking = first_row(db.table("bookings").select("*").eq("id", booking_id).limit(1).execute())
    if not booking:
        cancel_logger.info("Booking not found", booking_id=booking_id)
        raise NotFoundError("Booking not found")

    vendor_user_id = _vendor_user_id(db, booking.get("vendor_profile_id"))
    is_owner = booking.get("user_id") == user_id
    is_vendor = vendor_user_id is not None and vendor_user_id == user_id
    is_host = booking.get("host_user_id") is not None and booking.get("host_user_id") == user_id

    if not (is_owner or is_vendor or is_host):
        cancel_logger.warning("Authorization denied", user_id=user_id, booking_id=booking_id)
        raise ForbiddenError("You are not authorized to cancel this booking")

    if booking.get("status") == "cancelled":
        cancel_logger.info("Booking already cancelled", booking_id=booking_id)
        return "Booking already cancelled"

    # The cancellation window only binds guests, not vendors or hosts.
    if guest_cancellation and is_owner and booking.get("vendor_profile_id"):
        _check_cancellation_window(db, booking, now())

    try:
        db.table("bookings").update({"status": "cancelled"}).eq("id", booking_id).execute()
    except Exception as e:
        cancel_logger.error("Failed to update booking", error=str(e))
        raise UpstreamError("Failed to cancel booking")

    cancel_logger.info("Booking cancelled", booking_id=booking_id, cancelled_by=user_id)
    _notify_cancellation(db, notifier, booking, vendor_user_id, reason)
    return "Booking cancelled"


def _check_cancellation_window(db: Client, booking: Dict[str, Any], current: datetime) -> None:
    try:
        vendor = first_row(
            db.table("vendor_profiles")
            .select("cancellation_hours, name")
            .eq("id", booking["vendor_profile_id"])
            .limit(1)
            .execute()
        )
    except Exception as e:
        cancel_logger.error("Failed to fetch vendor profile", error=str(e))
        raise UpstreamError("Failed to verify cancellation policy")

    cancellation_hours = (vendor or {}).get("cancellation_hours")
    if cancellation_hours is None:
        cancellation_hours = settings.DEFAULT_CANCELLATION_HOURS

    try:
        starts_at = booking_datetime(booking.get("booking_date") or "", booking.get("booking_time"))
    except ValueError:
        cancel_logger.warning("Unparseable booking date, skipping window check", booking_date=booking.get("booking_date"))
        return

    hours_until = (starts_at - current).total_seconds() / 3600
    cancel_logger.info("Checking cancellation window", hours_until_booking=hours_until, cancellation_hours=cancellation_hours)

    if hours_until < cancellation_hours:
        message = (
            f"Cancellation is not allowed within {cancellation_hours} hours of the booking. "
            f"Your booking is in {max(0, math.floor(hours_until))} hours."
        )
        raise ValidationError(
            "CANCELLATION_WINDOW_EXPIRED",
            extra={
                "success": False,
                "message": message,
                "cancellation_hours": cancellation_hours,
                "hours_until_booking": math.floor(hours_until),
            },
        )


def _notify_cancellation(db: Client, notifier: NotificationService, booking: Dict[str, Any], vendor_user_id: Optional[str], reason: Optional[str]) -> None:
    reason = reason or "No reason provided"
    guest_email = _user_email(db, booking.get("user_id"))
    vendor_email = _user_email(db, vendor_user_id)
    common = {
        "experienceName": booking.get("experience_name"),
        "date": booking.get("booking_date"),
        "time": booking.get("booking_time"),
        "guests": booking.get("guests"),
        "totalAmount": booking.get("total_amount"),
        "currency": booking.get("currency"),
        "reason": reason,
    }

    if guest_email:
        notifier.send({
            "type": "guest_cancellation",
            "guestEmail": guest_email,
            "vendorName": booking.get("vendor_name"),
            **common,
        })

    if vendor_email:
        notifier.send({
            "type": "vendor_cancellation",
            "vendorEmail": vendor_email,
            "guestEmail": guest_email,
            "vendorPayoutAmount": booking.get("vendor_payout_amount"),
            **common,
        })
