# File: app/api/v1/endpoints/bookings.py

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from supabase import Client
from typing import Optional

from app.api.deps import get_db, get_notifier, get_origin, get_stripe_api
from app.auth.supabase_auth import AuthUser, get_current_user
from app.core.config import settings
from app.models.schemas import (
    CancelBookingRequest,
    CancelBookingResponse,
    CheckoutRequest,
    CheckoutResponse,
    WebhookResponse,
)
from app.services import booking_service
from app.services.notification_service import NotificationService

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    request: CheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
    stripe_api=Depends(get_stripe_api),
    origin: str = Depends(get_origin),
):
    """
    Starts a Stripe Checkout session for an experience and returns its URL.
    """
    url = booking_service.create_booking_checkout(db, stripe_api, user.id, user.email, request, origin)
    return CheckoutResponse(url=url)


@router.post("/cancel", response_model=CancelBookingResponse)
def cancel_booking(
    request: CancelBookingRequest,
    user: AuthUser = Depends(get_current_user),
    db: Client = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    message = booking_service.cancel_booking(
        db,
        notifier,
        user.id,
        request.booking_id,
        reason=request.reason,
        guest_cancellation=request.guest_cancellation,
    )
    return CancelBookingResponse(message=message)


@router.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    db: Client = Depends(get_db),
    stripe_api=Depends(get_stripe_api),
    notifier: NotificationService = Depends(get_notifier),
):
    """
    Stripe webhook receiver. The raw body is needed for signature checks.
    """
    payload = await request.body()
    # Stripe and Supabase calls block; keep them off the event loop
    event = await run_in_threadpool(
        booking_service.construct_event, stripe_api, payload, stripe_signature, settings.STRIPE_WEBHOOK_SECRET
    )
    return await run_in_threadpool(booking_service.handle_webhook_event, db, stripe_api, notifier, event)
