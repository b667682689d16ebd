from datetime import datetime, timezone

import pytest
import stripe

from app.core.errors import ForbiddenError, NotFoundError, ServiceUnavailableError, UpstreamError, ValidationError
from app.models.schemas import CheckoutRequest
from app.services import booking_service
from app.services.booking_service import booking_datetime, calculate_split, construct_event
from factories import checkout_session, seed_booking, seed_marketplace

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# --- Splits & checkout ---

def test_calculate_split():
    split = calculate_split(100, 10, 15)
    assert (split.total_cents, split.platform_fee_cents, split.host_payout_cents, split.vendor_payout_cents) == (10000, 1000, 1500, 7500)


def test_split_parts_always_sum_to_total():
    for price in (0.99, 12.345, 59.5, 199.99, 1234.56):
        split = calculate_split(price, 10, 15)
        assert split.platform_fee_cents + split.host_payout_cents + split.vendor_payout_cents == split.total_cents


def test_checkout_routes_funds_to_onboarded_vendor(db, stripe_api):
    seed_marketplace(db)
    stripe_api.Customer.list.return_value = {"data": [{"id": "cus_existing"}]}
    stripe_api.checkout.Session.create.return_value = {"id": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"}
    request = CheckoutRequest(
        experience_name="Sunrise Kayak", vendor_name="Tulum Kayaks", vendor_id="vendor-1",
        date="2026-03-10", time="07:00", guests=2, total_price=100, promo_code="TULUM10",
        discount_amount=10, original_amount=110,
    )

    url = booking_service.create_booking_checkout(db, stripe_api, "user-1", "guest@example.com", request, "https://app.test")

    assert url == "https://checkout.stripe.test/cs_test_123"
    params = stripe_api.checkout.Session.create.call_args.kwargs
    assert params["customer"] == "cus_existing"
    assert params["line_items"][0]["price_data"]["unit_amount"] == 10000
    assert params["payment_intent_data"] == {
        "application_fee_amount": 2500,
        "transfer_data": {"destination": "acct_vendor"},
    }
    assert params["metadata"]["host_payout_cents"] == "1500"
    assert params["metadata"]["promo_code"] == "TULUM10"
    assert all(isinstance(v, str) for v in params["metadata"].values())
    assert params["success_url"].startswith("https://app.test/booking/vendor-1/success")


def test_checkout_without_connect_keeps_full_payment(db, stripe_api):
    seed_marketplace(db, vendor_onboarded=False)
    stripe_api.Customer.list.return_value = {"data": []}
    stripe_api.checkout.Session.create.return_value = {"id": "cs_1", "url": "https://checkout.stripe.test/cs_1"}
    request = CheckoutRequest(experience_name="Sunrise Kayak", vendor_id="vendor-1", total_price=50)

    booking_service.create_booking_checkout(db, stripe_api, "user-1", "guest@example.com", request, "https://app.test")

    params = stripe_api.checkout.Session.create.call_args.kwargs
    assert "payment_intent_data" not in params
    assert params["customer_email"] == "guest@example.com"


@pytest.mark.parametrize("request_body", [
    CheckoutRequest(experience_name=None, total_price=20),
    CheckoutRequest(experience_name="Kayak", total_price=0),
    CheckoutRequest(experience_name="Kayak", total_price=-5),
])
def test_checkout_rejects_invalid_details(db, stripe_api, request_body):
    with pytest.raises(ValidationError):
        booking_service.create_booking_checkout(db, stripe_api, "user-1", "guest@example.com", request_body, "https://app.test")
    stripe_api.checkout.Session.create.assert_not_called()


def test_checkout_stripe_failure_is_upstream_error(db, stripe_api):
    seed_marketplace(db)
    stripe_api.Customer.list.side_effect = stripe.StripeError("card network down")
    request = CheckoutRequest(experience_name="Sunrise Kayak", vendor_id="vendor-1", total_price=50)
    with pytest.raises(UpstreamError):
        booking_service.create_booking_checkout(db, stripe_api, "user-1", "guest@example.com", request, "https://app.test")


# --- Webhook ---

def test_webhook_requires_secret_and_signature():
    with pytest.raises(ServiceUnavailableError):
        construct_event(stripe, b"{}", "t=1,v1=abc", None)
    with pytest.raises(ValidationError):
        construct_event(stripe, b"{}", None, "whsec_test")


def test_webhook_rejects_bad_signature():
    with pytest.raises(ValidationError) as exc:
        construct_event(stripe, b'{"type": "checkout.session.completed"}', "t=1,v1=deadbeef", "whsec_test")
    assert exc.value.message == "Invalid signature"


def test_completed_session_creates_one_booking(db, stripe_api, notifier):
    seed_marketplace(db)
    stripe_api.Transfer.create.return_value = {"id": "tr_1"}

    first = booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session())
    second = booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session())

    assert first.booking_id is not None
    assert second.duplicate is True
    assert second.booking_id == first.booking_id
    assert len(db.rows("bookings")) == 1

    booking = db.rows("bookings")[0]
    assert booking["status"] == "completed"
    assert booking["total_amount"] == 100
    assert booking["host_payout_amount"] == 15
    assert booking["payout_status"] == "processed"
    stripe_api.Transfer.create.assert_called_once()
    assert stripe_api.Transfer.create.call_args.kwargs["transfer_group"] == "cs_test_123"
    assert stripe_api.Transfer.create.call_args.kwargs["amount"] == 1500
    assert notifier.types() == ["booking", "vendor_booking", "guest_confirmation", "host_commission"]


def test_host_without_connect_stays_pending(db, stripe_api, notifier):
    seed_marketplace(db, host_onboarded=False)

    booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session())

    stripe_api.Transfer.create.assert_not_called()
    assert db.rows("bookings")[0]["payout_status"] == "pending"


def test_failed_transfer_does_not_fail_webhook(db, stripe_api, notifier):
    seed_marketplace(db)
    stripe_api.Transfer.create.side_effect = stripe.StripeError("insufficient balance")

    result = booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session())

    assert result.booking_id is not None
    assert db.rows("bookings")[0]["payout_status"] == "pending"


def test_transfer_without_booking_id_skips_status_update(db, stripe_api, notifier):
    seed_marketplace(db)
    db.minimal_returns.add("bookings")
    stripe_api.Transfer.create.return_value = {"id": "tr_1"}

    result = booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session())

    assert result.booking_id is None
    stripe_api.Transfer.create.assert_called_once()
    assert stripe_api.Transfer.create.call_args.kwargs["metadata"]["booking_id"] == ""
    assert ("bookings", "update") not in db.calls
    assert db.rows("bookings")[0]["payout_status"] == "pending"


def test_session_without_user_is_skipped(db, stripe_api, notifier):
    result = booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session(user_id=""))
    assert result.skipped is True
    assert db.rows("bookings") == []


def test_concurrent_insert_is_treated_as_duplicate(db, stripe_api, notifier, monkeypatch):
    seed_marketplace(db)
    booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session())
    # Simulate a retry that passed the read check before the first insert landed
    monkeypatch.setattr(booking_service, "_find_booking_by_session", lambda db, session_id: None)
    sent_before = len(notifier.sent)

    result = booking_service.handle_checkout_completed(db, stripe_api, notifier, checkout_session())

    assert result.duplicate is True
    assert len(db.rows("bookings")) == 1
    assert len(notifier.sent) == sent_before


def test_other_event_types_are_acknowledged(db, stripe_api, notifier):
    result = booking_service.handle_webhook_event(db, stripe_api, notifier, {"type": "payment_intent.created", "data": {"object": {}}})
    assert result.received is True
    assert result.booking_id is None


# --- Cancellation ---

def cancel(db, notifier, user_id="user-1", booking_id="booking-1", **kwargs):
    return booking_service.cancel_booking(db, notifier, user_id, booking_id, now=lambda: NOW, **kwargs)


def test_guest_cancels_and_both_sides_are_notified(db, notifier):
    seed_booking(db)

    message = cancel(db, notifier, reason="Flight changed", guest_cancellation=True)

    assert message == "Booking cancelled"
    assert db.rows("bookings")[0]["status"] == "cancelled"
    assert notifier.types() == ["guest_cancellation", "vendor_cancellation"]
    assert notifier.sent[0]["reason"] == "Flight changed"


def test_cancel_twice_is_a_noop(db, notifier):
    seed_booking(db)
    cancel(db, notifier)
    notifier.sent.clear()

    assert cancel(db, notifier) == "Booking already cancelled"
    assert notifier.sent == []


def test_cancel_missing_booking_is_404(db, notifier):
    with pytest.raises(NotFoundError):
        cancel(db, notifier, booking_id="nope")


def test_cancel_requires_booking_id(db, notifier):
    with pytest.raises(ValidationError):
        cancel(db, notifier, booking_id=None)


def test_stranger_cannot_cancel(db, notifier):
    seed_booking(db)
    with pytest.raises(ForbiddenError):
        cancel(db, notifier, user_id="stranger")
    assert db.rows("bookings")[0]["status"] == "completed"


def test_guest_inside_window_is_refused(db, notifier):
    seed_booking(db, booking_date="2026-03-02", booking_time="10:00")

    with pytest.raises(ValidationError) as exc:
        cancel(db, notifier, guest_cancellation=True)

    assert exc.value.message == "CANCELLATION_WINDOW_EXPIRED"
    assert exc.value.extra["cancellation_hours"] == 24
    assert exc.value.extra["hours_until_booking"] == 22
    assert db.rows("bookings")[0]["status"] == "completed"


@pytest.mark.parametrize("user_id", ["vendor-user", "host-user"])
def test_vendor_and_host_ignore_window(db, notifier, user_id):
    seed_booking(db, booking_date="2026-03-02", booking_time="10:00")
    assert cancel(db, notifier, user_id=user_id, guest_cancellation=True) == "Booking cancelled"


def test_booking_datetime_formats():
    assert booking_datetime("2026-03-10", "2:30 PM") == datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)
    assert booking_datetime("2026-03-10", "07:15") == datetime(2026, 3, 10, 7, 15, tzinfo=timezone.utc)
    assert booking_datetime("2026-03-10", None) == datetime(2026, 3, 10, tzinfo=timezone.utc)
