"""
Stripe Connect onboarding for vendors and hosts.

Vendors keep their payout account on ``vendor_profiles``, hosts on
``profiles``; both rows are keyed by the owning ``user_id``.
"""
from typing import Any, Dict, Optional

from stripe import StripeError
from supabase import Client

from app.core.errors import UpstreamError, ValidationError
from app.core.logging import get_logger
from app.db.supabase_client import first_row
from app.models.schemas import ConnectStatusResponse

logger = get_logger("STRIPE-CONNECT")

ACCOUNT_TABLES = {"vendor": "vendor_profiles", "host": "profiles"}


def _table_for(account_type: str) -> str:
    table = ACCOUNT_TABLES.get(account_type)
    if table is None:
        raise ValidationError("Invalid account type. Must be 'vendor' or 'host'")
    return table


def get_payout_profile(db: Client, account_type: str, user_id: str) -> Optional[Dict[str, Any]]:
    return first_row(
        db.table(_table_for(account_type))
        .select("stripe_account_id, stripe_onboarding_complete")
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )


class PayoutGate:
    """Server-side check for whether a profile may receive payouts."""

    @staticmethod
    def can_receive_payouts(profile: Optional[Dict[str, Any]]) -> bool:
        return bool(
            profile
            and profile.get("stripe_account_id")
            and profile.get("stripe_onboarding_complete")
        )


def create_connect_account(db: Client, stripe_api, user_id: str, email: Optional[str], account_type: str, origin: str) -> str:
    """
    Create the Express account on first use, then return an onboarding link.
    """
    table = _table_for(account_type)
    if not email:
        raise ValidationError("User email not available")

    profile = get_payout_profile(db, account_type, user_id)
    account_id = profile.get("stripe_account_id") if profile else None

    try:
        if not account_id:
            account = stripe_api.Account.create(
                type="express",
                email=email,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
            )
            account_id = account["id"]
            logger.info("Created Stripe Connect account", account_id=account_id)
            db.table(table).update({"stripe_account_id": account_id}).eq("user_id", user_id).execute()

        link = stripe_api.AccountLink.create(
            account=account_id,
            refresh_url=f"{origin}/{account_type}/dashboard?stripe_refresh=true",
            return_url=f"{origin}/{account_type}/dashboard?stripe_success=true",
            type="account_onboarding",
        )
    except StripeError as e:
        logger.error("Stripe error creating onboarding link", error=str(e))
        raise UpstreamError("Failed to create onboarding link")

    logger.info("Created account link", account_id=account_id)
    return link["url"]


def check_connect_status(db: Client, stripe_api, user_id: str, account_type: str) -> ConnectStatusResponse:
    """
    Poll the processor and persist the onboarding flag once it flips to complete.
    """
    table = _table_for(account_type)
    profile = get_payout_profile(db, account_type, user_id)
    account_id = profile.get("stripe_account_id") if profile else None

    if not account_id:
        return ConnectStatusResponse(connected=False, onboarding_complete=False)

    try:
        account = stripe_api.Account.retrieve(account_id)
    except StripeError as e:
        logger.error("Stripe error retrieving account", error=str(e), account_id=account_id)
        raise UpstreamError("Failed to retrieve account status")

    is_complete = bool(account.get("details_submitted") and account.get("payouts_enabled"))
    logger.info(
        "Account status",
        account_id=account_id,
        details_submitted=account.get("details_submitted"),
        payouts_enabled=account.get("payouts_enabled"),
        is_complete=is_complete,
    )

    if is_complete and not profile.get("stripe_onboarding_complete"):
        db.table(table).update({"stripe_onboarding_complete": True}).eq("user_id", user_id).execute()

    return ConnectStatusResponse(connected=True, onboarding_complete=is_complete, account_id=account_id)


def create_login_link(db: Client, stripe_api, user_id: str, account_type: str) -> str:
    profile = get_payout_profile(db, account_type, user_id)

    if not profile or not profile.get("stripe_onboarding_complete"):
        raise ValidationError("Stripe onboarding not complete. Please complete onboarding first.")
    if not profile.get("stripe_account_id"):
        raise ValidationError("No Stripe Connect account found. Please set up your account first.")

    try:
        login_link = stripe_api.Account.create_login_link(profile["stripe_account_id"])
    except StripeError as e:
        logger.error("Stripe error creating login link", error=str(e))
        raise UpstreamError("Failed to create login link")

    return login_link["url"]
