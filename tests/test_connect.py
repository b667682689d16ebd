import pytest
import stripe

from app.core.errors import UpstreamError, ValidationError
from app.services import connect_service
from app.services.connect_service import PayoutGate


def test_payout_gate():
    assert PayoutGate.can_receive_payouts({"stripe_account_id": "acct_1", "stripe_onboarding_complete": True})
    assert not PayoutGate.can_receive_payouts({"stripe_account_id": "acct_1", "stripe_onboarding_complete": False})
    assert not PayoutGate.can_receive_payouts({"stripe_account_id": None, "stripe_onboarding_complete": True})
    assert not PayoutGate.can_receive_payouts(None)


def test_create_account_once_then_reuse(db, stripe_api):
    db.seed("vendor_profiles", {"id": "vendor-1", "user_id": "vendor-user"})
    stripe_api.Account.create.return_value = {"id": "acct_new"}
    stripe_api.AccountLink.create.return_value = {"url": "https://connect.stripe.test/onboard"}

    url = connect_service.create_connect_account(db, stripe_api, "vendor-user", "vendor@example.com", "vendor", "https://app.test")
    connect_service.create_connect_account(db, stripe_api, "vendor-user", "vendor@example.com", "vendor", "https://app.test")

    assert url == "https://connect.stripe.test/onboard"
    stripe_api.Account.create.assert_called_once()
    assert stripe_api.Account.create.call_args.kwargs["type"] == "express"
    assert db.rows("vendor_profiles")[0]["stripe_account_id"] == "acct_new"
    link_kwargs = stripe_api.AccountLink.create.call_args.kwargs
    assert link_kwargs["account"] == "acct_new"
    assert link_kwargs["return_url"] == "https://app.test/vendor/dashboard?stripe_success=true"
    assert link_kwargs["type"] == "account_onboarding"


def test_host_accounts_live_on_profiles(db, stripe_api):
    db.seed("profiles", {"user_id": "host-user"})
    stripe_api.Account.create.return_value = {"id": "acct_host"}
    stripe_api.AccountLink.create.return_value = {"url": "https://connect.stripe.test/onboard"}

    connect_service.create_connect_account(db, stripe_api, "host-user", "host@example.com", "host", "https://app.test")

    assert db.rows("profiles")[0]["stripe_account_id"] == "acct_host"


def test_status_persists_completion(db, stripe_api):
    db.seed("profiles", {"user_id": "host-user", "stripe_account_id": "acct_host", "stripe_onboarding_complete": False})
    stripe_api.Account.retrieve.return_value = {"details_submitted": True, "payouts_enabled": True}

    status = connect_service.check_connect_status(db, stripe_api, "host-user", "host")

    assert status.connected and status.onboarding_complete
    assert status.account_id == "acct_host"
    assert db.rows("profiles")[0]["stripe_onboarding_complete"] is True


def test_status_incomplete_until_payouts_enabled(db, stripe_api):
    db.seed("profiles", {"user_id": "host-user", "stripe_account_id": "acct_host", "stripe_onboarding_complete": False})
    stripe_api.Account.retrieve.return_value = {"details_submitted": True, "payouts_enabled": False}

    status = connect_service.check_connect_status(db, stripe_api, "host-user", "host")

    assert status.connected and not status.onboarding_complete
    assert db.rows("profiles")[0]["stripe_onboarding_complete"] is False


def test_status_stripe_failure(db, stripe_api):
    db.seed("profiles", {"user_id": "host-user", "stripe_account_id": "acct_host"})
    stripe_api.Account.retrieve.side_effect = stripe.StripeError("boom")
    with pytest.raises(UpstreamError):
        connect_service.check_connect_status(db, stripe_api, "host-user", "host")


def test_login_link_requires_onboarding(db, stripe_api):
    db.seed("vendor_profiles", {"user_id": "vendor-user", "stripe_account_id": "acct_v", "stripe_onboarding_complete": False})
    with pytest.raises(ValidationError):
        connect_service.create_login_link(db, stripe_api, "vendor-user", "vendor")
    stripe_api.Account.create_login_link.assert_not_called()


def test_login_link(db, stripe_api):
    db.seed("vendor_profiles", {"user_id": "vendor-user", "stripe_account_id": "acct_v", "stripe_onboarding_complete": True})
    stripe_api.Account.create_login_link.return_value = {"url": "https://connect.stripe.test/express"}

    assert connect_service.create_login_link(db, stripe_api, "vendor-user", "vendor") == "https://connect.stripe.test/express"
    stripe_api.Account.create_login_link.assert_called_once_with("acct_v")
