"""Stripe Connect onboarding for merchants and drivers."""

import logging

import stripe

from partsrunner.database import datastore_call
from partsrunner.errors import UpstreamError
from partsrunner.models import Profile

logger = logging.getLogger(__name__)


def account_state(charges_enabled: bool, payouts_enabled: bool) -> str:
    return "active" if charges_enabled and payouts_enabled else "pending"


def onboard_account(db, gateway, user_id: str, email: str, country: str, base_url: str) -> dict:
    with datastore_call(db, "load profile"):
        profile = db.get(Profile, user_id)

    try:
        if profile is not None and profile.stripe_connect_account_id:
            account_id = profile.stripe_connect_account_id
        else:
            account = gateway.create_connect_account(user_id=user_id, email=email, country=country)
            account_id = account.id
            logger.info("Created Connect account %s for user %s", account_id, user_id)

        dashboard_url = f"{base_url.rstrip('/')}/dashboard"
        link = gateway.create_onboarding_link(
            account_id=account_id, refresh_url=dashboard_url, return_url=dashboard_url
        )
    except stripe.StripeError as exc:
        logger.error("Connect onboarding failed for user %s: %s", user_id, exc)
        raise UpstreamError("Failed to create account", details=str(exc))

    with datastore_call(db, "save Connect account"):
        if profile is None:
            profile = Profile(id=user_id, email=email)
            db.add(profile)
        profile.stripe_connect_account_id = account_id
        db.commit()

    return {"accountId": account_id, "onboardingUrl": link.url, "status": "pending"}


def account_status(gateway, account_id: str) -> dict:
    try:
        account = gateway.retrieve_account(account_id)
    except stripe.StripeError as exc:
        logger.error("Could not retrieve Connect account %s: %s", account_id, exc)
        raise UpstreamError("Failed to check account", details=str(exc))

    return {
        "accountId": account.id,
        "chargesEnabled": bool(account.charges_enabled),
        "payoutsEnabled": bool(account.payouts_enabled),
        "detailsSubmitted": bool(account.details_submitted),
        "status": account_state(account.charges_enabled, account.payouts_enabled),
    }


def sync_account(db, account: dict):
    """Copy capability flags from an ``account.updated`` payload onto the profile."""
    profile = db.query(Profile).filter_by(stripe_connect_account_id=account.get("id")).first()
    if profile is None:
        return None
    profile.charges_enabled = bool(account.get("charges_enabled"))
    profile.payouts_enabled = bool(account.get("payouts_enabled"))
    profile.details_submitted = bool(account.get("details_submitted"))
    logger.info(
        "Connect account %s is %s",
        account.get("id"), account_state(profile.charges_enabled, profile.payouts_enabled)
    )
    return profile
