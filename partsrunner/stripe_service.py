import logging
from typing import Optional

import stripe
from fastapi import Depends

from partsrunner.config import Settings, get_settings
from partsrunner.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


class StripeGateway:
    """Thin wrapper over the Stripe SDK bound to one secret key.

    The key is passed on every call instead of being set on the global
    ``stripe.api_key``, so nothing leaks between requests.
    """

    def __init__(self, api_key: str):
        if not api_key:
            raise ConfigurationError("Stripe secret key is not configured", status_code=500)
        self.api_key = api_key

    def create_payment_intent(
        self,
        *,
        amount: int,
        currency: str,
        destination: str,
        application_fee: int,
        metadata: dict,
        idempotency_key: str,
        description: Optional[str] = None,
        receipt_email: Optional[str] = None,
        shipping: Optional[dict] = None,
    ):
        params = dict(
            amount=amount,
            currency=currency,
            automatic_payment_methods={"enabled": True},
            application_fee_amount=application_fee,
            transfer_data={"destination": destination},
            metadata=metadata,
        )
        if description:
            params["description"] = description
        if receipt_email:
            params["receipt_email"] = receipt_email
        if shipping:
            params["shipping"] = shipping
        return stripe.PaymentIntent.create(
            api_key=self.api_key,
            idempotency_key=idempotency_key,
            **params
        )

    def retrieve_payment_intent(self, payment_intent_id: str):
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            logger.error("Could not retrieve payment intent %s: %s", payment_intent_id, exc)
            raise UpstreamError("Failed to retrieve payment intent", details=str(exc))

    def create_connect_account(self, *, user_id: str, email: str, country: str):
        return stripe.Account.create(
            api_key=self.api_key,
            type="express",
            country=country,
            email=email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            business_type="individual",
            metadata={"user_id": user_id, "source": "mypartsrunner"},
        )

    def create_onboarding_link(self, *, account_id: str, refresh_url: str, return_url: str):
        return stripe.AccountLink.create(
            api_key=self.api_key,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )

    def retrieve_account(self, account_id: str):
        return stripe.Account.retrieve(account_id, api_key=self.api_key)


def get_stripe_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway(settings.stripe_secret_key)
