"""Payment Intent Gateway.

Creates the Stripe PaymentIntent for a checkout. The platform fee is
declared as an application fee with the merchant's Connect account as the
transfer destination, so Stripe splits merchant and platform funds as part
of the charge itself. The order row written afterwards is bookkeeping and is
never allowed to fail the payment.
"""

import logging
import secrets
import time
import uuid
from dataclasses import dataclass

import stripe
from sqlalchemy.exc import SQLAlchemyError

from partsrunner.database import datastore_call
from partsrunner.errors import ConfigurationError, UpstreamError, ValidationFailed
from partsrunner.models import Order, OrderItem, Profile
from partsrunner.money import BreakdownCents, platform_fee, to_cents
from partsrunner.outcomes import BestEffortOutcome, best_effort
from partsrunner.schemas import CreatePaymentIntentRequest, OrderStatus, PaymentIntentMetadata

logger = logging.getLogger(__name__)

MERCHANT_NOT_READY = "Merchant payment setup not complete. Please contact the store."


@dataclass
class PaymentIntentCreated:
    client_secret: str
    payment_intent_id: str
    order_id: str
    amount: int
    platform_fee: int
    merchant_receives: int
    order_record: BestEffortOutcome

    def to_response(self) -> dict:
        return {
            "clientSecret": self.client_secret,
            "paymentIntentId": self.payment_intent_id,
            "orderId": self.order_id,
            "amount": self.amount,
            "platformFee": self.platform_fee,
            "merchantReceives": self.merchant_receives,
        }


def new_order_id() -> str:
    return f"order_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def merchant_account_id(db, merchant_id: str) -> str:
    with datastore_call(db, "look up merchant account"):
        profile = db.get(Profile, merchant_id)
    if profile is None or not profile.stripe_connect_account_id:
        raise ConfigurationError(MERCHANT_NOT_READY, details={"merchantId": merchant_id})
    return profile.stripe_connect_account_id


def _shipping(request: CreatePaymentIntentRequest):
    address = request.order_details.delivery_address
    if address is None or not request.metadata.customer_name:
        return None
    return {
        "name": request.metadata.customer_name,
        "address": {
            "line1": address.street,
            "line2": address.unit,
            "city": address.city,
            "state": address.state,
            "postal_code": address.zip_code,
            "country": address.country,
        },
    }


def record_order(db, order_id: str, payment_intent_id: str, request: CreatePaymentIntentRequest,
                 breakdown: BreakdownCents):
    details = request.order_details
    address = details.delivery_address
    order = Order(
        id=order_id,
        user_id=details.customer_id,
        store_id=details.store_id,
        merchant_id=details.merchant_id,
        status=OrderStatus.PENDING_PAYMENT.value,
        payment_intent_id=payment_intent_id,
        payment_status="pending",
        merchant_payment_status="pending",
        delivery_payment_status="pending",
        subtotal_cents=breakdown.subtotal,
        delivery_fee_cents=breakdown.delivery_fee,
        service_fee_cents=breakdown.service_fee,
        tax_cents=breakdown.tax,
        total_cents=request.amount,
        delivery_address=address.model_dump() if address else request.metadata.delivery_address or None,
        order_type=request.metadata.order_type,
    )
    try:
        db.add(order)
        for item in details.items:
            price = to_cents(item.price)
            db.add(OrderItem(
                order_id=order_id,
                product_id=item.product_id,
                quantity=item.quantity,
                price_cents=price,
                subtotal_cents=price * item.quantity,
            ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return order_id


def create_payment_intent(db, gateway, request: CreatePaymentIntentRequest,
                          default_currency: str = "usd") -> PaymentIntentCreated:
    details = request.order_details
    breakdown = BreakdownCents.from_breakdown(details.breakdown)
    if breakdown.total != request.amount:
        raise ValidationFailed(
            "Amount does not match order breakdown",
            details={"amount": request.amount, "breakdownTotal": breakdown.total}
        )

    destination = merchant_account_id(db, details.merchant_id)
    fee = platform_fee(breakdown)
    order_id = new_order_id()
    metadata = PaymentIntentMetadata.build(order_id, details, breakdown, request.metadata)

    try:
        intent = gateway.create_payment_intent(
            amount=request.amount,
            currency=(request.currency or default_currency).lower(),
            destination=destination,
            application_fee=fee,
            metadata=metadata.to_stripe(),
            idempotency_key=f"payment-intent-{uuid.uuid4()}",
            description=f"MyPartsRunner Order - {request.metadata.customer_name or order_id}",
            receipt_email=request.metadata.customer_email or None,
            shipping=_shipping(request),
        )
    except stripe.StripeError as exc:
        logger.error("Payment intent creation failed for order %s: %s", order_id, exc)
        raise UpstreamError("Failed to create payment intent", details=str(exc))

    logger.info(
        "Created payment intent %s for order %s (amount=%s, platform_fee=%s)",
        intent.id, order_id, request.amount, fee
    )
    order_record = best_effort("order_record", record_order, db, order_id, intent.id, request, breakdown)

    return PaymentIntentCreated(
        client_secret=intent.client_secret,
        payment_intent_id=intent.id,
        order_id=order_id,
        amount=request.amount,
        platform_fee=fee,
        merchant_receives=request.amount - fee,
        order_record=order_record,
    )
