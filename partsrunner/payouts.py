"""Payout Allocator.

Runs once a PaymentIntent has succeeded. The merchant's share already moved
to their Connect account at charge time, so it is recorded as completed. The
driver and house shares of the delivery and service fees are earmarked in
``pending_payouts`` until the delivery completes.

Recording is idempotent per payment intent: a second call finds the merchant
ledger row and returns what was recorded the first time. The unique
constraints on ``transactions`` and ``pending_payouts`` catch the case where
two deliveries of the same event race past that check.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import stripe
from sqlalchemy.exc import IntegrityError

from partsrunner.database import datastore_call
from partsrunner.errors import DuplicatePayout, PaymentNotSuccessful
from partsrunner.models import Order, PendingPayout, Transaction
from partsrunner.money import BreakdownCents, allocate, to_dollars
from partsrunner.notifications import notify_customer_order_confirmed, notify_merchant_payment_received
from partsrunner.outcomes import BestEffortOutcome, best_effort
from partsrunner.schemas import OrderStatus

logger = logging.getLogger(__name__)

ORDER_PAYMENT = "order_payment"
DELIVERY_FEE = "delivery_fee"
SERVICE_FEE = "service_fee"

COMPLETED = "completed"
PENDING_DELIVERY = "pending_delivery"

DRIVER = "driver"
HOUSE = "house"


@dataclass
class PayoutResult:
    order_id: Optional[str]
    merchant_cents: int
    driver_cents: int
    house_cents: int
    already_processed: bool = False
    notifications: List[BestEffortOutcome] = field(default_factory=list)

    def to_response(self) -> dict:
        def leg(cents, status):
            return {"amount": float(to_dollars(cents)), "amountCents": cents, "status": status}

        return {
            "success": True,
            "orderId": self.order_id,
            "alreadyProcessed": self.already_processed,
            "payouts": {
                "merchant": leg(self.merchant_cents, COMPLETED),
                "driver": leg(self.driver_cents, PENDING_DELIVERY),
                "house": leg(self.house_cents, PENDING_DELIVERY),
            },
        }


def intent_metadata_dict(intent) -> dict:
    """Stripe metadata as a plain dict; SDK objects no longer behave like one."""
    metadata = intent.metadata
    if metadata is None:
        return {}
    if isinstance(metadata, stripe.StripeObject):
        return metadata.to_dict()
    return dict(metadata)


def recorded_payouts(db, payment_intent_id: str) -> Optional[PayoutResult]:
    merchant = db.query(Transaction).filter_by(
        payment_intent_id=payment_intent_id, type=ORDER_PAYMENT
    ).first()
    if merchant is None:
        return None

    pending = {
        p.recipient_role: p
        for p in db.query(PendingPayout).filter_by(payment_intent_id=payment_intent_id)
    }
    return PayoutResult(
        order_id=merchant.order_id,
        merchant_cents=merchant.amount_cents,
        driver_cents=pending[DRIVER].amount_cents if DRIVER in pending else 0,
        house_cents=pending[HOUSE].amount_cents if HOUSE in pending else 0,
        already_processed=True,
    )


def allocate_payouts(db, gateway, payment_intent_id: str, merchant_id: str,
                     breakdown: BreakdownCents, house_account_id: str) -> PayoutResult:
    """Record the three-way split of a succeeded payment.

    Changes are flushed, not committed; the caller owns the transaction.
    """
    intent = gateway.retrieve_payment_intent(payment_intent_id)
    if intent.status != "succeeded":
        raise PaymentNotSuccessful("Payment not successful", details={"status": intent.status})

    with datastore_call(db, "read recorded payouts"):
        existing = recorded_payouts(db, payment_intent_id)
    if existing is not None:
        logger.info("Payouts for %s already recorded; skipping", payment_intent_id)
        return existing

    allocation = allocate(breakdown)
    intent_metadata = intent_metadata_dict(intent)

    with datastore_call(db, "record payouts"):
        orders = db.query(Order).filter_by(payment_intent_id=payment_intent_id).all()
        if len(orders) > 1:
            logger.warning("%d orders share payment intent %s", len(orders), payment_intent_id)
        for order in orders:
            order.status = OrderStatus.CONFIRMED.value
            order.payment_status = COMPLETED
            order.merchant_payment_status = COMPLETED

        order = orders[0] if orders else None
        order_id = order.id if order else intent_metadata.get("order_id")
        customer_id = order.user_id if order else intent_metadata.get("customer_id")
        runner_id = order.runner_id if order else None

        db.add(Transaction(
            payment_intent_id=payment_intent_id,
            order_id=order_id,
            recipient_id=merchant_id,
            amount_cents=allocation.merchant,
            type=ORDER_PAYMENT,
            status=COMPLETED,
            description=f"Payment for order {order_id} (subtotal + tax)",
            details={
                "subtotal_cents": breakdown.subtotal,
                "tax_cents": breakdown.tax,
                "transfer": "stripe_connect_destination",
            },
        ))
        db.add(PendingPayout(
            payment_intent_id=payment_intent_id,
            order_id=order_id,
            recipient_role=DRIVER,
            recipient_id=runner_id,
            amount_cents=allocation.driver,
            type=DELIVERY_FEE,
            status=PENDING_DELIVERY,
            description=f"Driver share of delivery fee for order {order_id}",
        ))
        db.add(PendingPayout(
            payment_intent_id=payment_intent_id,
            order_id=order_id,
            recipient_role=HOUSE,
            recipient_id=house_account_id,
            amount_cents=allocation.house_total,
            type=SERVICE_FEE,
            status=PENDING_DELIVERY,
            description=f"Service fee and delivery share for order {order_id}",
        ))
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning("Concurrent payout recording detected for %s", payment_intent_id)
            raise DuplicatePayout(
                "Payouts for this payment are already being recorded",
                details={"paymentIntentId": payment_intent_id}
            )

    logger.info(
        "Allocated payment %s: merchant=%s driver=%s house=%s (cents)",
        payment_intent_id, allocation.merchant, allocation.driver, allocation.house_total
    )

    notifications = [
        best_effort("notify_merchant", notify_merchant_payment_received,
                    order_id, merchant_id, allocation.merchant),
        best_effort("notify_customer", notify_customer_order_confirmed, order_id, customer_id),
    ]

    return PayoutResult(
        order_id=order_id,
        merchant_cents=allocation.merchant,
        driver_cents=allocation.driver,
        house_cents=allocation.house_total,
        notifications=notifications,
    )
