"""Stripe webhook verification and dispatch.

``handle_stripe_webhook`` is the single entrypoint used by the router:

- verifies the Stripe signature (400 and no side effects when it fails)
- records the event id in ``webhook_events`` so redeliveries are no-ops
- routes supported event types to their handler
- acknowledges unknown event types with 200 so Stripe does not retry them

The dedup row and every write a handler makes share one DB transaction. If a
handler raises, all of it rolls back and a 500 asks Stripe to redeliver.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import stripe
from sqlalchemy.exc import IntegrityError

from partsrunner.config import Settings
from partsrunner.connect import sync_account
from partsrunner.models import Order, WebhookEvent
from partsrunner.payouts import allocate_payouts
from partsrunner.schemas import MetadataError, PaymentIntentMetadata

logger = logging.getLogger(__name__)


class InvalidWebhook(Exception):
    pass


@dataclass
class WebhookContext:
    db: Any
    gateway: Any
    settings: Settings


_handlers: Dict[str, Callable[[WebhookContext, dict], None]] = {}


def handles(event_type: str):
    def register(fn):
        _handlers[event_type] = fn
        return fn
    return register


def handled_event_types():
    return sorted(_handlers)


def verify_event(payload: bytes, signature: Optional[str], secret: str) -> dict:
    if not signature:
        raise InvalidWebhook("Missing stripe-signature header")
    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError:
        raise InvalidWebhook("Invalid payload")
    except stripe.SignatureVerificationError:
        raise InvalidWebhook("Invalid signature")

    if hasattr(event, "to_dict"):
        return event.to_dict()
    return dict(event)


def _orders_for_intent(db, payment_intent_id):
    if not payment_intent_id:
        return []
    return db.query(Order).filter_by(payment_intent_id=payment_intent_id).all()


def _order_for_session(db, session: dict) -> Optional[Order]:
    order_id = (session.get("metadata") or {}).get("order_id")
    if order_id:
        order = db.get(Order, order_id)
        if order is not None:
            return order
    return db.query(Order).filter_by(checkout_session_id=session.get("id")).first()


@handles("payment_intent.succeeded")
def _payment_intent_succeeded(ctx: WebhookContext, intent: dict):
    try:
        metadata = PaymentIntentMetadata.from_stripe(intent.get("metadata"))
    except MetadataError as exc:
        logger.info("Payment intent %s has no order metadata (%s); nothing to allocate", intent.get("id"), exc)
        return

    result = allocate_payouts(
        ctx.db,
        ctx.gateway,
        intent["id"],
        metadata.merchant_id,
        metadata.breakdown(),
        ctx.settings.house_account_id,
    )
    logger.info("Payouts recorded for order %s via webhook", result.order_id)


@handles("payment_intent.payment_failed")
def _payment_intent_failed(ctx: WebhookContext, intent: dict):
    orders = _orders_for_intent(ctx.db, intent.get("id"))
    for order in orders:
        order.payment_status = "failed"
    error = (intent.get("last_payment_error") or {}).get("message")
    logger.info("Payment %s failed for %d order(s): %s", intent.get("id"), len(orders), error)


@handles("checkout.session.completed")
def _checkout_completed(ctx: WebhookContext, session: dict):
    order = _order_for_session(ctx.db, session)
    if order is None:
        logger.info("Checkout session %s has no matching order", session.get("id"))
        return
    order.checkout_session_id = session.get("id")
    if session.get("payment_intent"):
        order.payment_intent_id = session["payment_intent"]
    order.payment_status = "processing"


@handles("checkout.session.expired")
def _checkout_expired(ctx: WebhookContext, session: dict):
    order = _order_for_session(ctx.db, session)
    if order is None:
        logger.info("Expired checkout session %s has no matching order", session.get("id"))
        return
    order.payment_status = "failed"


@handles("account.updated")
def _account_updated(ctx: WebhookContext, account: dict):
    if sync_account(ctx.db, account) is None:
        logger.info("Connect account %s is not linked to a profile", account.get("id"))


@handles("transfer.created")
def _transfer_created(ctx: WebhookContext, transfer: dict):
    logger.info(
        "Transfer %s created: %s %s to %s",
        transfer.get("id"), transfer.get("amount"), transfer.get("currency"), transfer.get("destination")
    )


@handles("payout.paid")
def _payout_paid(ctx: WebhookContext, payout: dict):
    logger.info(
        "Payout %s paid: %s %s (arrival %s)",
        payout.get("id"), payout.get("amount"), payout.get("currency"), payout.get("arrival_date")
    )


def dispatch_event(ctx: WebhookContext, event: dict) -> dict:
    event_id = event.get("id")
    event_type = event.get("type")
    db = ctx.db

    if event_id:
        if db.get(WebhookEvent, event_id) is not None:
            logger.info("Duplicate delivery of event %s (%s) ignored", event_id, event_type)
            return {"received": True, "duplicate": True}
        try:
            db.add(WebhookEvent(id=event_id, type=event_type))
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info("Event %s is being processed by another delivery", event_id)
            return {"received": True, "duplicate": True}
    else:
        logger.warning("Event of type %s has no id; processing without dedup", event_type)

    handler = _handlers.get(event_type)
    if handler is None:
        logger.info("Unhandled event type: %s", event_type)
    else:
        handler(ctx, (event.get("data") or {}).get("object") or {})

    db.commit()
    return {"received": True, "type": event_type}


def handle_stripe_webhook(ctx: WebhookContext, payload: bytes,
                          signature: Optional[str]) -> Tuple[int, dict]:
    """Return ``(status_code, body)`` for a webhook delivery."""
    try:
        event = verify_event(payload, signature, ctx.settings.stripe_webhook_secret)
    except InvalidWebhook as exc:
        logger.warning("Rejected webhook: %s", exc)
        return 400, {"error": str(exc)}

    try:
        body = dispatch_event(ctx, event)
    except Exception as exc:
        ctx.db.rollback()
        logger.exception("Handler for %s (%s) failed", event.get("type"), event.get("id"))
        return 500, {"error": "Webhook handler failed", "details": str(exc)}

    return 200, body
