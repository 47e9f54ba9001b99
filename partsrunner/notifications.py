"""Post-payout notification hooks.

These only log for now; an email/SMS dispatcher is expected to take their
place. Callers run them through ``outcomes.best_effort``.
"""

import logging

from partsrunner.money import to_dollars

logger = logging.getLogger(__name__)


def notify_merchant_payment_received(order_id: str, merchant_id: str, amount_cents: int):
    logger.info(
        "Notify merchant %s: payment of $%s received for order %s",
        merchant_id, to_dollars(amount_cents), order_id
    )


def notify_customer_order_confirmed(order_id: str, customer_id: str):
    logger.info("Notify customer %s: order %s confirmed", customer_id, order_id)
