from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
)

from partsrunner.database import Base
from partsrunner.money import to_dollars


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)                   # identity-provider user id
    email = Column(String)
    stripe_connect_account_id = Column(String, unique=True, index=True)
    charges_enabled = Column(Boolean, default=False)
    payouts_enabled = Column(Boolean, default=False)
    details_submitted = Column(Boolean, default=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True)                   # order_<millis> or uuid
    user_id = Column(String, index=True)                    # customer
    store_id = Column(String, index=True)
    merchant_id = Column(String, index=True)
    runner_id = Column(String, index=True)
    status = Column(String, nullable=False)
    payment_intent_id = Column(String, index=True)
    checkout_session_id = Column(String, index=True)
    payment_status = Column(String, default="pending")      # pending | processing | completed | failed
    merchant_payment_status = Column(String, default="pending")
    delivery_payment_status = Column(String, default="pending")
    subtotal_cents = Column(Integer, default=0)
    delivery_fee_cents = Column(Integer, default=0)
    service_fee_cents = Column(Integer, default=0)
    tax_cents = Column(Integer, default=0)
    total_cents = Column(Integer, default=0)
    delivery_address = Column(JSON)
    order_type = Column(String, default="delivery")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "merchant_id": self.merchant_id,
            "runner_id": self.runner_id,
            "status": self.status,
            "payment_intent_id": self.payment_intent_id,
            "payment_status": self.payment_status,
            "merchant_payment_status": self.merchant_payment_status,
            "delivery_payment_status": self.delivery_payment_status,
            "subtotal": float(to_dollars(self.subtotal_cents or 0)),
            "delivery_fee": float(to_dollars(self.delivery_fee_cents or 0)),
            "service_fee": float(to_dollars(self.service_fee_cents or 0)),
            "tax": float(to_dollars(self.tax_cents or 0)),
            "total": float(to_dollars(self.total_cents or 0)),
            "delivery_address": self.delivery_address,
            "order_type": self.order_type,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
    subtotal_cents = Column(Integer, nullable=False)


class Transaction(Base):
    """Append-only ledger row; never updated once written."""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("payment_intent_id", "type", name="uq_transactions_intent_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_intent_id = Column(String, nullable=False, index=True)
    order_id = Column(String, index=True)
    recipient_id = Column(String, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    type = Column(String, nullable=False)                   # order_payment | delivery_fee | service_fee
    status = Column(String, nullable=False)                 # completed | pending_delivery
    description = Column(String)
    details = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class PendingPayout(Base):
    """Funds earmarked for a driver or the house until the delivery completes."""

    __tablename__ = "pending_payouts"
    __table_args__ = (
        UniqueConstraint("payment_intent_id", "recipient_role", name="uq_pending_payouts_intent_role"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_intent_id = Column(String, nullable=False, index=True)
    order_id = Column(String, index=True)
    recipient_role = Column(String, nullable=False)         # driver | house
    recipient_id = Column(String)                           # unknown until a runner is assigned
    amount_cents = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending_delivery")
    description = Column(String)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True)                   # Stripe event id
    type = Column(String, nullable=False)
    received_at = Column(DateTime(timezone=True), default=utcnow)
