from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from partsrunner.money import BreakdownCents

METADATA_SCHEMA_VERSION = "1"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Breakdown(CamelModel):
    subtotal: Decimal = Field(ge=0)
    delivery_fee: Decimal = Field(ge=0)
    service_fee: Decimal = Field(ge=0)
    tax: Decimal = Field(ge=0)


class DeliveryAddress(CamelModel):
    street: str
    unit: Optional[str] = None
    city: str
    state: str
    zip_code: str
    country: str = "US"


class LineItem(CamelModel):
    product_id: str
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)


class OrderDetails(CamelModel):
    customer_id: str = Field(min_length=1)
    merchant_id: str = Field(min_length=1)
    store_id: Optional[str] = None
    breakdown: Breakdown
    delivery_address: Optional[DeliveryAddress] = None
    items: List[LineItem] = []


class CustomerMetadata(CamelModel):
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    delivery_address: str = ""
    order_type: str = "delivery"


class CreatePaymentIntentRequest(CamelModel):
    amount: int = Field(gt=0)                    # cents
    currency: Optional[str] = None
    order_details: OrderDetails
    metadata: CustomerMetadata = Field(default_factory=CustomerMetadata)


class PayoutOrderDetails(CamelModel):
    merchant_id: str = Field(min_length=1)
    breakdown: Breakdown


class ProcessPayoutRequest(CamelModel):
    payment_intent_id: str = Field(min_length=1)
    order_details: PayoutOrderDetails


class ConnectAccountRequest(CamelModel):
    user_id: str = Field(min_length=1)
    email: str = Field(min_length=1)
    country: str = "US"


# Order CRUD bodies keep the snake_case field names of the orders table.

class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)
    subtotal: Optional[Decimal] = Field(default=None, ge=0)


class CreateOrderRequest(BaseModel):
    user_id: str = Field(min_length=1)
    store_id: str = Field(min_length=1)
    items: List[OrderItemIn] = Field(min_length=1)
    delivery_address: Optional[dict] = None
    subtotal: Decimal = Field(default=Decimal(0), ge=0)
    delivery_fee: Decimal = Field(default=Decimal(0), ge=0)
    tax: Decimal = Field(default=Decimal(0), ge=0)
    total: Optional[Decimal] = Field(default=None, ge=0)


class UpdateOrderStatusRequest(BaseModel):
    order_id: str = Field(min_length=1)
    status: OrderStatus


class AssignRunnerRequest(BaseModel):
    order_id: str = Field(min_length=1)
    runner_id: str = Field(min_length=1)


class MetadataError(ValueError):
    pass


class PaymentIntentMetadata(BaseModel):
    """Order facts carried on a PaymentIntent through Stripe's string map."""

    order_id: str
    customer_id: str
    merchant_id: str
    store_id: Optional[str] = None
    subtotal_cents: int
    delivery_fee_cents: int
    service_fee_cents: int
    tax_cents: int
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    delivery_address: str = ""
    order_type: str = "delivery"
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @field_validator("store_id", mode="before")
    @classmethod
    def _blank_store(cls, value):
        return value or None

    @classmethod
    def build(cls, order_id: str, details: OrderDetails, breakdown: BreakdownCents,
              customer: CustomerMetadata) -> "PaymentIntentMetadata":
        return cls(
            order_id=order_id,
            customer_id=details.customer_id,
            merchant_id=details.merchant_id,
            store_id=details.store_id,
            subtotal_cents=breakdown.subtotal,
            delivery_fee_cents=breakdown.delivery_fee,
            service_fee_cents=breakdown.service_fee,
            tax_cents=breakdown.tax,
            customer_name=customer.customer_name,
            customer_email=customer.customer_email,
            customer_phone=customer.customer_phone,
            delivery_address=customer.delivery_address,
            order_type=customer.order_type,
        )

    def breakdown(self) -> BreakdownCents:
        return BreakdownCents(
            subtotal=self.subtotal_cents,
            delivery_fee=self.delivery_fee_cents,
            service_fee=self.service_fee_cents,
            tax=self.tax_cents,
        )

    def to_stripe(self) -> dict:
        data = {"schema_version": METADATA_SCHEMA_VERSION}
        for key, value in self.model_dump().items():
            data[key] = "" if value is None else str(value)
        return data

    @classmethod
    def from_stripe(cls, metadata) -> "PaymentIntentMetadata":
        data = dict(metadata or {})
        version = data.pop("schema_version", None)
        if version != METADATA_SCHEMA_VERSION:
            raise MetadataError(f"unsupported payment metadata schema {version!r}")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise MetadataError(f"malformed payment metadata: {exc.error_count()} invalid fields")
