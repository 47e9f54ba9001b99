import pytest

from partsrunner.money import BreakdownCents
from partsrunner.schemas import CustomerMetadata, MetadataError, OrderDetails, PaymentIntentMetadata


def _details(**overrides):
    data = {
        "customerId": "customer_1",
        "merchantId": "merchant_1",
        "storeId": "store_1",
        "breakdown": {"subtotal": 50, "deliveryFee": 10, "serviceFee": 5, "tax": 4},
    }
    data.update(overrides)
    return OrderDetails.model_validate(data)


def test_metadata_is_all_strings_with_schema_version():
    meta = PaymentIntentMetadata.build(
        "order_1", _details(), BreakdownCents(5000, 1000, 500, 400),
        CustomerMetadata(customerName="Ada", customerEmail="ada@example.com")
    )
    data = meta.to_stripe()

    assert data["schema_version"] == "1"
    assert data["order_id"] == "order_1"
    assert data["subtotal_cents"] == "5000"
    assert data["delivery_fee_cents"] == "1000"
    assert data["customer_email"] == "ada@example.com"
    assert all(isinstance(value, str) for value in data.values())


def test_metadata_parses_back_from_stripe():
    meta = PaymentIntentMetadata.build(
        "order_1", _details(storeId=None), BreakdownCents(5000, 1000, 500, 400), CustomerMetadata()
    )
    parsed = PaymentIntentMetadata.from_stripe(meta.to_stripe())

    assert parsed.merchant_id == "merchant_1"
    assert parsed.store_id is None
    assert parsed.breakdown() == BreakdownCents(5000, 1000, 500, 400)


def test_foreign_metadata_is_rejected():
    with pytest.raises(MetadataError):
        PaymentIntentMetadata.from_stripe({"order_id": "order_1"})

    with pytest.raises(MetadataError):
        PaymentIntentMetadata.from_stripe(None)


def test_malformed_metadata_is_rejected():
    with pytest.raises(MetadataError):
        PaymentIntentMetadata.from_stripe({"schema_version": "1", "order_id": "order_1", "subtotal_cents": "abc"})
