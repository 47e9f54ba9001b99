import stripe
from sqlalchemy.exc import SQLAlchemyError

from conftest import make_intent
from partsrunner.models import Order, OrderItem
from partsrunner.stripe_service import StripeGateway, get_stripe_gateway
from partsrunner.main import app as fastapi_app


def _payload(**overrides):
    payload = {
        "amount": 6900,
        "currency": "usd",
        "orderDetails": {
            "customerId": "customer_1",
            "merchantId": "merchant_1",
            "storeId": "store_1",
            "breakdown": {"subtotal": 50.00, "deliveryFee": 10.00, "serviceFee": 5.00, "tax": 4.00},
            "deliveryAddress": {"street": "1 Main St", "city": "Austin", "state": "TX", "zipCode": "78701"},
            "items": [{"productId": "sku_1", "quantity": 2, "price": 25.00}],
        },
        "metadata": {
            "customerName": "Ada Lovelace",
            "customerEmail": "ada@example.com",
            "deliveryAddress": "1 Main St, Austin TX",
        },
    }
    payload.update(overrides)
    return payload


def test_create_payment_intent_success(client, gateway, merchant, db, mocker):
    gateway.create_payment_intent.return_value = make_intent(mocker, "pi_123", status="requires_payment_method")

    response = client.post("/create-payment-intent", json=_payload())

    assert response.status_code == 200
    body = response.json()
    assert body["clientSecret"] == "secret_123"
    assert body["paymentIntentId"] == "pi_123"
    assert body["orderId"].startswith("order_")
    assert body["amount"] == 6900
    assert body["platformFee"] == 700
    assert body["merchantReceives"] == 6200

    kwargs = gateway.create_payment_intent.call_args.kwargs
    assert kwargs["destination"] == "acct_merchant_1"
    assert kwargs["application_fee"] == 700
    assert kwargs["metadata"]["order_id"] == body["orderId"]
    assert kwargs["metadata"]["service_fee_cents"] == "500"
    assert kwargs["shipping"]["address"]["postal_code"] == "78701"

    order = db.get(Order, body["orderId"])
    assert order is not None
    assert order.status == "pending_payment"
    assert order.payment_intent_id == "pi_123"
    assert order.total_cents == 6900
    items = db.query(OrderItem).filter_by(order_id=body["orderId"]).all()
    assert [(i.product_id, i.subtotal_cents) for i in items] == [("sku_1", 5000)]


def test_merchant_without_connect_account_creates_nothing(client, gateway, db):
    response = client.post("/create-payment-intent", json=_payload())

    assert response.status_code == 400
    assert response.json()["error"].startswith("Merchant payment setup not complete")
    gateway.create_payment_intent.assert_not_called()
    assert db.query(Order).count() == 0


def test_amount_must_match_breakdown(client, gateway, merchant):
    response = client.post("/create-payment-intent", json=_payload(amount=7000))

    assert response.status_code == 400
    assert response.json()["details"] == {"amount": 7000, "breakdownTotal": 6900}
    gateway.create_payment_intent.assert_not_called()


def test_missing_customer_id_is_rejected(client, gateway, merchant):
    payload = _payload()
    del payload["orderDetails"]["customerId"]

    response = client.post("/create-payment-intent", json=payload)

    assert response.status_code == 400
    gateway.create_payment_intent.assert_not_called()


def test_non_positive_amount_is_rejected(client, gateway, merchant):
    response = client.post("/create-payment-intent", json=_payload(amount=0))
    assert response.status_code == 400


def test_order_write_failure_does_not_fail_payment(client, gateway, merchant, db, mocker):
    gateway.create_payment_intent.return_value = make_intent(mocker, "pi_456")
    mocker.patch("partsrunner.payments.record_order", side_effect=SQLAlchemyError("orders table locked"))

    response = client.post("/create-payment-intent", json=_payload())

    assert response.status_code == 200
    assert response.json()["paymentIntentId"] == "pi_456"
    assert db.query(Order).count() == 0


def test_stripe_failure_returns_500_without_order(client, gateway, merchant, db):
    gateway.create_payment_intent.side_effect = stripe.StripeError("card network down")

    response = client.post("/create-payment-intent", json=_payload())

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to create payment intent"
    assert db.query(Order).count() == 0


def test_gateway_sends_connect_split_to_stripe(client, merchant, mocker):
    """Exercise the real gateway with only the SDK call mocked."""
    fastapi_app.dependency_overrides[get_stripe_gateway] = lambda: StripeGateway("sk_test_real_gateway")
    create = mocker.patch("stripe.PaymentIntent.create", return_value=make_intent(mocker, "pi_sdk"))

    response = client.post("/create-payment-intent", json=_payload())

    assert response.status_code == 200
    kwargs = create.call_args.kwargs
    assert kwargs["api_key"] == "sk_test_real_gateway"
    assert kwargs["amount"] == 6900
    assert kwargs["application_fee_amount"] == 700
    assert kwargs["transfer_data"] == {"destination": "acct_merchant_1"}
    assert kwargs["receipt_email"] == "ada@example.com"
    assert kwargs["idempotency_key"].startswith("payment-intent-")


def test_checkouts_in_same_millisecond_get_distinct_ids_and_keys(client, gateway, merchant, db, mocker):
    clock = mocker.patch("partsrunner.payments.time")
    clock.time.return_value = 1700000000.123
    gateway.create_payment_intent.side_effect = [
        make_intent(mocker, "pi_a"),
        make_intent(mocker, "pi_b"),
    ]

    first = client.post("/create-payment-intent", json=_payload())
    second = client.post("/create-payment-intent", json=_payload())

    assert first.json()["orderId"].startswith("order_1700000000123_")
    assert first.json()["orderId"] != second.json()["orderId"]
    keys = [c.kwargs["idempotency_key"] for c in gateway.create_payment_intent.call_args_list]
    assert keys[0] != keys[1]
    assert db.query(Order).count() == 2
