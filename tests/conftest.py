import os

os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_partsrunner.db")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("APP_BASE_URL", "https://mypartsrunner.test")

import pytest
from fastapi.testclient import TestClient

from partsrunner.auth import verify_token
from partsrunner.database import Base, get_engine, get_sessionmaker
from partsrunner.main import app as fastapi_app
from partsrunner.models import Order, Profile
from partsrunner.stripe_service import StripeGateway, get_stripe_gateway


@pytest.fixture(autouse=True)
def setup_db():
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = get_sessionmaker()()
    yield session
    session.close()


@pytest.fixture
def gateway(mocker):
    return mocker.Mock(spec=StripeGateway)


@pytest.fixture
def client(gateway):
    fastapi_app.dependency_overrides[verify_token] = lambda: {"sub": "user_test"}
    fastapi_app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def merchant(db):
    profile = Profile(id="merchant_1", email="shop@example.com", stripe_connect_account_id="acct_merchant_1")
    db.add(profile)
    db.commit()
    return profile


def make_intent(mocker, intent_id="pi_123", status="succeeded", metadata=None, client_secret="secret_123"):
    intent = mocker.Mock()
    intent.id = intent_id
    intent.status = status
    intent.client_secret = client_secret
    intent.metadata = metadata or {}
    return intent


def add_order(db, order_id="order_1", payment_intent_id="pi_123", **fields):
    values = dict(
        id=order_id,
        user_id="customer_1",
        store_id="store_1",
        merchant_id="merchant_1",
        status="pending_payment",
        payment_intent_id=payment_intent_id,
        payment_status="pending",
        merchant_payment_status="pending",
        delivery_payment_status="pending",
        subtotal_cents=5000,
        delivery_fee_cents=1000,
        service_fee_cents=500,
        tax_cents=400,
        total_cents=6900,
    )
    values.update(fields)
    order = Order(**values)
    db.add(order)
    db.commit()
    return order
