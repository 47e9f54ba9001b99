from decimal import Decimal

import pytest

from partsrunner.money import (
    BreakdownCents, allocate, platform_fee, split_delivery_fee, to_cents, to_dollars
)
from partsrunner.schemas import Breakdown


def test_to_cents_rounds_half_up():
    assert to_cents(Decimal("10.00")) == 1000
    assert to_cents(Decimal("0.005")) == 1
    assert to_cents(Decimal("19.994")) == 1999
    assert to_cents(7) == 700


def test_to_dollars():
    assert to_dollars(5400) == Decimal("54.00")
    assert to_dollars(1) == Decimal("0.01")


@pytest.mark.parametrize("fee", [0, 1, 2, 3, 5, 99, 1000, 1234, 99999])
def test_delivery_split_always_sums_to_fee(fee):
    driver, house = split_delivery_fee(fee)
    assert driver + house == fee
    assert driver >= 0 and house >= 0


def test_merchant_amount_ignores_fees():
    a = allocate(BreakdownCents(subtotal=5000, delivery_fee=0, service_fee=0, tax=400))
    b = allocate(BreakdownCents(subtotal=5000, delivery_fee=2500, service_fee=999, tax=400))
    assert a.merchant == b.merchant == 5400


@pytest.mark.parametrize("service,delivery", [(500, 1000), (0, 3), (199, 1), (250, 1234), (0, 0)])
def test_platform_fee_matches_dollar_formula(service, delivery):
    breakdown = BreakdownCents(subtotal=1000, delivery_fee=delivery, service_fee=service, tax=0)
    expected = (Decimal(service) / 100 + Decimal(delivery) / 100 * Decimal("0.2")) * 100
    assert platform_fee(breakdown) == to_cents(expected / 100)


def test_platform_fee_equals_house_total():
    breakdown = BreakdownCents(subtotal=3210, delivery_fee=777, service_fee=321, tax=55)
    assert platform_fee(breakdown) == allocate(breakdown).house_total


def test_end_to_end_scenario():
    breakdown = BreakdownCents.from_breakdown(
        Breakdown(subtotal="50.00", deliveryFee="10.00", serviceFee="5.00", tax="4.00")
    )
    assert breakdown.total == 6900

    fee = platform_fee(breakdown)
    assert fee == 700
    assert breakdown.total - fee == 6200

    allocation = allocate(breakdown)
    assert allocation.merchant == 5400
    assert allocation.driver == 800
    assert allocation.house_delivery == 200
    assert allocation.house_total == 700
    assert allocation.merchant + allocation.driver + allocation.house_total == breakdown.total
