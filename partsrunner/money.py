"""Integer-cent arithmetic for order totals, platform fees and payout splits.

Amounts cross the API boundary as decimal dollars and are converted to
integer cents exactly once (``to_cents``). Every fee and share below works on
cents, so the three payout legs always add back up to the charged amount.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

DRIVER_SHARE = Decimal("0.8")
HOUSE_DELIVERY_SHARE = Decimal(1) - DRIVER_SHARE

CENT = Decimal("0.01")


def to_cents(amount) -> int:
    """Convert a dollar amount to integer cents, rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_dollars(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


@dataclass(frozen=True)
class BreakdownCents:
    subtotal: int
    delivery_fee: int
    service_fee: int
    tax: int

    @classmethod
    def from_breakdown(cls, breakdown) -> "BreakdownCents":
        return cls(
            subtotal=to_cents(breakdown.subtotal),
            delivery_fee=to_cents(breakdown.delivery_fee),
            service_fee=to_cents(breakdown.service_fee),
            tax=to_cents(breakdown.tax),
        )

    @property
    def total(self) -> int:
        return self.subtotal + self.delivery_fee + self.service_fee + self.tax


def split_delivery_fee(delivery_fee_cents: int) -> tuple[int, int]:
    """Return ``(driver, house)`` shares of a delivery fee.

    The house share is the remainder, so the two always sum to the fee.
    """
    driver = int((Decimal(delivery_fee_cents) * DRIVER_SHARE).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return driver, delivery_fee_cents - driver


def platform_fee(breakdown: BreakdownCents) -> int:
    """The application fee Stripe keeps for the platform at charge time.

    Equal to ``round((serviceFee + deliveryFee * 0.2) * 100)`` for any
    breakdown expressed in whole cents.
    """
    _, house_delivery = split_delivery_fee(breakdown.delivery_fee)
    return breakdown.service_fee + house_delivery


@dataclass(frozen=True)
class Allocation:
    merchant: int
    driver: int
    house_delivery: int
    house_total: int


def allocate(breakdown: BreakdownCents) -> Allocation:
    driver, house_delivery = split_delivery_fee(breakdown.delivery_fee)
    return Allocation(
        merchant=breakdown.subtotal + breakdown.tax,
        driver=driver,
        house_delivery=house_delivery,
        house_total=house_delivery + breakdown.service_fee,
    )
