"""
Platform fee calculation.

The platform fee is a percentage of the order total rounded half-up to a
whole minor unit. The vendor receives the remainder, so any rounding
difference lands on the vendor side and the two parts always add up to
the order total.

Usage:
    from settlement.fees import compute_split, get_platform_fee_rate

    split = compute_split(1_000_000, get_platform_fee_rate())
    split.platform_fee   # 50_000
    split.vendor_amount  # 950_000
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from settlement.exceptions import InvalidAmount
from settlement.types import FeeSplit

HUNDRED = Decimal("100")
WHOLE_UNIT = Decimal("1")
# Precision of EscrowTransaction.fee_rate
RATE_PRECISION = Decimal("0.01")


def parse_fee_rate(fee_rate_percent: Decimal | int | float | str) -> Decimal:
    """
    Normalize a fee percentage to a Decimal in [0, 100] or raise InvalidAmount.

    Rates are limited to two decimal places so the rate stored on the escrow
    is exactly the rate used for the split.
    """
    if isinstance(fee_rate_percent, bool):
        raise InvalidAmount(
            "Fee rate must be a number",
            details={"fee_rate_percent": fee_rate_percent},
        )
    try:
        # str() first so 5.1 becomes Decimal("5.1"), not its binary expansion
        rate = Decimal(str(fee_rate_percent))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(
            "Fee rate must be a number",
            details={"fee_rate_percent": str(fee_rate_percent)},
        ) from exc

    if not rate.is_finite() or rate < 0 or rate > HUNDRED:
        raise InvalidAmount(
            "Fee rate must be between 0 and 100 percent",
            details={"fee_rate_percent": str(fee_rate_percent)},
        )
    if rate.quantize(RATE_PRECISION) != rate:
        raise InvalidAmount(
            "Fee rate can have at most two decimal places",
            details={"fee_rate_percent": str(fee_rate_percent)},
        )
    return rate


def compute_split(
    amount: int, fee_rate_percent: Decimal | int | float | str
) -> FeeSplit:
    """
    Split an order total into platform fee and vendor amount.

    Args:
        amount: Order total in minor units, must be a positive integer
        fee_rate_percent: Fee percentage in [0, 100]

    Returns:
        FeeSplit with platform_fee + vendor_amount == amount

    Raises:
        InvalidAmount: If amount is not a positive integer or the rate
            is outside [0, 100]
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(
            "Amount must be a positive integer number of minor units",
            details={"amount": str(amount)},
        )

    rate = parse_fee_rate(fee_rate_percent)
    platform_fee = int(
        (Decimal(amount) * rate / HUNDRED).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
    )
    return FeeSplit(platform_fee=platform_fee, vendor_amount=amount - platform_fee)


def get_platform_fee_rate() -> Decimal:
    """Return the configured platform fee percentage as a Decimal."""
    return parse_fee_rate(settings.PLATFORM_FEE_PERCENT)
