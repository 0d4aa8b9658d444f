from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP
from typing import Literal

from coupondesk.models.coupons import DiscountKind


MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
# Largest value a Numeric(10, 2) money column holds.
MAX_MONEY = Decimal("99999999.99")

MoneyRounding = Literal["half_up", "half_even", "up", "down"]


_ROUNDING_MAP: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "up": ROUND_UP,
    "down": ROUND_DOWN,
}


def quantize_money(value: Decimal | int | str, *, rounding: MoneyRounding = "half_up") -> Decimal:
    mode = _ROUNDING_MAP.get(str(rounding), ROUND_HALF_UP)
    return Decimal(value).quantize(MONEY_QUANT, rounding=mode)


@dataclass(frozen=True)
class DiscountBreakdown:
    order_amount: Decimal
    raw_discount: Decimal
    discount: Decimal
    total: Decimal

    @property
    def capped(self) -> bool:
        return self.discount < self.raw_discount


def raw_discount(kind: DiscountKind, value: Decimal, order_amount: Decimal) -> Decimal:
    if value <= 0 or order_amount <= 0:
        return ZERO
    if kind == DiscountKind.percentage:
        return order_amount * value / HUNDRED
    return Decimal(value)


def compute_discount(
    *,
    kind: DiscountKind,
    value: Decimal,
    order_amount: Decimal,
    maximum_discount_amount: Decimal | None = None,
    rounding: MoneyRounding = "half_up",
) -> DiscountBreakdown:
    """Discount for one order amount.

    The raw figure is capped by ``maximum_discount_amount`` (when set) and then
    by the order amount itself, so the result is always within
    ``[0, order_amount]``.
    """
    amount = quantize_money(order_amount, rounding=rounding)
    if amount < 0:
        raise ValueError("order amount must be non-negative")

    raw = raw_discount(kind, Decimal(value), amount)
    discount = raw
    if maximum_discount_amount is not None:
        discount = min(discount, Decimal(maximum_discount_amount))
    discount = max(min(discount, amount), ZERO)

    discount_q = quantize_money(discount, rounding=rounding)
    # Rounding up must not push the discount past the order amount.
    if discount_q > amount:
        discount_q = amount
    return DiscountBreakdown(
        order_amount=amount,
        raw_discount=quantize_money(raw, rounding=rounding),
        discount=discount_q,
        total=amount - discount_q,
    )
