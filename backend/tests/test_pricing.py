from decimal import Decimal

import pytest

from coupondesk.models.coupons import DiscountKind
from coupondesk.services import pricing


def test_quantize_money_rounding_modes() -> None:
    assert pricing.quantize_money(Decimal("1.005"), rounding="half_up") == Decimal("1.01")
    assert pricing.quantize_money(Decimal("1.005"), rounding="half_even") == Decimal("1.00")
    assert pricing.quantize_money(Decimal("1.001"), rounding="up") == Decimal("1.01")
    assert pricing.quantize_money(Decimal("1.009"), rounding="down") == Decimal("1.00")
    assert pricing.quantize_money("7") == Decimal("7.00")


def test_percentage_discount_is_capped() -> None:
    breakdown = pricing.compute_discount(
        kind=DiscountKind.percentage,
        value=Decimal("20"),
        order_amount=Decimal("200"),
        maximum_discount_amount=Decimal("30"),
    )
    assert breakdown.raw_discount == Decimal("40.00")
    assert breakdown.discount == Decimal("30.00")
    assert breakdown.total == Decimal("170.00")
    assert breakdown.capped is True


def test_percentage_discount_below_cap_is_untouched() -> None:
    breakdown = pricing.compute_discount(
        kind=DiscountKind.percentage,
        value=Decimal("20"),
        order_amount=Decimal("120"),
        maximum_discount_amount=Decimal("30"),
    )
    assert breakdown.discount == Decimal("24.00")
    assert breakdown.capped is False


def test_fixed_discount_never_exceeds_order_amount() -> None:
    breakdown = pricing.compute_discount(
        kind=DiscountKind.fixed_amount,
        value=Decimal("50"),
        order_amount=Decimal("35.50"),
    )
    assert breakdown.raw_discount == Decimal("50.00")
    assert breakdown.discount == Decimal("35.50")
    assert breakdown.total == Decimal("0.00")


def test_fixed_discount_respects_cap() -> None:
    breakdown = pricing.compute_discount(
        kind=DiscountKind.fixed_amount,
        value=Decimal("50"),
        order_amount=Decimal("500"),
        maximum_discount_amount=Decimal("25"),
    )
    assert breakdown.discount == Decimal("25.00")


def test_zero_order_amount_yields_zero_discount() -> None:
    breakdown = pricing.compute_discount(kind=DiscountKind.percentage, value=Decimal("15"), order_amount=Decimal("0"))
    assert breakdown.discount == Decimal("0.00")
    assert breakdown.total == Decimal("0.00")


def test_negative_order_amount_is_rejected() -> None:
    with pytest.raises(ValueError):
        pricing.compute_discount(kind=DiscountKind.fixed_amount, value=Decimal("5"), order_amount=Decimal("-1"))


def test_rounding_up_does_not_exceed_order_amount() -> None:
    breakdown = pricing.compute_discount(
        kind=DiscountKind.percentage,
        value=Decimal("100"),
        order_amount=Decimal("0.01"),
        rounding="up",
    )
    assert breakdown.discount == Decimal("0.01")
    assert breakdown.total == Decimal("0.00")


@pytest.mark.parametrize("kind", list(DiscountKind))
def test_discount_bounds_hold_across_amounts(kind: DiscountKind) -> None:
    cap = Decimal("30.00")
    for amount in (Decimal("0.01"), Decimal("9.99"), Decimal("100"), Decimal("149.95"), Decimal("1000")):
        for value in (Decimal("1"), Decimal("12.5"), Decimal("99.99")):
            breakdown = pricing.compute_discount(kind=kind, value=value, order_amount=amount, maximum_discount_amount=cap)
            assert Decimal("0.00") <= breakdown.discount <= breakdown.order_amount
            assert breakdown.discount <= cap
