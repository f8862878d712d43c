from decimal import Decimal

from backoffice.services import pricing


def test_percentage_discount_without_cap() -> None:
    discount = pricing.compute_discount(25, 1000)
    assert discount == Decimal("250.00")
    assert pricing.final_amount(1000, discount) == Decimal("750.00")


def test_cap_limits_discount() -> None:
    discount = pricing.compute_discount(50, 1000, 200)
    assert discount == Decimal("200.00")
    assert pricing.final_amount(1000, discount) == Decimal("800.00")


def test_cap_above_raw_discount_is_ignored() -> None:
    assert pricing.compute_discount(10, 100, 50) == Decimal("10.00")


def test_zero_cap_means_no_discount() -> None:
    assert pricing.compute_discount(30, 100, 0) == Decimal("0.00")


def test_zero_percentage_or_amount() -> None:
    assert pricing.compute_discount(0, 100) == Decimal("0.00")
    assert pricing.compute_discount(15, 0) == Decimal("0.00")


def test_rounding_to_cents() -> None:
    # 12.5% of 10.01 is 1.25125
    assert pricing.compute_discount("12.5", "10.01") == Decimal("1.25")
    assert pricing.quantize_money(Decimal("0.125")) == Decimal("0.13")
    assert pricing.quantize_money(Decimal("0.125"), rounding="half_even") == Decimal("0.12")
    assert pricing.quantize_money(Decimal("0.121"), rounding="up") == Decimal("0.13")
    assert pricing.quantize_money(Decimal("0.129"), rounding="down") == Decimal("0.12")


def test_float_inputs_keep_printed_value() -> None:
    assert pricing.compute_discount(10.0, 19.99) == Decimal("2.00")
    assert pricing.to_decimal(0.1) == Decimal("0.1")
