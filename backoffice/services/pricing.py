from __future__ import annotations

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP
from typing import Literal


MONEY_QUANT = Decimal("0.01")
HUNDRED = Decimal("100")

MoneyRounding = Literal["half_up", "half_even", "up", "down"]


_ROUNDING_MAP: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "up": ROUND_UP,
    "down": ROUND_DOWN,
}


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    # str() first so floats keep their printed value instead of binary noise.
    return value if isinstance(value, Decimal) else Decimal(str(value))


def quantize_money(value: Decimal | int | float | str, *, rounding: MoneyRounding = "half_up") -> Decimal:
    mode = _ROUNDING_MAP.get(str(rounding), ROUND_HALF_UP)
    return to_decimal(value).quantize(MONEY_QUANT, rounding=mode)


def compute_discount(
    discount_percentage: Decimal | int | float | str,
    order_amount: Decimal | int | float | str,
    max_discount_amount: Decimal | int | float | str | None = None,
    *,
    rounding: MoneyRounding = "half_up",
) -> Decimal:
    """Return the discount granted on ``order_amount``.

    The percentage is applied to the full order amount and the result is
    capped by ``max_discount_amount`` when one is set (``None`` means
    uncapped, ``0`` caps the discount at zero).
    """
    pct = to_decimal(discount_percentage)
    amount = to_decimal(order_amount)
    if pct <= 0 or amount <= 0:
        return quantize_money(Decimal("0"), rounding=rounding)

    raw = amount * pct / HUNDRED
    if max_discount_amount is not None:
        raw = min(raw, to_decimal(max_discount_amount))
    return quantize_money(raw, rounding=rounding)


def final_amount(order_amount: Decimal | int | float | str, discount: Decimal, *, rounding: MoneyRounding = "half_up") -> Decimal:
    return quantize_money(to_decimal(order_amount) - discount, rounding=rounding)
