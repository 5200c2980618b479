from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")


def to_money(amount: int | float | str | Decimal | None) -> Decimal:
    if amount is None:
        return Decimal("0.00")
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


def usd(amount: int | float | Decimal) -> str:
    d = to_money(amount)
    if d == d.to_integral_value():
        return f"${int(d):,}"
    return f"${d:,}"
