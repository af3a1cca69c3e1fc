"""
Currency helpers.

Amounts are BRL with two decimal places. Everything goes through Decimal;
floats never touch a balance.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union

CENT = Decimal("0.01")

Amount = Union[Decimal, str, int]


def to_money(value: Amount) -> Decimal:
    """Coerce a value to a Decimal quantized to cents."""
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Amount) -> str:
    """Render an amount as a fixed two-decimal string (e.g. '80.00')."""
    return f"{to_money(value):.2f}"


def compute_split(total: Amount, commission_percentage: Amount) -> Tuple[Decimal, Decimal]:
    """
    Split a total into (driver_amount, commission_amount).

    The commission is rounded half-up to the cent and the driver receives the
    remainder, so both parts always add back to the total exactly.
    """
    total = to_money(total)
    percentage = Decimal(commission_percentage)
    if total < 0:
        raise ValueError("Total amount cannot be negative")
    if not Decimal("0") <= percentage <= Decimal("100"):
        raise ValueError("Commission percentage must be between 0 and 100")

    commission = to_money(total * percentage / Decimal("100"))
    return total - commission, commission
