"""
Money Helpers — Rupee amounts are carried as integer paise everywhere.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

_NON_NUMERIC = re.compile(r"[^0-9.\-]+")


def to_paise(amount: Any) -> int:
    """Convert a rupee amount (Decimal / int / str) to integer paise.

    Raises:
        ValueError: more than 2 decimal places, negative, or not a number.
    """
    if not isinstance(amount, Decimal):
        try:
            amount = Decimal(str(amount).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount!r}")

    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount.as_tuple().exponent < -2:
        raise ValueError("Amount has more than 2 decimal places")
    if amount < 0:
        raise ValueError("Amount must not be negative")

    return int(amount * 100)


def format_rupees(paise: int) -> str:
    """Paise to the gateway's two-decimal rupee string: 25000 -> '250.00'."""
    return str((Decimal(int(paise)) / 100).quantize(Decimal("0.01")))


def parse_amount_paise(value: Any) -> Optional[int]:
    """Tolerant parse of a vendor-supplied amount ('₹ 250.00', 250, '250') to paise.

    Returns None when nothing numeric can be recovered.
    """
    if value is None:
        return None
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        return None
    try:
        rupees = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not rupees.is_finite():
        return None
    return int((rupees * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
