"""
Per-step input validators

Each validator takes the raw message text and returns the normalized value,
or raises ValidationError. They are pure and never touch the session.
"""

import math
import re

from shared.exceptions import ValidationError

_DIGITS = re.compile(r"^\d+$", re.ASCII)
# Plain decimals only: no sign, exponent or digit-group underscores
_DECIMAL = re.compile(r"^\d+(\.\d+)?$", re.ASCII)


def numeric_nd(text: str) -> str:
    """Service/invoice number: digits only"""
    value = (text or "").strip()
    if not _DIGITS.match(value):
        raise ValidationError("digits only")
    return value


def positive_amount(text: str) -> float:
    """Payment amount, decimal comma accepted ("1000,50")"""
    value = (text or "").strip().replace(",", ".", 1)
    if not _DECIMAL.match(value):
        raise ValidationError("not a number")

    amount = float(value)
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("amount must be positive")
    return amount


def non_empty(text: str) -> str:
    """Free text (password, voucher code)"""
    value = (text or "").strip()
    if not value:
        raise ValidationError("empty input")
    return value
