"""
Mimi's Kitchen API - Shared Helpers
====================================
Pure utility functions with NO database or module dependencies.
"""

import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def money(value) -> Decimal:
    """Quantize any numeric value to two decimal places."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Convert a major-unit amount (e.g. pounds) to minor units (pence)."""
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def line_total(price, quantity: int) -> Decimal:
    return money(money(price) * quantity)


# ==========================================
# Order Number Generator
# ==========================================

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number() -> str:
    """Human-readable order number: ORD-<ms timestamp base36>-<random suffix>."""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"ORD-{stamp}{suffix}"


def mask_email(email: Optional[str]) -> Optional[str]:
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"
