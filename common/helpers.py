"""
Mimasa Store - Shared Helpers
===============================
Pure utility functions with NO database or module dependencies.
"""

import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

TWO_PLACES = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_decimal(value) -> Optional[Decimal]:
    """Parse a config/user value as Decimal. Returns None on failure."""
    if value is None:
        return None
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def money(value) -> Decimal:
    """Quantize a currency amount to two places."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Rupees -> paise, rounded half-up to the nearest paisa (never truncated)."""
    paise = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(paise)


def format_inr(value) -> str:
    """Format an amount as '₹1,234.50'."""
    if value is None:
        return "₹0.00"
    try:
        return "₹{:,.2f}".format(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return str(value)


# ==========================================
# Reference / Order Number Generators
# ==========================================

_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"  # no O/0/I/1/L


def generate_code(length: int = 6) -> str:
    """Generate a short, human-readable code."""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def generate_order_number(prefix: str, when: Optional[datetime] = None, length: int = 6) -> str:
    """Human-readable order number, e.g. MIM-20261018-7KQ2XD."""
    when = when or now_utc()
    return f"{prefix}-{when.strftime('%Y%m%d')}-{generate_code(length)}"


def generate_merchant_reference() -> str:
    """Receipt string unique per checkout attempt (ns timestamp + random suffix)."""
    return f"rcpt_{time.time_ns()}_{secrets.token_hex(3)}"
