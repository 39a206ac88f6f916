from __future__ import annotations

from decimal import Decimal


def money(value: Decimal | None) -> str | None:
    """Decimal -> plain string for JSON (no exponent notation)."""
    if value is None:
        return None
    return format(Decimal(value), "f")
