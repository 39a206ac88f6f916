from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Upper bound for any monetary input (currency units)
MAX_AMOUNT = Decimal("999999999.9999")


def parse_id(value: Any, field: str) -> int:
    """
    Normalize an identifier to a positive int.

    Rejects booleans, floats, scientific notation and blank strings.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field} format")
    if isinstance(value, int):
        if value <= 0:
            raise ValidationError(f"Invalid {field} format")
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValidationError(f"Invalid {field} format")
        parsed = int(stripped)
        if parsed <= 0:
            raise ValidationError(f"Invalid {field} format")
        return parsed
    raise ValidationError(f"Invalid {field} format")


def parse_optional_id(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_id(value, field)


def parse_int(value: Any, field: str) -> int:
    """Plain integer, no decimals, no scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if 'e' in stripped.lower() or '.' in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def parse_decimal(value: Any, field: str, *, minimum: Decimal | None = Decimal("0")) -> Decimal:
    """
    Parse a monetary or percentage value to Decimal.

    Floats go through str() so 0.1 stays 0.1.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be greater than or equal to {minimum}")
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds the maximum allowed value")
    return result


def parse_optional_decimal(value: Any, field: str, *, minimum: Decimal | None = Decimal("0")) -> Decimal | None:
    if value is None:
        return None
    return parse_decimal(value, field, minimum=minimum)


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
    raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = tuple(choices)
    if value not in allowed:
        quoted = ", ".join(f'"{c}"' for c in allowed)
        raise ValidationError(f"{field} must be one of {quoted}")
    return value


def clean_text(value: Any, *, max_length: int | None = None, field: str = "value") -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def require_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload
