# Overview: Error taxonomy shared by services and routes.

"""
Core error taxonomy.

Every rejection carries a category so clients can tell bad input
("validation") from a missing or foreign resource ("not_found") from a
business-rule violation ("business_rule"). Routes render all of them as
{"error", "category", "details"} with the class status code.
"""

from __future__ import annotations


class CoreError(Exception):
    """Base class for rejections surfaced to the caller."""
    category = "business_rule"
    status_code = 409

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "category": self.category,
            "details": self.details,
        }


class ValidationError(CoreError):
    """Malformed or missing input (bad id, missing field, invalid enum)."""
    category = "validation"
    status_code = 400


class NotFoundError(CoreError):
    """Referenced entity does not exist or belongs to another company."""
    category = "not_found"
    status_code = 404


class TenantAccessError(NotFoundError):
    """Company context is missing, unknown, or inactive."""


class ConflictError(CoreError):
    """Uniqueness conflict (duplicate SKU, duplicate order number)."""


class InsufficientStockError(CoreError):
    """Requested decrement exceeds available quantity."""

    def __init__(self, *, product_id: int, label: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {label}. Available: {available}, Requested: {requested}",
            details={"product_id": product_id, "available": available, "requested": requested},
        )


class OverReceiptError(CoreError):
    """Requested reception exceeds a purchase-order line's remaining quantity."""


class InvalidStockStateError(CoreError):
    """A computed post-mutation quantity would be negative."""


class CreditLimitExceededError(CoreError):
    """Prospective credit balance exceeds the customer's limit."""


class AlreadyReceivedError(CoreError):
    """Purchase order has no remaining quantity to receive."""


class NoChangeError(CoreError):
    """Reception call would not change anything."""


class InvalidOrderStateError(CoreError):
    """Operation not allowed for the purchase order's current status."""


class ImmutableRecordError(CoreError):
    """Attempt to modify or delete an append-only record."""
