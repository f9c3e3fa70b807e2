# Overview: Typed failures raised by services and mapped to HTTP status codes by create_app.

"""
Tradebook error taxonomy.

Services never return opaque errors: every rejected operation raises one
of the narrow types below. The HTTP layer turns each into a JSON body via
to_dict() and uses status_code for the response.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


class TradebookError(Exception):
    """Base class for all domain failures."""
    status_code = 400
    error_type = "error"

    def to_dict(self) -> dict:
        return {"error": str(self), "type": self.error_type}


class ValidationError(TradebookError, ValueError):
    """400-level input problem tied to a single field."""
    error_type = "validation_error"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field, "reason": self.reason}


class InvalidDateRange(TradebookError):
    """Due date not strictly after the invoice date."""
    error_type = "invalid_date_range"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class InvalidPaymentAmount(TradebookError):
    """Zero/negative amount, or an amount larger than what is still owed."""
    error_type = "invalid_payment_amount"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class NotFound(TradebookError):
    status_code = 404
    error_type = "not_found"

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "entity_type": self.entity_type, "entity_id": self.entity_id}


class ConflictError(TradebookError, ValueError):
    """409-level business rule conflict (e.g., duplicate item name)."""
    status_code = 409
    error_type = "conflict"


class AuthenticationError(TradebookError):
    status_code = 401
    error_type = "authentication_error"


class PermissionDeniedError(TradebookError):
    status_code = 403
    error_type = "permission_denied"

    def __init__(self, capability: str, message: str | None = None):
        self.capability = capability
        super().__init__(message or f"Missing permission: {capability}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "required_permission": self.capability}


BUCKET_LABELS = {"shop": "the shop", "cold": "cold storage"}


def _plain(value) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


@dataclass(frozen=True)
class StockShortfall:
    """One counter that a delta would drive below zero."""
    item_id: int
    bucket: str
    field: str
    shortfall: object
    item_name: str | None = None

    def describe(self) -> str:
        name = self.item_name or f"Item {self.item_id}"
        where = BUCKET_LABELS.get(self.bucket, self.bucket)
        return f"{name} would go to -{_plain(self.shortfall)} {self.field} in {where}"

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "bucket": self.bucket,
            "field": self.field,
            "shortfall": _plain(self.shortfall),
            "message": self.describe(),
        }


class InsufficientStock(TradebookError):
    """
    An inventory delta would push a counter negative.

    Carries every offending (item, bucket, field); the first one is also
    exposed directly as item_id / bucket / field / shortfall.
    """
    status_code = 409
    error_type = "insufficient_stock"

    def __init__(self, shortfalls: list[StockShortfall]):
        if not shortfalls:
            raise ValueError("InsufficientStock requires at least one shortfall")
        self.shortfalls = list(shortfalls)
        first = self.shortfalls[0]
        self.item_id = first.item_id
        self.bucket = first.bucket
        self.field = first.field
        self.shortfall = first.shortfall
        super().__init__("; ".join(s.describe() for s in self.shortfalls))

    def to_dict(self) -> dict:
        return {**super().to_dict(), "shortfalls": [s.to_dict() for s in self.shortfalls]}
