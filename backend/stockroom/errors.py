# Overview: Typed domain errors shared by services and routes.

"""
Every core operation either returns a value or raises exactly one of these.

Routes do not catch them individually: the application factory registers a
handler that turns any StockroomError into a JSON body with its status code.
"""

from __future__ import annotations


class StockroomError(Exception):
    """Base class for errors the HTTP layer maps to a response."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.details)
        return body


class ValidationError(StockroomError, ValueError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(StockroomError):
    """Entity missing, or owned by another organization."""
    status_code = 404


class PermissionDeniedError(StockroomError):
    """Caller's role lacks the required capability."""
    status_code = 403


class ConflictError(StockroomError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


class InsufficientStockError(StockroomError):
    """Requested quantity exceeds what the product's lots still hold."""
    status_code = 409

    def __init__(self, available: int, requested: int, product_id: int | None = None, product_name: str | None = None):
        label = f" for {product_name}" if product_name else ""
        super().__init__(
            f"Insufficient stock{label}. Available: {available}, Requested: {requested}",
            details={"available": available, "requested": requested, "product_id": product_id},
        )
        self.available = available
        self.requested = requested
        self.product_id = product_id


class ConsistencyError(StockroomError):
    """
    Stored counters disagree with what a verified operation expects.

    Seeing one means a race slipped past row locking or totals have drifted;
    it is a bug, not a user error.
    """
    status_code = 500
