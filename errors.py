"""
Application errors.

Services raise these; main.py maps them onto JSON responses so that
not-found, validation and stock problems stay distinguishable from
generic storage failures.
"""

from typing import List, Optional


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(AppError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": self.errors}


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class CustomerNotFound(NotFound):
    message = "Customer not found"


class ProductNotFound(NotFound):
    message = "Product not found"


class OrderNotFound(NotFound):
    message = "Order not found"


class Conflict(AppError):
    status_code = 409
    message = "Conflict"


class InsufficientStock(Conflict):
    """available is the stock seen just after the failed decrement; it may
    already have changed, so it is kept off the message."""

    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock for product {product_name} (requested {requested})")


class InvalidStatusTransition(Conflict):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change order status from {current} to {target}")


class StorageUnavailable(AppError):
    status_code = 503
    message = "Database not available"


class UnexpectedStorageError(AppError):
    status_code = 500
    message = "Internal server error"
