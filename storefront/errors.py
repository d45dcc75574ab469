"""Domain errors raised by the service layer.

Each error carries the HTTP status it is rendered with. Routers let these
propagate; the handler registered in ``main`` turns them into the
``{"success": false, "message": ...}`` envelope.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for all business-rule and store failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Malformed or missing input. Nothing was written."""


class Conflict(StorefrontError):
    """Uniqueness or reference conflict."""


class ProductUnavailable(StorefrontError):
    def __init__(self, product_id: int):
        super().__init__(f"Product with ID {product_id} not found or inactive")
        self.product_id = product_id


class InsufficientStock(StorefrontError):
    def __init__(self, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}, Requested: {requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidTransition(StorefrontError):
    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class NotFound(StorefrontError):
    status_code = 404


class AuthError(StorefrontError):
    status_code = 401


class InvalidToken(AuthError):
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class ExpiredToken(AuthError):
    def __init__(self, message: str = "Token expired"):
        super().__init__(message)


class PermissionDenied(StorefrontError):
    status_code = 403


class StoreError(StorefrontError):
    """Transaction failure. The public message never carries driver detail."""

    status_code = 500

    def __init__(self, message: str = "Server error, please try again later"):
        super().__init__(message)
