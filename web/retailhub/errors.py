"""Domain error taxonomy shared by every app.

Errors subclass ``ValueError`` and stringify to a short error code
(``str(e) == "INSUFFICIENT_STOCK"``), so callers can branch on the code
the same way they would on a plain ``ValueError("CODE")``. Each class
also knows the HTTP status it maps to and any extra fields that belong
in the response body.
"""

from typing import Any


class DomainError(ValueError):
    """Base class for errors that are safe to show to the caller.

    Attributes:
        code: Short machine-readable error code.
        http_status: Status code used when rendered by the HTTP layer.
        message: Optional human-readable explanation.
    """

    code = "ERROR"
    http_status = 400

    def __init__(self, message: str | None = None, *, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(self.code)

    def extra(self) -> dict[str, Any]:
        """Return additional fields to include in the error payload."""
        return {}

    def to_payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.code}
        if self.message:
            body["message"] = self.message
        body.update(self.extra())
        return body


class ValidationFailed(DomainError):
    code = "VALIDATION_FAILED"
    http_status = 400

    def __init__(self, message: str | None = None, *, errors: list | None = None, code: str | None = None):
        super().__init__(message, code=code)
        self.errors = errors or []

    def extra(self) -> dict[str, Any]:
        return {"errors": self.errors} if self.errors else {}


class NotFound(DomainError):
    code = "NOT_FOUND"
    http_status = 404


class CustomerOrProductNotFound(NotFound):
    code = "CUSTOMER_OR_PRODUCT_NOT_FOUND"


class Conflict(DomainError):
    code = "CONFLICT"
    http_status = 409


class InvalidTransition(Conflict):
    """Raised when a status change is outside the order lifecycle."""

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str):
        super().__init__(f"cannot move order from {current} to {requested}")
        self.current = current
        self.requested = requested

    def extra(self) -> dict[str, Any]:
        return {"current_status": self.current, "requested_status": self.requested}


class InsufficientStock(DomainError):
    """Raised when a product cannot cover the requested quantity.

    Attributes:
        product_name: Display name of the short product.
        available: Units on hand at the time of the check.
    """

    code = "INSUFFICIENT_STOCK"
    http_status = 422

    def __init__(self, product_name: str, available: int):
        super().__init__(f"insufficient stock for {product_name}, available: {available}")
        self.product_name = product_name
        self.available = available

    def extra(self) -> dict[str, Any]:
        return {"product": self.product_name, "available": self.available}


class InvalidStatus(DomainError):
    code = "INVALID_STATUS"
    http_status = 400


class Forbidden(DomainError):
    code = "FORBIDDEN"
    http_status = 403


class Unavailable(DomainError):
    """A dependency could not be reached. Only raised internally."""

    code = "UNAVAILABLE"
    http_status = 503
