# Overview: Service-layer error taxonomy shared by cart, checkout, debt and expenditure operations.

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """409-level business rule conflict (stock, overpayment, state)."""
    status_code = 409


class DependencyFailureError(ServiceError):
    """A collaborator (mail, storage) failed."""
    status_code = 502


class ForbiddenError(ServiceError):
    """Authenticated, but not allowed to touch this record."""
    status_code = 403


# Validation

class InvalidAmountError(ValidationError):
    pass


class EmptyCartError(ValidationError):
    pass


class PasswordValidationError(ValidationError):
    pass


# Not found

class CartNotFoundError(NotFoundError):
    pass


class ItemNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class DebtNotFoundError(NotFoundError):
    pass


class ReportNotFoundError(NotFoundError):
    pass


class ExpenditureNotFoundError(NotFoundError):
    pass


# Conflict

class OutOfStockError(ConflictError):
    def __init__(self, available_quantity: int, message: str | None = None):
        super().__init__(
            message or f"Only {available_quantity} units available",
            details={"available_quantity": available_quantity},
        )
        self.available_quantity = available_quantity


class ItemsUnavailableError(ConflictError):
    def __init__(self, items: list[dict]):
        super().__init__("Some items are no longer available", details={"items": items})
        self.items = items


class OverPaymentError(ConflictError):
    pass


class DebtAlreadyPaidError(ConflictError):
    pass


class ExpenditureStateError(ConflictError):
    pass


class DuplicateError(ConflictError):
    pass
