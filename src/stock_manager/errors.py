"""Exception hierarchy shared by the store, ledger, and boundary layers."""

from __future__ import annotations


class StockManagerError(Exception):
    """Base class for every domain error raised by the package."""


class NotFoundError(StockManagerError, LookupError):
    """Raised when an id lookup does not resolve."""


class ProductNotFoundError(NotFoundError):
    """Raised when a product id is unknown to the store."""


class InvalidInputError(StockManagerError, ValueError):
    """Raised when caller-supplied values are malformed."""


class InvalidQuantityError(InvalidInputError):
    """Raised when a transaction quantity is not a positive integer."""


class InvalidTransactionTypeError(InvalidInputError):
    """Raised when a transaction type is outside the supported set."""


class InvalidProductError(InvalidInputError):
    """Raised when product fields fail validation.

    ``problems`` lists every individual failure so callers can report them
    together instead of one at a time.
    """

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("Invalid product data: " + "; ".join(self.problems))


class BusinessRuleViolation(StockManagerError):
    """Raised when a requested operation violates a domain constraint."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a sale would drive stock below zero."""


class ConflictError(StockManagerError):
    """Raised when a unique field (SKU, username) is already taken."""


class PermissionDeniedError(StockManagerError):
    """Raised by the boundary when the caller lacks the required role."""


__all__ = [
    "StockManagerError",
    "NotFoundError",
    "ProductNotFoundError",
    "InvalidInputError",
    "InvalidQuantityError",
    "InvalidTransactionTypeError",
    "InvalidProductError",
    "BusinessRuleViolation",
    "InsufficientStockError",
    "ConflictError",
    "PermissionDeniedError",
]
