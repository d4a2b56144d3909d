"""Enumerations and thresholds shared across the stock manager modules.

Keeps domain identifiers in one place so the entity store, the ledger, the
analytics views, and the command-line layer agree on spelling and limits.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Workbook layout version expected by the runtime when loading a snapshot.
EXPECTED_SCHEMA_VERSION = "1.0.0"

LOW_STOCK_THRESHOLD = 10
CRITICAL_STOCK_THRESHOLD = 5
OVERSTOCK_THRESHOLD = 100

MIN_PRODUCT_NAME_LENGTH = 3
PRICE_QUANTUM = Decimal("0.01")
DEFAULT_TOP_PRODUCTS = 5
UNKNOWN_PRODUCT_LABEL = "Unknown product"


class TransactionType(str, Enum):
    """Enumerate the stock-affecting transaction kinds recorded by the ledger."""

    SALE = "sale"
    RESTOCK = "restock"
    RETURN = "return"


class UserRole(str, Enum):
    """Enumerate the roles a user account may hold."""

    ADMIN = "admin"
    USER = "user"


class ProductCategory(str, Enum):
    """Enumerate the recognised product categories."""

    DAIRY = "Dairy & Eggs"
    BAKERY = "Bakery"
    PRODUCE = "Produce"
    MEAT = "Meat & Seafood"
    BEVERAGES = "Beverages"
    OTHER = "Other"


class StockStatus(str, Enum):
    """Enumerate the stock level buckets shown next to each product."""

    CRITICAL = "critical"
    LOW = "low"
    NORMAL = "normal"
    OVERSTOCKED = "overstocked"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the data layer."""

    PRODUCTS = "Products"
    TRANSACTIONS = "Transactions"
    USERS = "Users"
    COUNTERS = "Counters"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "LOW_STOCK_THRESHOLD",
    "CRITICAL_STOCK_THRESHOLD",
    "OVERSTOCK_THRESHOLD",
    "MIN_PRODUCT_NAME_LENGTH",
    "PRICE_QUANTUM",
    "DEFAULT_TOP_PRODUCTS",
    "UNKNOWN_PRODUCT_LABEL",
    "TransactionType",
    "UserRole",
    "ProductCategory",
    "StockStatus",
    "SheetName",
]
