"""Caller-side validation for product input.

The entity store assumes it receives clean values. This module sits in front
of it at the boundary: it coerces raw values (strings from the command line,
numbers from a form) into typed inputs and collects every problem it finds so
the caller can report them together.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from . import log
from .constants import MIN_PRODUCT_NAME_LENGTH, PRICE_QUANTUM, ProductCategory
from .errors import InvalidProductError


_RECOGNISED_CATEGORIES = {member.value for member in ProductCategory}


@dataclass(frozen=True)
class ProductInput:
    """Validated fields for creating a product."""

    name: str
    category: str
    price: Decimal
    stock_quantity: int = 0
    description: Optional[str] = None
    sku: Optional[str] = None


def normalize_category(value: str) -> str:
    """Map a non-empty category onto the recognised set, else ``Other``."""
    value = value.strip()
    for category in _RECOGNISED_CATEGORIES:
        if category.casefold() == value.casefold():
            return category
    return ProductCategory.OTHER.value


def parse_price(value: Any) -> Decimal:
    """Parse a non-negative price with at most two decimal places.

    Raises:
        ValueError: With a human-readable reason when ``value`` is unusable.
    """
    if isinstance(value, bool):
        raise ValueError("price must be a number")
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"price {value!r} is not a number") from exc
    if not price.is_finite():
        raise ValueError("price must be a finite number")
    if price < 0:
        raise ValueError("price must be zero or positive")
    if price.as_tuple().exponent < -2:
        raise ValueError("price must have at most two decimal places")
    return price.quantize(PRICE_QUANTUM)


def parse_stock_quantity(value: Any) -> int:
    """Parse a non-negative whole stock quantity.

    Raises:
        ValueError: With a human-readable reason when ``value`` is unusable.
    """
    if isinstance(value, bool):
        raise ValueError("stock quantity must be a whole number")
    if isinstance(value, int):
        quantity = value
    else:
        text = str(value).strip()
        if not text.lstrip("-").isdigit():
            raise ValueError(f"stock quantity {value!r} is not a whole number")
        quantity = int(text)
    if quantity < 0:
        raise ValueError("stock quantity cannot be negative")
    return quantity


def _check_fields(data: Mapping[str, Any], problems: List[str]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}

    if "name" in data:
        name = str(data["name"] or "").strip()
        if len(name) < MIN_PRODUCT_NAME_LENGTH:
            problems.append(f"name must be at least {MIN_PRODUCT_NAME_LENGTH} characters")
        else:
            cleaned["name"] = name

    if "category" in data:
        category = str(data["category"] or "").strip()
        if not category:
            problems.append("category is required")
        else:
            cleaned["category"] = normalize_category(category)

    if "price" in data:
        try:
            cleaned["price"] = parse_price(data["price"])
        except ValueError as exc:
            problems.append(str(exc))

    if "stock_quantity" in data and data["stock_quantity"] is not None:
        try:
            cleaned["stock_quantity"] = parse_stock_quantity(data["stock_quantity"])
        except ValueError as exc:
            problems.append(str(exc))

    if "description" in data:
        description = data["description"]
        if description is not None:
            description = str(description).strip() or None
        cleaned["description"] = description

    if "sku" in data and data["sku"] is not None:
        sku = str(data["sku"]).strip()
        if not sku:
            problems.append("sku must not be blank")
        else:
            cleaned["sku"] = sku

    return cleaned


def validate_product_input(data: Mapping[str, Any]) -> ProductInput:
    """Validate the fields for a new product.

    ``name``, ``category``, and ``price`` are required; ``stock_quantity``,
    ``description``, and ``sku`` are optional.

    Raises:
        InvalidProductError: Listing every problem found.
    """
    problems: List[str] = []
    for required in ("name", "category", "price"):
        if data.get(required) in (None, ""):
            problems.append(f"{required} is required")
    cleaned = _check_fields({key: value for key, value in data.items() if value not in (None, "")}, problems)
    if problems:
        log.error("Product validation failed: %s", "; ".join(problems))
        raise InvalidProductError(problems)
    return ProductInput(**cleaned)


def validate_product_changes(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a partial product update.

    Keys whose value is ``None`` are treated as "not supplied", except
    ``description`` where ``None`` clears the field.

    Raises:
        InvalidProductError: Listing every problem found, including an empty
            change set.
    """
    problems: List[str] = []
    supplied = {key: value for key, value in data.items() if value is not None or key == "description"}
    if not supplied:
        problems.append("no fields to update")
    cleaned = _check_fields(supplied, problems)
    if problems:
        log.error("Product update validation failed: %s", "; ".join(problems))
        raise InvalidProductError(problems)
    return cleaned
