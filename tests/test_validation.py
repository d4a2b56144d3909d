"""Unit tests for boundary-side product validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from stock_manager import validation
from stock_manager.errors import InvalidInputError, InvalidProductError


def test_validate_product_input_cleans_values():
    """Raw strings are stripped and coerced into typed fields."""

    product = validation.validate_product_input(
        {
            "name": "  Whole Milk ",
            "category": "dairy & eggs",
            "price": "48.5",
            "stock_quantity": "12",
            "description": "   ",
            "sku": " MLK-1 ",
        }
    )

    assert product == validation.ProductInput(
        name="Whole Milk",
        category="Dairy & Eggs",
        price=Decimal("48.50"),
        stock_quantity=12,
        description=None,
        sku="MLK-1",
    )


def test_validate_product_input_optional_fields_default():
    """Only name, category, and price are required."""

    product = validation.validate_product_input({"name": "Bread", "category": "Bakery", "price": 3})
    assert product.stock_quantity == 0
    assert product.sku is None
    assert product.description is None


def test_validate_product_input_reports_every_problem():
    """All failures are collected into one error."""

    with pytest.raises(InvalidProductError) as excinfo:
        validation.validate_product_input({"name": "ab", "price": "-1", "stock_quantity": "lots"})

    problems = excinfo.value.problems
    assert "category is required" in problems
    assert any("name must be at least" in problem for problem in problems)
    assert "price must be zero or positive" in problems
    assert any("stock quantity" in problem for problem in problems)
    assert isinstance(excinfo.value, InvalidInputError)
    assert str(excinfo.value).startswith("Invalid product data: ")


def test_validate_product_input_missing_required_fields():
    """An empty payload names each missing required field."""

    with pytest.raises(InvalidProductError) as excinfo:
        validation.validate_product_input({})
    assert excinfo.value.problems == ["name is required", "category is required", "price is required"]


def test_unrecognised_category_falls_back_to_other():
    """Unknown categories are kept as ``Other`` rather than rejected."""

    product = validation.validate_product_input({"name": "Batteries", "category": "Hardware", "price": "5"})
    assert product.category == "Other"


@pytest.mark.parametrize("raw", ["1.234", "abc", "nan", "Infinity", True])
def test_parse_price_rejects_unusable_values(raw):
    """Prices must be finite, non-negative, and use at most two decimals."""

    with pytest.raises(ValueError):
        validation.parse_price(raw)


@pytest.mark.parametrize(("raw", "expected"), [("0", "0.00"), (12, "12.00"), ("3.5", "3.50"), (" 7.25 ", "7.25")])
def test_parse_price_quantizes(raw, expected):
    """Accepted prices are normalised to cents."""

    assert validation.parse_price(raw) == Decimal(expected)


@pytest.mark.parametrize("raw", ["-3", "2.5", "ten", False])
def test_parse_stock_quantity_rejects_bad_values(raw):
    """Stock quantities are whole numbers at or above zero."""

    with pytest.raises(ValueError):
        validation.parse_stock_quantity(raw)


def test_validate_product_changes_skips_unset_fields():
    """``None`` means "leave alone" for everything but the description."""

    changes = validation.validate_product_changes({"name": None, "price": "9.99", "sku": None})
    assert changes == {"price": Decimal("9.99")}


def test_validate_product_changes_can_clear_description():
    """An explicit ``None`` description clears it."""

    assert validation.validate_product_changes({"description": None}) == {"description": None}


def test_validate_product_changes_rejects_empty_update():
    """Submitting nothing to change is a validation failure."""

    with pytest.raises(InvalidProductError) as excinfo:
        validation.validate_product_changes({"name": None})
    assert excinfo.value.problems == ["no fields to update"]


def test_validate_product_changes_rejects_blank_sku():
    """A SKU can be changed but not blanked."""

    with pytest.raises(InvalidProductError) as excinfo:
        validation.validate_product_changes({"sku": "  "})
    assert excinfo.value.problems == ["sku must not be blank"]
