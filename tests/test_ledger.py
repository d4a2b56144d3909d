"""Unit tests for the inventory ledger."""

from __future__ import annotations

import random
import threading
from decimal import Decimal

import pytest

from stock_manager import constants, ledger
from stock_manager.errors import (
    InsufficientStockError,
    InvalidInputError,
    InvalidQuantityError,
    InvalidTransactionTypeError,
    NotFoundError,
    ProductNotFoundError,
)


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------


def test_sale_reduces_stock_and_counts_units(store, milk, sell):
    """Selling 10 Milk at 48.50 leaves 90 in stock and freezes 485.00."""

    entry = sell(milk.product_id, 10, "sale")

    assert entry.product.stock_quantity == 90
    assert entry.product.items_sold == 10
    assert entry.transaction.total_price == Decimal("485.00")
    assert entry.transaction.transaction_type is constants.TransactionType.SALE
    assert store.get_product(milk.product_id) == entry.product


def test_restock_adds_stock_without_touching_items_sold(milk, sell):
    """Restocking after a sale only moves the stock counter."""

    sell(milk.product_id, 10, "sale")
    entry = sell(milk.product_id, 5, "restock")

    assert entry.product.stock_quantity == 95
    assert entry.product.items_sold == 10


def test_return_puts_stock_back_and_uncounts_units(milk, sell):
    """A return after a sale and restock lands at 98 in stock, 7 sold."""

    sell(milk.product_id, 10, "sale")
    sell(milk.product_id, 5, "restock")
    entry = sell(milk.product_id, 3, "return")

    assert entry.product.stock_quantity == 98
    assert entry.product.items_sold == 7


def test_return_beyond_sales_is_allowed(milk, sell):
    """Returning more than was sold is a data-quality issue, not a failure."""

    entry = sell(milk.product_id, 2, "return")
    assert entry.product.items_sold == -2
    assert entry.product.stock_quantity == 102


def test_convenience_wrappers_record_their_type(store, milk):
    """record_sale/restock/return tag the transaction correctly."""

    kinds = [
        ledger.record_restock(store, milk.product_id, 1).transaction.transaction_type,
        ledger.record_sale(store, milk.product_id, 1).transaction.transaction_type,
        ledger.record_return(store, milk.product_id, 1).transaction.transaction_type,
    ]
    assert kinds == [
        constants.TransactionType.RESTOCK,
        constants.TransactionType.SALE,
        constants.TransactionType.RETURN,
    ]


def test_transaction_ids_increase(milk, sell):
    """Transaction ids are assigned monotonically."""

    ids = [sell(milk.product_id, 1, "restock").transaction.transaction_id for _ in range(3)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 3


def test_explicit_timestamp_is_kept(milk, sell, at):
    """A caller-supplied timestamp is stored unchanged."""

    moment = at(2024, 3, 1, 8)
    entry = sell(milk.product_id, 1, "sale", moment)
    assert entry.transaction.timestamp == moment


# ---------------------------------------------------------------------------
# Frozen pricing
# ---------------------------------------------------------------------------


def test_price_change_does_not_rewrite_history(store, milk, sell):
    """Past transactions keep the price in force when they were recorded."""

    first = sell(milk.product_id, 2, "sale").transaction
    store.update_product(milk.product_id, {"price": Decimal("60.00")})
    second = sell(milk.product_id, 2, "sale").transaction

    history = store.get_all_transactions()
    assert history[0].total_price == Decimal("97.00") == first.total_price
    assert second.total_price == Decimal("120.00")


# ---------------------------------------------------------------------------
# Rejections leave no trace
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("quantity", [0, -1, -50])
def test_non_positive_quantity_is_rejected_without_side_effects(store, milk, sell, quantity):
    """Quantities at or below zero fail as invalid input and change nothing."""

    with pytest.raises(InvalidQuantityError) as excinfo:
        sell(milk.product_id, quantity, "sale")

    assert isinstance(excinfo.value, InvalidInputError)
    assert store.get_product(milk.product_id) == milk
    assert store.get_all_transactions() == []


@pytest.mark.parametrize("quantity", [1.5, "3", True])
def test_non_integer_quantity_is_rejected(store, milk, sell, quantity):
    """Only genuine integers count as quantities."""

    with pytest.raises(InvalidQuantityError):
        sell(milk.product_id, quantity, "sale")
    assert store.get_all_transactions() == []


def test_unknown_type_is_rejected(store, milk, sell):
    """Transaction types outside sale/restock/return are refused."""

    with pytest.raises(InvalidTransactionTypeError):
        sell(milk.product_id, 1, "refund")
    assert store.get_product(milk.product_id) == milk
    assert store.get_all_transactions() == []


def test_unknown_product_is_rejected(store, milk, sell):
    """Product 999 does not exist, so nothing is stored."""

    sell(milk.product_id, 1, "sale")
    before = len(store.get_all_transactions())

    with pytest.raises(ProductNotFoundError) as excinfo:
        sell(999, 1, "sale")

    assert isinstance(excinfo.value, NotFoundError)
    assert len(store.get_all_transactions()) == before


def test_oversell_is_rejected_without_side_effects(store, milk, sell):
    """Sales larger than the stock on hand are refused outright."""

    with pytest.raises(InsufficientStockError):
        sell(milk.product_id, 101, "sale")
    assert store.get_product(milk.product_id) == milk
    assert store.get_all_transactions() == []


def test_selling_exact_stock_is_allowed(milk, sell):
    """Stock may reach zero but not go below it."""

    entry = sell(milk.product_id, 100, "sale")
    assert entry.product.stock_quantity == 0


def test_deleted_product_cannot_take_new_transactions(store, milk, sell):
    """Once deleted, a product id behaves like any unknown id."""

    sell(milk.product_id, 1, "sale")
    store.delete_product(milk.product_id)

    with pytest.raises(ProductNotFoundError):
        sell(milk.product_id, 1, "restock")
    assert store.get_all_transactions()[0].product_id == milk.product_id


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


def test_stock_matches_signed_sum_of_history(store, milk, sell):
    """After any accepted sequence, stock equals initial plus the signed sum."""

    rng = random.Random(20240501)
    signs = {"sale": -1, "restock": 1, "return": 1}
    for _ in range(200):
        kind = rng.choice(list(signs))
        quantity = rng.randint(1, 15)
        try:
            sell(milk.product_id, quantity, kind)
        except InsufficientStockError:
            pass

    expected = milk.stock_quantity + sum(
        signs[transaction.transaction_type.value] * transaction.quantity
        for transaction in store.get_all_transactions()
    )
    assert store.get_product(milk.product_id).stock_quantity == expected
    assert store.get_product(milk.product_id).stock_quantity >= 0


def test_concurrent_sales_do_not_lose_updates(store, milk, sell):
    """Parallel writers against one product serialise their updates."""

    sell(milk.product_id, 900, "restock")
    workers = 8
    per_worker = 100
    barrier = threading.Barrier(workers)
    failures = []

    def worker() -> None:
        barrier.wait()
        for _ in range(per_worker):
            try:
                sell(milk.product_id, 1, "sale")
            except Exception as exc:  # pragma: no cover - surfaced by the assertion below
                failures.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    product = store.get_product(milk.product_id)
    assert failures == []
    assert product.stock_quantity == 1000 - workers * per_worker
    assert product.items_sold == workers * per_worker
    assert len(store.get_all_transactions()) == 1 + workers * per_worker


def test_concurrent_oversell_is_capped_at_stock(store, milk, sell):
    """Racing buyers cannot sell more units than exist."""

    results = []
    lock = threading.Lock()

    def worker() -> None:
        try:
            sell(milk.product_id, 30, "sale")
            outcome = "sold"
        except InsufficientStockError:
            outcome = "refused"
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count("sold") == 3
    assert store.get_product(milk.product_id).stock_quantity == 10


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_apply_stock_change_is_pure(milk):
    """apply_stock_change returns a new product and leaves the input alone."""

    updated = ledger.apply_stock_change(milk, 4, constants.TransactionType.SALE)
    assert updated is not milk
    assert milk.stock_quantity == 100
    assert (updated.stock_quantity, updated.items_sold) == (96, 4)


def test_parse_transaction_type_accepts_enum_and_text():
    """Both enum members and their string values are accepted."""

    assert ledger.parse_transaction_type("return") is constants.TransactionType.RETURN
    assert ledger.parse_transaction_type(constants.TransactionType.SALE) is constants.TransactionType.SALE
