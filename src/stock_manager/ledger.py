"""Inventory ledger for the stock manager.

Every change to a product's ``stock_quantity`` or ``items_sold`` goes through
:func:`record_transaction`. The ledger validates the request, computes the new
counters, freezes the transaction price, and hands both records to the store
in a single critical section so a failure never leaves a half-applied change.

Sales are strict: a sale larger than the stock on hand is rejected with
:class:`~stock_manager.errors.InsufficientStockError`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Optional, Union

from . import log
from .constants import PRICE_QUANTUM, TransactionType
from .errors import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidTransactionTypeError,
    ProductNotFoundError,
)
from .store import EntityStore, Product, Transaction


@dataclass(frozen=True)
class TransactionCommand:
    """User intent for a stock-affecting transaction."""

    product_id: int
    quantity: int
    transaction_type: Union[TransactionType, str]
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class LedgerEntry:
    """Outcome of a recorded transaction: the record and the product after it."""

    transaction: Transaction
    product: Product


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def require_positive_quantity(quantity: object) -> int:
    """Validate that a quantity is a strictly positive integer.

    Booleans are rejected even though they subclass ``int``.

    Raises:
        InvalidQuantityError: If ``quantity`` is not an int or is not above
            zero.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %r", quantity)
        raise InvalidQuantityError(f"Quantity must be a positive integer, got {quantity!r}")
    return quantity


def parse_transaction_type(value: Union[TransactionType, str]) -> TransactionType:
    """Coerce ``value`` into a :class:`TransactionType`.

    Raises:
        InvalidTransactionTypeError: If ``value`` is not a supported type.
    """
    try:
        return TransactionType(value)
    except ValueError as exc:
        log.error("Unsupported transaction type: %r", value)
        supported = ", ".join(member.value for member in TransactionType)
        raise InvalidTransactionTypeError(
            f"Unsupported transaction type {value!r}; expected one of: {supported}"
        ) from exc


def apply_stock_change(product: Product, quantity: int, transaction_type: TransactionType) -> Product:
    """Return ``product`` with its counters moved by one transaction.

    ``sale`` takes stock out and counts the units as sold, ``restock`` adds
    stock, and ``return`` puts stock back while un-counting the units sold.

    Raises:
        InsufficientStockError: If a sale exceeds the stock on hand.
    """
    if transaction_type is TransactionType.SALE:
        if quantity > product.stock_quantity:
            log.error(
                "Insufficient stock for product %d: requested %d, available %d",
                product.product_id,
                quantity,
                product.stock_quantity,
            )
            raise InsufficientStockError(
                f"Cannot sell {quantity} of product {product.product_id}; "
                f"only {product.stock_quantity} in stock"
            )
        return replace(
            product,
            stock_quantity=product.stock_quantity - quantity,
            items_sold=product.items_sold + quantity,
        )
    if transaction_type is TransactionType.RESTOCK:
        return replace(product, stock_quantity=product.stock_quantity + quantity)

    items_sold = product.items_sold - quantity
    if items_sold < 0:
        log.warning(
            "Return of %d units drives items sold for product %d below zero (%d)",
            quantity,
            product.product_id,
            items_sold,
        )
    return replace(product, stock_quantity=product.stock_quantity + quantity, items_sold=items_sold)


def build_transaction(
    product: Product,
    *,
    transaction_id: int,
    quantity: int,
    transaction_type: TransactionType,
    timestamp: datetime,
) -> Transaction:
    """Materialise a transaction with its price frozen from ``product``."""
    return Transaction(
        transaction_id=transaction_id,
        product_id=product.product_id,
        quantity=quantity,
        transaction_type=transaction_type,
        total_price=(product.price * quantity).quantize(PRICE_QUANTUM),
        timestamp=timestamp,
    )


def record_transaction(store: EntityStore, command: TransactionCommand) -> LedgerEntry:
    """Validate and apply one sale, restock, or return.

    Quantity and type are checked before the store lock is taken. The product
    lookup, the counter arithmetic, id allocation, and the final write all
    happen while the lock is held, so concurrent calls against the same
    product cannot interleave their read-modify-write.

    Args:
        store (EntityStore): Store that owns the product and the history.
        command (TransactionCommand): Requested transaction.

    Returns:
        LedgerEntry: The stored transaction and the updated product.

    Raises:
        InvalidQuantityError: If the quantity is not a positive integer.
        InvalidTransactionTypeError: If the type is unsupported.
        ProductNotFoundError: If the product id is unknown.
        InsufficientStockError: If a sale exceeds the stock on hand.
    """
    quantity = require_positive_quantity(command.quantity)
    transaction_type = parse_transaction_type(command.transaction_type)

    with store.locked():
        product = store.get_product(command.product_id)
        if product is None:
            log.warning("Transaction rejected for unknown product id '%s'", command.product_id)
            raise ProductNotFoundError(f"Unknown product id: {command.product_id}")

        updated = apply_stock_change(product, quantity, transaction_type)
        transaction = build_transaction(
            product,
            transaction_id=store.next_transaction_id(),
            quantity=quantity,
            transaction_type=transaction_type,
            timestamp=_resolve_timestamp(command.timestamp),
        )
        store.put_transaction(transaction, updated)

    log.info(
        "Recorded %s transaction %d for product %d (quantity=%d, total=%s, stock=%d)",
        transaction_type.value.upper(),
        transaction.transaction_id,
        product.product_id,
        quantity,
        transaction.total_price,
        updated.stock_quantity,
    )
    return LedgerEntry(transaction=transaction, product=updated)


def record_sale(store: EntityStore, product_id: int, quantity: int, *, timestamp: Optional[datetime] = None) -> LedgerEntry:
    """Record a ``sale`` transaction."""
    return record_transaction(store, TransactionCommand(product_id, quantity, TransactionType.SALE, timestamp))


def record_restock(store: EntityStore, product_id: int, quantity: int, *, timestamp: Optional[datetime] = None) -> LedgerEntry:
    """Record a ``restock`` transaction."""
    return record_transaction(store, TransactionCommand(product_id, quantity, TransactionType.RESTOCK, timestamp))


def record_return(store: EntityStore, product_id: int, quantity: int, *, timestamp: Optional[datetime] = None) -> LedgerEntry:
    """Record a ``return`` transaction."""
    return record_transaction(store, TransactionCommand(product_id, quantity, TransactionType.RETURN, timestamp))
