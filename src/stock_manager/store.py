"""Entity store for the stock manager.

The store is the single owner of the product, transaction, and user
collections. It assigns identifiers from monotonic counters (never reused,
even after deletes), answers lookups, and applies partial updates. All
mutations happen under one re-entrant lock; the ledger and the analytics
views borrow the same lock through :meth:`EntityStore.locked` when they need
several reads and writes to behave as one step.

Records are frozen dataclasses, so anything handed out by the store is a
stable snapshot that later writes cannot change underneath the caller.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from . import log
from .constants import PRICE_QUANTUM, TransactionType, UserRole
from .errors import ConflictError, InvalidInputError, ProductNotFoundError


EDITABLE_PRODUCT_FIELDS = frozenset({"name", "category", "price", "description", "sku"})
LEDGER_OWNED_FIELDS = frozenset({"stock_quantity", "items_sold"})


@dataclass(frozen=True)
class Product:
    """A catalogue entry together with its ledger-maintained counters."""

    product_id: int
    name: str
    category: str
    price: Decimal
    stock_quantity: int
    items_sold: int
    description: Optional[str]
    sku: str


@dataclass(frozen=True)
class Transaction:
    """An immutable record of one sale, restock, or return."""

    transaction_id: int
    product_id: int
    quantity: int
    transaction_type: TransactionType
    total_price: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class User:
    """A user account; ``password_hash`` is opaque to the store."""

    user_id: int
    username: str
    password_hash: str = field(repr=False)
    email: Optional[str]
    role: UserRole


class EntityStore:
    """In-memory owner of products, transactions, and users."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._products: Dict[int, Product] = {}
        self._transactions: Dict[int, Transaction] = {}
        self._users: Dict[int, User] = {}
        self._next_product_id = 1
        self._next_transaction_id = 1
        self._next_user_id = 1

    @classmethod
    def from_records(
        cls,
        products: Iterable[Product],
        transactions: Iterable[Transaction],
        users: Iterable[User],
        counters: Optional[Mapping[str, int]] = None,
    ) -> "EntityStore":
        """Rebuild a store from a persisted snapshot.

        Records are inserted in the order given, which becomes the store's
        insertion order. Counters are taken from ``counters`` but never fall
        below ``max(id) + 1`` for their collection, so a stale or missing
        counter cannot cause an identifier to be handed out twice.

        Args:
            products (Iterable[Product]): Products in their original order.
            transactions (Iterable[Transaction]): Transaction history.
            users (Iterable[User]): User accounts.
            counters (Mapping[str, int] | None): Next-id values keyed by
                ``"products"``, ``"transactions"``, and ``"users"``.

        Returns:
            EntityStore: A populated store.
        """
        store = cls()
        for product in products:
            store._products[product.product_id] = product
        for transaction in transactions:
            store._transactions[transaction.transaction_id] = transaction
        for user in users:
            store._users[user.user_id] = user

        counters = counters or {}
        store._next_product_id = max(counters.get("products", 1), max(store._products, default=0) + 1)
        store._next_transaction_id = max(
            counters.get("transactions", 1), max(store._transactions, default=0) + 1
        )
        store._next_user_id = max(counters.get("users", 1), max(store._users, default=0) + 1)
        log.debug(
            "Restored store with %d products, %d transactions, %d users",
            len(store._products),
            len(store._transactions),
            len(store._users),
        )
        return store

    def counters(self) -> Dict[str, int]:
        """Return the next identifier for each collection."""
        with self._lock:
            return {
                "products": self._next_product_id,
                "transactions": self._next_transaction_id,
                "users": self._next_user_id,
            }

    @contextmanager
    def locked(self) -> Iterator["EntityStore"]:
        """Hold the store lock for a multi-step read or read-modify-write."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_product(
        self,
        name: str,
        category: str,
        price: Decimal,
        *,
        stock_quantity: int = 0,
        items_sold: int = 0,
        description: Optional[str] = None,
        sku: Optional[str] = None,
    ) -> Product:
        """Insert a new product and return it with its assigned id.

        ``stock_quantity`` and ``items_sold`` default to zero. When ``sku`` is
        omitted the store assigns ``PRD`` followed by the zero-padded id.

        Raises:
            InvalidInputError: If the record would break a store invariant
                (empty name or category, a price that is not a finite
                non-negative number, negative counters).
            ConflictError: If ``sku`` is already used by another product.
        """
        stock_quantity = 0 if stock_quantity is None else stock_quantity
        items_sold = 0 if items_sold is None else items_sold
        price = _coerce_price(price)
        if not name or not category or stock_quantity < 0 or items_sold < 0:
            log.error("Refusing to store malformed product '%s'", name)
            raise InvalidInputError("Product requires a name, a category, and non-negative counters")

        with self._lock:
            if sku is not None and self._sku_owner(sku) is not None:
                log.warning("SKU '%s' is already in use", sku)
                raise ConflictError(f"SKU already exists: {sku}")
            product_id = self._next_product_id
            product = Product(
                product_id=product_id,
                name=name,
                category=category,
                price=price,
                stock_quantity=stock_quantity,
                items_sold=items_sold,
                description=description,
                sku=sku if sku is not None else self._assign_sku(product_id),
            )
            self._next_product_id += 1
            self._products[product_id] = product

        log.info("Created product %d '%s' (sku=%s)", product.product_id, product.name, product.sku)
        return product

    def get_product(self, product_id: int) -> Optional[Product]:
        with self._lock:
            return self._products.get(product_id)

    def get_all_products(self) -> List[Product]:
        """Return every product in insertion order."""
        with self._lock:
            return list(self._products.values())

    def update_product(self, product_id: int, changes: Mapping[str, Any]) -> Product:
        """Merge ``changes`` into an existing product.

        Only catalogue fields may change here. Stock counters belong to the
        ledger and are rejected so they always match the transaction history.

        Raises:
            InvalidInputError: If ``changes`` names a ledger-owned or unknown
                field, blanks the name, category or SKU, or carries an
                unusable price.
            ProductNotFoundError: If ``product_id`` is unknown.
            ConflictError: If the new SKU belongs to a different product.
        """
        ledger_fields = LEDGER_OWNED_FIELDS.intersection(changes)
        if ledger_fields:
            log.error("Rejected direct update of %s on product %s", sorted(ledger_fields), product_id)
            raise InvalidInputError(
                f"Fields {', '.join(sorted(ledger_fields))} change only through recorded transactions"
            )
        unknown = set(changes) - EDITABLE_PRODUCT_FIELDS
        if unknown:
            raise InvalidInputError(f"Unknown product fields: {', '.join(sorted(unknown))}")

        values = dict(changes)
        if "price" in values:
            values["price"] = _coerce_price(values["price"])
        for required in ("name", "category", "sku"):
            if required in values and not values[required]:
                log.error("Rejected empty %s for product %s", required, product_id)
                raise InvalidInputError(f"Product {required} must not be empty")

        with self._lock:
            existing = self._products.get(product_id)
            if existing is None:
                log.warning("Update failed for unknown product id '%s'", product_id)
                raise ProductNotFoundError(f"Unknown product id: {product_id}")
            new_sku = values.get("sku", existing.sku)
            owner = self._sku_owner(new_sku)
            if owner is not None and owner != product_id:
                log.warning("SKU '%s' is already in use by product %d", new_sku, owner)
                raise ConflictError(f"SKU already exists: {new_sku}")
            updated = replace(existing, **values)
            self._products[product_id] = updated

        log.info("Updated product %d fields: %s", product_id, ", ".join(sorted(values)) or "none")
        return updated

    def delete_product(self, product_id: int) -> Product:
        """Remove a product; its transactions keep the stale id.

        Raises:
            ProductNotFoundError: If ``product_id`` is unknown.
        """
        with self._lock:
            try:
                removed = self._products.pop(product_id)
            except KeyError as exc:
                log.warning("Delete failed for unknown product id '%s'", product_id)
                raise ProductNotFoundError(f"Unknown product id: {product_id}") from exc
        log.info("Deleted product %d '%s'", removed.product_id, removed.name)
        return removed

    # ------------------------------------------------------------------
    # Transactions (ledger primitives)
    # ------------------------------------------------------------------

    def next_transaction_id(self) -> int:
        """Reserve the next transaction id."""
        with self._lock:
            transaction_id = self._next_transaction_id
            self._next_transaction_id += 1
            return transaction_id

    def put_transaction(self, transaction: Transaction, updated_product: Product) -> None:
        """Store a transaction and the product state it produced.

        Every check runs before either record is written, so the call either
        stores both or neither. Only the ledger calls this.

        Raises:
            ConflictError: If the transaction id is already stored.
            ProductNotFoundError: If the product has been removed.
            InvalidInputError: If the product does not match the transaction.
        """
        with self._lock:
            if transaction.transaction_id in self._transactions:
                raise ConflictError(f"Transaction id already recorded: {transaction.transaction_id}")
            if updated_product.product_id != transaction.product_id:
                raise InvalidInputError("Transaction and product ids do not match")
            if updated_product.product_id not in self._products:
                raise ProductNotFoundError(f"Unknown product id: {updated_product.product_id}")
            self._transactions[transaction.transaction_id] = transaction
            self._products[updated_product.product_id] = updated_product

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(transaction_id)

    def get_all_transactions(self) -> List[Transaction]:
        """Return the transaction history in recording order."""
        with self._lock:
            return list(self._transactions.values())

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        password_hash: str,
        *,
        email: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        """Insert a user account.

        Username uniqueness is the registration caller's responsibility; the
        store accepts whatever it is given.
        """
        if not username:
            raise InvalidInputError("Username must not be empty")
        with self._lock:
            user = User(
                user_id=self._next_user_id,
                username=username,
                password_hash=password_hash,
                email=email or None,
                role=UserRole(role),
            )
            self._next_user_id += 1
            self._users[user.user_id] = user
        log.info("Created user %d '%s' (role=%s)", user.user_id, user.username, user.role.value)
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user
        return None

    def get_all_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _sku_owner(self, sku: str) -> Optional[int]:
        for product in self._products.values():
            if product.sku == sku:
                return product.product_id
        return None

    def _assign_sku(self, product_id: int) -> str:
        base = f"PRD{product_id:03d}"
        candidate = base
        suffix = 1
        while self._sku_owner(candidate) is not None:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate


def _coerce_price(value: Any) -> Decimal:
    """Return ``value`` as a non-negative price quantized to cents.

    Raises:
        InvalidInputError: If ``value`` is not a finite, non-negative number.
    """
    try:
        price = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidInputError(f"Price {value!r} is not a number") from exc
    if not price.is_finite() or price < 0:
        log.error("Refusing to store price %r", value)
        raise InvalidInputError("Price must be a finite number, zero or positive")
    return price.quantize(PRICE_QUANTUM)
