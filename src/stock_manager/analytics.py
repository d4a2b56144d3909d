"""Read-only analytics derived from the entity store.

Every report recomputes its view from the store on each call and reads the
store while holding its lock, so a report never mixes state from before and
after a ledger write. Nothing here mutates the store or caches results.
:func:`filter_products` and :func:`classify_stock_status` work on values the
caller already holds and never touch the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from . import log
from .constants import (
    CRITICAL_STOCK_THRESHOLD,
    DEFAULT_TOP_PRODUCTS,
    LOW_STOCK_THRESHOLD,
    OVERSTOCK_THRESHOLD,
    PRICE_QUANTUM,
    UNKNOWN_PRODUCT_LABEL,
    StockStatus,
    TransactionType,
)
from .errors import InvalidInputError
from .store import EntityStore, Product, Transaction


@dataclass(frozen=True)
class StockOverview:
    """Headline figures for the dashboard."""

    total_products: int
    low_stock_count: int
    total_revenue: Decimal
    total_items_sold: int


@dataclass(frozen=True)
class DailySales:
    """Sales totals for one calendar date."""

    date: date
    revenue: Decimal
    items_sold: int


@dataclass(frozen=True)
class TopProduct:
    """A best-seller entry.

    ``revenue`` is ``items_sold`` multiplied by the product's current price,
    not the sum of frozen transaction prices.
    """

    product_id: int
    name: str
    items_sold: int
    revenue: Decimal


def stock_overview(store: EntityStore, *, low_stock_threshold: int = LOW_STOCK_THRESHOLD) -> StockOverview:
    """Summarise product counts, low stock, revenue, and units sold.

    Revenue sums the frozen ``total_price`` of every recorded transaction so
    it stays consistent with the prices in force when each was recorded.

    Args:
        store (EntityStore): Source of products and transactions.
        low_stock_threshold (int): Products at or below this quantity count
            as low stock.

    Returns:
        StockOverview: Aggregate figures over the current store contents.
    """
    with store.locked():
        products = store.get_all_products()
        transactions = store.get_all_transactions()

    overview = StockOverview(
        total_products=len(products),
        low_stock_count=sum(1 for product in products if product.stock_quantity <= low_stock_threshold),
        total_revenue=sum((transaction.total_price for transaction in transactions), Decimal("0.00")),
        total_items_sold=sum(product.items_sold for product in products),
    )
    log.debug("Computed stock overview: %s", overview)
    return overview


def sales_by_day(
    store: EntityStore,
    *,
    transaction_types: Optional[Iterable[Union[TransactionType, str]]] = (TransactionType.SALE,),
) -> List[DailySales]:
    """Group transactions by calendar date, oldest first.

    Only ``sale`` transactions are counted unless ``transaction_types`` says
    otherwise; pass ``None`` to include every type. The date is the
    timestamp's own date component. Days without transactions are omitted.
    """
    wanted = None if transaction_types is None else {TransactionType(value) for value in transaction_types}
    totals: Dict[date, Tuple[Decimal, int]] = {}
    with store.locked():
        transactions = store.get_all_transactions()
    for transaction in transactions:
        if wanted is not None and transaction.transaction_type not in wanted:
            continue
        day = transaction.timestamp.date()
        revenue, items = totals.get(day, (Decimal("0.00"), 0))
        totals[day] = (revenue + transaction.total_price, items + transaction.quantity)

    series = [DailySales(date=day, revenue=revenue, items_sold=items) for day, (revenue, items) in sorted(totals.items())]
    log.debug("Computed sales series over %d days", len(series))
    return series


def top_products(store: EntityStore, n: int = DEFAULT_TOP_PRODUCTS) -> List[TopProduct]:
    """Rank products by units sold, highest first.

    Ties keep insertion order because :func:`sorted` is stable.

    Raises:
        InvalidInputError: If ``n`` is negative.
    """
    if n < 0:
        raise InvalidInputError("Number of top products must be zero or positive")
    with store.locked():
        products = store.get_all_products()
    ranked = sorted(products, key=lambda product: product.items_sold, reverse=True)
    return [
        TopProduct(
            product_id=product.product_id,
            name=product.name,
            items_sold=product.items_sold,
            revenue=(product.price * product.items_sold).quantize(PRICE_QUANTUM),
        )
        for product in ranked[:n]
    ]


def classify_stock_status(quantity: int) -> StockStatus:
    """Bucket a stock quantity into the badge shown next to a product."""
    if quantity <= CRITICAL_STOCK_THRESHOLD:
        return StockStatus.CRITICAL
    if quantity <= LOW_STOCK_THRESHOLD:
        return StockStatus.LOW
    if quantity > OVERSTOCK_THRESHOLD:
        return StockStatus.OVERSTOCKED
    return StockStatus.NORMAL


# The ``low`` filter includes critical items, matching the dashboard filter.
_STOCK_FILTERS: Dict[StockStatus, Callable[[int], bool]] = {
    StockStatus.CRITICAL: lambda quantity: quantity <= CRITICAL_STOCK_THRESHOLD,
    StockStatus.LOW: lambda quantity: quantity <= LOW_STOCK_THRESHOLD,
    StockStatus.NORMAL: lambda quantity: LOW_STOCK_THRESHOLD < quantity <= OVERSTOCK_THRESHOLD,
    StockStatus.OVERSTOCKED: lambda quantity: quantity > OVERSTOCK_THRESHOLD,
}

SORT_KEYS: Dict[str, Tuple[Callable[[Product], object], bool]] = {
    "name_asc": (lambda product: product.name.casefold(), False),
    "name_desc": (lambda product: product.name.casefold(), True),
    "stock_asc": (lambda product: product.stock_quantity, False),
    "stock_desc": (lambda product: product.stock_quantity, True),
    "price_asc": (lambda product: product.price, False),
    "price_desc": (lambda product: product.price, True),
}


def filter_products(
    products: Sequence[Product],
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    stock_status: Optional[Union[StockStatus, str]] = None,
    sort_by: str = "name_asc",
) -> List[Product]:
    """Filter and sort a product listing.

    Args:
        products (Sequence[Product]): Listing to narrow down.
        search (str | None): Case-insensitive substring matched against the
            name and the SKU.
        category (str | None): Exact category to keep.
        stock_status (StockStatus | str | None): Stock bucket to keep.
        sort_by (str): One of :data:`SORT_KEYS`.

    Returns:
        list[Product]: The matching products in the requested order.

    Raises:
        InvalidInputError: If ``stock_status`` or ``sort_by`` is unknown.
    """
    if sort_by not in SORT_KEYS:
        raise InvalidInputError(f"Unknown sort order {sort_by!r}; expected one of: {', '.join(SORT_KEYS)}")

    filtered = list(products)
    if search:
        needle = search.casefold()
        filtered = [
            product
            for product in filtered
            if needle in product.name.casefold() or needle in product.sku.casefold()
        ]
    if category:
        filtered = [product for product in filtered if product.category == category]
    if stock_status:
        try:
            status = StockStatus(stock_status)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown stock status {stock_status!r}") from exc
        keep = _STOCK_FILTERS[status]
        filtered = [product for product in filtered if keep(product.stock_quantity)]

    key, reverse = SORT_KEYS[sort_by]
    return sorted(filtered, key=key, reverse=reverse)


def describe_transaction_product(store: EntityStore, transaction: Transaction) -> str:
    """Return the product name for display, tolerating deleted products."""
    with store.locked():
        product = store.get_product(transaction.product_id)
    return product.name if product is not None else UNKNOWN_PRODUCT_LABEL
