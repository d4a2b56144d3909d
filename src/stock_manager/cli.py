"""Command-line entry points for the stock manager.

All orchestration in this module is limited to argparse wiring, credential
checks, translating arguments into the typed inputs consumed by the store and
the ledger, and printing results. Keeping the CLI thin means any other
front-end can drive the same operations with the same inputs.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import analytics, auth, data_manager, ledger, log, runtime, validation
from .constants import DEFAULT_TOP_PRODUCTS, ProductCategory, StockStatus, TransactionType, UserRole
from .errors import (
    BusinessRuleViolation,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    ProductNotFoundError,
)
from .store import Product, User


SubParsers = argparse._SubParsersAction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    ``required_role`` is ``None`` for public commands. ``writes`` marks
    commands whose success must be persisted to the workbook.
    """

    name: str
    help_text: str
    register: Callable[[SubParsers], argparse.ArgumentParser]
    execute: Callable[[runtime.RuntimeContext, argparse.Namespace], int]
    required_role: Optional[UserRole] = None
    writes: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stock-cli",
        description="Command-line tools for the Supermarket Stock Manager.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    parser.add_argument("--user", default=None, help="Username to act as.")
    parser.add_argument("--password", default=None, help="Password for --user.")
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare mutating commands such as product edits and transactions."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "update-product": register_update_product_command(subparsers),
        "delete-product": register_delete_product_command(subparsers),
        "sale": register_transaction_command(subparsers, TransactionType.SALE),
        "restock": register_transaction_command(subparsers, TransactionType.RESTOCK),
        "return": register_transaction_command(subparsers, TransactionType.RETURN),
        "register": register_register_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare read-only commands such as listings and reports."""
    specs = {
        "products": register_products_command(subparsers),
        "product": register_product_command(subparsers),
        "transactions": register_transactions_command(subparsers),
        "stock": register_stock_command(subparsers),
        "sales": register_sales_command(subparsers),
        "top-products": register_top_products_command(subparsers),
        "export": register_export_command(subparsers),
        "whoami": register_whoami_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Write command registrations
# ---------------------------------------------------------------------------


def _add_product_field_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required)
    parser.add_argument(
        "--category",
        required=required,
        help=f"One of: {', '.join(member.value for member in ProductCategory)}.",
    )
    parser.add_argument("--price", required=required)
    parser.add_argument("--description", default=None)
    parser.add_argument("--sku", default=None)


def register_add_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Add a product to the catalogue."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_product_field_arguments(parser, required=True)
        parser.add_argument("--stock-quantity", default=None, help="Opening stock (default 0).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_add_product, required_role=UserRole.ADMIN, writes=True)


def register_update_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``update-product``."""
    name = "update-product"
    help_text = "Change catalogue fields of a product."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", type=int, required=True)
        _add_product_field_arguments(parser, required=False)
        parser.add_argument("--clear-description", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_update_product, required_role=UserRole.ADMIN, writes=True)


def register_delete_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``delete-product``."""
    name = "delete-product"
    help_text = "Remove a product from the catalogue."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_delete_product, required_role=UserRole.ADMIN, writes=True)


def register_transaction_command(subparsers: SubParsers, transaction_type: TransactionType) -> CommandSpec:
    """Register the parser and executor for ``sale``, ``restock``, or ``return``."""
    name = transaction_type.value
    help_text = f"Record a {name} transaction."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", type=int, required=True)
        parser.add_argument("--quantity", type=int, required=True)
        parser.set_defaults(command=name, transaction_type=transaction_type.value)
        return parser

    return CommandSpec(name, help_text, registrar, run_transaction, required_role=UserRole.USER, writes=True)


def register_register_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``register``."""
    name = "register"
    help_text = "Create a regular user account."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--username", required=True)
        parser.add_argument("--new-password", required=True)
        parser.add_argument("--email", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_register, writes=True)


# ---------------------------------------------------------------------------
# Read command registrations
# ---------------------------------------------------------------------------


def register_products_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    name = "products"
    help_text = "List products with optional filters."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default=None)
        parser.add_argument("--category", default=None)
        parser.add_argument("--stock-status", choices=[member.value for member in StockStatus], default=None)
        parser.add_argument("--sort-by", choices=list(analytics.SORT_KEYS), default="name_asc")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_products)


def register_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``product``."""
    name = "product"
    help_text = "Show a single product."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_product)


def register_transactions_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``transactions``."""
    name = "transactions"
    help_text = "Display the transaction history."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_transactions, required_role=UserRole.USER)


def register_stock_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display the stock overview."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_stock_overview, required_role=UserRole.USER)


def register_sales_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    name = "sales"
    help_text = "Display revenue and units per day."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--all-types",
            action="store_true",
            help="Include restocks and returns, not just sales.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_sales_by_day, required_role=UserRole.USER)


def register_top_products_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``top-products``."""
    name = "top-products"
    help_text = "Display the best-selling products."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=DEFAULT_TOP_PRODUCTS)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_top_products, required_role=UserRole.USER)


def register_export_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Export the product listing to an Excel file."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_export, required_role=UserRole.USER)


def register_whoami_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``whoami``."""
    name = "whoami"
    help_text = "Show the signed-in user."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name, help_text, registrar, run_whoami, required_role=UserRole.USER)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def resolve_user(context: runtime.RuntimeContext, args: argparse.Namespace) -> Optional[User]:
    """Authenticate ``--user``/``--password``; anonymous when no user is given.

    Raises:
        PermissionDeniedError: If a username is given with bad credentials.
    """
    username = getattr(args, "user", None)
    if not username:
        return None
    user = auth.authenticate(context.store, username, getattr(args, "password", None) or "")
    if user is None:
        raise PermissionDeniedError("Invalid username or password")
    return user


def dispatch_command(
    context: runtime.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Check the caller's role and run the matching executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    auth.require_role(resolve_user(context, args), spec.required_role)
    return spec.execute(context, args)


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_add_product(args: argparse.Namespace) -> validation.ProductInput:
    """Translate CLI args into a validated product input."""
    return validation.validate_product_input(
        {
            "name": args.name,
            "category": args.category,
            "price": args.price,
            "stock_quantity": args.stock_quantity,
            "description": args.description,
            "sku": args.sku,
        }
    )


def translate_update_product(args: argparse.Namespace) -> Tuple[int, Dict[str, Any]]:
    """Translate CLI args into a product id and validated change set."""
    raw: Dict[str, Any] = {
        "name": args.name,
        "category": args.category,
        "price": args.price,
        "sku": args.sku,
    }
    if args.description is not None or getattr(args, "clear_description", False):
        raw["description"] = args.description
    return args.product_id, validation.validate_product_changes(raw)


def translate_transaction(args: argparse.Namespace) -> ledger.TransactionCommand:
    """Translate CLI args into a ledger command."""
    return ledger.TransactionCommand(
        product_id=args.product_id,
        quantity=args.quantity,
        transaction_type=args.transaction_type,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def format_product(product: Product) -> str:
    """Render a product as a single listing line."""
    status = analytics.classify_stock_status(product.stock_quantity).value
    return (
        f"{product.product_id:>4}  {product.sku:<10} {product.name:<28} {product.category:<16} "
        f"{product.price:>10}  stock={product.stock_quantity:<5} sold={product.items_sold:<5} [{status}]"
    )


def run_add_product(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Validate and create a product."""
    data = translate_add_product(args)
    product = context.store.create_product(
        data.name,
        data.category,
        data.price,
        stock_quantity=data.stock_quantity,
        description=data.description,
        sku=data.sku,
    )
    print(format_product(product))
    return 0


def run_update_product(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Validate and apply a partial product update."""
    product_id, changes = translate_update_product(args)
    product = context.store.update_product(product_id, changes)
    print(format_product(product))
    return 0


def run_delete_product(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Delete a product."""
    removed = context.store.delete_product(args.product_id)
    print(f"Deleted product {removed.product_id} ({removed.name})")
    return 0


def run_transaction(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Record a sale, restock, or return through the ledger."""
    entry = ledger.record_transaction(context.store, translate_transaction(args))
    transaction = entry.transaction
    print(
        f"Transaction {transaction.transaction_id}: {transaction.transaction_type.value} "
        f"x{transaction.quantity} total={transaction.total_price}"
    )
    print(format_product(entry.product))
    return 0


def run_register(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Create a regular user account."""
    user = auth.register_user(context.store, args.username, args.new_password, email=args.email)
    print(f"Registered user {user.user_id} ({user.username})")
    return 0


def run_products(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the filtered product listing."""
    products = analytics.filter_products(
        context.store.get_all_products(),
        search=args.search,
        category=validation.normalize_category(args.category) if args.category else None,
        stock_status=args.stock_status,
        sort_by=args.sort_by,
    )
    for product in products:
        print(format_product(product))
    return 0


def run_product(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Print a single product."""
    product = context.store.get_product(args.product_id)
    if product is None:
        raise ProductNotFoundError(f"Unknown product id: {args.product_id}")
    print(format_product(product))
    if product.description:
        print(f"      {product.description}")
    return 0


def run_transactions(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the transaction history."""
    for transaction in context.store.get_all_transactions():
        product_name = analytics.describe_transaction_product(context.store, transaction)
        print(
            f"{transaction.transaction_id:>4}  {transaction.timestamp.isoformat()}  "
            f"{transaction.transaction_type.value:<8} {product_name:<28} "
            f"x{transaction.quantity:<5} {transaction.total_price:>10}"
        )
    return 0


def run_stock_overview(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the stock overview."""
    overview = analytics.stock_overview(
        context.store,
        low_stock_threshold=context.settings.low_stock_threshold,
    )
    print(f"Store:            {context.settings.store_name}")
    print(f"Total products:   {overview.total_products}")
    print(f"Low stock items:  {overview.low_stock_count}")
    print(f"Total revenue:    {overview.total_revenue}")
    print(f"Items sold:       {overview.total_items_sold}")
    return 0


def run_sales_by_day(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Print revenue and units per day."""
    types = None if args.all_types else (TransactionType.SALE,)
    for day in analytics.sales_by_day(context.store, transaction_types=types):
        print(f"{day.date.isoformat()}  revenue={day.revenue}  items={day.items_sold}")
    return 0


def run_top_products(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the best-selling products."""
    for rank, entry in enumerate(analytics.top_products(context.store, args.limit), start=1):
        print(f"{rank:>2}. {entry.name:<28} sold={entry.items_sold:<6} revenue={entry.revenue}")
    return 0


def run_export(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Export the product listing."""
    destination = data_manager.export_products(context.store.get_all_products(), args.output)
    print(f"Exported products to {destination}")
    return 0


def run_whoami(context: runtime.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the signed-in user."""
    user = resolve_user(context, args)
    print(f"{user.username} ({user.role.value})")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into exit codes."""
    log.error("%s", error)
    if isinstance(error, PermissionDeniedError):
        return 5
    if isinstance(error, NotFoundError):
        return 4
    if isinstance(error, FileNotFoundError):
        return 3
    if isinstance(error, (BusinessRuleViolation, InvalidInputError, ConflictError)):
        return 2
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing, execution, and persistence."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = runtime.load_runtime_context(args.config)
        runtime.ensure_schema_version(context)
        bootstrapped = auth.ensure_admin_user(context.store, context.settings)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and (command_table[args.command].writes or bootstrapped is not None):
            runtime.persist_context(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
