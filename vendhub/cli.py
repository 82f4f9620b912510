"""
VendHub demo - fill a cart and print the checkout summary.

Usage:
    python -m vendhub
    python -m vendhub --storage ~/.vendhub --balance 5000 --promo COFFEE10:10
    python -m vendhub --storage ~/.vendhub --checkout

With ``--storage`` the cart survives between runs: a second run without
``--reset`` keeps adding to the previous cart.
"""

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .app import AppStores, bootstrap
from .cart import CartStore, Machine, Product
from .config import Settings
from .errors import CheckoutError

DEMO_MACHINE = Machine(
    id="M-001",
    name="KIUT Корпус А",
    machine_number="M-001",
    location_name="KIUT University",
)

DEMO_MENU = {
    "esp": Product(id="esp", name="Эспрессо", price=12000, category="coffee"),
    "ame": Product(id="ame", name="Американо", price=15000, category="coffee"),
    "cap": Product(id="cap", name="Капучино", price=20000, category="coffee"),
    "lat": Product(id="lat", name="Латте", price=22000, category="coffee"),
    "tea": Product(id="tea", name="Чай зелёный", price=10000, category="tea"),
    "choc": Product(
        id="choc", name="Горячий шоколад", price=18000, category="other", is_available=False
    ),
}


def format_amount(amount: int) -> str:
    return f"{amount:,}".replace(",", " ")


def parse_promo(value: str) -> Tuple[str, int]:
    code, sep, percent = value.partition(":")
    if not sep or not code:
        raise argparse.ArgumentTypeError(f"expected CODE:PERCENT, got {value!r}")
    try:
        pct = int(percent)
    except ValueError:
        raise argparse.ArgumentTypeError(f"percent must be an integer: {percent!r}")
    if not 0 <= pct <= 100:
        raise argparse.ArgumentTypeError(f"percent out of range: {pct}")
    return code.upper(), pct


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vendhub", description="Fill a demo cart and print its totals"
    )
    parser.add_argument(
        "items",
        nargs="*",
        default=["esp", "esp"],
        help=f"menu ids to add ({', '.join(DEMO_MENU)})",
    )
    parser.add_argument("--storage", type=Path, help="directory for persisted state")
    parser.add_argument("--balance", type=int, default=5000, help="loyalty points balance")
    parser.add_argument(
        "--points", type=int, default=None, help="points to redeem (default: as many as allowed)"
    )
    parser.add_argument("--promo", type=parse_promo, help="validated promo as CODE:PERCENT")
    parser.add_argument("--checkout", action="store_true", help="submit and clear the cart")
    parser.add_argument("--reset", action="store_true", help="start from an empty cart")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def render_cart(cart: CartStore) -> Table:
    state = cart.get()
    title = f"Корзина · {state.machine.name}" if state.machine else "Корзина"
    table = Table(title=title, box=box.ROUNDED, show_footer=False)
    table.add_column("Товар")
    table.add_column("Цена", justify="right")
    table.add_column("Кол-во", justify="right")
    table.add_column("Сумма", justify="right")

    for line in state.items:
        table.add_row(
            line.name,
            format_amount(line.unit_price),
            str(line.quantity),
            format_amount(line.line_total),
        )

    table.add_section()
    table.add_row("Подытог", "", str(cart.get_total_items()), format_amount(cart.get_subtotal()))
    if state.promo_code:
        table.add_row(
            f"Скидка {state.promo_code} ({state.promo_discount_percent}%)",
            "",
            "",
            f"-{format_amount(cart.get_discount())}",
        )
    if cart.get_points_discount():
        table.add_row("Баллы", "", "", f"-{format_amount(cart.get_points_discount())}")
    table.add_row("[bold]Итого[/bold]", "", "", f"[bold]{format_amount(cart.get_total())}[/bold]")
    return table


def run(stores: AppStores, args: argparse.Namespace, console: Console) -> int:
    cart = stores.cart
    if args.reset:
        cart.clear_cart()

    if cart.get().machine is None:
        cart.set_machine(DEMO_MACHINE)

    for item_id in args.items:
        product = DEMO_MENU.get(item_id)
        if product is None:
            console.print(f"[red]Unknown menu item:[/red] {item_id}")
            return 2
        if not cart.add_item(product).ok:
            console.print(f"[yellow]{product.name} is unavailable, skipped[/yellow]")

    if args.promo:
        cart.apply_promo(*args.promo)

    requested = args.points if args.points is not None else args.balance
    cart.set_points_to_redeem(requested, available_balance=args.balance)

    console.print(render_cart(cart))

    if args.checkout:
        try:
            draft = cart.build_checkout(payment_method="bonus" if cart.get_total() == 0 else "click")
        except CheckoutError as exc:
            console.print(f"[red]Checkout failed:[/red] {exc}")
            return 1
        order_id = stores.order_history.record_checkout(
            draft, location_name=DEMO_MACHINE.location_name
        )
        cart.complete_checkout()
        console.print(
            f"Order [bold]{order_id}[/bold] created, "
            f"+{format_amount(draft.points_earned)} points"
        )

    for store in stores.persistent_stores():
        if store.last_persistence_error is not None:
            console.print(f"[yellow]Not saved:[/yellow] {store.last_persistence_error}")
    return 0


def main(argv: Optional[Sequence[str]] = None, console: Optional[Console] = None) -> int:
    args = build_parser().parse_args(argv)
    console = console or Console()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )

    settings = Settings.from_env()
    if args.storage is not None:
        settings = replace(settings, storage_dir=args.storage)
    stores = bootstrap(settings)
    return run(stores, args, console)
