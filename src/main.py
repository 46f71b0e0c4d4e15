import argparse
import asyncio

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from db import crud, database
from pos.errors import CheckoutError
from pos.session import CashierSession
from pos.storage import SqliteStorageClient
from utils.logger import get_logger

_logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ring up one sale on the seeded store and print the receipt."
    )
    parser.add_argument("--db", help="sqlite file, defaults to POS_DB_PATH")
    parser.add_argument("--store", default="store-1")
    parser.add_argument("--cashier", default="cashier-1")
    parser.add_argument("--customer", default="cust-1")
    parser.add_argument(
        "--item",
        action="append",
        metavar="PRODUCT_ID[:QTY]",
        help="repeatable, defaults to prod-1001:2 and prod-1002:1",
    )
    parser.add_argument("--discount", default="5000")
    parser.add_argument("--tax", default="2000")
    parser.add_argument("--payment", default="cash")
    return parser.parse_args(argv)


def _parse_item(raw: str):
    pid, _, qty = raw.partition(":")
    return pid, int(qty) if qty else 1


async def run(args: argparse.Namespace, console: Console) -> int:
    if args.db:
        database.configure(args.db)

    store = await crud.get_store(args.store)
    cashier = await crud.get_cashier(args.cashier)
    if store is None or cashier is None:
        console.print(f"[red]Unknown store {args.store} or cashier {args.cashier}.[/]")
        return 2

    session = CashierSession(cashier=cashier, storage=SqliteStorageClient())
    session.select_store(store)
    session.attach_customer(args.customer or None)

    for item in args.item or ["prod-1001:2", "prod-1002:1"]:
        pid, qty = _parse_item(item)
        product = await crud.get_product(pid)
        if product is None:
            console.print(f"[yellow]Skipping unknown product {pid}.[/]")
            continue
        if session.add_item(product, qty) is None:
            console.print(f"[yellow]{product.name} is out of stock.[/]")

    console.print(Markdown(session.summary(args.discount, args.tax)))
    try:
        sale = await session.checkout(args.discount, args.tax, args.payment)
    except CheckoutError as err:
        console.print(f"[red]{err.message}[/]")
        return 1

    console.print(Panel(session.receipt(sale), title="Receipt", expand=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(run(parse_args(), Console())))
