# plain-text receipts and markdown cart summaries
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from db.models import SaleTransaction, Store
from pos.cart import Cart
from pos.pricing import Totals, format_money

_ALIGN_MARKERS = {"l": ":---", "c": ":---:", "r": "---:"}


@dataclass(frozen=True)
class ReceiptSettings:
    """Per-store receipt customization."""

    header: str = ""
    footer: str = ""
    show_tax: bool = True
    show_store_info: bool = True
    width: int = 40  # characters, 80mm paper
    thank_you: str = "Thank you for your purchase!"


DEFAULT_RECEIPT_SETTINGS = ReceiptSettings()


def format_receipt(
    transaction: SaleTransaction,
    store: Store,
    cashier_name: str,
    settings: Optional[ReceiptSettings] = None,
    currency_prefix: Optional[str] = None,
) -> str:
    """
    Render a committed sale as receipt text.

    Pure: output depends only on the arguments (the sale's own timestamp is
    printed, never the current time), so identical inputs give identical text.
    """
    settings = settings or DEFAULT_RECEIPT_SETTINGS
    rule = "-" * settings.width

    def money(amount):
        return format_money(amount, currency_prefix)

    out: List[str] = []
    out.append(store.name.upper())
    if settings.show_store_info:
        if store.address:
            out.append(store.address)
        if store.phone:
            out.append(f"Tel: {store.phone}")
    if settings.header:
        out.extend(settings.header.splitlines())
    out.append("")
    out.append(f"Date: {transaction.created_at.strftime('%d/%m/%Y %H:%M')}")
    out.append(f"Cashier: {cashier_name}")
    out.append(f"Transaction: {transaction.number}")
    if transaction.customer_id:
        out.append(f"Customer: {transaction.customer_id}")
    out.append(rule)

    for line in transaction.lines:
        out.append(line.product_name)
        out.append(
            f"{line.quantity} x {money(line.unit_price)} = {money(line.line_subtotal)}"
        )

    out.append(rule)
    out.append(f"Subtotal: {money(transaction.subtotal)}")
    if transaction.discount > 0:
        out.append(f"Discount: {money(transaction.discount)}")
    if settings.show_tax:
        out.append(f"Tax: {money(transaction.tax)}")
    out.append(f"Total: {money(transaction.total)}")
    out.append(f"Payment Method: {transaction.payment_method.value.capitalize()}")
    if transaction.customer_id:
        out.append(f"Points Earned: {transaction.points_earned}")
    out.append("")
    out.append(settings.thank_you)
    if settings.footer:
        out.extend(settings.footer.splitlines())
    return "\n".join(out) + "\n"


def _markdown_table(headers: Sequence[str], rows: Iterable[Sequence], aligns: str) -> str:
    """aligns holds one of 'l', 'c', 'r' per column."""

    def row_line(cells) -> str:
        escaped = [str(value).replace("|", "\\|") for value in cells]
        return "| " + " | ".join(escaped) + " |"

    out = [row_line(headers), "| " + " | ".join(_ALIGN_MARKERS[a] for a in aligns) + " |"]
    out.extend(row_line(row) for row in rows)
    return "\n".join(out)


def format_cart_summary(
    cart: Cart, totals: Totals, currency_prefix: Optional[str] = None
) -> str:
    """Markdown order summary shown to the cashier before confirming checkout."""
    if cart.is_empty():
        return "### Order Summary\n\n_Cart is empty._"

    def money(amount):
        return format_money(amount, currency_prefix)

    headers = ["Product Name", "Unit Price", "Quantity", "Total Price"]
    rows = [
        [line.product_name, money(line.unit_price), line.quantity, money(line.line_total)]
        for line in cart
    ]
    md = "### Order Summary\n\n"
    md += _markdown_table(headers, rows, "lrcr")
    md += f"\n\n**Subtotal:** {money(totals.subtotal)}"
    if totals.discount > 0:
        md += f"  \n**Discount:** {money(totals.discount)}"
    md += f"  \n**Tax:** {money(totals.tax)}"
    md += f"  \n**Total:** {money(totals.total)}"
    return md
