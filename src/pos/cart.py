# session-local cart, one per cashier session
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from db.models import Product
from pos.errors import InvalidQuantity
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class CartLineItem:
    product_id: str
    product_name: str
    unit_price: Decimal  # snapshot taken when the product was first added
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def _check_quantity(qty) -> int:
    # bool is an int subclass but never a quantity
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise InvalidQuantity(qty)
    return qty


class Cart:
    """
    Ordered products and quantities selected by one cashier session.

    Lines are unique by product id; a line's quantity never exceeds the stock
    of the product as last seen by the cart, and never drops to zero (such a
    line is removed instead). Not thread-safe: a cart belongs to a single
    session and is mutated sequentially.
    """

    def __init__(self) -> None:
        self._lines: List[CartLineItem] = []
        self._known: Dict[str, Product] = {}

    # ---------------------------
    # Queries
    # ---------------------------

    @property
    def lines(self) -> Tuple[CartLineItem, ...]:
        return tuple(self._lines)

    def __iter__(self) -> Iterator[CartLineItem]:
        return iter(tuple(self._lines))

    def __len__(self) -> int:
        return len(self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def get_line(self, product_id: str) -> Optional[CartLineItem]:
        for line in self._lines:
            if line.product_id == product_id:
                return line
        return None

    def quantity_of(self, product_id: str) -> int:
        line = self.get_line(product_id)
        return line.quantity if line else 0

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def subtotal(self) -> Decimal:
        """Sum of line totals; exact, no rounding."""
        return sum((line.line_total for line in self._lines), Decimal("0"))

    # ---------------------------
    # Commands
    # ---------------------------

    def add_item(self, product: Product, qty: int = 1) -> Optional[CartLineItem]:
        """
        Add qty of product, merging into an existing line.
        The resulting quantity is capped at product.stock.
        Returns the updated line, or None if the product is out of stock, in
        which case any line already holding it is dropped.
        """
        qty = _check_quantity(qty)
        self._known[product.id] = product
        if product.stock <= 0:
            _logger.warning(f"{product.name} ({product.id}) is out of stock.")
            self.remove_item(product.id)
            return None

        idx = self._index_of(product.id)
        wanted = qty if idx is None else self._lines[idx].quantity + qty
        if idx is None:
            line = CartLineItem(
                product_id=product.id,
                product_name=product.name,
                unit_price=product.price,
                quantity=min(wanted, product.stock),
            )
            self._lines.append(line)
        else:
            current = self._lines[idx]
            line = CartLineItem(
                product_id=current.product_id,
                product_name=current.product_name,
                unit_price=current.unit_price,
                quantity=min(wanted, product.stock),
            )
            self._lines[idx] = line
        if line.quantity < wanted:
            _logger.debug(f"Capped {product.id} at stock {product.stock}.")
        return line

    def remove_item(self, product_id: str) -> bool:
        """Delete the product's line. Returns False if it was not in the cart."""
        idx = self._index_of(product_id)
        if idx is None:
            return False
        del self._lines[idx]
        return True

    def set_quantity(
        self, product_id: str, qty: int, product: Optional[Product] = None
    ) -> Optional[CartLineItem]:
        """
        Set the line's quantity, clamped to stock. Creates the line if absent
        and the product is known (passed in or seen by an earlier add_item).
        Returns the resulting line, or None when no line exists afterwards
        (unknown product, or stock is zero).
        """
        qty = _check_quantity(qty)
        if product is not None:
            if product.id != product_id:
                raise ValueError(f"Product {product.id} does not match {product_id}.")
            self._known[product_id] = product
        product = self._known.get(product_id)
        if product is None:
            return None

        qty = min(qty, product.stock)
        idx = self._index_of(product_id)
        if qty <= 0:
            if idx is not None:
                del self._lines[idx]
            return None
        if idx is None:
            line = CartLineItem(
                product_id=product.id,
                product_name=product.name,
                unit_price=product.price,
                quantity=qty,
            )
            self._lines.append(line)
        else:
            current = self._lines[idx]
            line = CartLineItem(
                product_id=current.product_id,
                product_name=current.product_name,
                unit_price=current.unit_price,
                quantity=qty,
            )
            self._lines[idx] = line
        return line

    def clear(self) -> None:
        self._lines.clear()
        self._known.clear()

    def deduct(self, committed: Iterable) -> None:
        """
        Take committed sale lines (anything with product_id and quantity) off
        the cart. Quantity added after the sale was drafted stays in the cart.
        """
        for sold in committed:
            idx = self._index_of(sold.product_id)
            if idx is None:
                continue
            left = self._lines[idx].quantity - sold.quantity
            if left > 0:
                self._lines[idx] = replace(self._lines[idx], quantity=left)
            else:
                del self._lines[idx]
                self._known.pop(sold.product_id, None)
        if not self._lines:
            self._known.clear()

    def _index_of(self, product_id: str) -> Optional[int]:
        for i, line in enumerate(self._lines):
            if line.product_id == product_id:
                return i
        return None
