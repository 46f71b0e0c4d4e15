from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from db.models import Cashier, Product, SaleTransaction, Store
from pos.cart import Cart, CartLineItem
from pos.coordinator import CheckoutCoordinator
from pos.pricing import Amount, Totals
from pos.receipt import ReceiptSettings, format_cart_summary, format_receipt
from pos.storage import StorageClient


@dataclass
class CashierSession:
    """
    Everything one cashier works with between login and logout.

    Fields:
      - cashier: the logged-in cashier
      - storage: injected storage client, shared between sessions
      - store: store selected for selling, None until chosen
      - customer_id: customer attached for loyalty, optional
      - cart: this session's cart, never shared
      - coordinator: this session's checkout coordinator
    """

    cashier: Cashier
    storage: StorageClient
    store: Optional[Store] = None
    customer_id: Optional[str] = None
    receipt_settings: Optional[ReceiptSettings] = None
    cart: Cart = field(default_factory=Cart)
    coordinator: Optional[CheckoutCoordinator] = None
    last_sale: Optional[SaleTransaction] = None

    def __post_init__(self) -> None:
        if self.coordinator is None:
            self.coordinator = CheckoutCoordinator(self.storage)

    def select_store(self, store: Store) -> None:
        """Switching stores empties the cart, its lines belong to the old store."""
        if self.store is not None and self.store.id != store.id:
            self.cart.clear()
        self.store = store

    def attach_customer(self, customer_id: Optional[str]) -> None:
        self.customer_id = customer_id

    # cart operations, straight through to the cart

    def add_item(self, product: Product, qty: int = 1) -> Optional[CartLineItem]:
        return self.cart.add_item(product, qty)

    def remove_item(self, product_id: str) -> bool:
        return self.cart.remove_item(product_id)

    def set_quantity(
        self, product_id: str, qty: int, product: Optional[Product] = None
    ) -> Optional[CartLineItem]:
        return self.cart.set_quantity(product_id, qty, product)

    def cancel(self) -> None:
        """Abandon the sale in progress."""
        self.cart.clear()
        self.customer_id = None

    def totals(self, discount: Amount = 0, tax: Amount = 0) -> Totals:
        return self.coordinator.preview(self.cart, discount, tax)

    def summary(self, discount: Amount = 0, tax: Amount = 0) -> str:
        return format_cart_summary(self.cart, self.totals(discount, tax))

    async def checkout(
        self, discount: Amount = 0, tax: Amount = 0, payment_method="cash"
    ) -> SaleTransaction:
        sale = await self.coordinator.checkout(
            self.cart,
            self.store.id if self.store else None,
            self.cashier.id,
            customer_id=self.customer_id,
            discount=discount,
            tax=tax,
            payment_method=payment_method,
        )
        self.last_sale = sale
        self.customer_id = None
        return sale

    def receipt(self, sale: Optional[SaleTransaction] = None) -> str:
        """Receipt text for the given sale, or the last one of this session."""
        sale = sale or self.last_sale
        if sale is None:
            raise LookupError("No sale to print yet.")
        if self.store is None or self.store.id != sale.store_id:
            raise LookupError(f"Store {sale.store_id} is not selected in this session.")
        return format_receipt(
            sale, self.store, self.cashier.full_name, self.receipt_settings
        )
