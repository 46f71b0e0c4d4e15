# in-process StorageClient, for tests and offline demos
from __future__ import annotations

import asyncio
import dataclasses
import uuid
from typing import Dict, Iterable, List, Optional

from db.models import (
    Customer,
    Product,
    SaleDraft,
    SaleLineItem,
    SaleTransaction,
)
from pos.errors import InsufficientStock, UnknownCustomer


class InMemoryStorageClient:
    """
    Dict-backed storage with the same all-or-nothing commit as the sqlite client.

    commit_sale works on copies of the product and customer tables and only
    swaps them in once every step succeeded, all under one lock, so a
    competing commit never sees half of another.
    """

    def __init__(
        self,
        products: Iterable[Product] = (),
        customers: Iterable[Customer] = (),
    ) -> None:
        self.products: Dict[str, Product] = {p.id: p for p in products}
        self.customers: Dict[str, Customer] = {c.id: c for c in customers}
        self.transactions: Dict[str, SaleTransaction] = {}
        self.calls: List[str] = []
        self._lock = asyncio.Lock()

    async def get_product(self, product_id: str) -> Optional[Product]:
        self.calls.append("get_product")
        return self.products.get(product_id)

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        self.calls.append("get_customer")
        return self.customers.get(customer_id)

    def _next_number(self, draft: SaleDraft) -> str:
        prefix = draft.created_at.strftime("%Y%m%d")
        count = sum(1 for t in self.transactions.values() if t.number.startswith(prefix))
        return f"{prefix}-{count + 1:04d}"

    async def commit_sale(self, draft: SaleDraft) -> SaleTransaction:
        self.calls.append("commit_sale")
        async with self._lock:
            products = dict(self.products)
            customers = dict(self.customers)
            txn_id = uuid.uuid4().hex

            lines = []
            for line_no, line in enumerate(draft.lines, start=1):
                product = products.get(line.product_id)
                available = product.stock if product else 0
                if product is None or available < line.quantity:
                    raise InsufficientStock(line.product_id, line.quantity, available)
                products[line.product_id] = dataclasses.replace(
                    product, stock=product.stock - line.quantity
                )
                lines.append(
                    SaleLineItem(
                        transaction_id=txn_id,
                        line_no=line_no,
                        product_id=line.product_id,
                        product_name=line.product_name,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        line_subtotal=line.line_subtotal,
                    )
                )

            if draft.customer_id is not None:
                customer = customers.get(draft.customer_id)
                if customer is None:
                    raise UnknownCustomer(draft.customer_id)
                customers[customer.id] = dataclasses.replace(
                    customer,
                    total_spent=customer.total_spent + draft.total,
                    loyalty_points=customer.loyalty_points + draft.points_earned,
                )

            sale = SaleTransaction(
                id=txn_id,
                number=self._next_number(draft),
                store_id=draft.store_id,
                cashier_id=draft.cashier_id,
                customer_id=draft.customer_id,
                subtotal=draft.subtotal,
                discount=draft.discount,
                tax=draft.tax,
                total=draft.total,
                payment_method=draft.payment_method,
                created_at=draft.created_at,
                points_earned=draft.points_earned,
                lines=tuple(lines),
            )
            # publish
            self.products = products
            self.customers = customers
            self.transactions[txn_id] = sale
            return sale
