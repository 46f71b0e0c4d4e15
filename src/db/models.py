# provide dataclass models

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class SaleStatus(str, Enum):
    COMMITTED = "committed"


@dataclass(frozen=True)
class Store:
    id: str
    name: str
    address: str = ""
    phone: str = ""


@dataclass(frozen=True)
class Cashier:
    id: str
    full_name: str
    role: str = "cashier"  # "admin" | "manager" | "cashier"


@dataclass(frozen=True)
class Product:
    id: str
    store_id: str
    name: str
    price: Decimal
    stock: int
    category: str = ""


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    total_spent: Decimal = Decimal("0")
    loyalty_points: int = 0


@dataclass(frozen=True)
class SaleLineItem:
    transaction_id: str
    line_no: int
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal  # cart snapshot, never re-read from products
    line_subtotal: Decimal


@dataclass(frozen=True)
class SaleTransaction:
    id: str
    number: str  # human readable, YYYYMMDD-NNNN
    store_id: str
    cashier_id: str
    customer_id: Optional[str]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    status: SaleStatus = SaleStatus.COMMITTED
    points_earned: int = 0
    lines: Tuple[SaleLineItem, ...] = field(default=())


@dataclass(frozen=True)
class DraftLine:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class SaleDraft:
    """Everything the atomic commit needs; ids and numbers are assigned by storage."""

    store_id: str
    cashier_id: str
    customer_id: Optional[str]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    payment_method: PaymentMethod
    points_earned: int
    created_at: datetime
    lines: Tuple[DraftLine, ...]
