# src/db/crud.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple

import aiosqlite

from db import models
from db.database import connect, transaction
from utils.logger import get_logger
from utils.settings import get_settings

_logger = get_logger(__name__)


class StockConflict(Exception):
    """A conditional stock decrement matched no row; the surrounding commit is rolled back."""

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Product {product_id}: requested {requested}, only {available} left."
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


# ---------------------------
# Money conversion
# ---------------------------


def to_minor(amount: Decimal) -> int:
    """Convert a Decimal amount to integer minor units (round half up)."""
    unit = get_settings().minor_unit
    return int((Decimal(amount) / unit).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor(value: int) -> Decimal:
    return Decimal(int(value)) * get_settings().minor_unit


# ---------------------------
# Row mapping
# ---------------------------


def _row_to_product(row) -> models.Product:
    return models.Product(
        id=row["id"],
        store_id=row["store_id"],
        name=row["name"],
        category=row["category"],
        price=from_minor(row["price"]),
        stock=int(row["stock"]),
    )


def _row_to_customer(row) -> models.Customer:
    return models.Customer(
        id=row["id"],
        name=row["name"],
        total_spent=from_minor(row["total_spent"]),
        loyalty_points=int(row["loyalty_points"]),
    )


def _row_to_line(row) -> models.SaleLineItem:
    return models.SaleLineItem(
        transaction_id=row["transaction_id"],
        line_no=int(row["line_no"]),
        product_id=row["product_id"],
        product_name=row["product_name"],
        quantity=int(row["quantity"]),
        unit_price=from_minor(row["unit_price"]),
        line_subtotal=from_minor(row["line_subtotal"]),
    )


def _row_to_transaction(row, lines=()) -> models.SaleTransaction:
    return models.SaleTransaction(
        id=row["id"],
        number=row["number"],
        store_id=row["store_id"],
        cashier_id=row["cashier_id"],
        customer_id=row["customer_id"],
        subtotal=from_minor(row["subtotal"]),
        discount=from_minor(row["discount"]),
        tax=from_minor(row["tax"]),
        total=from_minor(row["total"]),
        payment_method=models.PaymentMethod(row["payment_method"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        status=models.SaleStatus(row["status"]),
        points_earned=int(row["points_earned"]),
        lines=tuple(lines),
    )


# ---------------------------
# Stores, Cashiers, Customers
# ---------------------------


async def get_store(store_id: str) -> Optional[models.Store]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id, name, address, phone FROM stores WHERE id = ?;", (store_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.Store(
        id=row["id"], name=row["name"], address=row["address"], phone=row["phone"]
    )


async def get_cashier(cashier_id: str) -> Optional[models.Cashier]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id, full_name, role FROM cashiers WHERE id = ?;", (cashier_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.Cashier(id=row["id"], full_name=row["full_name"], role=row["role"])


async def get_customer(customer_id: str) -> Optional[models.Customer]:
    """Return the Customer row with loyalty totals, or None."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id, name, total_spent, loyalty_points FROM customers WHERE id = ?;",
            (customer_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_customer(row) if row else None


# ---------------------------
# Products
# ---------------------------


async def get_product(product_id: str) -> Optional[models.Product]:
    """Fetch a product by id, with its current authoritative stock."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT id, store_id, name, category, price, stock FROM products WHERE id = ?;",
            (product_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_product(row) if row else None


async def list_products(store_id: str) -> List[models.Product]:
    """All products of a store ordered by name."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, store_id, name, category, price, stock
            FROM products
            WHERE store_id = ?
            ORDER BY name, id;
            """,
            (store_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def product_stock(product_id: str) -> Optional[int]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT stock FROM products WHERE id = ?;", (product_id,)
        )
        row = await cur.fetchone()
        await cur.close()
        return int(row[0]) if row else None


# ---------------------------
# Sales
# ---------------------------


async def _next_transaction_number(
    conn: aiosqlite.Connection, created_at: datetime
) -> str:
    """YYYYMMDD-NNNN, sequence per calendar day. Must run inside the write transaction."""
    prefix = created_at.strftime("%Y%m%d")
    cur = await conn.execute(
        "SELECT COUNT(*) FROM sale_transactions WHERE number LIKE ?;",
        (f"{prefix}-%",),
    )
    (count,) = await cur.fetchone()
    await cur.close()
    return f"{prefix}-{int(count) + 1:04d}"


async def _decrement_stock(
    conn: aiosqlite.Connection, product_id: str, quantity: int
) -> None:
    cur = await conn.execute(
        "UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?;",
        (quantity, product_id, quantity),
    )
    updated = cur.rowcount
    await cur.close()
    if updated == 1:
        return
    cur = await conn.execute("SELECT stock FROM products WHERE id = ?;", (product_id,))
    row = await cur.fetchone()
    await cur.close()
    raise StockConflict(product_id, quantity, int(row[0]) if row else 0)


async def commit_sale(draft: models.SaleDraft) -> models.SaleTransaction:
    """
    Persist a sale as one atomic unit: the transaction row, one line per draft
    line, a conditional stock decrement per line, and the customer's loyalty
    totals. Raises StockConflict if any decrement would take stock below zero;
    nothing from the attempt survives in that case.
    """
    txn_id = uuid.uuid4().hex
    async with transaction() as conn:
        if draft.customer_id is not None:
            cur = await conn.execute(
                "SELECT 1 FROM customers WHERE id = ?;", (draft.customer_id,)
            )
            exists = await cur.fetchone()
            await cur.close()
            if not exists:
                raise LookupError(f"Customer {draft.customer_id} does not exist.")

        number = await _next_transaction_number(conn, draft.created_at)
        await conn.execute(
            """
            INSERT INTO sale_transactions(
                id, number, store_id, cashier_id, customer_id,
                subtotal, discount, tax, total,
                payment_method, status, points_earned, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                txn_id,
                number,
                draft.store_id,
                draft.cashier_id,
                draft.customer_id,
                to_minor(draft.subtotal),
                to_minor(draft.discount),
                to_minor(draft.tax),
                to_minor(draft.total),
                draft.payment_method.value,
                models.SaleStatus.COMMITTED.value,
                draft.points_earned,
                draft.created_at.isoformat(),
            ),
        )

        lines: List[models.SaleLineItem] = []
        for line_no, line in enumerate(draft.lines, start=1):
            sale_line = models.SaleLineItem(
                transaction_id=txn_id,
                line_no=line_no,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_subtotal=line.line_subtotal,
            )
            await conn.execute(
                """
                INSERT INTO sale_line_items(
                    transaction_id, line_no, product_id, product_name,
                    quantity, unit_price, line_subtotal
                ) VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    txn_id,
                    line_no,
                    line.product_id,
                    line.product_name,
                    line.quantity,
                    to_minor(line.unit_price),
                    to_minor(sale_line.line_subtotal),
                ),
            )
            await _decrement_stock(conn, line.product_id, line.quantity)
            lines.append(sale_line)

        if draft.customer_id is not None:
            await conn.execute(
                """
                UPDATE customers
                SET total_spent = total_spent + ?,
                    loyalty_points = loyalty_points + ?
                WHERE id = ?;
                """,
                (to_minor(draft.total), draft.points_earned, draft.customer_id),
            )

    _logger.debug(f"Committed sale {number} ({len(lines)} lines).")
    return models.SaleTransaction(
        id=txn_id,
        number=number,
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


async def get_transaction(txn_id: str) -> Optional[models.SaleTransaction]:
    """Return a committed sale with its lines, or None."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT * FROM sale_transactions WHERE id = ?;", (txn_id,)
        )
        row = await cur.fetchone()
        await cur.close()
        if not row:
            return None
        cur = await conn.execute(
            """
            SELECT transaction_id, line_no, product_id, product_name,
                   quantity, unit_price, line_subtotal
            FROM sale_line_items
            WHERE transaction_id = ?
            ORDER BY line_no;
            """,
            (txn_id,),
        )
        line_rows = await cur.fetchall()
        await cur.close()
    return _row_to_transaction(row, [_row_to_line(r) for r in line_rows])


async def list_transactions(
    store_id: str, page: int, page_size: int = 5
) -> Tuple[List[models.SaleTransaction], int]:
    """
    List a store's sales newest first, paginated, without lines.
    Return (sales_for_page, total_count).
    """
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT COUNT(*) FROM sale_transactions WHERE store_id = ?;",
            (store_id,),
        )
        total = (await cur.fetchone())[0]
        await cur.close()
        offset = max(page - 1, 0) * page_size
        cur = await conn.execute(
            """
            SELECT *
            FROM sale_transactions
            WHERE store_id = ?
            ORDER BY created_at DESC, number DESC
            LIMIT ? OFFSET ?;
            """,
            (store_id, page_size, offset),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_transaction(row) for row in rows], int(total)
