import asyncio
import os
import sys
import tempfile
import unittest
from datetime import datetime
from decimal import Decimal

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db import database as db_database  # noqa: E402
from db.models import DraftLine, PaymentMethod, SaleDraft  # noqa: E402
from pos.errors import InsufficientStock, PersistenceFailure, UnknownCustomer  # noqa: E402
from pos.storage import SqliteStorageClient  # noqa: E402

WHEN = datetime(2025, 11, 1, 12, 0, 0)


def make_draft(lines, customer_id=None, discount="0", tax="0", when=WHEN, points=0):
    draft_lines = tuple(
        DraftLine(product_id=pid, product_name=name, quantity=qty, unit_price=Decimal(price))
        for pid, name, qty, price in lines
    )
    subtotal = sum((ln.line_subtotal for ln in draft_lines), Decimal("0"))
    return SaleDraft(
        store_id="store-1",
        cashier_id="cashier-1",
        customer_id=customer_id,
        subtotal=subtotal,
        discount=Decimal(discount),
        tax=Decimal(tax),
        total=subtotal - Decimal(discount) + Decimal(tax),
        payment_method=PaymentMethod.CASH,
        points_earned=points,
        created_at=when,
        lines=draft_lines,
    )


class CrudTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        # Point the DB to a temporary file and force re-initialization
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.configure(self.db_path, seed_data=True)

    async def asyncSetUp(self):
        # Touch initialization by opening a connection
        async with db_database.connect() as conn:
            cur = await conn.execute("SELECT name FROM sqlite_master WHERE type='table';")
            await cur.fetchall()
            await cur.close()

    def tearDown(self):
        self.temp_dir.cleanup()

    async def set_stock(self, pid, stock):
        async with db_database.connect() as conn:
            await conn.execute("UPDATE products SET stock = ? WHERE id = ?;", (stock, pid))
            await conn.commit()

    async def count_rows(self, table):
        async with db_database.connect() as conn:
            cur = await conn.execute(f"SELECT COUNT(*) FROM {table};")
            (n,) = await cur.fetchone()
            await cur.close()
        return n

    # ---------- reads ----------

    async def test_lookups(self):
        store = await crud.get_store("store-1")
        self.assertEqual(store.name, "Toko Sejahtera")
        self.assertIsNone(await crud.get_store("store-9"))

        cashier = await crud.get_cashier("cashier-1")
        self.assertEqual(cashier.full_name, "Sari Wulandari")
        self.assertIsNone(await crud.get_cashier("nobody"))

        customer = await crud.get_customer("cust-2")
        self.assertEqual(customer.total_spent, Decimal("125000"))
        self.assertEqual(customer.loyalty_points, 1250)
        self.assertIsNone(await crud.get_customer("cust-9"))

        prod = await crud.get_product("prod-1001")
        self.assertEqual(prod.price, Decimal("10000.00"))
        self.assertEqual(prod.stock, 50)
        self.assertEqual(prod.store_id, "store-1")
        self.assertIsNone(await crud.get_product("prod-9999"))

        self.assertEqual(await crud.product_stock("prod-1003"), 5)
        self.assertIsNone(await crud.product_stock("prod-9999"))

        products = await crud.list_products("store-1")
        self.assertEqual(len(products), 5)
        self.assertEqual([p.name for p in products], sorted(p.name for p in products))
        self.assertEqual(await crud.list_products("store-9"), [])

    def test_money_conversion(self):
        self.assertEqual(crud.to_minor(Decimal("42000")), 4200000)
        self.assertEqual(crud.to_minor(Decimal("0.015")), 2)
        self.assertEqual(crud.from_minor(1650000), Decimal("16500.00"))

    async def test_seed_can_be_skipped(self):
        db_database.configure(os.path.join(self.temp_dir.name, "empty.sqlite"), seed_data=False)
        try:
            self.assertIsNone(await crud.get_product("prod-1001"))
            self.assertEqual(await crud.list_products("store-1"), [])
        finally:
            db_database.configure(self.db_path, seed_data=True)

    # ---------- commit_sale ----------

    async def test_commit_sale_persists_everything(self):
        draft = make_draft(
            [("prod-1001", "Kopi Bubuk 200g", 2, "10000"), ("prod-1002", "Teh Celup 25s", 1, "25000")],
            customer_id="cust-1",
            discount="5000",
            tax="2000",
            points=420,
        )
        sale = await crud.commit_sale(draft)
        self.assertEqual(sale.number, "20251101-0001")
        self.assertEqual(sale.total, Decimal("42000"))
        self.assertEqual(len(sale.lines), 2)

        self.assertEqual(await crud.product_stock("prod-1001"), 48)
        self.assertEqual(await crud.product_stock("prod-1002"), 29)
        customer = await crud.get_customer("cust-1")
        self.assertEqual(customer.total_spent, Decimal("42000"))
        self.assertEqual(customer.loyalty_points, 420)

        stored = await crud.get_transaction(sale.id)
        self.assertEqual(stored.number, sale.number)
        self.assertEqual(stored.subtotal, Decimal("45000"))
        self.assertEqual(stored.discount, Decimal("5000"))
        self.assertEqual(stored.tax, Decimal("2000"))
        self.assertEqual(stored.total, Decimal("42000"))
        self.assertEqual(stored.created_at, WHEN)
        self.assertEqual(stored.points_earned, 420)
        self.assertEqual(stored.lines, sale.lines)
        self.assertIsNone(await crud.get_transaction("missing"))

    async def test_line_price_comes_from_draft(self):
        async with db_database.connect() as conn:
            await conn.execute("UPDATE products SET price = 1 WHERE id = 'prod-1001';")
            await conn.commit()
        sale = await crud.commit_sale(make_draft([("prod-1001", "Kopi", 1, "10000")]))
        stored = await crud.get_transaction(sale.id)
        self.assertEqual(stored.lines[0].unit_price, Decimal("10000"))

    async def test_transaction_numbers_per_day(self):
        first = await crud.commit_sale(make_draft([("prod-1001", "Kopi", 1, "10000")]))
        second = await crud.commit_sale(make_draft([("prod-1001", "Kopi", 1, "10000")]))
        next_day = await crud.commit_sale(
            make_draft([("prod-1001", "Kopi", 1, "10000")], when=datetime(2025, 11, 2, 8))
        )
        self.assertEqual(first.number, "20251101-0001")
        self.assertEqual(second.number, "20251101-0002")
        self.assertEqual(next_day.number, "20251102-0001")

        sales, total = await crud.list_transactions("store-1", page=1, page_size=2)
        self.assertEqual(total, 3)
        self.assertEqual([s.number for s in sales], ["20251102-0001", "20251101-0002"])
        sales, _ = await crud.list_transactions("store-1", page=2, page_size=2)
        self.assertEqual([s.number for s in sales], ["20251101-0001"])

    async def test_stock_conflict_rolls_back_whole_sale(self):
        await self.set_stock("prod-1003", 4)
        draft = make_draft(
            [("prod-1001", "Kopi", 2, "10000"), ("prod-1003", "Gula", 5, "16500")],
            customer_id="cust-1",
            points=1,
        )
        with self.assertRaises(crud.StockConflict) as ctx:
            await crud.commit_sale(draft)
        self.assertEqual(
            (ctx.exception.product_id, ctx.exception.requested, ctx.exception.available),
            ("prod-1003", 5, 4),
        )

        # the first line's decrement was undone with everything else
        self.assertEqual(await crud.product_stock("prod-1001"), 50)
        self.assertEqual(await crud.product_stock("prod-1003"), 4)
        self.assertEqual(await self.count_rows("sale_transactions"), 0)
        self.assertEqual(await self.count_rows("sale_line_items"), 0)
        self.assertEqual((await crud.get_customer("cust-1")).total_spent, Decimal("0"))

    async def test_concurrent_commits_never_go_negative(self):
        drafts = [make_draft([("prod-1003", "Gula", 3, "16500")]) for _ in range(3)]
        results = await asyncio.gather(
            *(crud.commit_sale(d) for d in drafts), return_exceptions=True
        )
        committed = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, crud.StockConflict)]
        self.assertEqual(len(committed), 1)
        self.assertEqual(len(conflicts), 2)
        self.assertEqual(await crud.product_stock("prod-1003"), 2)
        self.assertEqual(await self.count_rows("sale_transactions"), 1)

    # ---------- SqliteStorageClient ----------

    async def test_storage_client_translates_errors(self):
        storage = SqliteStorageClient()
        self.assertEqual((await storage.get_product("prod-1002")).stock, 30)
        self.assertEqual((await storage.get_customer("cust-1")).name, "Customer 1")

        with self.assertRaises(InsufficientStock) as ctx:
            await storage.commit_sale(make_draft([("prod-1003", "Gula", 6, "16500")]))
        self.assertEqual(ctx.exception.available, 5)

        with self.assertRaises(UnknownCustomer):
            await storage.commit_sale(
                make_draft([("prod-1001", "Kopi", 1, "10000")], customer_id="ghost")
            )
        self.assertEqual(await crud.product_stock("prod-1001"), 50)
        self.assertEqual(await self.count_rows("sale_transactions"), 0)

    async def test_storage_client_unreachable_db(self):
        # a directory cannot be opened as a database file
        db_database.configure(self.temp_dir.name)
        try:
            storage = SqliteStorageClient()
            with self.assertRaises(PersistenceFailure):
                await storage.get_product("prod-1001")
            with self.assertRaises(PersistenceFailure):
                await storage.commit_sale(make_draft([("prod-1001", "Kopi", 1, "10000")]))
        finally:
            db_database.configure(self.db_path)


if __name__ == "__main__":
    unittest.main()
