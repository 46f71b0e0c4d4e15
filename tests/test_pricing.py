import os
import sys
import unittest
from decimal import Decimal
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.models import Product  # noqa: E402
from pos.cart import Cart  # noqa: E402
from pos.errors import InvalidNumericInput  # noqa: E402
from pos.pricing import (  # noqa: E402
    compute_totals,
    format_money,
    loyalty_points,
    parse_amount,
    round_money,
)
from utils.settings import Settings, get_settings, reload_settings  # noqa: E402


def cart_with(*lines):
    cart = Cart()
    for pid, price, qty in lines:
        cart.add_item(
            Product(id=pid, store_id="store-1", name=pid, price=Decimal(price), stock=100),
            qty,
        )
    return cart


class PricingTestCase(unittest.TestCase):
    def test_reference_scenario(self):
        cart = cart_with(("a", "10000", 2), ("b", "25000", 1))
        totals = compute_totals(cart, 5000, 2000)
        self.assertEqual(totals.subtotal, Decimal("45000"))
        self.assertEqual(totals.discount, Decimal("5000"))
        self.assertEqual(totals.tax, Decimal("2000"))
        self.assertEqual(totals.total, Decimal("42000"))

    def test_total_identity(self):
        cart = cart_with(("a", "199.99", 3), ("b", "0.01", 7))
        for discount in ("0", "0.01", "12.50", "600"):
            for tax in ("0", "0.99", "59.97"):
                totals = compute_totals(cart, discount, tax)
                self.assertEqual(
                    totals.total,
                    totals.subtotal - Decimal(discount) + Decimal(tax),
                )

    def test_total_is_not_clamped(self):
        totals = compute_totals(cart_with(("a", "100", 1)), "150", "10")
        self.assertEqual(totals.total, Decimal("-40"))

    def test_parse_amount_accepts_numbers(self):
        self.assertEqual(parse_amount("12.50", "tax"), Decimal("12.50"))
        self.assertEqual(parse_amount("  7 ", "tax"), Decimal("7"))
        self.assertEqual(parse_amount("", "tax"), Decimal("0"))
        self.assertEqual(parse_amount(3, "tax"), Decimal("3"))
        self.assertEqual(parse_amount(0.1, "tax"), Decimal("0.1"))
        self.assertEqual(parse_amount(Decimal("5.00"), "tax"), Decimal("5.00"))

    def test_parse_amount_rejects_malformed(self):
        for bad in ("abc", "1,000", "-1", -0.5, "NaN", "inf", None, True, "1.005", [1]):
            with self.assertRaises(InvalidNumericInput) as ctx:
                parse_amount(bad, "discount")
            self.assertEqual(ctx.exception.field, "discount")
            self.assertIn("Discount", ctx.exception.message)

    def test_compute_totals_rejects_bad_input(self):
        cart = cart_with(("a", "100", 1))
        with self.assertRaises(InvalidNumericInput) as ctx:
            compute_totals(cart, "ten", 0)
        self.assertEqual(ctx.exception.field, "discount")
        with self.assertRaises(InvalidNumericInput) as ctx:
            compute_totals(cart, 0, "-2")
        self.assertEqual(ctx.exception.field, "tax")

    def test_oversized_amounts_are_invalid_input(self):
        cart = cart_with(("a", "100", 1))
        with self.assertRaises(InvalidNumericInput) as ctx:
            parse_amount("1e30", "tax")
        self.assertEqual(ctx.exception.field, "tax")
        with self.assertRaises(InvalidNumericInput) as ctx:
            compute_totals(cart, 0, "1e30")
        self.assertEqual(ctx.exception.field, "tax")
        with self.assertRaises(InvalidNumericInput) as ctx:
            compute_totals(cart, Decimal("1E+40"), 0)
        self.assertEqual(ctx.exception.field, "discount")

        # each amount fits on its own, the total does not
        widest = "9" * 26
        self.assertEqual(parse_amount(widest, "tax"), Decimal(widest))
        with self.assertRaises(InvalidNumericInput) as ctx:
            compute_totals(cart, 0, widest)
        self.assertEqual(ctx.exception.field, "tax")

    def test_round_money_half_up(self):
        self.assertEqual(round_money(Decimal("1.005")), Decimal("1.01"))
        self.assertEqual(round_money(Decimal("1.004")), Decimal("1.00"))
        self.assertEqual(round_money(Decimal("2.5"), Decimal("1")), Decimal("3"))

    def test_loyalty_points(self):
        self.assertEqual(loyalty_points(Decimal("42000")), 420)
        self.assertEqual(loyalty_points(Decimal("199.99")), 1)
        self.assertEqual(loyalty_points(Decimal("99.99")), 0)
        self.assertEqual(loyalty_points(Decimal("0")), 0)
        self.assertEqual(loyalty_points(Decimal("-500")), 0)
        self.assertEqual(loyalty_points(Decimal("1000"), Decimal("10")), 100)

    def test_format_money(self):
        self.assertEqual(format_money(Decimal("42000")), "Rp 42,000.00")
        self.assertEqual(format_money(Decimal("0.5")), "Rp 0.50")
        self.assertEqual(format_money(Decimal("-40")), "-Rp 40.00")
        self.assertEqual(format_money(Decimal("1234.5"), ""), "1,234.50")
        self.assertEqual(format_money(Decimal("3"), "$"), "$ 3.00")


class SettingsTestCase(unittest.TestCase):
    def tearDown(self):
        reload_settings()

    def test_defaults(self):
        settings = Settings()
        self.assertEqual(settings.currency_prefix, "Rp")
        self.assertEqual(settings.minor_unit, Decimal("0.01"))
        self.assertEqual(settings.points_unit, Decimal("100"))

    def test_from_env(self):
        env = {
            "POS_DB_PATH": "/tmp/x.sqlite",
            "POS_SEED_DATA": "0",
            "POS_CURRENCY_PREFIX": "IDR",
            "POS_POINTS_UNIT": "1000",
            "POS_COMMIT_TIMEOUT": "2.5",
        }
        with mock.patch.dict(os.environ, env):
            settings = reload_settings()
            self.assertIs(get_settings(), settings)
        self.assertEqual(settings.db_path, "/tmp/x.sqlite")
        self.assertFalse(settings.seed_data)
        self.assertEqual(settings.currency_prefix, "IDR")
        self.assertEqual(settings.points_unit, Decimal("1000"))
        self.assertEqual(settings.commit_timeout, 2.5)

    def test_from_env_rejects_garbage(self):
        with mock.patch.dict(os.environ, {"POS_MINOR_UNIT": "cents"}):
            with self.assertRaises(ValueError):
                Settings.from_env()
        with mock.patch.dict(os.environ, {"POS_POINTS_UNIT": "0"}):
            with self.assertRaises(ValueError):
                Settings.from_env()


if __name__ == "__main__":
    unittest.main()
