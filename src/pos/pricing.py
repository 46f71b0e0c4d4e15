# pure money arithmetic for the checkout path
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from pos.cart import Cart
from pos.errors import InvalidNumericInput
from utils.settings import get_settings

Amount = Union[Decimal, int, str]


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal


def parse_amount(raw, field: str) -> Decimal:
    """
    Validate a user-entered monetary amount.

    Accepts Decimal, int, float or a numeric string (surrounding whitespace is
    ignored; an empty string counts as zero). Anything non-numeric, negative,
    not finite, or finer than the currency's minor unit raises
    InvalidNumericInput; nothing is coerced to zero.
    """
    if raw is None or isinstance(raw, bool):
        raise InvalidNumericInput(field, raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return Decimal("0")
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise InvalidNumericInput(field, raw) from None
    elif isinstance(raw, (Decimal, int)):
        value = Decimal(raw)
    elif isinstance(raw, float):
        # go through str so 0.1 stays 0.1
        value = Decimal(str(raw))
    else:
        raise InvalidNumericInput(field, raw)

    if not value.is_finite() or value < 0:
        raise InvalidNumericInput(field, raw)
    # no fractions of the minor unit, e.g. at most two decimals for Rp
    unit = get_settings().minor_unit
    try:
        fractional = value % unit != 0
    except InvalidOperation:
        # more digits than the decimal context can hold at minor-unit precision
        raise InvalidNumericInput(field, raw) from None
    if fractional:
        raise InvalidNumericInput(field, raw)
    return value


def round_money(amount: Decimal, minor_unit: Optional[Decimal] = None) -> Decimal:
    """Round half up to the currency's minor unit."""
    unit = minor_unit if minor_unit is not None else get_settings().minor_unit
    return amount.quantize(unit, rounding=ROUND_HALF_UP)


def compute_totals(cart: Cart, discount: Amount = 0, tax: Amount = 0) -> Totals:
    """
    total = subtotal - discount + tax, rounded once at the end.

    The total is not clamped: a discount larger than subtotal + tax yields a
    negative total.
    """
    discount_value = parse_amount(discount, "discount")
    tax_value = parse_amount(tax, "tax")
    subtotal = cart.subtotal()
    try:
        total = round_money(subtotal - discount_value + tax_value)
    except InvalidOperation:
        if tax_value >= discount_value:
            raise InvalidNumericInput("tax", tax) from None
        raise InvalidNumericInput("discount", discount) from None
    return Totals(
        subtotal=subtotal,
        discount=discount_value,
        tax=tax_value,
        total=total,
    )


def loyalty_points(total: Decimal, points_unit: Optional[Decimal] = None) -> int:
    """One point per full points_unit spent; nothing for a non-positive total."""
    unit = points_unit if points_unit is not None else get_settings().points_unit
    if total <= 0:
        return 0
    return int((total / unit).to_integral_value(rounding=ROUND_FLOOR))


def format_money(amount: Decimal, prefix: Optional[str] = None) -> str:
    """'Rp 42,000.00' style, digits follow the minor unit."""
    settings = get_settings()
    prefix = settings.currency_prefix if prefix is None else prefix
    rounded = round_money(amount, settings.minor_unit)
    places = max(-settings.minor_unit.as_tuple().exponent, 0)
    sign = "-" if rounded < 0 else ""
    text = f"{abs(rounded):,.{places}f}"
    return f"{sign}{prefix} {text}" if prefix else f"{sign}{text}"
