"""
Checkout error taxonomy.

Every error carries a ``message`` meant to be shown to the cashier as is.
"""

from typing import Optional


class CheckoutError(Exception):
    """Base class for everything the checkout path reports to the cashier."""

    default_message = "Checkout failed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EmptyCart(CheckoutError):
    default_message = "Cart is empty."


class StoreNotSelected(CheckoutError):
    default_message = "Please select a store."


class InvalidQuantity(CheckoutError):
    def __init__(self, quantity):
        super().__init__(f"Quantity must be a whole number above zero, got {quantity!r}.")
        self.quantity = quantity


class InvalidNumericInput(CheckoutError):
    def __init__(self, field: str, raw):
        super().__init__(f"{field.capitalize()} must be a non-negative amount, got {raw!r}.")
        self.field = field
        self.raw = raw


class InvalidPaymentMethod(CheckoutError):
    def __init__(self, raw):
        super().__init__(f"Unsupported payment method {raw!r}.")
        self.raw = raw


class InsufficientStock(CheckoutError):
    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Not enough stock for {product_id}: requested {requested}, available {available}."
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class UnknownProduct(CheckoutError):
    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} is not sold in this store.")
        self.product_id = product_id


class UnknownCustomer(CheckoutError):
    def __init__(self, customer_id: str):
        super().__init__(f"Customer {customer_id} was not found.")
        self.customer_id = customer_id


class CheckoutInProgress(CheckoutError):
    default_message = "A checkout is already being processed."


class PersistenceFailure(CheckoutError):
    default_message = "The sale could not be saved. Nothing was charged; please retry."
