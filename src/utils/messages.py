from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Union

if TYPE_CHECKING:
    from db.models import SaleTransaction
    from pos.errors import CheckoutError


@dataclass(frozen=True)
class SaleCommittedMessage:
    """
    Fired once a checkout committed; the cart has already been cleared.
    Listened to by whatever shows the receipt and refreshes stock.
    """

    transaction: "SaleTransaction"
    store_id: str
    cashier_id: str


@dataclass(frozen=True)
class CheckoutFailedMessage:
    """
    Fired when a checkout attempt ended in an error; the cart is untouched
    so the cashier can adjust and retry.
    """

    error: "CheckoutError"
    store_id: str
    cashier_id: str


CheckoutMessage = Union[SaleCommittedMessage, CheckoutFailedMessage]
CheckoutListener = Callable[[CheckoutMessage], None]
