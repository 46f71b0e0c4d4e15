# turns a cart into a committed sale
from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from db.models import DraftLine, PaymentMethod, SaleDraft, SaleTransaction
from pos.cart import Cart
from pos.errors import (
    CheckoutError,
    CheckoutInProgress,
    EmptyCart,
    InsufficientStock,
    InvalidPaymentMethod,
    PersistenceFailure,
    StoreNotSelected,
    UnknownCustomer,
    UnknownProduct,
)
from pos.pricing import Amount, Totals, compute_totals, loyalty_points
from pos.storage import StorageClient
from utils.logger import get_logger
from utils.messages import (
    CheckoutFailedMessage,
    CheckoutListener,
    CheckoutMessage,
    SaleCommittedMessage,
)
from utils.settings import get_settings

_logger = get_logger(__name__)


class CheckoutState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


def _payment_method(raw) -> PaymentMethod:
    if isinstance(raw, PaymentMethod):
        return raw
    try:
        return PaymentMethod(str(raw).strip().lower())
    except ValueError:
        raise InvalidPaymentMethod(raw) from None


class CheckoutCoordinator:
    """
    Validates a cart against current stock and commits it as one sale.

    One coordinator serves one cashier session. Each call to checkout() walks
    IDLE -> VALIDATING -> COMMITTING -> COMMITTED, or ends in FAILED with the
    cart left exactly as it was. Only a committed sale takes its lines off
    the cart; anything added while the commit was in flight stays.

    The storage client is injected; the commit itself (sale row, lines,
    conditional stock decrements, loyalty update) is delegated to its atomic
    commit_sale, which is where concurrent sessions serialize.
    """

    def __init__(
        self,
        storage: StorageClient,
        commit_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._storage = storage
        self._commit_timeout = (
            commit_timeout if commit_timeout is not None else get_settings().commit_timeout
        )
        self._clock = clock
        self._listeners: List[CheckoutListener] = []
        self.state = CheckoutState.IDLE
        self.last_error: Optional[CheckoutError] = None
        self.last_sale: Optional[SaleTransaction] = None

    # ---------------------------
    # Listeners
    # ---------------------------

    def subscribe(self, listener: CheckoutListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, message: CheckoutMessage) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                # the sale outcome is already final, a broken listener can't change it
                _logger.exception(f"Checkout listener {listener!r} failed.")

    # ---------------------------
    # Checkout
    # ---------------------------

    @property
    def busy(self) -> bool:
        return self.state in (CheckoutState.VALIDATING, CheckoutState.COMMITTING)

    def preview(self, cart: Cart, discount: Amount = 0, tax: Amount = 0) -> Totals:
        """Totals the cashier would be charged, without touching storage."""
        return compute_totals(cart, discount, tax)

    async def checkout(
        self,
        cart: Cart,
        store_id: Optional[str],
        cashier_id: str,
        customer_id: Optional[str] = None,
        discount: Amount = 0,
        tax: Amount = 0,
        payment_method="cash",
    ) -> SaleTransaction:
        """
        Commit the cart as a sale and take the sold lines off it.

        Raises a CheckoutError subclass on any failure; in that case the cart,
        product stock and customer totals are unchanged.
        """
        if self.busy:
            raise CheckoutInProgress()

        self.state = CheckoutState.VALIDATING
        self.last_error = None
        try:
            draft = await self._validate(
                cart, store_id, cashier_id, customer_id, discount, tax, payment_method
            )
            self.state = CheckoutState.COMMITTING
            sale = await self._commit(draft)
        except CheckoutError as err:
            self._fail(err, store_id, cashier_id)
            raise
        except Exception:
            # a bug, not a checkout outcome; don't leave the coordinator busy
            self.state = CheckoutState.FAILED
            raise
        except asyncio.CancelledError:
            # nothing was accepted by storage, or storage rolled it back
            self.state = CheckoutState.IDLE
            raise

        cart.deduct(draft.lines)
        self.state = CheckoutState.COMMITTED
        self.last_sale = sale
        _logger.info(
            f"Sale {sale.number} committed: {len(sale.lines)} lines, total {sale.total}"
            f" ({sale.payment_method.value}) by {cashier_id} at {store_id}."
        )
        self._emit(SaleCommittedMessage(sale, store_id, cashier_id))
        return sale

    async def _validate(
        self,
        cart: Cart,
        store_id: Optional[str],
        cashier_id: str,
        customer_id: Optional[str],
        discount: Amount,
        tax: Amount,
        payment_method,
    ) -> SaleDraft:
        # local checks first, no storage calls for these
        if cart.is_empty():
            raise EmptyCart()
        if not store_id:
            raise StoreNotSelected()
        totals = compute_totals(cart, discount, tax)
        method = _payment_method(payment_method)

        lines = cart.lines
        products = await asyncio.gather(
            *(self._storage.get_product(line.product_id) for line in lines)
        )
        for line, product in zip(lines, products):
            if product is None or product.store_id != store_id:
                raise UnknownProduct(line.product_id)
            if line.quantity > product.stock:
                raise InsufficientStock(line.product_id, line.quantity, product.stock)

        if customer_id is not None:
            if await self._storage.get_customer(customer_id) is None:
                raise UnknownCustomer(customer_id)

        return SaleDraft(
            store_id=store_id,
            cashier_id=cashier_id,
            customer_id=customer_id,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            total=totals.total,
            payment_method=method,
            points_earned=loyalty_points(totals.total) if customer_id else 0,
            created_at=self._clock(),
            lines=tuple(
                DraftLine(
                    product_id=line.product_id,
                    product_name=line.product_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in lines
            ),
        )

    async def _commit(self, draft: SaleDraft) -> SaleTransaction:
        try:
            return await asyncio.wait_for(
                self._storage.commit_sale(draft), timeout=self._commit_timeout
            )
        except asyncio.TimeoutError as exc:
            raise PersistenceFailure(
                f"Saving the sale timed out after {self._commit_timeout:g}s; nothing was recorded."
            ) from exc
        except CheckoutError:
            raise
        except Exception as exc:
            _logger.exception("Unexpected storage error while committing the sale.")
            raise PersistenceFailure() from exc

    def _fail(self, err: CheckoutError, store_id: Optional[str], cashier_id: str) -> None:
        self.state = CheckoutState.FAILED
        self.last_error = err
        if isinstance(err, PersistenceFailure):
            _logger.error(f"Checkout failed: {err.message}")
        else:
            _logger.warning(f"Checkout rejected: {err.message}")
        self._emit(CheckoutFailedMessage(err, store_id or "", cashier_id))
