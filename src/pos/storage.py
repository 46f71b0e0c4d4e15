# storage collaborator contract and the sqlite implementation
from typing import Optional, Protocol

import aiosqlite

from db import crud
from db.models import Customer, Product, SaleDraft, SaleTransaction
from pos.errors import InsufficientStock, PersistenceFailure, UnknownCustomer
from utils.logger import get_logger

_logger = get_logger(__name__)


class StorageClient(Protocol):
    """
    What the checkout path needs from persistence.

    commit_sale must be all-or-nothing: either the transaction, every line,
    every conditional stock decrement and the customer update persist
    together, or none of them do. A failed decrement surfaces as
    InsufficientStock, anything else as PersistenceFailure.
    """

    async def get_product(self, product_id: str) -> Optional[Product]: ...

    async def get_customer(self, customer_id: str) -> Optional[Customer]: ...

    async def commit_sale(self, draft: SaleDraft) -> SaleTransaction: ...


class SqliteStorageClient:
    """StorageClient over the aiosqlite-backed db package."""

    async def get_product(self, product_id: str) -> Optional[Product]:
        try:
            return await crud.get_product(product_id)
        except (aiosqlite.Error, OSError) as exc:
            raise PersistenceFailure(f"Could not read product {product_id}.") from exc

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        try:
            return await crud.get_customer(customer_id)
        except (aiosqlite.Error, OSError) as exc:
            raise PersistenceFailure(f"Could not read customer {customer_id}.") from exc

    async def commit_sale(self, draft: SaleDraft) -> SaleTransaction:
        try:
            return await crud.commit_sale(draft)
        except crud.StockConflict as exc:
            raise InsufficientStock(exc.product_id, exc.requested, exc.available) from exc
        except LookupError as exc:
            raise UnknownCustomer(draft.customer_id) from exc
        except (aiosqlite.Error, OSError) as exc:
            _logger.error(f"Sale commit failed: {exc}")
            raise PersistenceFailure() from exc
