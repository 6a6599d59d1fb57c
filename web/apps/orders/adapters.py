"""In-process adapters for the orders domain ports.

These adapters implement ``CatalogPort``, ``StockLedgerPort`` and
``OrderStorePort`` over plain dictionaries guarded by one re-entrant lock.
``InMemoryStore.atomic`` holds that lock for the whole unit of work and
restores a snapshot if the block raises, which gives the same
all-or-nothing and per-product serialization guarantees as the ORM
adapters without a database. They back the domain unit tests and are
handy for local experiments.
"""

import copy
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from retailhub.errors import CustomerOrProductNotFound, InsufficientStock

from .domain import (
    CatalogPort,
    OrderDraft,
    OrderLine,
    OrderRecord,
    OrderService,
    OrderStatus,
    OrderStorePort,
    ProductSnapshot,
    StockLedgerPort,
)


@dataclass
class StockItem:
    id: uuid.UUID
    name: str
    sku: str
    price: Decimal
    stock: int
    min_stock: int = 0


class InMemoryStore:
    """Shared state for the in-memory adapters."""

    def __init__(self):
        self.lock = threading.RLock()
        self.products: dict = {}
        self.customers: dict = {}
        self.users: dict = {}
        self.orders: dict = {}
        self.sequence = 0

    def add_product(self, name: str, sku: str, price, stock: int, min_stock: int = 0) -> uuid.UUID:
        pid = uuid.uuid4()
        self.products[pid] = StockItem(pid, name, sku, Decimal(str(price)), stock, min_stock)
        return pid

    def add_customer(self, name: str) -> uuid.UUID:
        cid = uuid.uuid4()
        self.customers[cid] = name
        return cid

    def add_user(self, user_id: int, name: str) -> int:
        self.users[user_id] = name
        return user_id

    def stock_of(self, product_id: uuid.UUID) -> int:
        with self.lock:
            return self.products[product_id].stock

    @contextmanager
    def atomic(self):
        """Serialize the block and roll state back if it raises."""
        with self.lock:
            saved = copy.deepcopy((self.products, self.orders, self.sequence))
            try:
                yield
            except BaseException:
                self.products, self.orders, self.sequence = saved
                raise


class InMemoryCatalog(CatalogPort):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def customer_exists(self, customer_id) -> bool:
        return customer_id in self.store.customers

    def products_by_ids(self, product_ids: Iterable) -> dict:
        with self.store.lock:
            found = [self.store.products[pid] for pid in product_ids if pid in self.store.products]
            return {p.id: ProductSnapshot(p.id, p.name, p.sku, p.price, p.stock) for p in found}


class InMemoryStockLedger(StockLedgerPort):
    """Compare-and-decrement under the store lock."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    def _item(self, product_id) -> StockItem:
        item = self.store.products.get(product_id)
        if item is None:
            raise CustomerOrProductNotFound(f"product {product_id} not found")
        return item

    def reserve(self, product_id, quantity: int) -> None:
        with self.store.lock:
            item = self._item(product_id)
            if item.stock < quantity:
                raise InsufficientStock(item.name, item.stock)
            item.stock -= quantity

    def release(self, product_id, quantity: int) -> None:
        with self.store.lock:
            self._item(product_id).stock += quantity


class InMemoryOrderStore(OrderStorePort):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def add(self, draft: OrderDraft, created_by: int) -> uuid.UUID:
        with self.store.lock:
            self.store.sequence += 1
            oid = uuid.uuid4()
            products = self.store.products
            self.store.orders[oid] = OrderRecord(
                id=oid,
                number=f"ORD-{self.store.sequence:06d}",
                customer_id=draft.customer_id,
                customer_name=self.store.customers[draft.customer_id],
                created_by_id=created_by,
                created_by_name=self.store.users.get(created_by, str(created_by)),
                status=draft.status,
                total=draft.total,
                notes=draft.notes,
                created_at=datetime.now(timezone.utc),
                items=[
                    OrderLine(it.product_id, products[it.product_id].name, products[it.product_id].sku, it.quantity, it.price)
                    for it in draft.items
                ],
            )
            return oid

    def get(self, order_id) -> Optional[OrderRecord]:
        with self.store.lock:
            rec = self.store.orders.get(order_id)
            return copy.deepcopy(rec) if rec else None

    def set_status(self, order_id, status: OrderStatus, *, expected: OrderStatus) -> bool:
        with self.store.lock:
            rec = self.store.orders.get(order_id)
            if rec is None or rec.status != expected:
                return False
            rec.status = status
            return True

    def delete(self, order_id) -> bool:
        with self.store.lock:
            return self.store.orders.pop(order_id, None) is not None


def in_memory_service(store: InMemoryStore, on_change=None) -> OrderService:
    """Return an ``OrderService`` wired to in-memory adapters over ``store``."""
    return OrderService(
        catalog=InMemoryCatalog(store),
        ledger=InMemoryStockLedger(store),
        store=InMemoryOrderStore(store),
        atomic=store.atomic,
        on_change=on_change,
    )
