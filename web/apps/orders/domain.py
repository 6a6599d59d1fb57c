"""Domain models, ports and services for orders.

This module holds the order value objects, the protocol definitions
(ports) the domain needs from storage, the ``OrderBuilder`` that validates
and prices a proposed order, and the ``OrderService`` that runs order
creation, status changes and deletion as all-or-nothing units.

Nothing here imports Django. The ORM-backed ports live in ``ledger`` and
``repository``; lock-protected in-memory ports live in ``adapters``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, ContextManager, Iterable, List, Optional, Protocol, Sequence
from uuid import UUID

from retailhub.errors import (
    Conflict,
    CustomerOrProductNotFound,
    InsufficientStock,
    InvalidStatus,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger("orders")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle states of an order."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        """Return the member for ``value`` or raise ``InvalidStatus``."""
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatus(f"unknown order status: {value!r}") from None


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class LineRequest:
    """A requested line: which product and how many units."""

    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class ProductSnapshot:
    """Point-in-time view of a product as read by the builder."""

    id: UUID
    name: str
    sku: str
    price: Decimal
    stock: int


@dataclass(frozen=True)
class LineItem:
    """A priced line of an unsaved order.

    ``price`` is the product's price when the order was built. It is never
    looked up again, so later price changes do not touch existing orders.
    """

    product_id: UUID
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class OrderDraft:
    """Validated, priced order ready to be persisted."""

    customer_id: UUID
    items: tuple
    total: Decimal
    notes: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING


@dataclass(frozen=True)
class OrderLine:
    """Persisted line item with product detail for display."""

    product_id: UUID
    product_name: str
    product_sku: str
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class OrderRecord:
    """A persisted order with customer, creator and line detail."""

    id: UUID
    number: str
    customer_id: UUID
    customer_name: str
    created_by_id: int
    created_by_name: str
    status: OrderStatus
    total: Decimal
    notes: Optional[str]
    created_at: datetime
    items: List[OrderLine] = field(default_factory=list)


# ---- Ports ----
class CatalogPort(Protocol):
    """Read access to customers and products."""

    def customer_exists(self, customer_id: UUID) -> bool:
        raise NotImplementedError()

    def products_by_ids(self, product_ids: Iterable[UUID]) -> dict:
        """Return ``{product_id: ProductSnapshot}`` for the ids that exist."""
        raise NotImplementedError()


class StockLedgerPort(Protocol):
    """Per-product quantity on hand.

    Both operations must be called inside a unit of work and must be
    linearizable per product.
    """

    def reserve(self, product_id: UUID, quantity: int) -> None:
        """Decrement stock if at least ``quantity`` is on hand.

        Raises:
            InsufficientStock: If stock is short, with the current level.
            CustomerOrProductNotFound: If the product does not exist.
        """
        raise NotImplementedError()

    def release(self, product_id: UUID, quantity: int) -> None:
        """Increment stock by ``quantity``. No upper bound."""
        raise NotImplementedError()


class OrderStorePort(Protocol):
    """Persistence for orders and their line items."""

    def add(self, draft: OrderDraft, created_by: int) -> UUID:
        raise NotImplementedError()

    def get(self, order_id: UUID) -> Optional[OrderRecord]:
        raise NotImplementedError()

    def set_status(self, order_id: UUID, status: OrderStatus, *, expected: OrderStatus) -> bool:
        """Write ``status`` only if the stored status is still ``expected``.

        Returns:
            True if a row changed, False if the order moved in the meantime.
        """
        raise NotImplementedError()

    def delete(self, order_id: UUID) -> bool:
        raise NotImplementedError()


# ---- Domain services ----
class OrderBuilder:
    """Validate a proposed order and freeze its prices.

    The stock check here is a fast-fail only. Correctness rests on the
    ledger's conditional decrement inside the coordinator's unit of work.
    """

    def __init__(self, catalog: CatalogPort):
        self.catalog = catalog

    def build(self, customer_id: UUID, lines: Sequence[LineRequest], notes: Optional[str] = None) -> OrderDraft:
        """Return an unsaved ``OrderDraft`` for the request.

        Args:
            customer_id: Customer placing the order.
            lines: Requested products and quantities.
            notes: Free text stored with the order.

        Returns:
            OrderDraft: Status PENDING, line items with frozen prices and
            their summed total.

        Raises:
            ValidationFailed: No lines, or a non-positive quantity.
            CustomerOrProductNotFound: Unknown customer or product.
            InsufficientStock: First line whose quantity exceeds stock.
        """
        if not lines:
            raise ValidationFailed("order has no items")
        for line in lines:
            if line.quantity <= 0:
                raise ValidationFailed(f"quantity must be positive for product {line.product_id}")

        if not self.catalog.customer_exists(customer_id):
            raise CustomerOrProductNotFound(f"customer {customer_id} not found")

        requested = {line.product_id for line in lines}
        products = self.catalog.products_by_ids(requested)
        if len(products) != len(requested):
            missing = sorted(str(pid) for pid in requested - set(products))
            raise CustomerOrProductNotFound(f"products not found: {', '.join(missing)}")

        for line in lines:
            product = products[line.product_id]
            if product.stock < line.quantity:
                raise InsufficientStock(product.name, product.stock)

        items = tuple(LineItem(line.product_id, line.quantity, products[line.product_id].price) for line in lines)
        total = sum((item.subtotal for item in items), Decimal("0"))
        return OrderDraft(customer_id=customer_id, items=items, total=total, notes=notes or None)


class OrderService:
    """Runs order writes as atomic units over the ledger and the store.

    ``atomic`` is a factory for the unit of work (``transaction.atomic``
    for the ORM). ``on_change`` is called after every successful write so
    read caches can be invalidated.
    """

    def __init__(
        self,
        catalog: CatalogPort,
        ledger: StockLedgerPort,
        store: OrderStorePort,
        atomic: Callable[[], ContextManager],
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.builder = OrderBuilder(catalog)
        self.ledger = ledger
        self.store = store
        self.atomic = atomic
        self.on_change = on_change

    def create_order(
        self,
        customer_id: UUID,
        lines: Sequence[LineRequest],
        created_by: int,
        notes: Optional[str] = None,
    ) -> OrderRecord:
        """Create an order and reserve its stock, all or nothing.

        Raises:
            ValidationFailed, CustomerOrProductNotFound: From the builder.
            InsufficientStock: From the builder's pre-check, or when a
                concurrent order consumed the stock before the reservation.
                Nothing is persisted in either case.
        """
        draft = self.builder.build(customer_id, lines, notes)

        try:
            with self.atomic():
                order_id = self.store.add(draft, created_by)
                for item in draft.items:
                    self.ledger.reserve(item.product_id, item.quantity)
        except InsufficientStock as e:
            logger.warning(
                "reservation failed, order rolled back",
                extra={"customer_id": str(customer_id), "product": e.product_name, "available": e.available},
            )
            raise

        record = self.store.get(order_id)
        logger.info(
            "order created",
            extra={"order_id": str(order_id), "number": record.number, "total": str(record.total), "lines": len(record.items)},
        )
        self._changed()
        return record

    def update_status(self, order_id: UUID, status) -> OrderRecord:
        """Move an order to ``status``.

        Re-applying the current status is a no-op. Cancelling releases
        every line back to the ledger in the same unit of work as the
        status write, and only when that write actually changed the row,
        so stock is released once however often cancel is requested.

        Raises:
            InvalidStatus: ``status`` is not a known value.
            NotFound: No such order.
            InvalidTransition: The lifecycle does not allow the move.
            Conflict: The order changed concurrently to another status.
        """
        target = OrderStatus.parse(status)
        record = self.store.get(order_id)
        if record is None:
            raise NotFound(f"order {order_id} not found")

        current = OrderStatus(record.status)
        if current == target:
            return record
        if not can_transition(current, target):
            raise InvalidTransition(current.value, target.value)

        with self.atomic():
            changed = self.store.set_status(order_id, target, expected=current)
            if changed and target == OrderStatus.CANCELLED:
                for line in record.items:
                    self.ledger.release(line.product_id, line.quantity)

        if not changed:
            latest = self.store.get(order_id)
            if latest is None:
                raise NotFound(f"order {order_id} not found")
            if OrderStatus(latest.status) == target:
                return latest
            raise Conflict(f"order {order_id} changed concurrently", code="CONCURRENT_UPDATE")

        logger.info(
            "order status changed",
            extra={"order_id": str(order_id), "from": current.value, "to": target.value},
        )
        self._changed()
        return self.store.get(order_id)

    def delete_order(self, order_id: UUID) -> None:
        """Remove an order and its lines. Stock is not restored."""
        with self.atomic():
            deleted = self.store.delete(order_id)
        if not deleted:
            raise NotFound(f"order {order_id} not found")
        logger.info("order deleted", extra={"order_id": str(order_id), "stock_restored": False})
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()
