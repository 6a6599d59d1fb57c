"""ORM-backed catalog reader and stock ledger.

The ledger never reads stock and then writes it back. Each reservation is
one conditional ``UPDATE ... SET stock = stock - q WHERE id = ? AND
stock >= q``; the row lock taken by that statement serializes concurrent
reservations of the same product, and PostgreSQL re-checks the predicate
against the committed value once a competing transaction finishes. Zero
rows updated means the reservation lost.
"""

from typing import Iterable
from uuid import UUID

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.catalog.models import Customer, Product
from retailhub.errors import CustomerOrProductNotFound, InsufficientStock

from .domain import CatalogPort, ProductSnapshot, StockLedgerPort


class ORMCatalog(CatalogPort):
    """Reads customers and product snapshots through the Django ORM."""

    def customer_exists(self, customer_id: UUID) -> bool:
        return Customer.objects.filter(pk=customer_id).exists()

    def products_by_ids(self, product_ids: Iterable[UUID]) -> dict:
        rows = Product.objects.filter(pk__in=list(product_ids)).values("id", "name", "sku", "price", "stock")
        return {r["id"]: ProductSnapshot(**r) for r in rows}


class ORMStockLedger(StockLedgerPort):
    """Stock ledger over the ``products`` table."""

    def reserve(self, product_id: UUID, quantity: int) -> None:
        """Atomically decrement stock when enough is on hand.

        Must run inside ``transaction.atomic`` so a failure later in the
        same unit of work rolls the decrement back.

        Raises:
            InsufficientStock: With the product name and the stock level
                seen after the failed update.
            CustomerOrProductNotFound: If the product no longer exists.
        """
        self._require_atomic()
        updated = Product.objects.filter(pk=product_id, stock__gte=quantity).update(
            stock=F("stock") - quantity,
            updated_at=timezone.now(),
        )
        if updated:
            return

        row = Product.objects.filter(pk=product_id).values("name", "stock").first()
        if row is None:
            raise CustomerOrProductNotFound(f"product {product_id} not found")
        raise InsufficientStock(row["name"], row["stock"])

    def release(self, product_id: UUID, quantity: int) -> None:
        self._require_atomic()
        updated = Product.objects.filter(pk=product_id).update(
            stock=F("stock") + quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            raise CustomerOrProductNotFound(f"product {product_id} not found")

    @staticmethod
    def _require_atomic() -> None:
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("stock ledger writes must run inside transaction.atomic()")
