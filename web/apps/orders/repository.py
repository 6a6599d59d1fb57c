"""Repository layer for persisting orders.

``OrderRepository`` implements ``OrderStorePort`` on top of the Django
ORM and maps rows back into domain ``OrderRecord`` objects, so the domain
and the views never handle ORM instances directly.
"""

from typing import Optional
from uuid import UUID

from django.db.models import QuerySet

from .domain import OrderDraft, OrderLine, OrderRecord, OrderStatus, OrderStorePort
from .models import OrderLineItemModel, OrderModel


def _display_name(user) -> str:
    return user.get_full_name() or user.get_username()


def to_record(obj: OrderModel) -> OrderRecord:
    """Map an ``OrderModel`` (with related rows loaded) to an ``OrderRecord``."""
    return OrderRecord(
        id=obj.id,
        number=obj.number,
        customer_id=obj.customer_id,
        customer_name=obj.customer.name,
        created_by_id=obj.created_by_id,
        created_by_name=_display_name(obj.created_by),
        status=OrderStatus(obj.status),
        total=obj.total,
        notes=obj.notes,
        created_at=obj.created_at,
        items=[
            OrderLine(
                product_id=it.product_id,
                product_name=it.product.name,
                product_sku=it.product.sku,
                quantity=it.quantity,
                price=it.price,
            )
            for it in obj.items.all()
        ],
    )


class OrderRepository(OrderStorePort):
    """Persist and load orders with their line items."""

    def _detail_qs(self) -> QuerySet:
        return OrderModel.objects.select_related("customer", "created_by").prefetch_related("items__product")

    def add(self, draft: OrderDraft, created_by: int) -> UUID:
        """Insert the order row and its line items.

        Args:
            draft: Priced order produced by the builder.
            created_by: Primary key of the creating user.

        Returns:
            The new order's UUID.
        """
        obj = OrderModel.objects.create(
            customer_id=draft.customer_id,
            created_by_id=created_by,
            total=draft.total,
            status=draft.status.value,
            notes=draft.notes,
        )
        OrderLineItemModel.objects.bulk_create(
            [
                OrderLineItemModel(order=obj, product_id=it.product_id, quantity=it.quantity, price=it.price)
                for it in draft.items
            ]
        )
        return obj.id

    def get(self, order_id: UUID) -> Optional[OrderRecord]:
        obj = self._detail_qs().filter(pk=order_id).first()
        return to_record(obj) if obj else None

    def set_status(self, order_id: UUID, status: OrderStatus, *, expected: OrderStatus) -> bool:
        updated = OrderModel.objects.filter(pk=order_id, status=expected.value).update(status=status.value)
        return updated == 1

    def delete(self, order_id: UUID) -> bool:
        deleted, _ = OrderModel.objects.filter(pk=order_id).delete()
        return deleted > 0

    def list(self, status: Optional[OrderStatus] = None) -> QuerySet:
        """Return orders newest first, optionally filtered by status."""
        qs = self._detail_qs().order_by("-created_at")
        if status is not None:
            qs = qs.filter(status=status.value)
        return qs
