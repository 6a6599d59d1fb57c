import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class OrderNumber(models.Model):
    """Allocator for order numbers.

    Each order inserts one row and takes its auto-increment id. The database
    hands out ids without locking existing rows, so concurrent creates never
    wait on each other or collide. Ids of rolled-back orders are skipped.
    """

    id = models.BigAutoField(primary_key=True)

    class Meta:
        db_table = "order_numbers"


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Internal incremental counter behind the human-readable number
    sequence = models.BigIntegerField(unique=True, editable=False, null=True)
    number = models.CharField(max_length=20, unique=True, editable=False, null=True)

    class Status(models.TextChoices):
        PENDING = "PENDING"
        PROCESSING = "PROCESSING"
        COMPLETED = "COMPLETED"
        CANCELLED = "CANCELLED"

    customer = models.ForeignKey("catalog.Customer", on_delete=models.PROTECT, related_name="orders")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    # Snapshot at creation, never recomputed
    total = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]

    def save(self, *args, **kwargs):
        # Assign sequence and number only on creation
        if self.sequence is None:
            self.sequence = OrderNumber.objects.create().pk
            self.number = f"ORD-{self.sequence:06d}"

        super().save(*args, **kwargs)


class OrderLineItemModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    # Unit price at order creation, decoupled from later product edits
    price = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        db_table = "order_items"
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="order_item_quantity_positive"),
        ]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    # 0 while the first request is still running
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(OrderModel, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
