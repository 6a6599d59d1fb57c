"""Pydantic schemas for orders.

Request schemas validate the JSON bodies of the orders API; read schemas
render ``OrderRecord`` objects (``from_attributes``) into responses.
Decimals are emitted as strings in JSON mode so money never passes
through a float.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import LineRequest, OrderStatus


class OrderItemIn(BaseModel):
    """Input schema for a single order line.

    Attributes:
        product_id: Product to order.
        quantity: Positive number of units.
    """

    product_id: UUID
    quantity: int = Field(gt=0)

    def to_domain(self) -> LineRequest:
        return LineRequest(product_id=self.product_id, quantity=self.quantity)


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        customer_id: Customer the order belongs to.
        items: At least one ``OrderItemIn``.
        notes: Optional free text. Blank notes are stored as null.
    """

    customer_id: UUID
    items: List[OrderItemIn] = Field(min_length=1)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("notes")
    @classmethod
    def blank_notes_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class UpdateStatusDTO(BaseModel):
    """Body of a status change. The value itself is checked by the domain."""

    status: str


class OrderLineReadDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: UUID
    product_name: str
    product_sku: str
    quantity: int
    price: Decimal
    subtotal: Decimal


class OrderReadDTO(BaseModel):
    """Order as returned by the API, with customer, creator and lines."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    number: str
    customer_id: UUID
    customer_name: str
    created_by_id: int
    created_by_name: str
    status: OrderStatus
    total: Decimal
    notes: Optional[str] = None
    created_at: datetime
    items: List[OrderLineReadDTO]
