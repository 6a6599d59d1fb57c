"""Pydantic schemas for the catalog API."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    created_at: datetime


class ProductIn(BaseModel):
    """Create or replace a product.

    ``stock`` set here is a direct catalog edit; order flows only move it
    through the stock ledger.
    """

    sku: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    stock: int = Field(default=0, ge=0)
    min_stock: int = Field(default=0, ge=0)
    category_id: UUID


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sku: str
    name: str
    price: Decimal
    stock: int
    min_stock: int
    is_low_stock: bool
    category_id: UUID
    category_name: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, p) -> "ProductOut":
        return cls(
            id=p.id,
            sku=p.sku,
            name=p.name,
            price=p.price,
            stock=p.stock,
            min_stock=p.min_stock,
            is_low_stock=p.is_low_stock,
            category_id=p.category_id,
            category_name=p.category.name,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class CustomerIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=254)
    phone: Optional[str] = Field(default=None, max_length=40)
    address: Optional[str] = Field(default=None, max_length=300)

    @field_validator("email", "phone", "address", mode="before")
    @classmethod
    def blanks_to_none(cls, v):
        return _blank_to_none(v) if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        try:
            validate_email(v)
        except DjangoValidationError:
            raise ValueError("invalid email address") from None
        return v.lower()


class CustomerOrderSummary(BaseModel):
    id: UUID
    number: Optional[str] = None
    status: str
    total: Decimal
    created_at: datetime


class CustomerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime


class CustomerDetailOut(CustomerOut):
    orders: List[CustomerOrderSummary] = []
