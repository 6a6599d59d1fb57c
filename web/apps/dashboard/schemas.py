"""Pydantic schemas for the dashboard snapshot.

``DashboardStats`` is both the API response and the cached payload: it is
stored with ``model_dump_json`` and read back with ``model_validate_json``,
so a cache hit yields the same object a fresh computation would.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class LowStockProduct(BaseModel):
    id: UUID
    name: str
    sku: str
    stock: int
    min_stock: int


class RecentOrder(BaseModel):
    id: UUID
    number: Optional[str] = None
    customer_name: str
    created_by_name: str
    status: str
    total: Decimal
    created_at: datetime


class TopProduct(BaseModel):
    id: UUID
    name: str
    sku: str
    total_sold: int


class DailySales(BaseModel):
    day: date
    orders: int
    total: Decimal


class DashboardStats(BaseModel):
    """Aggregated figures shown on the dashboard.

    Attributes:
        total_revenue: Sum of order totals in COMPLETED or PROCESSING.
        sales_by_day: Trailing seven days, newest first.
        generated_at: When the snapshot was computed, not when it was read.
    """

    total_products: int
    total_customers: int
    total_orders: int
    total_revenue: Decimal
    low_stock_products: List[LowStockProduct]
    recent_orders: List[RecentOrder]
    top_products: List[TopProduct]
    sales_by_day: List[DailySales]
    generated_at: datetime
