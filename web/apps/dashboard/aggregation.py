"""Read-only aggregation over the catalog and orders tables.

``DashboardReader`` runs seven independent queries and assembles a
``DashboardStats``. With more than one worker configured the queries run
on a thread pool; Django opens one connection per thread, so each worker
closes its own when its query is done.

``DashboardService`` puts the reader behind the cache-aside layer.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta, timezone as dt_timezone
from decimal import Decimal

from django.db import connection
from django.db.models import Count, F, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from apps.catalog.models import Customer, Product
from apps.orders.models import OrderLineItemModel, OrderModel

from .cache import CacheAside
from .schemas import DashboardStats

logger = logging.getLogger("dashboard")

STATS_KEY = "dashboard:stats"
KEY_PATTERN = "dashboard:*"

REVENUE_STATUSES = (OrderModel.Status.COMPLETED, OrderModel.Status.PROCESSING)
LIST_LIMIT = 5
SALES_WINDOW_DAYS = 7


def _display_name(user) -> str:
    return user.get_full_name() or user.get_username()


class DashboardReader:
    """Compute a ``DashboardStats`` snapshot straight from the database.

    Args:
        workers: Thread pool size. 1 runs the queries sequentially on the
            caller's connection.
        now: Clock used for the sales window.
    """

    def __init__(self, workers: int = 1, now=timezone.now):
        self.workers = max(1, workers)
        self.now = now

    def snapshot(self) -> DashboardStats:
        queries = {
            "total_products": self.total_products,
            "total_customers": self.total_customers,
            "total_orders": self.total_orders,
            "total_revenue": self.total_revenue,
            "low_stock_products": self.low_stock_products,
            "recent_orders": self.recent_orders,
            "top_products": self.top_products,
            "sales_by_day": self.sales_by_day,
        }
        results = self._run(queries)
        return DashboardStats(generated_at=self.now(), **results)

    def _run(self, queries: dict) -> dict:
        if self.workers == 1:
            return {name: fn() for name, fn in queries.items()}
        with ThreadPoolExecutor(max_workers=min(self.workers, len(queries)), thread_name_prefix="dashboard") as pool:
            futures = {name: pool.submit(self._in_worker, fn) for name, fn in queries.items()}
            return {name: f.result() for name, f in futures.items()}

    @staticmethod
    def _in_worker(fn):
        try:
            return fn()
        finally:
            connection.close()

    # ---- queries ----

    def total_products(self) -> int:
        return Product.objects.count()

    def total_customers(self) -> int:
        return Customer.objects.count()

    def total_orders(self) -> int:
        return OrderModel.objects.count()

    def total_revenue(self) -> Decimal:
        agg = OrderModel.objects.filter(status__in=REVENUE_STATUSES).aggregate(total=Sum("total"))
        return agg["total"] or Decimal("0.00")

    def low_stock_products(self) -> list:
        qs = (
            Product.objects.filter(stock__lte=F("min_stock"))
            .order_by("stock", "name")
            .values("id", "name", "sku", "stock", "min_stock")
        )
        return list(qs[:LIST_LIMIT])

    def recent_orders(self) -> list:
        qs = OrderModel.objects.select_related("customer", "created_by").order_by("-created_at")[:LIST_LIMIT]
        return [
            {
                "id": o.id,
                "number": o.number,
                "customer_name": o.customer.name,
                "created_by_name": _display_name(o.created_by),
                "status": o.status,
                "total": o.total,
                "created_at": o.created_at,
            }
            for o in qs
        ]

    def top_products(self) -> list:
        rows = list(
            OrderLineItemModel.objects.values("product_id")
            .annotate(total_sold=Sum("quantity"))
            .order_by("-total_sold", "product__sku")[:LIST_LIMIT]
        )
        products = Product.objects.in_bulk([r["product_id"] for r in rows])
        return [
            {
                "id": r["product_id"],
                "name": products[r["product_id"]].name,
                "sku": products[r["product_id"]].sku,
                "total_sold": r["total_sold"],
            }
            for r in rows
        ]

    def sales_by_day(self) -> list:
        since = self.now() - timedelta(days=SALES_WINDOW_DAYS)
        qs = (
            OrderModel.objects.filter(created_at__gte=since)
            .annotate(day=TruncDate("created_at", tzinfo=dt_timezone.utc))
            .values("day")
            .annotate(orders=Count("id"), total=Sum("total"))
            .order_by("-day")
        )
        return [{"day": r["day"], "orders": r["orders"], "total": r["total"]} for r in qs]


class DashboardService:
    """Serve dashboard stats through the cache.

    A hit returns the stored snapshot, which may be up to ``ttl`` seconds
    old. A miss, or any cache failure, computes a fresh one.
    """

    def __init__(self, reader: DashboardReader, cache: CacheAside, ttl: int = 300):
        self.reader = reader
        self.cache = cache
        self.ttl = ttl

    def stats(self) -> DashboardStats:
        return self.cache.fetch(
            STATS_KEY,
            self._compute,
            ttl=self.ttl,
            dumps=lambda s: s.model_dump_json(),
            loads=DashboardStats.model_validate_json,
        )

    def _compute(self) -> DashboardStats:
        logger.info("computing dashboard stats", extra={"workers": self.reader.workers})
        return self.reader.snapshot()
