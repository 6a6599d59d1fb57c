"""Dashboard aggregates computed straight from the database."""

from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.dashboard.aggregation import DashboardReader
from apps.orders import providers as order_providers
from apps.orders.domain import LineRequest
from apps.orders.models import OrderModel


@pytest.fixture
def orders(user, customer, make_product):
    service = order_providers.get_order_service()
    low = make_product(name="Low", sku="LOW-1", price="5.00", stock=3, min_stock=5)
    hot = make_product(name="Hot", sku="HOT-1", price="10.00", stock=100)
    make_product(name="Plenty", sku="PLN-1", stock=50, min_stock=1)

    a = service.create_order(customer.id, [LineRequest(hot.id, 5)], created_by=user.pk)
    b = service.create_order(customer.id, [LineRequest(hot.id, 2), LineRequest(low.id, 1)], created_by=user.pk)
    c = service.create_order(customer.id, [LineRequest(low.id, 1)], created_by=user.pk)
    service.update_status(a.id, "COMPLETED")
    service.update_status(b.id, "PROCESSING")
    service.update_status(c.id, "CANCELLED")
    return {"low": low, "hot": hot, "orders": [a, b, c]}


@pytest.mark.django_db
def test_snapshot_counts_and_revenue(orders):
    stats = DashboardReader().snapshot()

    assert stats.total_products == 3
    assert stats.total_customers == 1
    assert stats.total_orders == 3
    # completed 50.00 + processing 25.00; the cancelled order is excluded
    assert stats.total_revenue == Decimal("75.00")


@pytest.mark.django_db
def test_snapshot_lists(orders):
    stats = DashboardReader().snapshot()

    assert [p.sku for p in stats.low_stock_products] == ["LOW-1"]
    assert stats.low_stock_products[0].stock == 2
    assert [(p.sku, p.total_sold) for p in stats.top_products] == [("HOT-1", 7), ("LOW-1", 2)]
    assert len(stats.recent_orders) == 3
    assert stats.recent_orders[0].created_by_name == "Carla Clerk"


@pytest.mark.django_db
def test_sales_by_day_covers_trailing_week(orders):
    old = OrderModel.objects.get(pk=orders["orders"][2].id)
    OrderModel.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=10))

    stats = DashboardReader().snapshot()

    assert sum(d.orders for d in stats.sales_by_day) == 2
    assert sum(d.total for d in stats.sales_by_day) == Decimal("75.00")


@pytest.mark.django_db
def test_empty_database():
    stats = DashboardReader().snapshot()
    assert stats.total_revenue == Decimal("0.00")
    assert stats.low_stock_products == stats.top_products == stats.sales_by_day == []


def test_worker_pool_collects_every_query():
    reader = DashboardReader(workers=4)
    out = reader._run({"a": lambda: 1, "b": lambda: 2, "c": lambda: 3})
    assert out == {"a": 1, "b": 2, "c": 3}


@pytest.mark.django_db
def test_low_stock_keeps_five_lowest(make_product):
    for stock in (6, 3, 0, 5, 1, 4, 2):
        make_product(sku=f"LS-{stock}", stock=stock, min_stock=10)

    stats = DashboardReader().snapshot()

    assert [p.stock for p in stats.low_stock_products] == [0, 1, 2, 3, 4]


@pytest.mark.django_db
def test_top_products_keeps_five_best_sellers(user, customer, make_product):
    service = order_providers.get_order_service()
    for qty in (3, 7, 1, 5, 2, 6, 4):
        product = make_product(sku=f"TOP-{qty}", stock=100)
        service.create_order(customer.id, [LineRequest(product.id, qty)], created_by=user.pk)

    stats = DashboardReader().snapshot()

    assert [(p.sku, p.total_sold) for p in stats.top_products] == [
        ("TOP-7", 7),
        ("TOP-6", 6),
        ("TOP-5", 5),
        ("TOP-4", 4),
        ("TOP-3", 3),
    ]


@pytest.mark.django_db
def test_sales_by_day_newest_first(user, customer, make_product):
    now = datetime(2026, 3, 10, 12, 0, tzinfo=dt_timezone.utc)
    service = order_providers.get_order_service()
    product = make_product(price="10.00", stock=100)
    placed_at = [now, now - timedelta(hours=2), now - timedelta(days=1), now - timedelta(days=3), now - timedelta(days=8)]
    for when in placed_at:
        record = service.create_order(customer.id, [LineRequest(product.id, 1)], created_by=user.pk)
        OrderModel.objects.filter(pk=record.id).update(created_at=when)

    stats = DashboardReader(now=lambda: now).snapshot()

    assert [(d.day, d.orders, d.total) for d in stats.sales_by_day] == [
        (date(2026, 3, 10), 2, Decimal("20.00")),
        (date(2026, 3, 9), 1, Decimal("10.00")),
        (date(2026, 3, 7), 1, Decimal("10.00")),
    ]
