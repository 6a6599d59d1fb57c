"""GET /api/dashboard/stats/ through the cache."""

import pytest

from apps.catalog.models import Customer, Product
from apps.dashboard.cache import CacheAside, NullCache, RedisCache
from apps.dashboard.providers import reset_cache
from apps.orders.models import OrderModel

STATS_URL = "/api/dashboard/stats/"
ORDERS_URL = "/api/orders/"


@pytest.mark.django_db
def test_stats_shape(api, make_product):
    make_product(stock=1, min_stock=2)

    r = api.get(STATS_URL)

    assert r.status_code == 200
    body = r.json()
    assert body["total_products"] == 1
    assert body["total_revenue"] == "0.00"
    assert len(body["low_stock_products"]) == 1
    assert set(body) >= {"recent_orders", "top_products", "sales_by_day", "generated_at"}


@pytest.mark.django_db
def test_stats_are_cached(api, make_product):
    make_product()
    first = api.get(STATS_URL).json()

    # a direct ORM write does not invalidate, so the cached snapshot is served
    make_product()
    second = api.get(STATS_URL).json()

    assert second == first


@pytest.mark.django_db
def test_order_creation_invalidates_stats(api, customer, make_product, django_capture_on_commit_callbacks):
    product = make_product(stock=10)
    assert api.get(STATS_URL).json()["total_orders"] == 0

    with django_capture_on_commit_callbacks(execute=True):
        r = api.post(
            ORDERS_URL,
            data={"customer_id": str(customer.id), "items": [{"product_id": str(product.id), "quantity": 1}]},
            content_type="application/json",
        )
    assert r.status_code == 201

    assert api.get(STATS_URL).json()["total_orders"] == 1


@pytest.mark.django_db
def test_stats_without_cache(api):
    reset_cache(CacheAside(NullCache()))
    assert api.get(STATS_URL).status_code == 200


@pytest.mark.django_db
def test_stats_require_authentication(client):
    assert client.get(STATS_URL).status_code == 401


@pytest.mark.django_db
def test_stats_with_unreachable_redis_match_database(api, customer, make_product, django_capture_on_commit_callbacks):
    # nothing listens on port 1, so every cache call is refused
    reset_cache(CacheAside(RedisCache("redis://127.0.0.1:1/0", socket_timeout=0.05, retries=0)))
    product = make_product(stock=10)
    make_product(stock=0, min_stock=3)

    with django_capture_on_commit_callbacks(execute=True):
        r = api.post(
            ORDERS_URL,
            data={"customer_id": str(customer.id), "items": [{"product_id": str(product.id), "quantity": 2}]},
            content_type="application/json",
        )
    assert r.status_code == 201

    body = api.get(STATS_URL).json()
    assert body["total_products"] == Product.objects.count() == 2
    assert body["total_customers"] == Customer.objects.count() == 1
    assert body["total_orders"] == OrderModel.objects.count() == 1
    assert len(body["low_stock_products"]) == 1

    # with no cache every request is a fresh computation
    make_product()
    assert api.get(STATS_URL).json()["total_products"] == Product.objects.count() == 3
