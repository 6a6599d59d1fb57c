"""Shared fixtures: users, catalog rows and authenticated API clients.

App modules are imported inside the fixtures because this file is loaded
before Django is set up.
"""

from decimal import Decimal
from itertools import count

import pytest

_seq = count(1)


@pytest.fixture(autouse=True)
def memory_cache():
    """Give every test its own in-memory dashboard cache."""
    from apps.dashboard.cache import CacheAside, InMemoryCache
    from apps.dashboard.providers import reset_cache

    cache = CacheAside(InMemoryCache(), default_ttl=300)
    reset_cache(cache)
    yield cache
    reset_cache()


@pytest.fixture(autouse=True)
def clear_throttles():
    from django.core.cache import cache

    cache.clear()


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user("clerk", password="pw", first_name="Carla", last_name="Clerk")


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user("boss", password="pw", is_staff=True)


@pytest.fixture
def api(client, user):
    client.force_login(user)
    return client


@pytest.fixture
def staff_api(staff_user):
    from django.test import Client

    staff_client = Client()
    staff_client.force_login(staff_user)
    return staff_client


@pytest.fixture
def category(db):
    from apps.catalog.models import Category

    return Category.objects.create(name="General")


@pytest.fixture
def make_product(category):
    from apps.catalog.models import Product

    def _make(name=None, price="10.00", stock=10, min_stock=0, sku=None):
        n = next(_seq)
        return Product.objects.create(
            sku=sku or f"SKU-{n}",
            name=name or f"Product {n}",
            price=Decimal(price),
            stock=stock,
            min_stock=min_stock,
            category=category,
        )

    return _make


@pytest.fixture
def make_customer(db):
    from apps.catalog.models import Customer

    def _make(name=None, email=None):
        return Customer.objects.create(name=name or f"Customer {next(_seq)}", email=email)

    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer("Acme Corp")
