"""OrderService wired to the ORM adapters, against the test database."""

import re
import threading
from decimal import Decimal

import pytest
from django.db import connection, transaction

from apps.orders import providers
from apps.orders.domain import LineRequest, OrderStatus, ProductSnapshot
from apps.orders.ledger import ORMCatalog, ORMStockLedger
from apps.orders.models import OrderLineItemModel, OrderModel
from retailhub.errors import InsufficientStock, InvalidTransition


@pytest.fixture
def service():
    return providers.get_order_service()


@pytest.mark.django_db
def test_create_then_cancel_restores_stock(service, user, customer, make_product):
    product = make_product(name="P", price="20.00", stock=10)

    record = service.create_order(customer.id, [LineRequest(product.id, 3)], created_by=user.pk)

    assert record.total == Decimal("60.00")
    assert [(i.quantity, i.price) for i in record.items] == [(3, Decimal("20.00"))]
    product.refresh_from_db()
    assert product.stock == 7

    cancelled = service.update_status(record.id, "CANCELLED")

    product.refresh_from_db()
    assert product.stock == 10
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.total == Decimal("60.00")


@pytest.mark.django_db
def test_order_numbers_increase(service, user, customer, make_product):
    product = make_product(stock=5)
    first = service.create_order(customer.id, [LineRequest(product.id, 1)], created_by=user.pk)
    second = service.create_order(customer.id, [LineRequest(product.id, 1)], created_by=user.pk)
    assert re.fullmatch(r"ORD-\d{6}", first.number)
    assert int(second.number[4:]) > int(first.number[4:])
    assert first.created_by_name == "Carla Clerk"


@pytest.mark.django_db
def test_stale_precheck_is_caught_by_ledger(service, monkeypatch, user, customer, make_product):
    """The pre-check sees plenty of stock; the conditional update does not."""
    widget = make_product(name="Widget", stock=10)
    gadget = make_product(name="Gadget", stock=1)

    monkeypatch.setattr(ORMCatalog, "products_by_ids", _stale_reader(ORMCatalog.products_by_ids))

    with pytest.raises(InsufficientStock) as e:
        service.create_order(
            customer.id, [LineRequest(widget.id, 2), LineRequest(gadget.id, 5)], created_by=user.pk
        )

    assert e.value.product_name == "Gadget"
    assert e.value.available == 1
    assert OrderModel.objects.count() == 0
    assert OrderLineItemModel.objects.count() == 0
    widget.refresh_from_db()
    assert widget.stock == 10


def _stale_reader(read):
    def products_by_ids(self, ids):
        rows = read(self, ids)
        return {pid: ProductSnapshot(p.id, p.name, p.sku, p.price, 99) for pid, p in rows.items()}

    return products_by_ids


@pytest.mark.django_db
def test_price_change_does_not_alter_history(service, user, customer, make_product):
    product = make_product(price="20.00", stock=10)
    record = service.create_order(customer.id, [LineRequest(product.id, 2)], created_by=user.pk)

    product.price = Decimal("25.00")
    product.save()

    again = service.store.get(record.id)
    assert again.total == Decimal("40.00")
    assert again.items[0].price == Decimal("20.00")


@pytest.mark.django_db
def test_delete_keeps_stock_reserved(service, user, customer, make_product):
    product = make_product(stock=10)
    record = service.create_order(customer.id, [LineRequest(product.id, 4)], created_by=user.pk)

    service.delete_order(record.id)

    assert not OrderModel.objects.filter(pk=record.id).exists()
    assert OrderLineItemModel.objects.count() == 0
    product.refresh_from_db()
    assert product.stock == 6


@pytest.mark.django_db
def test_cancel_twice_releases_once(service, user, customer, make_product):
    product = make_product(stock=10)
    record = service.create_order(customer.id, [LineRequest(product.id, 4)], created_by=user.pk)

    service.update_status(record.id, "CANCELLED")
    service.update_status(record.id, "CANCELLED")

    product.refresh_from_db()
    assert product.stock == 10


@pytest.mark.django_db
def test_cancelled_order_cannot_be_reopened(service, user, customer, make_product):
    product = make_product(stock=10)
    record = service.create_order(customer.id, [LineRequest(product.id, 4)], created_by=user.pk)
    service.update_status(record.id, "CANCELLED")

    with pytest.raises(InvalidTransition):
        service.update_status(record.id, "PENDING")
    product.refresh_from_db()
    assert product.stock == 10


@pytest.mark.django_db(transaction=True)
def test_ledger_requires_transaction(make_product):
    product = make_product(stock=3)
    with pytest.raises(RuntimeError):
        ORMStockLedger().reserve(product.id, 1)


@pytest.mark.django_db
def test_ledger_reserve_is_conditional(make_product):
    product = make_product(name="Bolt", stock=3)
    ledger = ORMStockLedger()
    with transaction.atomic():
        ledger.reserve(product.id, 3)
        with pytest.raises(InsufficientStock) as e:
            ledger.reserve(product.id, 1)
    assert e.value.available == 0
    product.refresh_from_db()
    assert product.stock == 0


@pytest.mark.django_db
def test_writes_invalidate_dashboard_after_commit(service, memory_cache, user, customer, make_product, django_capture_on_commit_callbacks):
    product = make_product(stock=10)
    memory_cache.backend.set("dashboard:stats", "{}", 300)

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        service.create_order(customer.id, [LineRequest(product.id, 1)], created_by=user.pk)

    assert len(callbacks) == 1
    assert memory_cache.backend.get("dashboard:stats") is None


def _place_concurrently(monkeypatch, customer, user, orders):
    """Run one ``create_order`` per entry in ``orders`` on its own thread.

    Every thread finishes the builder's stock read before any of them opens
    its unit of work, so all of them see the same stale pre-check.
    """
    barrier = threading.Barrier(len(orders))
    read = ORMCatalog.products_by_ids

    def products_by_ids(self, ids):
        rows = read(self, ids)
        barrier.wait(timeout=10)
        return rows

    monkeypatch.setattr(ORMCatalog, "products_by_ids", products_by_ids)
    results = []

    def place(lines):
        try:
            providers.get_order_service().create_order(customer.id, lines, created_by=user.pk)
            results.append("ok")
        except InsufficientStock:
            results.append("short")
        except Exception as e:
            results.append(type(e).__name__)
        finally:
            connection.close()

    threads = [threading.Thread(target=place, args=(lines,)) for lines in orders]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return sorted(results)


@pytest.mark.django_db(transaction=True)
def test_concurrent_orders_for_same_stock_never_oversell(monkeypatch, user, customer, make_product):
    product = make_product(stock=5)

    results = _place_concurrently(
        monkeypatch, customer, user, [[LineRequest(product.id, 4)], [LineRequest(product.id, 4)]]
    )

    assert results == ["ok", "short"]
    product.refresh_from_db()
    assert product.stock == 1
    assert OrderModel.objects.count() == 1
    assert OrderLineItemModel.objects.count() == 1


@pytest.mark.django_db(transaction=True)
def test_concurrent_orders_for_different_products_both_succeed(monkeypatch, user, customer, make_product):
    first = make_product(stock=1)
    second = make_product(stock=1)

    results = _place_concurrently(
        monkeypatch, customer, user, [[LineRequest(first.id, 1)], [LineRequest(second.id, 1)]]
    )

    assert results == ["ok", "ok"]
    numbers = set(OrderModel.objects.values_list("number", flat=True))
    assert len(numbers) == 2
