"""OrderService over the in-memory adapters.

Covers the all-or-nothing unit of work, cancellation releasing stock once,
and the oversell race between the builder's pre-check and the ledger.
"""

import threading
from decimal import Decimal

import pytest

from apps.orders.adapters import InMemoryCatalog, InMemoryStore, in_memory_service
from apps.orders.domain import LineRequest, OrderStatus
from retailhub.errors import Conflict, InsufficientStock, InvalidTransition, NotFound


@pytest.fixture
def store():
    s = InMemoryStore()
    s.customer_id = s.add_customer("Acme")
    s.user_id = s.add_user(1, "Carla Clerk")
    s.product = s.add_product("Widget", "W-1", "20.00", stock=10)
    return s


def test_create_reserves_stock(store):
    changes = []
    service = in_memory_service(store, on_change=lambda: changes.append(1))
    record = service.create_order(store.customer_id, [LineRequest(store.product, 3)], created_by=store.user_id)

    assert record.total == Decimal("60.00")
    assert record.number == "ORD-000001"
    assert record.created_by_name == "Carla Clerk"
    assert store.stock_of(store.product) == 7
    assert changes == [1]


def test_failed_reservation_rolls_back_everything(store):
    other = store.add_product("Gadget", "G-1", "1.00", stock=5)
    service = in_memory_service(store)
    # pre-check passes, then the gadget is sold out before the reservation
    original = service.ledger.reserve

    def reserve(product_id, quantity):
        if product_id == other:
            store.products[other].stock = 0
        return original(product_id, quantity)

    service.ledger.reserve = reserve
    with pytest.raises(InsufficientStock):
        service.create_order(
            store.customer_id, [LineRequest(store.product, 4), LineRequest(other, 1)], created_by=store.user_id
        )

    assert store.orders == {}
    assert store.sequence == 0
    assert store.stock_of(store.product) == 10


def test_cancel_releases_stock_once(store):
    service = in_memory_service(store)
    record = service.create_order(store.customer_id, [LineRequest(store.product, 4)], created_by=store.user_id)

    first = service.update_status(record.id, "CANCELLED")
    second = service.update_status(record.id, OrderStatus.CANCELLED)

    assert first.status == second.status == OrderStatus.CANCELLED
    assert first.total == Decimal("80.00")
    assert store.stock_of(store.product) == 10


def test_non_cancel_transition_keeps_stock(store):
    service = in_memory_service(store)
    record = service.create_order(store.customer_id, [LineRequest(store.product, 2)], created_by=store.user_id)

    service.update_status(record.id, "PROCESSING")
    done = service.update_status(record.id, "COMPLETED")

    assert done.status == OrderStatus.COMPLETED
    assert store.stock_of(store.product) == 8


def test_terminal_status_rejects_moves(store):
    service = in_memory_service(store)
    record = service.create_order(store.customer_id, [LineRequest(store.product, 2)], created_by=store.user_id)
    service.update_status(record.id, "COMPLETED")

    with pytest.raises(InvalidTransition) as e:
        service.update_status(record.id, "CANCELLED")
    assert e.value.to_payload()["current_status"] == "COMPLETED"
    assert store.stock_of(store.product) == 8


def test_lost_compare_and_set_is_reported(store):
    service = in_memory_service(store)
    record = service.create_order(store.customer_id, [LineRequest(store.product, 2)], created_by=store.user_id)
    original = service.store.set_status

    def racing_set_status(order_id, status, *, expected):
        # another writer completes the order between the read and the write
        store.orders[order_id].status = OrderStatus.COMPLETED
        return original(order_id, status, expected=expected)

    service.store.set_status = racing_set_status
    with pytest.raises(Conflict) as e:
        service.update_status(record.id, "CANCELLED")
    assert str(e.value) == "CONCURRENT_UPDATE"
    assert store.stock_of(store.product) == 8


def test_delete_does_not_restore_stock(store):
    service = in_memory_service(store)
    record = service.create_order(store.customer_id, [LineRequest(store.product, 3)], created_by=store.user_id)

    service.delete_order(record.id)

    assert service.store.get(record.id) is None
    assert store.stock_of(store.product) == 7
    with pytest.raises(NotFound):
        service.delete_order(record.id)


def test_concurrent_orders_never_oversell():
    store = InMemoryStore()
    customer = store.add_customer("Acme")
    product = store.add_product("Widget", "W-1", "1.00", stock=5)
    service = in_memory_service(store)

    # both requests must see stock=5 in the pre-check before either reserves
    barrier = threading.Barrier(2)
    read = InMemoryCatalog.products_by_ids

    def products_by_ids(self, ids):
        result = read(self, ids)
        barrier.wait(timeout=5)
        return result

    service.builder.catalog.products_by_ids = products_by_ids.__get__(service.builder.catalog)

    results = []

    def place():
        try:
            service.create_order(customer, [LineRequest(product, 4)], created_by=1)
            results.append("ok")
        except InsufficientStock:
            results.append("short")

    threads = [threading.Thread(target=place) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert sorted(results) == ["ok", "short"]
    assert store.stock_of(product) == 1
    assert len(store.orders) == 1
