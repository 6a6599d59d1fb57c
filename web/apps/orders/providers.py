"""Service provider helpers for wiring ``OrderService`` with its ports.

``get_order_service`` returns a service backed by the Django ORM: the
catalog reader and stock ledger from ``ledger``, the ``OrderRepository``,
``transaction.atomic`` as the unit of work, and a change hook that drops
the cached dashboard once the surrounding transaction commits. Views call
it through this module so tests can patch it.
"""

from django.db import transaction

from apps.dashboard.providers import invalidate_dashboard

from .domain import OrderService
from .ledger import ORMCatalog, ORMStockLedger
from .repository import OrderRepository


def _after_commit_invalidate() -> None:
    transaction.on_commit(invalidate_dashboard)


def get_order_service() -> OrderService:
    """Return an ``OrderService`` wired to the ORM adapters."""
    return OrderService(
        catalog=ORMCatalog(),
        ledger=ORMStockLedger(),
        store=OrderRepository(),
        atomic=transaction.atomic,
        on_change=_after_commit_invalidate,
    )
