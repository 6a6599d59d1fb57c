"""HTTP views for the orders app.

Views are kept small: they validate requests with Pydantic, hand the
domain inputs to the ``OrderService`` from ``providers.get_order_service()``
and render the resulting ``OrderRecord`` with ``OrderReadDTO``. Domain
errors raised by the service carry their own code and status and are
rendered by ``gateway.exceptions``.

Idempotency: when an ``Idempotency-Key`` header is sent with a create,
the first request is processed and its response stored. Retries with the
same payload get the stored response back (same status, plus an
``Idempotent-Replay: true`` header). The same key with a different
payload is answered with 409.
"""

import logging

from django.core.paginator import Paginator
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from gateway.exceptions import error_response
from gateway.parsing import int_param, parse_body
from retailhub.errors import DomainError, NotFound

from . import providers
from .domain import OrderStatus
from .idempotency import finalize, get_or_create_idempotent
from .repository import OrderRepository, to_record
from .schemas import CreateOrderDTO, OrderReadDTO, UpdateStatusDTO

logger = logging.getLogger("orders")


def render(record) -> dict:
    return OrderReadDTO.model_validate(record).model_dump(mode="json")


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module."""

    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List orders, or create one against current stock.

    ``POST`` validates the payload, lets the service build and price the
    order, persist it and reserve every line in one transaction, and
    returns the created order.
    """

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        status_filter = request.GET.get("status")
        qs = OrderRepository().list(OrderStatus.parse(status_filter) if status_filter else None)
        page = int_param(request, "page", 1)
        page_size = min(int_param(request, "page_size", 20), 100)
        p = Paginator(qs, page_size)
        page_obj = p.get_page(page)

        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": [render(to_record(o)) for o in page_obj.object_list],
            },
            status=200,
        )

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following.
            - 201 with the created order.
            - Stored status and body when an idempotent request is replayed.
            - 409 ``IDEMPOTENCY_CONFLICT`` / ``IDEMPOTENCY_IN_PROGRESS``.
            - 400 ``VALIDATION_FAILED`` for malformed bodies.
            - 404 ``CUSTOMER_OR_PRODUCT_NOT_FOUND``.
            - 422 ``INSUFFICIENT_STOCK`` with product and available units.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        dto = parse_body(CreateOrderDTO, request.data)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            existing, rec = get_or_create_idempotent(idem_key, request.data)
            if existing:
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        service = providers.get_order_service()
        try:
            record = service.create_order(
                customer_id=dto.customer_id,
                lines=[item.to_domain() for item in dto.items],
                created_by=request.user.pk,
                notes=dto.notes,
            )
        except DomainError as e:
            if rec:
                finalize(rec, e.http_status, e.to_payload())
            return error_response(e)
        except Exception:
            # nothing was committed, so let the client retry with the same key
            if rec:
                rec.delete()
            raise

        # 4) Response
        body = render(record)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=record.id)
        return Response(body, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    """Read an order, change its status, or delete it (staff only)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get_permissions(self):
        if self.request.method == "DELETE":
            return [IsAuthenticated(), IsAdminUser()]
        return [IsAuthenticated()]

    def get(self, request, oid):
        record = OrderRepository().get(oid)
        if record is None:
            raise NotFound(f"order {oid} not found")
        return Response(render(record), status=200)

    def patch(self, request, oid):
        """Move an order to a new status.

        Responses:
            200: the updated order.
            400 VALIDATION_FAILED / INVALID_STATUS: malformed body or unknown status.
            404 NOT_FOUND: no such order.
            409 INVALID_TRANSITION: the move is outside the lifecycle.
                COMPLETED and CANCELLED are terminal, so neither can be left.
            409 CONCURRENT_UPDATE: another request changed the status first.
        """
        dto = parse_body(UpdateStatusDTO, request.data)
        record = providers.get_order_service().update_status(oid, dto.status)
        return Response(render(record), status=200)

    def delete(self, request, oid):
        providers.get_order_service().delete_order(oid)
        logger.info("order deleted by staff", extra={"order_id": str(oid), "user_id": request.user.pk})
        return Response(status=status.HTTP_204_NO_CONTENT)
