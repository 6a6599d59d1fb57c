"""HTTP views for categories, products and customers.

Every write commits in its own transaction and schedules a dashboard
cache invalidation for after the commit. Uniqueness of SKU and email is
enforced by the database; the resulting ``IntegrityError`` is reported as
``409 CONFLICT``. Rows still referenced by orders cannot be deleted.
"""

import logging

from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError, Q
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.dashboard.providers import invalidate_dashboard
from gateway.parsing import int_param, parse_body
from retailhub.errors import Conflict, NotFound

from .models import Category, Customer, Product
from .schemas import (
    CategoryIn,
    CategoryOut,
    CustomerDetailOut,
    CustomerIn,
    CustomerOrderSummary,
    CustomerOut,
    ProductIn,
    ProductOut,
)

logger = logging.getLogger("catalog")

RECENT_CUSTOMER_ORDERS = 10


def _paginate(request, qs, render) -> dict:
    page = int_param(request, "page", 1)
    page_size = min(int_param(request, "page_size", 20), 100)
    p = Paginator(qs, page_size)
    page_obj = p.get_page(page)
    return {
        "count": p.count,
        "page": page_obj.number,
        "page_size": page_size,
        "results": [render(o) for o in page_obj.object_list],
    }


def _save(obj, conflict_message: str):
    try:
        with transaction.atomic():
            obj.save()
            transaction.on_commit(invalidate_dashboard)
    except IntegrityError:
        raise Conflict(conflict_message) from None


def _delete(obj, code: str):
    try:
        with transaction.atomic():
            obj.delete()
            transaction.on_commit(invalidate_dashboard)
    except ProtectedError:
        raise Conflict(f"{obj} is referenced by existing orders", code=code) from None


def _category(category_id) -> Category:
    try:
        return Category.objects.get(pk=category_id)
    except Category.DoesNotExist:
        raise NotFound(f"category {category_id} not found", code="CATEGORY_NOT_FOUND") from None


class StaffDeleteMixin:
    def get_permissions(self):
        if self.request.method == "DELETE":
            return [IsAuthenticated(), IsAdminUser()]
        return [IsAuthenticated()]


class CategoryCollectionView(APIView):
    def get(self, request):
        rows = [CategoryOut.model_validate(c).model_dump(mode="json") for c in Category.objects.all()]
        return Response(rows, status=200)

    def post(self, request):
        dto = parse_body(CategoryIn, request.data)
        category = Category(name=dto.name.strip())
        _save(category, f"category {category.name} already exists")
        logger.info("category created", extra={"category_id": str(category.id)})
        return Response(CategoryOut.model_validate(category).model_dump(mode="json"), status=status.HTTP_201_CREATED)


class ProductCollectionView(APIView):
    """List products (``?search=`` on name or SKU) or create one."""

    def get(self, request):
        qs = Product.objects.select_related("category").order_by("name")
        search = request.GET.get("search")
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(sku__icontains=search))
        return Response(_paginate(request, qs, lambda p: ProductOut.from_model(p).model_dump(mode="json")), status=200)

    def post(self, request):
        dto = parse_body(ProductIn, request.data)
        product = Product(**dto.model_dump(exclude={"category_id"}), category=_category(dto.category_id))
        _save(product, f"sku {dto.sku} already exists")
        logger.info("product created", extra={"product_id": str(product.id), "sku": product.sku})
        return Response(ProductOut.from_model(product).model_dump(mode="json"), status=status.HTTP_201_CREATED)


class ProductDetailView(StaffDeleteMixin, APIView):
    def _get(self, pk) -> Product:
        try:
            return Product.objects.select_related("category").get(pk=pk)
        except Product.DoesNotExist:
            raise NotFound(f"product {pk} not found") from None

    def get(self, request, pk):
        return Response(ProductOut.from_model(self._get(pk)).model_dump(mode="json"), status=200)

    def put(self, request, pk):
        product = self._get(pk)
        dto = parse_body(ProductIn, request.data)
        for field, value in dto.model_dump(exclude={"category_id"}).items():
            setattr(product, field, value)
        product.category = _category(dto.category_id)
        _save(product, f"sku {dto.sku} already exists")
        logger.info("product updated", extra={"product_id": str(product.id)})
        return Response(ProductOut.from_model(product).model_dump(mode="json"), status=200)

    def delete(self, request, pk):
        product = self._get(pk)
        _delete(product, "PRODUCT_HAS_ORDERS")
        logger.info("product deleted", extra={"product_id": str(pk), "user_id": request.user.pk})
        return Response(status=status.HTTP_204_NO_CONTENT)


class CustomerCollectionView(APIView):
    """List customers (``?search=`` on name or email) or create one."""

    def get(self, request):
        qs = Customer.objects.order_by("name")
        search = request.GET.get("search")
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(email__icontains=search))
        return Response(_paginate(request, qs, lambda c: CustomerOut.model_validate(c).model_dump(mode="json")), status=200)

    def post(self, request):
        dto = parse_body(CustomerIn, request.data)
        customer = Customer(**dto.model_dump())
        _save(customer, f"email {dto.email} already in use")
        logger.info("customer created", extra={"customer_id": str(customer.id)})
        return Response(CustomerOut.model_validate(customer).model_dump(mode="json"), status=status.HTTP_201_CREATED)


class CustomerDetailView(StaffDeleteMixin, APIView):
    """Customer with their most recent orders."""

    def _get(self, pk) -> Customer:
        try:
            return Customer.objects.get(pk=pk)
        except Customer.DoesNotExist:
            raise NotFound(f"customer {pk} not found") from None

    def get(self, request, pk):
        customer = self._get(pk)
        orders = customer.orders.order_by("-created_at")[:RECENT_CUSTOMER_ORDERS]
        body = CustomerDetailOut(
            **CustomerOut.model_validate(customer).model_dump(),
            orders=[
                CustomerOrderSummary(id=o.id, number=o.number, status=o.status, total=o.total, created_at=o.created_at)
                for o in orders
            ],
        )
        return Response(body.model_dump(mode="json"), status=200)

    def put(self, request, pk):
        customer = self._get(pk)
        dto = parse_body(CustomerIn, request.data)
        for field, value in dto.model_dump().items():
            setattr(customer, field, value)
        _save(customer, f"email {dto.email} already in use")
        logger.info("customer updated", extra={"customer_id": str(customer.id)})
        return Response(CustomerOut.model_validate(customer).model_dump(mode="json"), status=200)

    def delete(self, request, pk):
        customer = self._get(pk)
        _delete(customer, "CUSTOMER_HAS_ORDERS")
        logger.info("customer deleted", extra={"customer_id": str(pk), "user_id": request.user.pk})
        return Response(status=status.HTTP_204_NO_CONTENT)
