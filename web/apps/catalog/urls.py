from django.urls import path

from .views import (
    CategoryCollectionView,
    CustomerCollectionView,
    CustomerDetailView,
    ProductCollectionView,
    ProductDetailView,
)

app_name = "catalog"

urlpatterns = [
    path("categories/", CategoryCollectionView.as_view(), name="categories"),
    path("products/", ProductCollectionView.as_view(), name="products"),
    path("products/<uuid:pk>/", ProductDetailView.as_view(), name="product-detail"),
    path("customers/", CustomerCollectionView.as_view(), name="customers"),
    path("customers/<uuid:pk>/", CustomerDetailView.as_view(), name="customer-detail"),
]
