from django.urls import path

from .views import OrderDetailView, OrdersCollectionView, OrdersPingView

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("<uuid:oid>/", OrderDetailView.as_view(), name="orders-detail"),  # GET / PATCH / DELETE
]
