from django.urls import include, path

urlpatterns = [
    path("health/", include("apps.monitoring.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/dashboard/", include("apps.dashboard.urls")),
    path("api/catalog/", include("apps.catalog.urls")),
]
