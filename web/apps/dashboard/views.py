from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers


class DashboardStatsView(APIView):
    """Aggregated catalog and sales figures, served through the cache."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "dashboard"

    def get(self, request):
        stats = providers.get_dashboard_service().stats()
        return Response(stats.model_dump(mode="json"), status=200)
