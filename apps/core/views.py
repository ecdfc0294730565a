"""
Core API views.
"""
import logging

from django.core.cache import cache
from django.db import connection
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

logger = logging.getLogger(__name__)


def _probe_database():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
    return True


def _probe_cache():
    # Backs rate limiting only; permissions are never cached
    cache.set('warden:health', 'ok', timeout=10)
    return cache.get('warden:health') == 'ok'


class HealthCheckView(APIView):
    """
    GET /v1/health

    Reports each dependency as ``healthy`` or ``unhealthy``; any unhealthy
    dependency turns the answer into a 503.
    """
    authentication_classes = []
    permission_classes = []

    probes = (
        ('database', _probe_database),
        ('cache', _probe_cache),
    )

    @extend_schema(
        summary="Health check",
        description="Check connectivity to the database and the cache",
        tags=['Health'],
        responses={200: dict, 503: dict},
    )
    def get(self, request):
        report = {'status': 'healthy'}

        for name, probe in self.probes:
            try:
                ok = probe()
            except Exception:
                logger.error(f"Health probe '{name}' failed", exc_info=True)
                ok = False
            report[name] = 'healthy' if ok else 'unhealthy'

        if any(report[name] == 'unhealthy' for name, _ in self.probes):
            report['status'] = 'unhealthy'
            return Response(report, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response(report)
