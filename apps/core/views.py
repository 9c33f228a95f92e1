"""
Core API views: base authenticated view and health endpoints.
"""
import logging
import time

from django.db import connection
from django.utils import timezone
from django_redis import get_redis_connection
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import SAFE_METHODS
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core import rate_limiting
from apps.core.exceptions import AuthenticationError
from apps.core.middleware import get_client_ip

logger = logging.getLogger(__name__)


class AuthenticatedAPIView(APIView):
    """
    Base view for endpoints that require a session.

    After DRF authentication runs, anonymous requests are rejected with
    401 and the caller is charged against the read or write rate limit
    (keyed by user id) depending on the HTTP method.
    """

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)

        if not request.user or not request.user.is_authenticated:
            raise AuthenticationError()

        limit = rate_limiting.RATE_LIMITS['API_READ' if request.method in SAFE_METHODS else 'API_WRITE']
        rate_limiting.rate_limiter.enforce_limit(
            str(request.user.id),
            limit,
            endpoint=request.path,
            ip_address=get_client_ip(request),
        )


def _check_database(count_query=False):
    if count_query:
        from apps.rbac.models import User
        User.objects.count()
    else:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")


def _check_redis(round_trip=False):
    redis = get_redis_connection('default')
    if not round_trip:
        redis.ping()
        return
    key = f"readyz:{int(time.time() * 1000)}"
    redis.set(key, 'test', ex=10)
    value = redis.get(key)
    redis.delete(key)
    if value not in (b'test', 'test'):
        raise RuntimeError('Redis read/write test failed')


class HealthzView(APIView):
    """
    Liveness check.

    GET /api/internal/healthz

    Returns 200 if the database and Redis answer a ping, 503 otherwise.
    """
    authentication_classes = []
    permission_classes = []

    @extend_schema(
        tags=['Internal'],
        summary="Liveness check",
        responses={200: OpenApiTypes.OBJECT, 503: OpenApiTypes.OBJECT}
    )
    def get(self, request):
        try:
            _check_database()
            _check_redis()
        except Exception as e:
            logger.error("Health check failed", exc_info=True)
            return Response(
                {
                    'status': 'unhealthy',
                    'timestamp': timezone.now().isoformat(),
                    'error': str(e),
                },
                status=status.HTTP_503_SERVICE_UNAVAILABLE
            )

        return Response({
            'status': 'healthy',
            'timestamp': timezone.now().isoformat(),
            'checks': {'database': 'ok', 'redis': 'ok'},
        })


class ReadyzView(APIView):
    """
    Readiness check.

    GET /api/internal/readyz

    Runs a database query and a Redis write/read/delete round trip.
    """
    authentication_classes = []
    permission_classes = []

    @extend_schema(
        tags=['Internal'],
        summary="Readiness check",
        responses={200: OpenApiTypes.OBJECT, 503: OpenApiTypes.OBJECT}
    )
    def get(self, request):
        checks = {}
        errors = {}

        for name, check in (
            ('database', lambda: _check_database(count_query=True)),
            ('redis', lambda: _check_redis(round_trip=True)),
        ):
            try:
                check()
                checks[name] = 'ok'
            except Exception as e:
                checks[name] = 'error'
                errors[f'{name}Error'] = str(e)
                logger.error(f"Readiness check failed: {name}", exc_info=True)

        ready = not errors
        return Response(
            {
                'status': 'ready' if ready else 'not ready',
                'timestamp': timezone.now().isoformat(),
                'checks': checks,
                **errors,
            },
            status=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE
        )
