"""
Core views providing infrastructure endpoints.

Only the health check lives here; business endpoints belong to their apps.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _database_ok() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        return False
    return True


def _cache_ok() -> bool:
    # django-redis is configured with IGNORE_EXCEPTIONS, so a dead Redis
    # shows up as a cache miss rather than an exception.
    cache.set("health_check", "ok", timeout=5)
    return cache.get("health_check") == "ok"


def health_check(request):
    """
    Health check endpoint for load balancers and container probes.

    The database is required: without it no ledger operation can run, so
    the endpoint answers 503. Redis only backs caching, webhook locks and
    the Celery broker, so a cache failure is reported but stays 200.

    Example Response:
        {"status": "healthy", "database": "connected", "cache": "connected"}
    """
    database = _database_ok()
    payload = {
        "status": "healthy" if database else "unhealthy",
        "database": "connected" if database else "disconnected",
        "cache": "connected" if _cache_ok() else "disconnected",
    }
    return JsonResponse(payload, status=200 if database else 503)
