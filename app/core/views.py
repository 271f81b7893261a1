"""
Core views providing infrastructure endpoints.
"""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for load balancers and container probes.

    Returns:
        JsonResponse with status and database connectivity:
        - 200 {"status": "healthy", "database": "connected"}
        - 503 {"status": "unhealthy", "database": "disconnected"}
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.error("Health check could not reach the database", exc_info=True)
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JsonResponse(health_status, status=status_code)
