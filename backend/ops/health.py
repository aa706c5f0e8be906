"""
Health check endpoints for operations monitoring.

Provides health checks for:
- Database connectivity (all configured databases)
- Redis/Celery broker connectivity
- Ledger integrity (posted entries that do not net to zero)

Endpoints:
- /_health/live    - Kubernetes liveness check (is the process running?)
- /_health/ready   - Kubernetes readiness check (can we serve traffic?)
- /_health/full    - Full health report (for debugging/dashboards)
"""
import logging
import time
from typing import Dict, Any

import redis
from django.conf import settings
from django.db import DatabaseError, connections
from django.db.models import Q, Sum
from django.http import JsonResponse
from django.views import View

logger = logging.getLogger(__name__)


class HealthCheck:
    """Health check implementation."""

    @staticmethod
    def check_database(alias: str = "default") -> Dict[str, Any]:
        """Check database connectivity."""
        start = time.time()
        try:
            conn = connections[alias]
            conn.ensure_connection()
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            duration_ms = (time.time() - start) * 1000
            return {
                "status": "healthy",
                "alias": alias,
                "duration_ms": round(duration_ms, 2),
            }
        except DatabaseError as e:
            duration_ms = (time.time() - start) * 1000
            logger.warning(f"Database check failed for {alias}: {e}")
            return {
                "status": "unhealthy",
                "alias": alias,
                "error": str(e),
                "duration_ms": round(duration_ms, 2),
            }

    @staticmethod
    def check_all_databases() -> Dict[str, Any]:
        """Check all configured databases."""
        results = {}
        all_healthy = True

        for alias in settings.DATABASES.keys():
            result = HealthCheck.check_database(alias)
            results[alias] = result
            if result["status"] != "healthy":
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "degraded",
            "databases": results,
        }

    @staticmethod
    def check_redis() -> Dict[str, Any]:
        """Check the Celery broker (Redis), if configured."""
        redis_url = getattr(settings, "CELERY_BROKER_URL", None)
        if not redis_url:
            return {"status": "skipped", "reason": "Redis not configured"}

        start = time.time()
        try:
            client = redis.from_url(redis_url)
            client.ping()
            duration_ms = (time.time() - start) * 1000
            return {
                "status": "healthy",
                "duration_ms": round(duration_ms, 2),
            }
        except redis.RedisError as e:
            duration_ms = (time.time() - start) * 1000
            return {
                "status": "unhealthy",
                "error": str(e),
                "duration_ms": round(duration_ms, 2),
            }

    @staticmethod
    def check_ledger_integrity() -> Dict[str, Any]:
        """Posted entries whose lines do not net to zero in some currency."""
        from accounting.models import JournalEntry, JournalLine

        tolerance = settings.LEDGER_ENTRY_TOLERANCE
        try:
            unbalanced = list(
                JournalLine.objects
                .filter(entry__status=JournalEntry.Status.POSTED)
                .values("entry__entry_number", "company__slug", "currency")
                .annotate(residual=Sum("amount"))
                .filter(Q(residual__gt=tolerance) | Q(residual__lt=-tolerance))
                .order_by("company__slug", "entry__entry_number")[:10]
            )
        except DatabaseError as e:
            return {
                "status": "error",
                "error": str(e),
            }

        if not unbalanced:
            return {"status": "healthy", "unbalanced_entries": []}

        return {
            "status": "unhealthy",
            "unbalanced_entries": [
                {
                    "company": row["company__slug"],
                    "entry_number": row["entry__entry_number"],
                    "currency": row["currency"],
                    "residual": str(row["residual"]),
                }
                for row in unbalanced
            ],
            "error": "Posted entries do not balance",
        }

    @staticmethod
    def get_full_health() -> Dict[str, Any]:
        """Get comprehensive health report."""
        checks = {
            "databases": HealthCheck.check_all_databases(),
            "redis": HealthCheck.check_redis(),
            "ledger_integrity": HealthCheck.check_ledger_integrity(),
        }

        # Determine overall status
        statuses = [c.get("status", "unknown") for c in checks.values()]
        if all(s == "healthy" or s == "skipped" for s in statuses):
            overall = "healthy"
        elif any(s == "unhealthy" for s in statuses):
            overall = "unhealthy"
        else:
            overall = "degraded"

        return {
            "status": overall,
            "checks": checks,
            "version": getattr(settings, "VERSION", "unknown"),
            "environment": "production" if not settings.DEBUG else "development",
        }


class LivenessView(View):
    """
    Kubernetes liveness check.

    Returns 200 if the process is running.
    This should be very fast and not check external dependencies.
    """

    def get(self, request):
        return JsonResponse({"status": "alive"})


class ReadinessView(View):
    """
    Kubernetes readiness check.

    Returns 200 if the service can handle traffic.
    Checks database connectivity.
    """

    def get(self, request):
        db_check = HealthCheck.check_database("default")

        if db_check["status"] == "healthy":
            return JsonResponse({
                "status": "ready",
                "database": db_check,
            })
        else:
            return JsonResponse({
                "status": "not_ready",
                "database": db_check,
            }, status=503)


class FullHealthView(View):
    """
    Full health check for debugging and dashboards.

    Should be protected in production (internal network only).
    """

    def get(self, request):
        health = HealthCheck.get_full_health()

        status_code = 200 if health["status"] == "healthy" else 503
        return JsonResponse(health, status=status_code)
