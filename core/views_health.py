"""
Health check endpoints for monitoring.

/health/       - Liveness check (always returns 200)
/health/ready/ - Readiness check (verifies DB, AI backend config, job queue)
"""
import logging

from django.db import connection
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name='dispatch')
class HealthCheckView(View):
    """Liveness probe: always returns 200 if Django is running."""

    def get(self, request):
        return JsonResponse({"status": "ok"})


@method_decorator(csrf_exempt, name='dispatch')
class ReadinessCheckView(View):
    """Readiness probe: checks database, AI backend and the job queue."""

    def get(self, request):
        from directory.enrichment.config import PipelineConfig

        checks = {}

        # 1. Database connectivity
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            checks["database"] = "ok"
        except Exception as e:
            logger.error("Readiness: database check failed: %s", e)
            checks["database"] = f"error: {e}"

        # 2. An AI backend is configured
        config = PipelineConfig.from_settings()
        checks["ai_backend"] = {
            "api_key": bool(config.openrouter_api_key or config.anthropic_api_key),
            "cli": config.cli_usable,
        }
        ai_ok = checks["ai_backend"]["api_key"] or checks["ai_backend"]["cli"] or not config.is_production

        # 3. Job queue table readable
        try:
            from jobs import queue as job_queue
            last = job_queue.last_completed_at()
            checks["jobs"] = {
                "states": job_queue.state_counts(),
                "last_completed_at": last.isoformat() if last else None,
            }
        except Exception as e:
            logger.error("Readiness: job queue check failed: %s", e)
            checks["jobs"] = f"error: {e}"

        all_ok = (
            checks["database"] == "ok"
            and ai_ok
            and isinstance(checks["jobs"], dict)
        )

        return JsonResponse(
            {"status": "ready" if all_ok else "degraded", "checks": checks},
            status=200 if all_ok else 503,
        )
