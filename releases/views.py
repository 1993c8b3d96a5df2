"""
Release service views.

Includes the health check endpoint for monitoring and load balancer checks.
"""

from django.db import connection
from django.http import JsonResponse

from releases.models import FeedSource, ProcessedArticle
from releases.services.processing_lock import FEED_PROCESSING_LOCK, is_locked


def get_celery_worker_count():
    """
    Get the count of active Celery workers.

    Returns:
        int: Number of active workers, 0 if Celery is not reachable.
    """
    try:
        from config.celery import app as celery_app

        active = celery_app.control.inspect(timeout=1.0).active()
        return len(active) if active else 0
    except Exception:
        return 0


def health_check(request):
    """
    Health check endpoint for the ingestion service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - celery_workers: integer count of active workers
        - ingestion_running: whether the feed processing lock is held
        - last_article_processed: ISO timestamp of the latest processed article
        - sources_with_errors: active sources whose last pass failed

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except Exception:
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    response_data = {
        "status": status,
        "database": database_status,
        "celery_workers": get_celery_worker_count(),
        "ingestion_running": None,
        "last_article_processed": None,
        "sources_with_errors": None,
    }

    if database_status == "connected":
        latest = ProcessedArticle.objects.order_by("-processed_at").first()
        response_data["ingestion_running"] = is_locked(FEED_PROCESSING_LOCK)
        response_data["last_article_processed"] = latest.processed_at.isoformat() if latest else None
        response_data["sources_with_errors"] = (
            FeedSource.objects.filter(is_active=True, last_error__isnull=False)
            .exclude(last_error="")
            .count()
        )

    return JsonResponse(response_data, status=http_status)
