"""
Consecutive failure tracking for feed sources.

Failures are counted per source in Redis under ``ingest:failures:<id>`` with
a 24 hour TTL. Reaching the threshold (INGEST_FAILURE_THRESHOLD, default 5)
raises a Sentry alert; a clean pass over the source resets the counter.

Usage:
    from releases.monitoring import get_failure_tracker

    tracker = get_failure_tracker()
    count = tracker.record_failure(source_id, source_name)
    tracker.record_success(source_id)
"""

import logging
from typing import Optional

import redis
from django.conf import settings

from .sentry_integration import capture_alert

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5

# 24 hours
FAILURE_COUNTER_TTL = 86400


class FailureTracker:
    """
    Tracks consecutive source failures in Redis.

    Without a Redis client every method is a no-op, so an unreachable Redis
    never affects an ingestion pass.
    """

    def __init__(
        self,
        redis_client=None,
        threshold: int = DEFAULT_FAILURE_THRESHOLD,
        key_prefix: str = "ingest:failures:",
    ):
        self.redis_client = redis_client
        self.threshold = threshold
        self.key_prefix = key_prefix

    def _get_key(self, source_id) -> str:
        return f"{self.key_prefix}{source_id}"

    def record_failure(self, source_id, source_name: Optional[str] = None) -> int:
        """
        Increment the failure counter and alert at the threshold.

        Args:
            source_id: FeedSource ID
            source_name: FeedSource name, for the alert

        Returns:
            Failure count after the increment (0 when tracking is disabled)
        """
        if self.redis_client is None:
            return 0

        key = self._get_key(source_id)

        try:
            count = self.redis_client.incr(key)
            if count == 1:
                self.redis_client.expire(key, FAILURE_COUNTER_TTL)
        except redis.RedisError as e:
            logger.warning(f"Failed to record failure in Redis: {e}")
            return 0

        logger.debug(f"Recorded failure for source {source_id}: count={count}, threshold={self.threshold}")

        if count >= self.threshold:
            message = (
                f"Consecutive failure threshold breached for source {source_name or source_id}: "
                f"{count} consecutive failures"
            )
            logger.warning(message)
            capture_alert(
                message=message,
                source_id=str(source_id),
                source_name=source_name,
                extra_data={"failure_count": count, "threshold": self.threshold},
            )

        return count

    def record_success(self, source_id) -> None:
        """Reset the failure counter of a source."""
        if self.redis_client is None:
            return

        try:
            self.redis_client.delete(self._get_key(source_id))
        except redis.RedisError as e:
            logger.warning(f"Failed to reset failure counter in Redis: {e}")

    def get_failure_count(self, source_id) -> int:
        """Current consecutive failure count (0 when unknown)."""
        if self.redis_client is None:
            return 0

        try:
            count = self.redis_client.get(self._get_key(source_id))
        except redis.RedisError as e:
            logger.warning(f"Failed to get failure count from Redis: {e}")
            return 0

        return int(count) if count else 0


_failure_tracker: Optional[FailureTracker] = None


def _get_redis_client():
    """Redis client on the Celery broker URL, or None if unreachable."""
    url = getattr(settings, "CELERY_BROKER_URL", "redis://localhost:6379/1")
    if not url or not url.startswith(("redis://", "rediss://")):
        return None

    try:
        client = redis.from_url(url)
        client.ping()
        return client
    except redis.RedisError as e:
        logger.warning(f"Failed to connect to Redis for failure tracking: {e}")
        return None


def get_failure_tracker() -> FailureTracker:
    """Global failure tracker, connected on first use."""
    global _failure_tracker

    if _failure_tracker is None:
        _failure_tracker = FailureTracker(
            redis_client=_get_redis_client(),
            threshold=getattr(settings, "INGEST_FAILURE_THRESHOLD", DEFAULT_FAILURE_THRESHOLD),
        )

    return _failure_tracker


def reset_failure_tracker() -> None:
    """Drop the global tracker (used by tests)."""
    global _failure_tracker
    _failure_tracker = None
