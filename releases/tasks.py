"""
Celery tasks for release ingestion.

- process_feeds: one ingestion pass under the feed processing lock,
  scheduled by Celery Beat every 6 hours and triggerable from the API
- backfill_missing_images: refetch images for releases that have none,
  scheduled daily under the same lock
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from releases.monitoring import capture_ingest_error
from releases.services.feed_orchestrator import run_ingestion_pass
from releases.services.image_maintenance import run_image_backfill

logger = logging.getLogger(__name__)


@shared_task(name="releases.tasks.process_feeds")
def process_feeds(force: bool = False, source_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Run an ingestion pass over the active feed sources.

    Lock contention is not an error: the summary is returned with
    ``lock_acquired`` False and status "locked".

    Args:
        force: Ignore recheck intervals
        source_id: Process only this FeedSource

    Returns:
        Pass summary dict
    """
    logger.info(f"Starting feed processing (force={force}, source_id={source_id})")

    try:
        summary = run_ingestion_pass(force=force, source_id=source_id)
    except Exception as e:
        logger.exception("Feed processing failed")
        capture_ingest_error(
            e, extra_context={"task": "process_feeds", "force": force, "source_id": source_id}
        )
        raise

    if not summary.lock_acquired:
        logger.warning("Feed processing skipped: another process is running")
    else:
        logger.info(
            f"Feed processing finished: {summary.new_releases} new, "
            f"{summary.updated_releases} updated, {len(summary.errors)} errors"
        )

    return summary.to_dict()


@shared_task(name="releases.tasks.backfill_missing_images")
def backfill_missing_images(limit: Optional[int] = None, recrop: bool = False) -> Dict[str, Any]:
    """
    Refetch images for active releases without one.

    Args:
        limit: Maximum number of releases to check
        recrop: Also crop releases that share one uncropped image

    Returns:
        Maintenance summary dict
    """
    logger.info(f"Starting image backfill (limit={limit}, recrop={recrop})")

    try:
        summary = run_image_backfill(limit=limit, recrop=recrop)
    except Exception as e:
        logger.exception("Image backfill failed")
        capture_ingest_error(
            e, extra_context={"task": "backfill_missing_images", "limit": limit, "recrop": recrop}
        )
        raise

    if not summary.lock_acquired:
        logger.warning("Image backfill skipped: another process is running")
    else:
        logger.info(
            f"Image backfill finished: {summary.updated}/{summary.checked} updated, "
            f"{len(summary.errors)} errors"
        )

    return summary.to_dict()
