"""
Named advisory lock hosted in the database.

Serializes ingestion passes across processes and hosts. A lock is a row in
``feed_processing_locks`` keyed by name; inserting the row acquires the
lock and deleting it releases it. Every lock carries an expiry so a crashed
holder blocks other runs only until the timeout elapses.

Usage:
    from releases.services.processing_lock import processing_lock, LockNotAcquired

    try:
        with processing_lock("feed_processing", timeout_minutes=30):
            run_pass()
    except LockNotAcquired:
        logger.warning("Another process is running")
"""

import logging
import os
import socket
from contextlib import contextmanager
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from releases.exceptions import LockNotAcquired

logger = logging.getLogger(__name__)

FEED_PROCESSING_LOCK = "feed_processing"
DEFAULT_TIMEOUT_MINUTES = 30


def default_holder() -> str:
    """Identify this process as <hostname>:<pid>."""
    return f"{socket.gethostname()}:{os.getpid()}"


def acquire_lock(
    lock_name: str,
    timeout_minutes: Optional[int] = None,
    holder: Optional[str] = None,
) -> bool:
    """
    Try to take a named lock.

    Stale locks (past their expiry) are cleared first.

    Args:
        lock_name: Name of the lock
        timeout_minutes: Minutes until the lock expires on its own
        holder: Identifier of the caller, stored for diagnostics

    Returns:
        True if the lock was acquired, False if someone else holds it
    """
    from releases.models import ProcessingLock

    if timeout_minutes is None:
        timeout_minutes = getattr(settings, "INGEST_LOCK_TIMEOUT_MINUTES", DEFAULT_TIMEOUT_MINUTES)

    now = timezone.now()

    stale = ProcessingLock.objects.filter(lock_name=lock_name, expires_at__lte=now).delete()[0]
    if stale:
        logger.warning(f"Cleared expired lock '{lock_name}'")

    try:
        with transaction.atomic():
            ProcessingLock.objects.create(
                lock_name=lock_name,
                locked_at=now,
                locked_by=holder or default_holder(),
                expires_at=now + timedelta(minutes=timeout_minutes),
            )
    except IntegrityError:
        logger.info(f"Lock '{lock_name}' is held by another process")
        return False

    logger.debug(f"Acquired lock '{lock_name}' for {timeout_minutes} minutes")
    return True


def release_lock(lock_name: str, holder: Optional[str] = None) -> bool:
    """
    Release a named lock.

    Args:
        lock_name: Name of the lock
        holder: When given, only a lock taken by this holder is released

    Returns:
        True if a lock row was removed
    """
    from releases.models import ProcessingLock

    queryset = ProcessingLock.objects.filter(lock_name=lock_name)
    if holder:
        queryset = queryset.filter(locked_by=holder)

    deleted = queryset.delete()[0]
    if deleted:
        logger.debug(f"Released lock '{lock_name}'")
    return bool(deleted)


def is_locked(lock_name: str) -> bool:
    """Check whether a non-expired lock exists."""
    from releases.models import ProcessingLock

    return ProcessingLock.objects.filter(
        lock_name=lock_name, expires_at__gt=timezone.now()
    ).exists()


@contextmanager
def processing_lock(
    lock_name: str = FEED_PROCESSING_LOCK,
    timeout_minutes: Optional[int] = None,
    holder: Optional[str] = None,
):
    """
    Hold a named lock for the duration of a block.

    Raises:
        LockNotAcquired: If the lock is already held
    """
    holder = holder or default_holder()

    if not acquire_lock(lock_name, timeout_minutes=timeout_minutes, holder=holder):
        raise LockNotAcquired(lock_name)

    try:
        yield holder
    finally:
        release_lock(lock_name, holder=holder)
