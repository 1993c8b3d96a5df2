"""
Release lifecycle state machine.

Status moves forward only, through the fixed order:

    rumored -> announced -> coming_soon -> available -> sold_out

Moving to the same status or a later one is accepted. Moving backward is
rejected without touching the release. Reaching ``available`` or
``sold_out`` stamps the matching date when the caller does not supply one
and the release does not already carry one.

Also hosts release merging, which tombstones a duplicate release by pointing
it at the surviving one.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from django.db import transaction
from django.utils import timezone

from releases.models import ArticleSource, Release, ReleaseImage, ReleaseStatus

logger = logging.getLogger(__name__)

STATUS_ORDER = [choice.value for choice in ReleaseStatus]

# Date field stamped when a release reaches the status
STATUS_DATE_FIELDS = {
    ReleaseStatus.AVAILABLE.value: "actual_release_date",
    ReleaseStatus.SOLD_OUT.value: "sold_out_date",
}


class LifecycleError(Exception):
    """Raised for invalid merge requests."""


@dataclass
class TransitionResult:
    """Outcome of a status update."""

    success: bool
    status: Optional[str] = None
    previous_status: Optional[str] = None
    error: Optional[str] = None


def status_index(status: str) -> int:
    """Position of a status in the lifecycle order (-1 when unknown)."""
    try:
        return STATUS_ORDER.index(status)
    except ValueError:
        return -1


def can_transition(current_status: str, new_status: str) -> bool:
    """
    Check whether a release may move from one status to another.

    Args:
        current_status: Status the release is in
        new_status: Requested status

    Returns:
        True for the same or a later status
    """
    new_index = status_index(new_status)
    if new_index < 0:
        return False
    return new_index >= status_index(current_status)


@transaction.atomic
def update_release_status(
    release,
    new_status: str,
    status_date: Optional[date] = None,
) -> TransitionResult:
    """
    Move a release to a new lifecycle status.

    Args:
        release: Release instance or ID
        new_status: Requested status
        status_date: Explicit date for the actual-release or sold-out stamp

    Returns:
        TransitionResult; on rejection nothing is written
    """
    release_id = getattr(release, "pk", release)
    instance = Release.objects.select_for_update().filter(pk=release_id).first()
    if instance is None:
        return TransitionResult(success=False, error="Release not found")

    current = instance.status

    if status_index(new_status) < 0:
        return TransitionResult(
            success=False,
            status=current,
            previous_status=current,
            error=f"Unknown status '{new_status}'",
        )

    if not can_transition(current, new_status):
        logger.info(
            f"Rejected status change for {instance.id}: {current} -> {new_status}"
        )
        return TransitionResult(
            success=False,
            status=current,
            previous_status=current,
            error=f"Cannot move status backward from {current} to {new_status}",
        )

    instance.status = new_status
    update_fields = ["status"]

    date_field = STATUS_DATE_FIELDS.get(new_status)
    if date_field:
        if status_date is not None:
            setattr(instance, date_field, status_date)
            update_fields.append(date_field)
        elif getattr(instance, date_field) is None:
            setattr(instance, date_field, timezone.localdate())
            update_fields.append(date_field)

    instance.save(update_fields=update_fields)

    if isinstance(release, Release):
        release.status = instance.status
        for field_name in update_fields:
            setattr(release, field_name, getattr(instance, field_name))

    return TransitionResult(success=True, status=new_status, previous_status=current)


@transaction.atomic
def merge_releases(source_id, target_id) -> Release:
    """
    Merge a duplicate release into the surviving one.

    The source release is tombstoned through ``merged_into``. Its provenance
    records and gallery images move to the target, skipping URLs the target
    already has.

    Args:
        source_id: Release being retired
        target_id: Release that survives

    Returns:
        The target Release

    Raises:
        LifecycleError: For self-merges, missing releases, or releases that are already merged
    """
    if str(source_id) == str(target_id):
        raise LifecycleError("Cannot merge a release into itself")

    source = Release.objects.select_for_update().filter(pk=source_id).first()
    target = Release.objects.select_for_update().filter(pk=target_id).first()

    if source is None or target is None:
        raise LifecycleError("Release not found")
    if source.merged_into_id is not None:
        raise LifecycleError(f"Release {source.id} is already merged")
    if target.merged_into_id is not None:
        raise LifecycleError(f"Cannot merge into merged release {target.id}")

    existing_sources = set(
        ArticleSource.objects.filter(release=target).values_list("source_url", flat=True)
    )
    for article_source in ArticleSource.objects.filter(release=source):
        if article_source.source_url in existing_sources:
            article_source.delete()
        else:
            article_source.release = target
            article_source.save(update_fields=["release"])

    existing_images = set(
        ReleaseImage.objects.filter(release=target).values_list("url", flat=True)
    )
    next_position = ReleaseImage.objects.filter(release=target).count()
    for image in ReleaseImage.objects.filter(release=source).order_by("position"):
        if image.url in existing_images:
            continue
        ReleaseImage.objects.create(
            release=target,
            url=image.url,
            source=image.source,
            is_primary=False,
            position=next_position,
        )
        next_position += 1

    if not target.image_url and source.image_url:
        target.image_url = source.image_url
        target.save(update_fields=["image_url"])

    source.merged_into = target
    source.save(update_fields=["merged_into"])

    logger.info(f"Merged release {source.id} into {target.id}")
    return target
