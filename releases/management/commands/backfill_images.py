"""
Management command to repair release images.

Usage:
    python manage.py backfill_images
    python manage.py backfill_images --limit=50
    python manage.py backfill_images --recrop
    python manage.py backfill_images --release=<release id>
    python manage.py backfill_images --release=<release id> --recrop
"""

import logging
import uuid

from django.core.management.base import BaseCommand, CommandError

from releases.exceptions import LockNotAcquired
from releases.models import Release
from releases.services.image_maintenance import ImageMaintenance, run_image_backfill
from releases.services.processing_lock import FEED_PROCESSING_LOCK, processing_lock

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Refetch missing images and crop shared composite images."""

    help = 'Refetch images for releases without one and crop shared composite images'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=None,
            help='Check at most this many releases without an image',
        )
        parser.add_argument(
            '--recrop',
            action='store_true',
            help='Crop releases that share one uncropped image (with --release: re-crop from the stored original)',
        )
        parser.add_argument(
            '--release',
            type=str,
            default=None,
            help='Repair only the release with this ID',
        )

    def handle(self, *args, **options):
        if options['release']:
            self._repair_release(options['release'], recrop=options['recrop'])
            return

        try:
            summary = run_image_backfill(limit=options['limit'], recrop=options['recrop'])
        except Exception as e:
            logger.exception("Image backfill failed")
            raise CommandError(f'Image backfill failed: {e}')

        if not summary.lock_acquired:
            raise CommandError('Another process is running, aborting')

        self._write_summary(summary)

    def _repair_release(self, release_id, recrop=False):
        try:
            uuid.UUID(release_id)
        except ValueError:
            raise CommandError(f"--release must be a release UUID, got '{release_id}'")

        release = Release.objects.filter(pk=release_id).first()
        if release is None:
            raise CommandError(f'Release {release_id} not found')

        self.stdout.write(f'Repairing: {release.title}')

        try:
            with processing_lock(FEED_PROCESSING_LOCK):
                maintenance = ImageMaintenance()
                try:
                    if recrop:
                        self._write_summary(maintenance.recrop_release(release))
                        return
                    result = maintenance.refetch_release_image(release)
                finally:
                    maintenance.close()
        except LockNotAcquired:
            raise CommandError('Another process is running, aborting')

        if not result.success:
            raise CommandError(f'No image for {release.title}: {result.error}')

        self.stdout.write(f'Candidates checked: {len(result.candidates)}')
        self.stdout.write(self.style.SUCCESS(f'Image: {result.image_url}'))

    def _write_summary(self, summary):
        self.stdout.write(f'Releases checked: {summary.checked}')
        self.stdout.write(f'Releases updated: {summary.updated}')

        if summary.errors:
            self.stdout.write(self.style.WARNING(f'{len(summary.errors)} errors:'))
            for error in summary.errors:
                self.stdout.write(f'  - {error}')
        else:
            self.stdout.write(self.style.SUCCESS('Image repair completed without errors'))
