"""
Management command to run an ingestion pass.

Usage:
    python manage.py process_feeds
    python manage.py process_feeds --force
    python manage.py process_feeds --source=<feed source id>
    python manage.py process_feeds --url=https://example.com/article
"""

import logging
import uuid

from django.core.management.base import BaseCommand, CommandError

from releases.exceptions import LockNotAcquired
from releases.models import FeedSource
from releases.services.feed_orchestrator import (
    FeedOrchestrator,
    IngestionSource,
    run_ingestion_pass,
)
from releases.services.processing_lock import FEED_PROCESSING_LOCK, processing_lock

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Run an ingestion pass over the feed sources."""

    help = 'Fetch feeds, extract merchandise releases and update the catalog'

    def add_arguments(self, parser):
        parser.add_argument(
            '--force',
            action='store_true',
            help='Ignore recheck intervals and process every active source',
        )
        parser.add_argument(
            '--source',
            type=str,
            default=None,
            help='Process only the feed source with this ID',
        )
        parser.add_argument(
            '--url',
            type=str,
            default=None,
            help='Process a single article URL as a manual import',
        )

    def handle(self, *args, **options):
        if options['url']:
            self._process_url(options['url'])
            return

        if options['source']:
            try:
                uuid.UUID(options['source'])
            except ValueError:
                raise CommandError(f"--source must be a feed source UUID, got '{options['source']}'")

        try:
            summary = run_ingestion_pass(force=options['force'], source_id=options['source'])
        except FeedSource.DoesNotExist:
            raise CommandError(f"Feed source {options['source']} not found")
        except Exception as e:
            logger.exception("Ingestion pass failed")
            raise CommandError(f'Ingestion pass failed: {e}')

        if not summary.lock_acquired:
            raise CommandError('Another process is running, aborting')

        self.stdout.write(f'Sources processed: {summary.sources_processed}')
        self.stdout.write(f'Articles processed: {summary.total_articles}')
        self.stdout.write(f'New releases: {summary.new_releases}')
        self.stdout.write(f'Updated releases: {summary.updated_releases}')

        if summary.errors:
            self.stdout.write(self.style.WARNING(f'{len(summary.errors)} errors:'))
            for error in summary.errors:
                self.stdout.write(f'  - {error}')
        else:
            self.stdout.write(self.style.SUCCESS('Ingestion pass completed without errors'))

    def _process_url(self, url):
        self.stdout.write(f'Processing: {url}')

        try:
            with processing_lock(FEED_PROCESSING_LOCK):
                orchestrator = FeedOrchestrator()
                try:
                    result = orchestrator.process_url(url, IngestionSource.adhoc(url))
                finally:
                    orchestrator.close()
        except LockNotAcquired:
            raise CommandError('Another process is running, aborting')
        except Exception as e:
            logger.exception(f"Processing {url} failed")
            raise CommandError(f'Failed to process {url}: {e}')

        if result.error:
            raise CommandError(f'Failed to process {url}: {result.error}')

        if result.already_processed:
            self.stdout.write(self.style.WARNING('Article was already processed'))
            return

        self.stdout.write(f'Products found: {result.items_found}')
        self.stdout.write(f'New releases: {result.new_releases}')
        self.stdout.write(f'Updated releases: {result.updated_releases}')
        for error in result.errors:
            self.stdout.write(self.style.WARNING(f'  - {error}'))
        self.stdout.write(self.style.SUCCESS('Done'))
