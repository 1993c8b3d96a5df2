"""
Image maintenance for releases already in the catalog.

Ingestion only picks images while an article is processed. These jobs
revisit the catalog afterwards:

- refetch_release_image: scrape the articles a release came from again and
  store the first candidate the AI service verifies
- backfill_missing_images: refetch for every active release without an image
- recrop_composites: crop releases that were all given the same uncropped
  composite photo, keeping the original for later manual re-crops
- recrop_release: crop a release and its siblings again from their stored
  original

Jobs that walk the catalog run under the feed processing lock so they never
interleave with an ingestion pass.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

from django.conf import settings

from releases.exceptions import LockNotAcquired
from releases.fetchers import ArticleScraper, FetchRouter
from releases.models import ImageSource, Release

from .ai_client import AIEnhancementClient, get_ai_client
from .image_resolver import ImageResolver
from .image_storage import (
    load_image,
    store_original_image,
    store_release_image,
    store_release_image_bytes,
)
from .processing_lock import FEED_PROCESSING_LOCK, processing_lock

logger = logging.getLogger(__name__)

MAX_REFETCH_CANDIDATES = 10

STATUS_COMPLETED = "completed"
STATUS_LOCKED = "locked"


@dataclass
class ImageRefetchResult:
    """Outcome of refetching the image of one release."""

    release_id: str
    success: bool = False
    image_url: Optional[str] = None
    candidates: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MaintenanceSummary:
    """Totals of a maintenance job."""

    checked: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)
    lock_acquired: bool = True
    status: str = STATUS_COMPLETED

    def to_dict(self) -> dict:
        return asdict(self)


class ImageMaintenance:
    """
    Re-resolves and re-crops images of existing releases.
    """

    def __init__(
        self,
        ai_client: Optional[AIEnhancementClient] = None,
        router: Optional[FetchRouter] = None,
        image_resolver: Optional[ImageResolver] = None,
        delay: Optional[float] = None,
    ):
        """
        Initialize the maintenance jobs.

        Args:
            ai_client: AI Enhancement client (default from settings)
            router: Fetch router for article pages and images
            image_resolver: Image resolver (built on ai_client when omitted)
            delay: Seconds to wait between releases (INGEST_ARTICLE_DELAY)
        """
        self.ai_client = ai_client or get_ai_client()
        self.router = router or FetchRouter()
        self.scraper = ArticleScraper(self.router)
        self.image_fetcher = self.router.direct
        self.image_resolver = image_resolver or ImageResolver(
            ai_client=self.ai_client, fetcher=self.image_fetcher
        )
        self.delay = delay if delay is not None else getattr(settings, "INGEST_ARTICLE_DELAY", 1)

    def close(self):
        self.router.close()

    def _sleep(self) -> None:
        if self.delay:
            time.sleep(self.delay)

    # Refetch

    @staticmethod
    def article_urls(release: Release) -> List[str]:
        """Article URLs a release was found in: its origin first, then provenance oldest first."""
        urls = []
        provenance = release.article_sources.order_by("discovered_at").values_list("source_url", flat=True)
        for url in [release.source_url, release.article_url, *provenance]:
            if url and url not in urls:
                urls.append(url)
        return urls

    def gather_candidates(self, release: Release) -> Tuple[List[str], List[str]]:
        """
        Scrape a release's articles for candidate images.

        Returns:
            (candidate image URLs, scrape errors)
        """
        candidates: List[str] = []
        errors: List[str] = []

        for url in self.article_urls(release):
            scraped = self.scraper.scrape(url)
            if not scraped.success:
                errors.append(f"{url}: {scraped.error}")
                continue
            for image_url in scraped.images:
                if image_url not in candidates:
                    candidates.append(image_url)
            if len(candidates) >= MAX_REFETCH_CANDIDATES:
                break

        return candidates[:MAX_REFETCH_CANDIDATES], errors

    def refetch_release_image(self, release: Release, apply: bool = True) -> ImageRefetchResult:
        """
        Find a verified image for a release in the articles it came from.

        Args:
            release: Release to refetch for
            apply: Store the verified image and make it the primary image

        Returns:
            ImageRefetchResult with the candidates that were considered
        """
        result = ImageRefetchResult(release_id=str(release.id))

        if not self.article_urls(release):
            result.error = "Release has no article URL"
            return result

        candidates, scrape_errors = self.gather_candidates(release)
        result.candidates = candidates
        if not candidates:
            result.error = "; ".join(scrape_errors) or "No images found in the release's articles"
            return result

        chosen = self.image_resolver.find_best_image(candidates, release.title, release.category)
        if chosen is None:
            result.error = "No candidate image matched the release"
            return result

        if not apply:
            result.success = True
            result.image_url = chosen
            return result

        stored = store_release_image(
            release, chosen, source=ImageSource.BLOG, fetcher=self.image_fetcher, make_primary=True
        )
        if stored is None:
            result.error = f"Failed to store {chosen}"
            return result

        logger.info(f"Refetched image for release {release.id}: {stored}")
        result.success = True
        result.image_url = stored
        return result

    def backfill_missing_images(self, limit: Optional[int] = None) -> MaintenanceSummary:
        """
        Refetch images for active releases that have none, newest first.

        Args:
            limit: Maximum number of releases to check

        Returns:
            MaintenanceSummary of the run
        """
        summary = MaintenanceSummary()
        releases = Release.active.filter(image_url="").order_by("-created_at")
        if limit:
            releases = releases[:limit]

        for index, release in enumerate(list(releases)):
            if index:
                self._sleep()
            summary.checked += 1
            try:
                result = self.refetch_release_image(release)
            except Exception as e:
                logger.exception(f"Image backfill failed for release {release.id}: {e}")
                summary.errors.append(f"{release.title}: {e}")
                continue

            if result.success:
                summary.updated += 1
            else:
                logger.info(f"No image for '{release.title}': {result.error}")
                summary.errors.append(f"{release.title}: {result.error}")

        logger.info(f"Image backfill finished: {summary.updated}/{summary.checked} releases updated")
        return summary

    # Re-crop

    @staticmethod
    def shared_image_groups() -> List[Tuple[str, List[Release]]]:
        """Uncropped images shared by more than one active release."""
        groups: Dict[str, List[Release]] = {}
        releases = Release.active.exclude(image_url="").order_by("created_at")
        for release in releases:
            groups.setdefault(release.image_url, []).append(release)
        return [(url, members) for url, members in groups.items() if len(members) > 1]

    def _crop_group(self, image_url: str, releases: List[Release], original_url: Optional[str]) -> int:
        image = load_image(image_url, fetcher=self.image_fetcher)
        if image is None:
            raise ValueError(f"Could not load {image_url}")

        resolution = self.image_resolver.crop_composite(image, [release.title for release in releases])
        if not resolution.found:
            logger.info(f"No products identified in {image_url}")
            return 0

        by_title = {release.title: release for release in releases}
        updated = 0
        for name, crop in resolution.crops.items():
            release = by_title.get(name)
            if release is None:
                continue

            store_release_image_bytes(
                release, crop.image_bytes, content_type=crop.content_type,
                source=ImageSource.BLOG, make_primary=True,
            )
            if original_url is None:
                original_url = store_original_image(release, image.data, image.content_type)
            elif release.original_image_url != original_url:
                release.original_image_url = original_url
                release.save(update_fields=["original_image_url"])
            updated += 1

        logger.info(f"Cropped {updated} releases from {image_url}")
        return updated

    def recrop_composites(self) -> MaintenanceSummary:
        """
        Crop releases that share one uncropped image.

        The shared image is stored once as the original and every cropped
        release links to it.

        Returns:
            MaintenanceSummary; ``checked`` counts releases in shared groups
        """
        summary = MaintenanceSummary()

        for index, (image_url, releases) in enumerate(self.shared_image_groups()):
            if index:
                self._sleep()
            summary.checked += len(releases)
            try:
                summary.updated += self._crop_group(image_url, releases, original_url=None)
            except Exception as e:
                logger.warning(f"Re-crop failed for {image_url}: {e}")
                summary.errors.append(f"{image_url}: {e}")

        return summary

    def recrop_release(self, release: Release) -> MaintenanceSummary:
        """
        Crop a release and its siblings again from their stored original.

        Args:
            release: Release with an ``original_image_url``

        Returns:
            MaintenanceSummary for the sibling group
        """
        summary = MaintenanceSummary()
        if not release.original_image_url:
            summary.errors.append(f"{release.title}: no stored original image")
            return summary

        siblings = list(
            Release.active.filter(original_image_url=release.original_image_url).order_by("created_at")
        )
        summary.checked = len(siblings)
        try:
            summary.updated = self._crop_group(
                release.original_image_url, siblings, original_url=release.original_image_url
            )
        except Exception as e:
            logger.warning(f"Re-crop failed for release {release.id}: {e}")
            summary.errors.append(f"{release.title}: {e}")
        return summary


def run_image_backfill(
    limit: Optional[int] = None,
    recrop: bool = False,
    holder: Optional[str] = None,
    maintenance: Optional[ImageMaintenance] = None,
) -> MaintenanceSummary:
    """
    Backfill missing images (and optionally re-crop shared composites) under the processing lock.

    Args:
        limit: Maximum number of releases without an image to check
        recrop: Also crop releases that share one uncropped image
        holder: Lock holder identifier (hostname:pid by default)
        maintenance: Jobs to run with (a default instance is built when omitted)

    Returns:
        MaintenanceSummary; ``lock_acquired`` is False when an ingestion pass holds the lock
    """
    try:
        with processing_lock(
            FEED_PROCESSING_LOCK,
            timeout_minutes=getattr(settings, "INGEST_LOCK_TIMEOUT_MINUTES", None),
            holder=holder,
        ):
            maintenance = maintenance or ImageMaintenance()
            try:
                summary = maintenance.backfill_missing_images(limit=limit)
                if recrop:
                    recropped = maintenance.recrop_composites()
                    summary.checked += recropped.checked
                    summary.updated += recropped.updated
                    summary.errors.extend(recropped.errors)
                return summary
            finally:
                maintenance.close()
    except LockNotAcquired as e:
        logger.warning(f"Image backfill not started: {e}")
        return MaintenanceSummary(lock_acquired=False, status=STATUS_LOCKED, errors=[str(e)])
