"""
Feed ingestion orchestrator.

Drives one ingestion pass:

    active sources -> feed items -> article screening -> content sourcing
    -> product extraction -> product screening -> duplicate resolution
    -> image resolution -> lifecycle -> persistence

Sources, articles and products are processed one at a time, with a fixed
delay between articles (INGEST_ARTICLE_DELAY) and between sources
(INGEST_SOURCE_DELAY). A failure on one article or product is recorded and
the pass moves on; a failed feed fetch is recorded on the source. Whole
passes are serialized by the ``feed_processing`` lock in
``run_ingestion_pass``.

Usage:
    from releases.services.feed_orchestrator import run_ingestion_pass

    summary = run_ingestion_pass(force=True)
    if not summary.lock_acquired:
        ...
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from releases.exceptions import FeedFetchError, LockNotAcquired
from releases.fetchers import (
    ArticleScraper,
    FeedItem,
    FetchRouter,
    extract_images_from_html,
    fetch_feed,
    fragment_text,
)
from releases.models import (
    FeedSource,
    FeedSourceType,
    ImageSource,
    ParkChoices,
    ProcessedArticle,
    Release,
    SourceParkChoices,
)
from releases.monitoring import add_ingest_breadcrumb, capture_ingest_error, get_failure_tracker
from releases.utils import generate_canonical_name

from .ai_client import AIEnhancementClient, ExtractedProduct, get_ai_client
from .content_filters import screen_article, screen_product
from .duplicate_detector import DuplicateResolver, get_duplicate_resolver
from .image_cropper import CropResult
from .image_resolver import CompositeResolution, ImageResolver
from .image_storage import store_original_image, store_release_image, store_release_image_bytes
from .lifecycle import STATUS_DATE_FIELDS, can_transition, update_release_status
from .processing_lock import FEED_PROCESSING_LOCK, processing_lock
from .source_tracker import add_source_to_release

logger = logging.getLogger(__name__)

RAW_CONTENT_MAX_LENGTH = 5000
FEATURED_DEMAND_SCORE = 8

# Nickelodeon lands are at Universal Orlando
NICKELODEON_BRANDS = ("spongebob", "nickelodeon", "patrick star", "bikini bottom")

STATUS_COMPLETED = "completed"
STATUS_LOCKED = "locked"


@dataclass(frozen=True)
class IngestionSource:
    """
    The source an article is attributed to.

    Built from a FeedSource for scheduled passes, or with ``adhoc`` for
    single-article runs from tooling. Ad-hoc sources have no ID and their
    articles are not linked to a FeedSource.
    """

    name: str
    url: str = ""
    park: str = SourceParkChoices.ALL
    source_type: str = FeedSourceType.MANUAL
    check_frequency_hours: int = 24
    id: Optional[object] = None

    @classmethod
    def from_feed_source(cls, feed_source: FeedSource) -> "IngestionSource":
        return cls(
            name=feed_source.name,
            url=feed_source.url,
            park=feed_source.park,
            source_type=feed_source.source_type,
            check_frequency_hours=feed_source.check_frequency_hours,
            id=feed_source.id,
        )

    @classmethod
    def adhoc(cls, url: str = "", name: str = "Manual Import") -> "IngestionSource":
        return cls(name=name, url=url)


@dataclass
class ArticleResult:
    """Outcome of processing one article."""

    url: str
    items_found: int = 0
    new_releases: int = 0
    updated_releases: int = 0
    skipped_products: int = 0
    already_processed: bool = False
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class SourceResult:
    """Outcome of processing one feed source."""

    source_name: str
    articles_processed: int = 0
    articles_skipped: int = 0
    new_releases: int = 0
    updated_releases: int = 0
    errors: List[str] = field(default_factory=list)

    def add_article(self, article: ArticleResult, title: str) -> None:
        self.articles_processed += 1
        self.new_releases += article.new_releases
        self.updated_releases += article.updated_releases
        if article.error:
            self.errors.append(f"{title}: {article.error}")
        self.errors.extend(f"{title}: {error}" for error in article.errors)


@dataclass
class PassSummary:
    """Final summary of an ingestion pass."""

    sources_processed: int = 0
    total_articles: int = 0
    new_releases: int = 0
    updated_releases: int = 0
    errors: List[str] = field(default_factory=list)
    lock_acquired: bool = True
    status: str = STATUS_COMPLETED

    def add_source(self, result: SourceResult) -> None:
        self.sources_processed += 1
        self.total_articles += result.articles_processed
        self.new_releases += result.new_releases
        self.updated_releases += result.updated_releases
        self.errors.extend(f"[{result.source_name}] {error}" for error in result.errors)

    def to_dict(self) -> dict:
        return asdict(self)


def map_park(location: Optional[str], source_park: str) -> str:
    """
    Map an extracted venue code to a park.

    Args:
        location: Venue code from extraction, e.g. "disney_mk"
        source_park: Park of the feed source ("all" when it covers every resort)

    Returns:
        ParkChoices value
    """
    location = (location or "").lower()
    if location.startswith("disney"):
        return ParkChoices.DISNEY
    if location.startswith("universal"):
        return ParkChoices.UNIVERSAL
    if location == "seaworld":
        return ParkChoices.SEAWORLD
    if source_park and source_park != SourceParkChoices.ALL:
        return source_park
    return ParkChoices.DISNEY


def product_park(product: ExtractedProduct, source_park: str) -> str:
    """Park for a new release, with Nickelodeon brands placed at Universal."""
    name = product.name.lower()
    if any(brand in name for brand in NICKELODEON_BRANDS):
        return ParkChoices.UNIVERSAL
    return map_park(product.park, source_park)


class FeedOrchestrator:
    """
    Runs feed sources and articles through the ingestion pipeline.
    """

    def __init__(
        self,
        ai_client: Optional[AIEnhancementClient] = None,
        router: Optional[FetchRouter] = None,
        image_resolver: Optional[ImageResolver] = None,
        duplicate_resolver: Optional[DuplicateResolver] = None,
        article_delay: Optional[float] = None,
        source_delay: Optional[float] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            ai_client: AI Enhancement client (default from settings)
            router: Fetch router used for feeds, pages and images
            image_resolver: Image resolver (built on ai_client when omitted)
            duplicate_resolver: Duplicate resolver (global instance when omitted)
            article_delay: Seconds to wait between articles (INGEST_ARTICLE_DELAY)
            source_delay: Seconds to wait between sources (INGEST_SOURCE_DELAY)
        """
        self.ai_client = ai_client or get_ai_client()
        self.router = router or FetchRouter()
        self.scraper = ArticleScraper(self.router)
        self.image_fetcher = self.router.direct
        self.image_resolver = image_resolver or ImageResolver(
            ai_client=self.ai_client, fetcher=self.image_fetcher
        )
        self.duplicate_resolver = duplicate_resolver or get_duplicate_resolver()
        self.article_delay = article_delay if article_delay is not None else getattr(
            settings, "INGEST_ARTICLE_DELAY", 1
        )
        self.source_delay = source_delay if source_delay is not None else getattr(
            settings, "INGEST_SOURCE_DELAY", 2
        )
        self.min_embedded_content = getattr(settings, "INGEST_MIN_EMBEDDED_CONTENT", 500)

    def close(self):
        self.router.close()

    @staticmethod
    def _sleep(seconds: float) -> None:
        if seconds and seconds > 0:
            time.sleep(seconds)

    # Passes and sources

    def process_all_sources(self, force: bool = False) -> PassSummary:
        """
        Process every active source that is due for a check.

        Args:
            force: Ignore recheck intervals (also enabled by FORCE_RECHECK)

        Returns:
            PassSummary of the pass
        """
        force = force or getattr(settings, "FORCE_RECHECK", False)
        summary = PassSummary()
        now = timezone.now()

        sources = list(FeedSource.objects.filter(is_active=True).order_by("name"))
        logger.info(f"Starting ingestion pass over {len(sources)} active sources (force={force})")

        for feed_source in sources:
            if not force and not feed_source.is_due_for_check(now):
                logger.debug(f"Skipping {feed_source.name}: checked {feed_source.last_checked}")
                continue

            if summary.sources_processed:
                self._sleep(self.source_delay)

            logger.info(f"Processing source: {feed_source.name}")
            summary.add_source(self.process_feed_source(feed_source))

        logger.info(
            f"Ingestion pass complete: {summary.sources_processed} sources, "
            f"{summary.total_articles} articles, {summary.new_releases} new, "
            f"{summary.updated_releases} updated, {len(summary.errors)} errors"
        )
        return summary

    def process_feed_source(self, feed_source: FeedSource) -> SourceResult:
        """
        Fetch one feed and process its articles in feed order.

        ``last_checked`` and ``last_error`` are updated whatever the outcome.

        Args:
            feed_source: FeedSource to process

        Returns:
            SourceResult for the source
        """
        source = IngestionSource.from_feed_source(feed_source)
        result = SourceResult(source_name=source.name)
        feed_failed = False

        add_ingest_breadcrumb(source.name, feed_source.url, message="Fetching feed")

        try:
            items = fetch_feed(feed_source.url, router=self.router)
            self._process_items(source, items, result)
        except FeedFetchError as e:
            feed_failed = True
            logger.error(f"Failed to fetch feed for {source.name}: {e}")
            result.errors.append(str(e))
            capture_ingest_error(e, source=source, url=feed_source.url)
        except Exception as e:
            feed_failed = True
            logger.exception(f"Unexpected error processing {source.name}: {e}")
            result.errors.append(str(e) or type(e).__name__)
            capture_ingest_error(e, source=source, url=feed_source.url)
            raise
        finally:
            self._update_bookkeeping(feed_source, result)
            self._track_outcome(feed_source, feed_failed)

        return result

    def _process_items(self, source: IngestionSource, items: List[FeedItem], result: SourceResult) -> None:
        for item in items:
            title = item.title or "Untitled"

            screening = screen_article(item.title, item.content)
            if screening.skip:
                logger.info(f"Skipping article '{title}': {screening.reason}")
                result.articles_skipped += 1
                continue

            if self.is_processed(source, item.link):
                logger.debug(f"Already processed: {item.link}")
                result.articles_skipped += 1
                continue

            if result.articles_processed:
                self._sleep(self.article_delay)

            add_ingest_breadcrumb(source.name, item.link, message="Processing article")

            try:
                content, images = self.gather_content(item)
                article = self.process_article(
                    source, item.link, title, content, images, item.published_at
                )
            except Exception as e:
                logger.exception(f"Failed to process article {item.link}: {e}")
                result.articles_processed += 1
                result.errors.append(f"{title}: {e}")
                continue

            result.add_article(article, title)

    def _update_bookkeeping(self, feed_source: FeedSource, result: SourceResult) -> None:
        feed_source.last_checked = timezone.now()
        feed_source.last_error = result.errors[0] if result.errors else None
        feed_source.save(update_fields=["last_checked", "last_error", "updated_at"])

    def _track_outcome(self, feed_source: FeedSource, failed: bool) -> None:
        tracker = get_failure_tracker()
        if failed:
            tracker.record_failure(feed_source.id, feed_source.name)
        else:
            tracker.record_success(feed_source.id)

    # Articles

    def gather_content(self, item: FeedItem) -> Tuple[str, List[str]]:
        """
        Choose the text and candidate images for a feed item.

        Embedded feed content is used when it is long enough and carries
        images. Otherwise the article page is scraped, keeping the embedded
        content when the scrape fails.

        Args:
            item: Feed item

        Returns:
            Tuple of (text, image URLs)
        """
        embedded_text = fragment_text(item.content)
        embedded_images = extract_images_from_html(item.content, item.link)
        if item.image_url and item.image_url not in embedded_images:
            embedded_images.insert(0, item.image_url)

        if len(embedded_text) >= self.min_embedded_content and embedded_images:
            logger.debug(f"Using embedded content for {item.link}")
            return embedded_text, embedded_images

        scraped = self.scraper.scrape(item.link)
        if scraped.success and scraped.content:
            return scraped.content, scraped.images or embedded_images

        logger.info(f"Scrape failed for {item.link}, using feed content")
        return embedded_text or item.summary or "", embedded_images

    def is_processed(self, source: IngestionSource, url: str) -> bool:
        """Check whether an article already went through extraction for a source."""
        return ProcessedArticle.objects.filter(source_id=source.id, url=url).exists()

    def _record_article(self, source: IngestionSource, url: str, title: str,
                        items_found: int = 0, error: Optional[str] = None) -> None:
        ProcessedArticle.objects.update_or_create(
            source_id=source.id,
            url=url,
            defaults={
                "title": (title or "")[:500],
                "items_found": items_found,
                "error": error,
                "processed_at": timezone.now(),
            },
        )

    def process_article(
        self,
        source: IngestionSource,
        url: str,
        title: str,
        content: str,
        images: List[str],
        published_at: Optional[datetime] = None,
    ) -> ArticleResult:
        """
        Extract products from an article and merge them into the catalog.

        The article is recorded in ProcessedArticle whatever the outcome, and
        is skipped if the source already processed it.

        Args:
            source: Source the article is attributed to
            url: Article URL
            title: Article title
            content: Article text
            images: Candidate image URLs in article order
            published_at: Publication time, used as the release date

        Returns:
            ArticleResult with new and updated release counts
        """
        result = ArticleResult(url=url)

        if self.is_processed(source, url):
            result.already_processed = True
            return result

        extraction = self.ai_client.extract_products(content, url, source.name)
        if not extraction.success:
            result.error = extraction.error or "Extraction failed"
            self._record_article(source, url, title, error=result.error)
            return result

        result.items_found = len(extraction.products)
        self._record_article(source, url, title, items_found=result.items_found)

        if not extraction.is_merchandise_related or not extraction.products:
            return result

        products = []
        for product in extraction.products:
            if screen_product(product).skip:
                result.skipped_products += 1
            else:
                products.append(product)

        composite = self.image_resolver.resolve_composites(
            [product.name for product in products], images
        )

        for product in products:
            try:
                created = self._process_product(
                    source, url, title, content, images, published_at, product, composite
                )
            except Exception as e:
                logger.exception(f"Failed to save product '{product.name}' from {url}: {e}")
                result.errors.append(f"{product.name}: {e}")
                continue

            if created:
                result.new_releases += 1
            else:
                result.updated_releases += 1

        return result

    def process_url(self, url: str, source: Optional[IngestionSource] = None,
                    title: str = "Manual Import") -> ArticleResult:
        """
        Scrape and process a single article URL.

        Args:
            url: Article URL
            source: Attribution (an ad-hoc "Manual Import" source by default)
            title: Article title to record

        Returns:
            ArticleResult; a failed scrape is reported in ``error``
        """
        source = source or IngestionSource.adhoc(url)

        scraped = self.scraper.scrape(url)
        if not scraped.success:
            return ArticleResult(url=url, error=scraped.error or "Failed to fetch article")

        logger.info(f"Scraped {url}: {len(scraped.content)} chars, {len(scraped.images)} images")
        return self.process_article(source, url, title, scraped.content, scraped.images)

    # Products

    def _process_product(
        self,
        source: IngestionSource,
        url: str,
        title: str,
        content: str,
        images: List[str],
        published_at: Optional[datetime],
        product: ExtractedProduct,
        composite: CompositeResolution,
    ) -> bool:
        """Merge one product into the catalog. Returns True when a release was created."""
        crop = composite.crop_for(product.name)

        image_url = product.image_url or ""
        if crop is None and not image_url and images:
            image_url = self.image_resolver.find_best_image(
                images, product.name, product.category
            ) or ""

        canonical_name = generate_canonical_name(product.name)
        resolution = self.duplicate_resolver.resolve(
            product.name,
            canonical_name=canonical_name,
            image_url=image_url or None,
            source_url=url,
        )

        if not resolution.is_new:
            release = Release.objects.get(pk=resolution.release_id)
            logger.info(
                f"Duplicate detected: '{product.name}' matches '{release.title}' "
                f"({resolution.reason}, confidence={resolution.confidence:.2f})"
            )
            add_source_to_release(release, url, source.name, title, product.description)

            if can_transition(release.status, product.release_status) and release.status != product.release_status:
                update_release_status(release, product.release_status)

            if not release.image_url and (crop or image_url):
                self._attach_image(release, crop, image_url, composite)
            return False

        with transaction.atomic():
            release = Release.objects.create(**self._new_release_fields(
                source, url, content, published_at, product, canonical_name
            ))
            add_source_to_release(release, url, source.name, title, product.description)

        logger.info(f"Created new release: {product.name}")

        if crop or image_url:
            self._attach_image(release, crop, image_url, composite)
        return True

    def _new_release_fields(
        self,
        source: IngestionSource,
        url: str,
        content: str,
        published_at: Optional[datetime],
        product: ExtractedProduct,
        canonical_name: str,
    ) -> dict:
        fields = {
            "title": product.name,
            "canonical_name": canonical_name,
            "description": product.description,
            "source_url": url,
            "article_url": url,
            "source": source.name,
            "feed_source_id": source.id,
            "park": product_park(product, source.park),
            "location": product.park or None,
            "category": product.category,
            "store_name": product.store_name,
            "store_area": product.store_area,
            "price_estimate": product.estimated_price,
            "release_date": published_at or timezone.now(),
            "is_limited_edition": product.is_limited_edition,
            "is_featured": product.demand_score >= FEATURED_DEMAND_SCORE,
            "ai_description": product.description,
            "ai_tags": product.tags,
            "ai_demand_score": product.demand_score,
            "raw_content": content[:RAW_CONTENT_MAX_LENGTH],
            "status": product.release_status,
            "projected_release_date": product.projected_date,
        }

        date_field = STATUS_DATE_FIELDS.get(product.release_status)
        if date_field:
            fields[date_field] = timezone.localdate()

        return fields

    def _attach_image(
        self,
        release: Release,
        crop: Optional[CropResult],
        image_url: str,
        composite: CompositeResolution,
    ) -> None:
        """Store the chosen image for a release. Storage failures leave the release without one."""
        try:
            if crop is not None:
                store_release_image_bytes(
                    release, crop.image_bytes, content_type=crop.content_type, source=ImageSource.BLOG
                )
                self._link_original(release, composite)
            elif image_url:
                store_release_image(
                    release, image_url, source=ImageSource.BLOG, fetcher=self.image_fetcher
                )
        except Exception as e:
            logger.warning(f"Failed to store image for release {release.id}: {e}")

    def _link_original(self, release: Release, composite: CompositeResolution) -> None:
        """Store the uncropped composite once per article and link it from every crop."""
        if composite.original_bytes is None:
            return

        if composite.original_url is None:
            composite.original_url = store_original_image(
                release, composite.original_bytes, composite.original_content_type
            )
        else:
            release.original_image_url = composite.original_url
            release.save(update_fields=["original_image_url"])


def run_ingestion_pass(
    force: bool = False,
    source_id=None,
    holder: Optional[str] = None,
    orchestrator: Optional[FeedOrchestrator] = None,
) -> PassSummary:
    """
    Run an ingestion pass under the feed processing lock.

    Args:
        force: Ignore recheck intervals
        source_id: Process only this FeedSource (checked regardless of interval)
        holder: Lock holder identifier (hostname:pid by default)
        orchestrator: Orchestrator to run with (a default one is built when omitted)

    Returns:
        PassSummary; ``lock_acquired`` is False when another pass holds the lock

    Raises:
        FeedSource.DoesNotExist: If ``source_id`` does not match a source
    """
    try:
        with processing_lock(
            FEED_PROCESSING_LOCK,
            timeout_minutes=getattr(settings, "INGEST_LOCK_TIMEOUT_MINUTES", None),
            holder=holder,
        ):
            orchestrator = orchestrator or FeedOrchestrator()
            try:
                if source_id is not None:
                    summary = PassSummary()
                    summary.add_source(
                        orchestrator.process_feed_source(FeedSource.objects.get(pk=source_id))
                    )
                    return summary
                return orchestrator.process_all_sources(force=force)
            finally:
                orchestrator.close()
    except LockNotAcquired as e:
        logger.warning(f"Ingestion pass not started: {e}")
        return PassSummary(lock_acquired=False, status=STATUS_LOCKED, errors=[str(e)])
