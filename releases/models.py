"""
Django models for the Merchandise Release ingestion service.

Models: FeedSource, ProcessedArticle, Release, ReleaseImage, ArticleSource,
        ProcessingLock

Releases are never physically deleted by the pipeline. A superseded entry
is tombstoned by pointing ``merged_into`` at the surviving Release, and the
``Release.active`` manager excludes tombstoned rows.
"""

import uuid
from datetime import timedelta

from django.db import models
from django.utils import timezone


class FeedSourceType(models.TextChoices):
    """How content is pulled from a feed source."""

    RSS = "rss", "RSS"
    SCRAPE = "scrape", "Scrape"
    API = "api", "API"
    MANUAL = "manual", "Manual"


class ParkChoices(models.TextChoices):
    """Resort operator a release is sold at."""

    DISNEY = "disney", "Disney"
    UNIVERSAL = "universal", "Universal"
    SEAWORLD = "seaworld", "SeaWorld"


class SourceParkChoices(models.TextChoices):
    """Resort operator a feed source covers."""

    DISNEY = "disney", "Disney"
    UNIVERSAL = "universal", "Universal"
    SEAWORLD = "seaworld", "SeaWorld"
    ALL = "all", "All"


class ItemCategory(models.TextChoices):
    """Merchandise categories."""

    LOUNGEFLY = "loungefly", "Loungefly"
    EARS = "ears", "Ears"
    SPIRIT_JERSEY = "spirit_jersey", "Spirit Jersey"
    POPCORN_BUCKET = "popcorn_bucket", "Popcorn Bucket"
    PINS = "pins", "Pins"
    PLUSH = "plush", "Plush"
    APPAREL = "apparel", "Apparel"
    DRINKWARE = "drinkware", "Drinkware"
    COLLECTIBLE = "collectible", "Collectible"
    HOME_DECOR = "home_decor", "Home Decor"
    TOYS = "toys", "Toys"
    JEWELRY = "jewelry", "Jewelry"
    OTHER = "other", "Other"


class ReleaseStatus(models.TextChoices):
    """
    Lifecycle stages of a release.

    Declaration order is the lifecycle order; status only moves forward.
    """

    RUMORED = "rumored", "Rumored"
    ANNOUNCED = "announced", "Announced"
    COMING_SOON = "coming_soon", "Coming Soon"
    AVAILABLE = "available", "Available"
    SOLD_OUT = "sold_out", "Sold Out"


class ImageSource(models.TextChoices):
    """
    Trust tier of a gallery image.

    ``shopdisney`` images come from the internal price check and are never
    shown publicly.
    """

    MANUAL = "manual", "Manual Upload"
    BLOG = "blog", "Blog Article"
    SHOPDISNEY = "shopdisney", "Internal Price Check"


class FeedSource(models.Model):
    """
    Configuration and bookkeeping for one content origin.

    Managed via Django Admin. ``last_checked`` and ``last_error`` are written
    by the feed orchestrator after every pass over the source.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, help_text="Human-readable name")
    url = models.URLField(max_length=500, unique=True, help_text="Feed URL")
    source_type = models.CharField(
        max_length=10,
        choices=FeedSourceType.choices,
        default=FeedSourceType.RSS,
    )
    park = models.CharField(
        max_length=10,
        choices=SourceParkChoices.choices,
        default=SourceParkChoices.ALL,
        help_text="Resort the source covers; used when a product has no venue",
    )

    is_active = models.BooleanField(default=True, help_text="Enable/disable ingestion")
    check_frequency_hours = models.IntegerField(
        default=6, help_text="Minimum hours between checks"
    )

    last_checked = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        super().save(*args, **kwargs)

    class Meta:
        db_table = "feed_sources"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active", "last_checked"], name="feed_source_is_acti_3b1c2e_idx"),
        ]

    def __str__(self):
        return self.name

    def is_due_for_check(self, now=None) -> bool:
        """Check if the recheck interval has elapsed since the last check."""
        if self.last_checked is None:
            return True
        now = now or timezone.now()
        return now - self.last_checked >= timedelta(hours=self.check_frequency_hours)


class ProcessedArticle(models.Model):
    """
    Idempotency record for an article that went through extraction.

    One row per (source, url). Written whether extraction succeeded or not.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(
        FeedSource,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_articles",
    )
    url = models.URLField(max_length=1000)
    title = models.CharField(max_length=500, blank=True, null=True)
    items_found = models.IntegerField(default=0)
    error = models.TextField(blank=True, null=True)
    processed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "processed_articles"
        ordering = ["-processed_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["source", "url"], name="unique_processed_article_per_source"
            ),
        ]
        indexes = [
            models.Index(fields=["url"], name="processed_a_url_4e0b9c_idx"),
        ]

    def __str__(self):
        return self.url


class ActiveReleaseManager(models.Manager):
    """Releases that have not been merged into another release."""

    def get_queryset(self):
        return super().get_queryset().filter(merged_into__isnull=True)


class Release(models.Model):
    """
    Catalog entry for one physical product discovered from content ingestion.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Identity
    title = models.CharField(max_length=500)
    description = models.TextField(blank=True, null=True)
    canonical_name = models.CharField(
        max_length=500,
        blank=True,
        db_index=True,
        help_text="Deduplication key derived from title",
    )

    # Images
    image_url = models.URLField(max_length=1000, blank=True, default="")
    original_image_url = models.URLField(
        max_length=1000,
        blank=True,
        null=True,
        help_text="Uncropped composite image kept for manual re-crop",
    )

    # Origin
    source_url = models.URLField(max_length=1000, blank=True, default="")
    source = models.CharField(max_length=100, blank=True, default="", help_text="Source name")
    article_url = models.URLField(max_length=1000, blank=True, null=True)
    feed_source = models.ForeignKey(
        FeedSource,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="releases",
    )

    # Classification
    park = models.CharField(
        max_length=10, choices=ParkChoices.choices, default=ParkChoices.DISNEY
    )
    location = models.CharField(
        max_length=50, blank=True, null=True, help_text="Venue code, e.g. disney_mk"
    )
    category = models.CharField(
        max_length=20, choices=ItemCategory.choices, default=ItemCategory.OTHER
    )
    store_name = models.CharField(max_length=200, blank=True, null=True)
    store_area = models.CharField(max_length=200, blank=True, null=True)

    price_estimate = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    release_date = models.DateTimeField(default=timezone.now)
    is_limited_edition = models.BooleanField(default=False)
    is_featured = models.BooleanField(default=False)
    park_exclusive = models.BooleanField(default=True)

    # AI extraction output
    ai_description = models.TextField(blank=True, null=True)
    ai_tags = models.JSONField(default=list, blank=True)
    ai_demand_score = models.IntegerField(null=True, blank=True)
    raw_content = models.TextField(blank=True, null=True)

    # Lifecycle
    status = models.CharField(
        max_length=20,
        choices=ReleaseStatus.choices,
        default=ReleaseStatus.ANNOUNCED,
    )
    projected_release_date = models.DateField(null=True, blank=True)
    actual_release_date = models.DateField(null=True, blank=True)
    sold_out_date = models.DateField(null=True, blank=True)

    # Deduplication
    merged_into = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="merged_releases",
    )

    # Online availability (internal only)
    available_online = models.BooleanField(default=False)
    online_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    online_url = models.URLField(max_length=1000, blank=True, null=True)
    online_sku = models.CharField(max_length=100, blank=True, null=True)
    online_checked_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    objects = models.Manager()
    active = ActiveReleaseManager()

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            update_fields = set(update_fields) | {"updated_at"}
            if "title" in update_fields:
                update_fields.add("canonical_name")
            kwargs["update_fields"] = list(update_fields)
        super().save(*args, **kwargs)

    class Meta:
        db_table = "releases"
        ordering = ["-release_date"]
        indexes = [
            models.Index(fields=["canonical_name", "merged_into"], name="releases_canonic_5f0a7d_idx"),
            models.Index(fields=["status"], name="releases_status_0c9e41_idx"),
            models.Index(fields=["park", "category"], name="releases_park_3d27a8_idx"),
            models.Index(fields=["source_url"], name="releases_source__8a61f2_idx"),
        ]

    def __str__(self):
        return self.title

    @property
    def is_merged(self) -> bool:
        return self.merged_into_id is not None


class ReleaseImage(models.Model):
    """
    Gallery image of a release tagged with its trust tier.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    release = models.ForeignKey(
        Release,
        on_delete=models.CASCADE,
        related_name="images",
    )
    url = models.URLField(max_length=1000)
    source = models.CharField(
        max_length=20, choices=ImageSource.choices, default=ImageSource.BLOG
    )
    is_primary = models.BooleanField(default=False)
    position = models.IntegerField(default=0)
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "release_images"
        ordering = ["position", "added_at"]
        constraints = [
            models.UniqueConstraint(fields=["release", "url"], name="unique_release_image_url"),
        ]

    def __str__(self):
        return f"{self.release_id}: {self.url}"


class ArticleSource(models.Model):
    """
    Provenance record linking an article to a release it mentions.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    release = models.ForeignKey(
        Release,
        on_delete=models.CASCADE,
        related_name="article_sources",
    )
    source_url = models.URLField(max_length=1000)
    source_name = models.CharField(max_length=100, blank=True, null=True)
    article_title = models.CharField(max_length=500, blank=True, null=True)
    snippet = models.TextField(blank=True, null=True)
    discovered_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "release_article_sources"
        ordering = ["-discovered_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["release", "source_url"], name="unique_release_article_source"
            ),
        ]

    def __str__(self):
        return f"{self.release_id} <- {self.source_url}"


class ProcessingLock(models.Model):
    """
    Backing row of a named advisory lock.

    A row whose ``expires_at`` has passed is stale and may be replaced.
    """

    lock_name = models.CharField(max_length=100, primary_key=True)
    locked_at = models.DateTimeField(default=timezone.now)
    locked_by = models.CharField(max_length=200, blank=True, null=True)
    expires_at = models.DateTimeField()

    class Meta:
        db_table = "feed_processing_locks"

    def __str__(self):
        return f"{self.lock_name} ({self.locked_by})"

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= timezone.now()
