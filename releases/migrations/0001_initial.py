import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="FeedSource",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(help_text="Human-readable name", max_length=100)),
                ("url", models.URLField(help_text="Feed URL", max_length=500, unique=True)),
                (
                    "source_type",
                    models.CharField(
                        choices=[("rss", "RSS"), ("scrape", "Scrape"), ("api", "API"), ("manual", "Manual")],
                        default="rss",
                        max_length=10,
                    ),
                ),
                (
                    "park",
                    models.CharField(
                        choices=[
                            ("disney", "Disney"),
                            ("universal", "Universal"),
                            ("seaworld", "SeaWorld"),
                            ("all", "All"),
                        ],
                        default="all",
                        help_text="Resort the source covers; used when a product has no venue",
                        max_length=10,
                    ),
                ),
                ("is_active", models.BooleanField(default=True, help_text="Enable/disable ingestion")),
                ("check_frequency_hours", models.IntegerField(default=6, help_text="Minimum hours between checks")),
                ("last_checked", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "feed_sources",
                "ordering": ["name"],
                "indexes": [models.Index(fields=["is_active", "last_checked"], name="feed_source_is_acti_3b1c2e_idx")],
            },
        ),
        migrations.CreateModel(
            name="ProcessingLock",
            fields=[
                ("lock_name", models.CharField(max_length=100, primary_key=True, serialize=False)),
                ("locked_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("locked_by", models.CharField(blank=True, max_length=200, null=True)),
                ("expires_at", models.DateTimeField()),
            ],
            options={
                "db_table": "feed_processing_locks",
            },
        ),
        migrations.CreateModel(
            name="Release",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=500)),
                ("description", models.TextField(blank=True, null=True)),
                (
                    "canonical_name",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Deduplication key derived from title",
                        max_length=500,
                    ),
                ),
                ("image_url", models.URLField(blank=True, default="", max_length=1000)),
                (
                    "original_image_url",
                    models.URLField(
                        blank=True,
                        help_text="Uncropped composite image kept for manual re-crop",
                        max_length=1000,
                        null=True,
                    ),
                ),
                ("source_url", models.URLField(blank=True, default="", max_length=1000)),
                ("source", models.CharField(blank=True, default="", help_text="Source name", max_length=100)),
                ("article_url", models.URLField(blank=True, max_length=1000, null=True)),
                (
                    "park",
                    models.CharField(
                        choices=[("disney", "Disney"), ("universal", "Universal"), ("seaworld", "SeaWorld")],
                        default="disney",
                        max_length=10,
                    ),
                ),
                (
                    "location",
                    models.CharField(blank=True, help_text="Venue code, e.g. disney_mk", max_length=50, null=True),
                ),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("loungefly", "Loungefly"),
                            ("ears", "Ears"),
                            ("spirit_jersey", "Spirit Jersey"),
                            ("popcorn_bucket", "Popcorn Bucket"),
                            ("pins", "Pins"),
                            ("plush", "Plush"),
                            ("apparel", "Apparel"),
                            ("drinkware", "Drinkware"),
                            ("collectible", "Collectible"),
                            ("home_decor", "Home Decor"),
                            ("toys", "Toys"),
                            ("jewelry", "Jewelry"),
                            ("other", "Other"),
                        ],
                        default="other",
                        max_length=20,
                    ),
                ),
                ("store_name", models.CharField(blank=True, max_length=200, null=True)),
                ("store_area", models.CharField(blank=True, max_length=200, null=True)),
                ("price_estimate", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("release_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("is_limited_edition", models.BooleanField(default=False)),
                ("is_featured", models.BooleanField(default=False)),
                ("park_exclusive", models.BooleanField(default=True)),
                ("ai_description", models.TextField(blank=True, null=True)),
                ("ai_tags", models.JSONField(blank=True, default=list)),
                ("ai_demand_score", models.IntegerField(blank=True, null=True)),
                ("raw_content", models.TextField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("rumored", "Rumored"),
                            ("announced", "Announced"),
                            ("coming_soon", "Coming Soon"),
                            ("available", "Available"),
                            ("sold_out", "Sold Out"),
                        ],
                        default="announced",
                        max_length=20,
                    ),
                ),
                ("projected_release_date", models.DateField(blank=True, null=True)),
                ("actual_release_date", models.DateField(blank=True, null=True)),
                ("sold_out_date", models.DateField(blank=True, null=True)),
                ("available_online", models.BooleanField(default=False)),
                ("online_price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("online_url", models.URLField(blank=True, max_length=1000, null=True)),
                ("online_sku", models.CharField(blank=True, max_length=100, null=True)),
                ("online_checked_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "feed_source",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="releases",
                        to="releases.feedsource",
                    ),
                ),
                (
                    "merged_into",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="merged_releases",
                        to="releases.release",
                    ),
                ),
            ],
            options={
                "db_table": "releases",
                "ordering": ["-release_date"],
                "indexes": [
                    models.Index(fields=["canonical_name", "merged_into"], name="releases_canonic_5f0a7d_idx"),
                    models.Index(fields=["status"], name="releases_status_0c9e41_idx"),
                    models.Index(fields=["park", "category"], name="releases_park_3d27a8_idx"),
                    models.Index(fields=["source_url"], name="releases_source__8a61f2_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProcessedArticle",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("url", models.URLField(max_length=1000)),
                ("title", models.CharField(blank=True, max_length=500, null=True)),
                ("items_found", models.IntegerField(default=0)),
                ("error", models.TextField(blank=True, null=True)),
                ("processed_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "source",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="processed_articles",
                        to="releases.feedsource",
                    ),
                ),
            ],
            options={
                "db_table": "processed_articles",
                "ordering": ["-processed_at"],
                "indexes": [models.Index(fields=["url"], name="processed_a_url_4e0b9c_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("source", "url"), name="unique_processed_article_per_source"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReleaseImage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("url", models.URLField(max_length=1000)),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("manual", "Manual Upload"),
                            ("blog", "Blog Article"),
                            ("shopdisney", "Internal Price Check"),
                        ],
                        default="blog",
                        max_length=20,
                    ),
                ),
                ("is_primary", models.BooleanField(default=False)),
                ("position", models.IntegerField(default=0)),
                ("added_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "release",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="images",
                        to="releases.release",
                    ),
                ),
            ],
            options={
                "db_table": "release_images",
                "ordering": ["position", "added_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("release", "url"), name="unique_release_image_url"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ArticleSource",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("source_url", models.URLField(max_length=1000)),
                ("source_name", models.CharField(blank=True, max_length=100, null=True)),
                ("article_title", models.CharField(blank=True, max_length=500, null=True)),
                ("snippet", models.TextField(blank=True, null=True)),
                ("discovered_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "release",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="article_sources",
                        to="releases.release",
                    ),
                ),
            ],
            options={
                "db_table": "release_article_sources",
                "ordering": ["-discovered_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("release", "source_url"), name="unique_release_article_source"),
                ],
            },
        ),
    ]
