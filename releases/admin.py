"""
Django admin configuration for release ingestion models.

Provides interfaces for managing feed sources, reviewing processed
articles, and curating releases (status, merges, gallery, provenance).
"""

from django.contrib import admin, messages
from django.utils.html import format_html

from releases.models import (
    ArticleSource,
    FeedSource,
    ProcessedArticle,
    ProcessingLock,
    Release,
    ReleaseImage,
)
from releases.services.lifecycle import LifecycleError, merge_releases, update_release_status
from releases.tasks import process_feeds

BADGE_TEMPLATE = (
    '<span style="background-color: {}; color: white; '
    'padding: 2px 8px; border-radius: 4px;">{}</span>'
)


def _badge(color, text):
    return format_html(BADGE_TEMPLATE, color, text)


@admin.register(FeedSource)
class FeedSourceAdmin(admin.ModelAdmin):
    """
    Admin interface for feed sources.
    """

    list_display = [
        "name",
        "park",
        "source_type",
        "is_active_badge",
        "check_frequency_hours",
        "last_checked",
        "last_error_badge",
    ]
    list_filter = ["is_active", "park", "source_type"]
    search_fields = ["name", "url"]
    readonly_fields = ["id", "last_checked", "last_error", "created_at", "updated_at"]
    ordering = ["name"]

    fieldsets = (
        ("Identity", {
            "fields": ("id", "name", "url", "source_type", "park"),
        }),
        ("Schedule", {
            "fields": ("is_active", "check_frequency_hours"),
        }),
        ("Status", {
            "fields": ("last_checked", "last_error"),
        }),
        ("Metadata", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    actions = ["process_now", "enable_sources", "disable_sources"]

    def is_active_badge(self, obj):
        """Display active status as colored badge."""
        if obj.is_active:
            return _badge("#28a745", "Active")
        return _badge("#6c757d", "Inactive")
    is_active_badge.short_description = "Active"
    is_active_badge.admin_order_field = "is_active"

    def last_error_badge(self, obj):
        """Display the outcome of the last pass."""
        if obj.last_checked is None:
            return _badge("#6c757d", "Never")
        if obj.last_error:
            return _badge("#dc3545", "Failed")
        return _badge("#28a745", "OK")
    last_error_badge.short_description = "Last pass"

    @admin.action(description="Process now")
    def process_now(self, request, queryset):
        """Queue an ingestion pass for each selected active source."""
        count = 0
        for source in queryset.filter(is_active=True):
            process_feeds.apply_async(kwargs={"source_id": str(source.id)}, queue="ingestion")
            count += 1
        self.message_user(request, f"Queued {count} source(s) for processing.")

    @admin.action(description="Enable selected sources")
    def enable_sources(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, f"Enabled {updated} source(s).")

    @admin.action(description="Disable selected sources")
    def disable_sources(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"Disabled {updated} source(s).")


@admin.register(ProcessedArticle)
class ProcessedArticleAdmin(admin.ModelAdmin):
    """Read-mostly view of the extraction history."""

    list_display = ["title", "source", "items_found", "has_error", "processed_at"]
    list_filter = ["source", "processed_at"]
    search_fields = ["url", "title"]
    readonly_fields = ["id", "source", "url", "title", "items_found", "error", "processed_at"]
    ordering = ["-processed_at"]

    def has_error(self, obj):
        return bool(obj.error)
    has_error.boolean = True
    has_error.short_description = "Error"


class ReleaseImageInline(admin.TabularInline):
    model = ReleaseImage
    extra = 0
    fields = ["url", "source", "is_primary", "position", "added_at"]
    readonly_fields = ["added_at"]


class ArticleSourceInline(admin.TabularInline):
    model = ArticleSource
    extra = 0
    fields = ["source_url", "source_name", "article_title", "discovered_at"]
    readonly_fields = ["discovered_at"]


@admin.register(Release)
class ReleaseAdmin(admin.ModelAdmin):
    """
    Admin interface for releases.

    Status changes from the list actions go through the lifecycle rules, so
    a release never moves backward.
    """

    list_display = [
        "title",
        "park",
        "category",
        "status_badge",
        "release_date",
        "is_featured",
        "merged_badge",
    ]
    list_filter = ["status", "park", "category", "is_limited_edition", "is_featured"]
    search_fields = ["title", "canonical_name", "source"]
    readonly_fields = [
        "id",
        "canonical_name",
        "original_image_url",
        "merged_into",
        "ai_description",
        "ai_tags",
        "ai_demand_score",
        "created_at",
        "updated_at",
    ]
    inlines = [ReleaseImageInline, ArticleSourceInline]
    ordering = ["-release_date"]

    fieldsets = (
        ("Identity", {
            "fields": ("id", "title", "canonical_name", "description"),
        }),
        ("Classification", {
            "fields": (
                "park",
                "location",
                "category",
                "store_name",
                "store_area",
                "price_estimate",
                "is_limited_edition",
                "is_featured",
                "park_exclusive",
            ),
        }),
        ("Lifecycle", {
            "fields": (
                "status",
                "release_date",
                "projected_release_date",
                "actual_release_date",
                "sold_out_date",
            ),
        }),
        ("Images", {
            "fields": ("image_url", "original_image_url"),
        }),
        ("Origin", {
            "fields": ("source", "source_url", "article_url", "feed_source", "merged_into"),
        }),
        ("Online Availability", {
            "fields": (
                "available_online",
                "online_price",
                "online_url",
                "online_sku",
                "online_checked_at",
            ),
            "classes": ("collapse",),
        }),
        ("AI Extraction", {
            "fields": ("ai_description", "ai_tags", "ai_demand_score", "raw_content"),
            "classes": ("collapse",),
        }),
        ("Metadata", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    actions = ["mark_available", "mark_sold_out", "merge_into_oldest"]

    STATUS_COLORS = {
        "rumored": "#6c757d",
        "announced": "#17a2b8",
        "coming_soon": "#ffc107",
        "available": "#28a745",
        "sold_out": "#dc3545",
    }

    def status_badge(self, obj):
        """Display lifecycle status as colored badge."""
        return _badge(self.STATUS_COLORS.get(obj.status, "#6c757d"), obj.get_status_display())
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def merged_badge(self, obj):
        if obj.is_merged:
            return _badge("#6c757d", "Merged")
        return ""
    merged_badge.short_description = "Merged"

    def _transition(self, request, queryset, new_status):
        moved = 0
        rejected = 0
        for release in queryset:
            if update_release_status(release, new_status).success:
                moved += 1
            else:
                rejected += 1
        self.message_user(request, f"Updated {moved} release(s).")
        if rejected:
            self.message_user(
                request,
                f"{rejected} release(s) were already past '{new_status}'.",
                level=messages.WARNING,
            )

    @admin.action(description="Mark as available")
    def mark_available(self, request, queryset):
        self._transition(request, queryset, "available")

    @admin.action(description="Mark as sold out")
    def mark_sold_out(self, request, queryset):
        self._transition(request, queryset, "sold_out")

    @admin.action(description="Merge selected into the oldest")
    def merge_into_oldest(self, request, queryset):
        """Merge the selected active releases into the oldest of them."""
        releases = list(queryset.filter(merged_into__isnull=True).order_by("created_at"))
        if len(releases) < 2:
            self.message_user(request, "Select at least two active releases.", level=messages.WARNING)
            return

        target = releases[0]
        for release in releases[1:]:
            try:
                merge_releases(release.id, target.id)
            except LifecycleError as e:
                self.message_user(request, str(e), level=messages.ERROR)
                return
        self.message_user(request, f"Merged {len(releases) - 1} release(s) into '{target.title}'.")


@admin.register(ProcessingLock)
class ProcessingLockAdmin(admin.ModelAdmin):
    """Inspect and clear processing locks."""

    list_display = ["lock_name", "locked_by", "locked_at", "expires_at", "is_expired"]
    readonly_fields = ["lock_name", "locked_by", "locked_at", "expires_at"]

    def is_expired(self, obj):
        return obj.is_expired
    is_expired.boolean = True
