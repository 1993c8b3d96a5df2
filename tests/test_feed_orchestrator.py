"""
Tests for the feed ingestion orchestrator.

The AI service and the fetch router are mocked; images are served by an
HttpFetcher on httpx.MockTransport and stored in InMemoryStorage.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import httpx
import pytest
from django.utils import timezone

from releases.exceptions import FeedFetchError
from releases.fetchers.feed_reader import FeedItem
from releases.fetchers.http_fetcher import FetchResponse, HttpFetcher
from releases.services.ai_client import (
    CompositeAnalysis,
    CompositeRegion,
    ExtractedProduct,
    ExtractionResult,
    VerificationResult,
)
from releases.services.duplicate_detector import Resolution
from releases.services.feed_orchestrator import (
    FeedOrchestrator,
    IngestionSource,
    SourceResult,
    map_park,
    product_park,
    run_ingestion_pass,
)
from releases.services.processing_lock import acquire_lock, is_locked

ARTICLE_URL = "https://parksblog.example.com/new-merch-roundup/"

ARTICLE_PAGE = """
<html><body><article>
<h1>New Merch Roundup</h1>
<p>The Figment Popcorn Bucket is available now at EPCOT.</p>
<img src="https://cdn.example.com/uploads/figment.jpg">
</article></body></html>
"""


def _extraction(*products):
    return ExtractionResult(success=True, is_merchandise_related=True, products=list(products))


@pytest.fixture
def router(make_jpeg):
    """Router mock: pages from ``router.fetch``, images from a real HttpFetcher."""
    jpeg = make_jpeg(400, 300)

    def handler(request):
        return httpx.Response(200, content=jpeg, headers={"content-type": "image/jpeg"})

    router = MagicMock()
    router.direct = HttpFetcher(max_retries=0, transport=httpx.MockTransport(handler))
    router.fetch.return_value = FetchResponse(content=ARTICLE_PAGE, status_code=200, success=True)
    return router


@pytest.fixture
def ai_client():
    client = MagicMock()
    client.extract_products.return_value = _extraction()
    client.verify_image.return_value = VerificationResult(matches=False)
    client.analyze_composite.return_value = CompositeAnalysis(is_composite=False)
    return client


@pytest.fixture
def orchestrator(ai_client, router):
    return FeedOrchestrator(ai_client=ai_client, router=router, article_delay=0, source_delay=0)


@pytest.fixture
def source(feed_source):
    return IngestionSource.from_feed_source(feed_source)


class TestParkMapping:

    @pytest.mark.parametrize("location,source_park,expected", [
        ("disney_mk", "all", "disney"),
        ("universal_ioa", "disney", "universal"),
        ("seaworld", "all", "seaworld"),
        ("", "universal", "universal"),
        (None, "all", "disney"),
    ])
    def test_map_park(self, location, source_park, expected):
        assert map_park(location, source_park) == expected

    def test_nickelodeon_brands_go_to_universal(self):
        product = ExtractedProduct(name="SpongeBob Plush", park="disney_mk")
        assert product_park(product, "all") == "universal"


class TestProcessArticle:
    """Article-level pipeline: extraction, screening, dedup, images, persistence."""

    def test_composite_image_is_cropped_per_product(self, orchestrator, ai_client, source):
        from releases.models import ProcessedArticle, Release

        names = ["Figment Popcorn Bucket", "Stitch Ears"]
        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name=names[0], category="popcorn_bucket", park="disney_epcot"),
            ExtractedProduct(name=names[1], category="ears", park="disney_mk"),
        )
        ai_client.analyze_composite.return_value = CompositeAnalysis(
            is_composite=True,
            regions=[
                CompositeRegion(product_name=names[0], x=0, y=0, width=50, height=100),
                CompositeRegion(product_name=names[1], x=50, y=0, width=50, height=100),
            ],
        )

        result = orchestrator.process_article(
            source, ARTICLE_URL, "New Merch Roundup", "Article text",
            ["https://cdn.example.com/uploads/composite.jpg"],
        )

        assert result.new_releases == 2
        assert result.errors == []
        ai_client.verify_image.assert_not_called()

        figment = Release.objects.get(title=names[0])
        ears = Release.objects.get(title=names[1])
        assert figment.image_url.startswith(f"/media/releases/{figment.id}/")
        assert ears.image_url.startswith(f"/media/releases/{ears.id}/")
        assert figment.image_url != ears.image_url
        assert figment.original_image_url
        assert figment.original_image_url == ears.original_image_url
        assert figment.location == "disney_epcot"
        assert figment.feed_source_id == source.id

        processed = ProcessedArticle.objects.get(url=ARTICLE_URL)
        assert processed.items_found == 2
        assert processed.error is None

    def test_online_only_product_is_dropped(self, orchestrator, ai_client, source):
        from releases.models import Release

        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name="Stitch Ears", is_online_only=True),
            ExtractedProduct(name="Figment Popcorn Bucket", category="popcorn_bucket"),
        )
        ai_client.verify_image.return_value = VerificationResult(matches=True, confidence="high")

        result = orchestrator.process_article(
            source, ARTICLE_URL, "New Merch Roundup", "Article text",
            ["https://cdn.example.com/uploads/figment.jpg"],
        )

        assert result.new_releases == 1
        assert result.skipped_products == 1
        assert not Release.objects.filter(title="Stitch Ears").exists()
        ai_client.analyze_composite.assert_not_called()

        release = Release.objects.get(title="Figment Popcorn Bucket")
        assert release.image_url.startswith("/media/releases/")
        assert release.images.count() == 1

    def test_exact_match_appends_source_and_advances_status(
        self, orchestrator, ai_client, source, make_release
    ):
        from releases.models import Release

        existing = make_release(title="Figment Popcorn Bucket", status="announced")
        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name="Limited Edition Figment Popcorn Bucket", release_status="available"),
        )

        result = orchestrator.process_article(source, ARTICLE_URL, "Figment Is Here", "text", [])

        assert result.new_releases == 0
        assert result.updated_releases == 1
        assert Release.objects.count() == 1

        existing.refresh_from_db()
        assert existing.status == "available"
        assert existing.actual_release_date == timezone.localdate()
        assert ARTICLE_URL in existing.article_sources.values_list("source_url", flat=True)

    def test_match_never_moves_status_backward(self, orchestrator, ai_client, source, make_release):
        existing = make_release(title="Figment Popcorn Bucket", status="sold_out")
        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name="Figment Popcorn Bucket", release_status="coming_soon"),
        )

        orchestrator.process_article(source, ARTICLE_URL, "Figment", "text", [])

        existing.refresh_from_db()
        assert existing.status == "sold_out"

    def test_new_release_fields(self, orchestrator, ai_client, source):
        from releases.models import Release

        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(
                name="Haunted Mansion Tumbler",
                category="drinkware",
                park="disney_mk",
                demand_score=9,
                tags=["haunted mansion"],
                release_status="sold_out",
            ),
        )
        published = timezone.now() - timedelta(days=1)

        orchestrator.process_article(source, ARTICLE_URL, "Tumbler", "x" * 6000, [], published)

        release = Release.objects.get()
        assert release.canonical_name == "haunted-mansion-tumbler"
        assert release.is_featured
        assert release.ai_tags == ["haunted mansion"]
        assert release.release_date == published
        assert release.sold_out_date == timezone.localdate()
        assert len(release.raw_content) == 5000
        assert release.source == source.name

    def test_second_run_is_idempotent(self, orchestrator, ai_client, source):
        from releases.models import Release

        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name="Figment Popcorn Bucket"),
        )

        orchestrator.process_article(source, ARTICLE_URL, "Figment", "text", [])
        second = orchestrator.process_article(source, ARTICLE_URL, "Figment", "text", [])

        assert second.already_processed
        assert ai_client.extract_products.call_count == 1
        assert Release.objects.count() == 1

    def test_extraction_failure_is_recorded(self, orchestrator, ai_client, source):
        from releases.models import ProcessedArticle, Release

        ai_client.extract_products.return_value = ExtractionResult(success=False, error="model overloaded")

        result = orchestrator.process_article(source, ARTICLE_URL, "Figment", "text", [])

        assert result.error == "model overloaded"
        assert ProcessedArticle.objects.get(url=ARTICLE_URL).error == "model overloaded"
        assert Release.objects.count() == 0

    def test_not_merchandise_related(self, orchestrator, ai_client, source):
        from releases.models import Release

        ai_client.extract_products.return_value = ExtractionResult(
            success=True, is_merchandise_related=False, products=[ExtractedProduct(name="Park Map")]
        )

        result = orchestrator.process_article(source, ARTICLE_URL, "Maps", "text", [])

        assert result.items_found == 1
        assert Release.objects.count() == 0

    def test_product_failure_does_not_stop_others(self, ai_client, router, source):
        from releases.models import Release

        duplicate_resolver = MagicMock()
        duplicate_resolver.resolve.side_effect = [RuntimeError("database busy"), Resolution()]
        orchestrator = FeedOrchestrator(
            ai_client=ai_client,
            router=router,
            duplicate_resolver=duplicate_resolver,
            article_delay=0,
            source_delay=0,
        )
        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name="Stitch Ears"),
            ExtractedProduct(name="Figment Popcorn Bucket"),
        )

        result = orchestrator.process_article(source, ARTICLE_URL, "Roundup", "text", [])

        assert result.new_releases == 1
        assert len(result.errors) == 1
        assert "database busy" in result.errors[0]
        assert Release.objects.filter(title="Figment Popcorn Bucket").exists()

    def test_process_url_as_manual_import(self, db, orchestrator, ai_client, router):
        from releases.models import ProcessedArticle, Release

        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name="Figment Popcorn Bucket"),
        )

        result = orchestrator.process_url(ARTICLE_URL)

        assert result.new_releases == 1
        router.fetch.assert_called_with(ARTICLE_URL)
        content = ai_client.extract_products.call_args[0][0]
        assert "available now at EPCOT" in content

        processed = ProcessedArticle.objects.get(url=ARTICLE_URL)
        assert processed.source is None
        release = Release.objects.get()
        assert release.feed_source is None
        assert release.source == "Manual Import"

    def test_process_url_scrape_failure(self, orchestrator, router):
        router.fetch.return_value = FetchResponse(content="", status_code=404, error="HTTP 404")

        result = orchestrator.process_url(ARTICLE_URL)

        assert result.error == "HTTP 404"


class TestGatherContent:
    """Choosing between embedded feed content and the scraped page."""

    def test_uses_embedded_content_when_rich(self, orchestrator, router):
        content = "<p>" + "The Figment popcorn bucket is back. " * 20 + "</p>" \
            '<img src="https://cdn.example.com/uploads/figment.jpg">'
        item = FeedItem(title="Figment", link=ARTICLE_URL, content=content,
                        image_url="https://cdn.example.com/uploads/hero.jpg")

        text, images = orchestrator.gather_content(item)

        assert text.startswith("The Figment popcorn bucket is back.")
        assert images == [
            "https://cdn.example.com/uploads/hero.jpg",
            "https://cdn.example.com/uploads/figment.jpg",
        ]
        router.fetch.assert_not_called()

    def test_scrapes_when_embedded_content_is_short(self, orchestrator, router):
        item = FeedItem(title="Figment", link=ARTICLE_URL, content="<p>Short teaser</p>")

        text, images = orchestrator.gather_content(item)

        assert "available now at EPCOT" in text
        assert images == ["https://cdn.example.com/uploads/figment.jpg"]

    def test_falls_back_to_embedded_when_scrape_fails(self, orchestrator, router):
        router.fetch.return_value = FetchResponse(content="", status_code=503, error="HTTP 503")
        item = FeedItem(title="Figment", link=ARTICLE_URL, content="<p>Short teaser</p>")

        text, images = orchestrator.gather_content(item)

        assert text == "Short teaser"
        assert images == []


class TestProcessFeedSource:
    """Source-level processing and bookkeeping."""

    def test_processes_feed_items(self, orchestrator, ai_client, router, feed_source):
        from releases.models import Release

        ai_client.extract_products.return_value = _extraction(
            ExtractedProduct(name="Figment Popcorn Bucket"),
        )
        items = [
            FeedItem(title="Park Hours Extended", link="https://parksblog.example.com/hours/"),
            FeedItem(title="New Figment Popcorn Bucket Arrives", link=ARTICLE_URL),
        ]

        with patch("releases.services.feed_orchestrator.fetch_feed", return_value=items):
            result = orchestrator.process_feed_source(feed_source)

        assert result.articles_skipped == 1
        assert result.articles_processed == 1
        assert result.new_releases == 1
        assert Release.objects.get().article_sources.count() == 1

        feed_source.refresh_from_db()
        assert feed_source.last_checked is not None
        assert feed_source.last_error is None

    def test_processed_articles_are_skipped(self, orchestrator, ai_client, feed_source):
        from releases.models import ProcessedArticle

        ProcessedArticle.objects.create(source=feed_source, url=ARTICLE_URL, items_found=1)
        items = [FeedItem(title="New Figment Popcorn Bucket Arrives", link=ARTICLE_URL)]

        with patch("releases.services.feed_orchestrator.fetch_feed", return_value=items):
            result = orchestrator.process_feed_source(feed_source)

        assert result.articles_skipped == 1
        assert result.articles_processed == 0
        ai_client.extract_products.assert_not_called()

    def test_feed_failure_is_recorded(self, orchestrator, feed_source):
        tracker = MagicMock()
        error = FeedFetchError(feed_source.url, "HTTP 500")

        with patch("releases.services.feed_orchestrator.fetch_feed", side_effect=error), \
             patch("releases.services.feed_orchestrator.get_failure_tracker", return_value=tracker):
            result = orchestrator.process_feed_source(feed_source)

        assert result.errors == [str(error)]
        feed_source.refresh_from_db()
        assert feed_source.last_checked is not None
        assert "HTTP 500" in feed_source.last_error
        tracker.record_failure.assert_called_once_with(feed_source.id, feed_source.name)

    def test_success_resets_failure_counter(self, orchestrator, feed_source):
        tracker = MagicMock()

        with patch("releases.services.feed_orchestrator.fetch_feed", return_value=[]), \
             patch("releases.services.feed_orchestrator.get_failure_tracker", return_value=tracker):
            orchestrator.process_feed_source(feed_source)

        tracker.record_success.assert_called_once_with(feed_source.id)

    def test_article_error_is_recorded_on_source(self, orchestrator, feed_source):
        items = [FeedItem(title="New Figment Popcorn Bucket Arrives", link=ARTICLE_URL)]

        with patch("releases.services.feed_orchestrator.fetch_feed", return_value=items), \
             patch.object(orchestrator, "process_article", side_effect=RuntimeError("boom")):
            result = orchestrator.process_feed_source(feed_source)

        assert result.articles_processed == 1
        assert result.errors == ["New Figment Popcorn Bucket Arrives: boom"]
        feed_source.refresh_from_db()
        assert feed_source.last_error == "New Figment Popcorn Bucket Arrives: boom"


class TestProcessAllSources:
    """Source scheduling."""

    def test_skips_sources_not_due(self, orchestrator, feed_source):
        from releases.models import FeedSource

        feed_source.last_checked = timezone.now() - timedelta(hours=1)
        feed_source.save()
        due = FeedSource.objects.create(
            name="Another Blog",
            url="https://another.example.com/feed/",
            last_checked=timezone.now() - timedelta(hours=12),
        )
        FeedSource.objects.create(name="Disabled Blog", url="https://disabled.example.com/feed/", is_active=False)

        with patch.object(orchestrator, "process_feed_source", return_value=SourceResult("x")) as mock_process:
            summary = orchestrator.process_all_sources()

        assert summary.sources_processed == 1
        mock_process.assert_called_once_with(due)

    def test_force_processes_every_active_source(self, orchestrator, feed_source):
        feed_source.last_checked = timezone.now()
        feed_source.save()

        with patch.object(orchestrator, "process_feed_source", return_value=SourceResult("x")) as mock_process:
            summary = orchestrator.process_all_sources(force=True)

        assert summary.sources_processed == 1
        mock_process.assert_called_once_with(feed_source)

    def test_summary_prefixes_errors_with_source(self, orchestrator, feed_source):
        source_result = SourceResult(source_name="Test Parks Blog", articles_processed=2, new_releases=1)
        source_result.errors.append("Figment: boom")

        with patch.object(orchestrator, "process_feed_source", return_value=source_result):
            summary = orchestrator.process_all_sources()

        assert summary.total_articles == 2
        assert summary.new_releases == 1
        assert summary.errors == ["[Test Parks Blog] Figment: boom"]


class TestRunIngestionPass:
    """Pass-level locking."""

    def test_lock_held_writes_nothing(self, feed_source):
        from releases.models import ProcessedArticle

        acquire_lock("feed_processing", holder="other-host:1")
        orchestrator = MagicMock()

        summary = run_ingestion_pass(orchestrator=orchestrator)

        assert not summary.lock_acquired
        assert summary.status == "locked"
        orchestrator.process_all_sources.assert_not_called()
        assert ProcessedArticle.objects.count() == 0
        feed_source.refresh_from_db()
        assert feed_source.last_checked is None

    def test_runs_under_lock_and_releases(self, db):
        from releases.services.feed_orchestrator import PassSummary

        orchestrator = MagicMock()

        def process_all_sources(force=False):
            assert is_locked("feed_processing")
            return PassSummary(sources_processed=2)

        orchestrator.process_all_sources.side_effect = process_all_sources

        summary = run_ingestion_pass(force=True, orchestrator=orchestrator)

        assert summary.lock_acquired
        assert summary.sources_processed == 2
        orchestrator.process_all_sources.assert_called_once_with(force=True)
        orchestrator.close.assert_called_once()
        assert not is_locked("feed_processing")

    def test_single_source(self, feed_source):
        orchestrator = MagicMock()
        orchestrator.process_feed_source.return_value = SourceResult(source_name=feed_source.name, new_releases=3)

        summary = run_ingestion_pass(source_id=feed_source.id, orchestrator=orchestrator)

        assert summary.sources_processed == 1
        assert summary.new_releases == 3
        orchestrator.process_feed_source.assert_called_once_with(feed_source)

    def test_unknown_source(self, db):
        import uuid

        from releases.models import FeedSource

        with pytest.raises(FeedSource.DoesNotExist):
            run_ingestion_pass(source_id=uuid.uuid4(), orchestrator=MagicMock())

        assert not is_locked("feed_processing")
