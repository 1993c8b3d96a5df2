"""
Tests for release ingestion models.
"""

from datetime import timedelta

import pytest
from django.db import IntegrityError
from django.utils import timezone


class TestFeedSource:

    def test_never_checked_is_due(self, feed_source):
        assert feed_source.is_due_for_check()

    def test_due_after_interval(self, feed_source):
        now = timezone.now()
        feed_source.last_checked = now - timedelta(hours=5)

        assert not feed_source.is_due_for_check(now)
        assert feed_source.is_due_for_check(now + timedelta(hours=1))

    def test_save_touches_updated_at(self, feed_source):
        before = feed_source.updated_at
        feed_source.name = "Renamed Blog"
        feed_source.save()

        assert feed_source.updated_at > before


class TestRelease:

    def test_defaults(self, make_release):
        release = make_release()

        assert release.status == "announced"
        assert release.category == "other"
        assert release.park == "disney"
        assert not release.is_merged

    def test_active_manager_excludes_merged(self, make_release):
        from releases.models import Release

        target = make_release(title="Figment Popcorn Bucket")
        merged = make_release(title="Figment Bucket", merged_into=target)

        assert list(Release.active.all()) == [target]
        assert merged.is_merged
        assert Release.objects.count() == 2


class TestUniqueness:

    def test_one_processed_article_per_source_and_url(self, feed_source):
        from releases.models import ProcessedArticle

        ProcessedArticle.objects.create(source=feed_source, url="https://parksblog.example.com/a/")

        with pytest.raises(IntegrityError):
            ProcessedArticle.objects.create(source=feed_source, url="https://parksblog.example.com/a/")

    def test_one_article_source_per_release_and_url(self, make_release):
        from releases.models import ArticleSource

        release = make_release()
        ArticleSource.objects.create(release=release, source_url="https://parksblog.example.com/a/")

        with pytest.raises(IntegrityError):
            ArticleSource.objects.create(release=release, source_url="https://parksblog.example.com/a/")
