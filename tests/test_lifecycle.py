"""
Tests for the release lifecycle state machine and release merging.
"""

import uuid
from datetime import date

import pytest
from django.utils import timezone

from releases.services.lifecycle import (
    LifecycleError,
    can_transition,
    merge_releases,
    update_release_status,
)


class TestCanTransition:
    """Forward-only ordering."""

    @pytest.mark.parametrize("current,new,expected", [
        ("rumored", "announced", True),
        ("announced", "available", True),
        ("coming_soon", "coming_soon", True),
        ("available", "sold_out", True),
        ("sold_out", "available", False),
        ("available", "announced", False),
        ("announced", "rumored", False),
        ("announced", "discontinued", False),
    ])
    def test_transitions(self, current, new, expected):
        assert can_transition(current, new) is expected


class TestUpdateReleaseStatus:
    """Status updates and date stamping."""

    def test_forward_move(self, make_release):
        release = make_release(status="announced")

        result = update_release_status(release, "coming_soon")

        assert result.success
        assert result.previous_status == "announced"
        release.refresh_from_db()
        assert release.status == "coming_soon"
        assert release.actual_release_date is None

    def test_backward_move_rejected_without_changes(self, make_release):
        release = make_release(status="available", actual_release_date=date(2025, 3, 1))
        updated_at = release.updated_at

        result = update_release_status(release.id, "announced")

        assert not result.success
        assert result.status == "available"
        assert "backward" in result.error
        release.refresh_from_db()
        assert release.status == "available"
        assert release.actual_release_date == date(2025, 3, 1)
        assert release.updated_at == updated_at

    def test_available_stamps_today(self, make_release):
        release = make_release(status="coming_soon")

        update_release_status(release, "available")

        release.refresh_from_db()
        assert release.actual_release_date == timezone.localdate()

    def test_existing_date_is_kept(self, make_release):
        release = make_release(status="available", actual_release_date=date(2025, 3, 1))

        result = update_release_status(release, "available")

        assert result.success
        release.refresh_from_db()
        assert release.actual_release_date == date(2025, 3, 1)

    def test_explicit_date_wins(self, make_release):
        release = make_release(status="available", sold_out_date=date(2025, 1, 1))

        update_release_status(release, "sold_out", status_date=date(2025, 4, 2))

        release.refresh_from_db()
        assert release.status == "sold_out"
        assert release.sold_out_date == date(2025, 4, 2)

    def test_instance_is_updated_in_place(self, make_release):
        release = make_release(status="announced")

        update_release_status(release, "sold_out")

        assert release.status == "sold_out"
        assert release.sold_out_date == timezone.localdate()

    def test_unknown_status_rejected(self, make_release):
        release = make_release(status="announced")

        result = update_release_status(release, "discontinued")

        assert not result.success
        release.refresh_from_db()
        assert release.status == "announced"

    def test_missing_release(self, db):
        result = update_release_status(uuid.uuid4(), "available")

        assert not result.success
        assert result.error == "Release not found"


class TestMergeReleases:
    """Tombstoning duplicates into a surviving release."""

    def test_moves_sources_and_images(self, make_release):
        from releases.models import ArticleSource, Release, ReleaseImage

        target = make_release(title="Figment Popcorn Bucket", image_url="")
        source = make_release(title="Figment Bucket", image_url="https://cdn.example.com/figment.jpg")

        ArticleSource.objects.create(release=target, source_url="https://blog.example.com/a/")
        ArticleSource.objects.create(release=source, source_url="https://blog.example.com/a/")
        ArticleSource.objects.create(release=source, source_url="https://blog.example.com/b/")
        ReleaseImage.objects.create(release=source, url="https://cdn.example.com/figment.jpg")

        result = merge_releases(source.id, target.id)

        assert result.id == target.id
        source.refresh_from_db()
        target.refresh_from_db()
        assert source.merged_into_id == target.id
        assert set(target.article_sources.values_list("source_url", flat=True)) == {
            "https://blog.example.com/a/",
            "https://blog.example.com/b/",
        }
        assert list(target.images.values_list("url", flat=True)) == ["https://cdn.example.com/figment.jpg"]
        assert target.image_url == "https://cdn.example.com/figment.jpg"
        assert Release.active.filter(pk=source.pk).count() == 0

    def test_self_merge_rejected(self, make_release):
        release = make_release()

        with pytest.raises(LifecycleError):
            merge_releases(release.id, release.id)

    def test_already_merged_rejected(self, make_release):
        target = make_release(title="Haunted Mansion Tumbler")
        other = make_release(title="Figment Popcorn Bucket")
        merged = make_release(title="Stitch Ears", merged_into=target)

        with pytest.raises(LifecycleError):
            merge_releases(merged.id, other.id)

        with pytest.raises(LifecycleError):
            merge_releases(other.id, merged.id)

    def test_missing_release_rejected(self, make_release):
        release = make_release()

        with pytest.raises(LifecycleError):
            merge_releases(uuid.uuid4(), release.id)
