"""
Tests for duplicate resolution against the active release catalog.
"""

import uuid
from unittest.mock import patch

import pytest

from releases.services.duplicate_detector import (
    AUTO_MERGE_THRESHOLD,
    REASON_EXACT_CANONICAL,
    REASON_FALLBACK,
    REASON_IMAGE,
    REASON_SIMILAR_TITLE,
    DuplicateResolver,
    _word_overlap,
    find_similar_releases,
    get_duplicate_resolver,
)


class TestExactCanonicalMatch:
    """The canonical key short-circuits every other check."""

    def test_matches_same_canonical_name(self, make_release):
        release = make_release(title="50th Anniversary Spirit Jersey")

        resolution = DuplicateResolver().resolve("Disney Parks 50th Anniversary Spirit Jersey")

        assert resolution.release_id == release.id
        assert resolution.confidence == 1.0
        assert resolution.reason == REASON_EXACT_CANONICAL
        assert not resolution.is_new

    def test_prefers_oldest_release(self, make_release):
        from datetime import timedelta

        from django.utils import timezone

        older = make_release(title="Figment Popcorn Bucket", created_at=timezone.now() - timedelta(days=3))
        make_release(title="Limited Edition Figment Popcorn Bucket")

        resolution = DuplicateResolver().resolve("Figment Popcorn Bucket")

        assert resolution.release_id == older.id

    def test_skips_similarity_search(self, make_release):
        make_release(title="Figment Popcorn Bucket")

        with patch("releases.services.duplicate_detector.find_similar_releases") as mock_similar:
            DuplicateResolver().resolve("Figment Popcorn Bucket")

        mock_similar.assert_not_called()

    def test_merged_releases_are_never_candidates(self, make_release):
        target = make_release(title="Haunted Mansion Tumbler")
        make_release(title="Stitch Loungefly Backpack", merged_into=target)

        resolution = DuplicateResolver().resolve("Stitch Loungefly Backpack")

        assert resolution.is_new


class TestSimilarityMatch:
    """Composite similarity scoring."""

    def test_similar_title_above_threshold(self, make_release):
        release = make_release(title="Stitch Loungefly Mini Backpack")

        resolution = DuplicateResolver().resolve("Stitch Loungefly Mini Backpack 2025")

        assert resolution.release_id == release.id
        assert resolution.reason == REASON_SIMILAR_TITLE
        assert resolution.confidence >= AUTO_MERGE_THRESHOLD
        assert resolution.candidates[0].release_id == release.id

    def test_unrelated_title_is_new(self, make_release):
        make_release(title="Figment Popcorn Bucket")

        resolution = DuplicateResolver().resolve("Stitch Loungefly Backpack")

        assert resolution.is_new
        assert resolution.confidence == 0.0
        assert resolution.candidates == []

    def test_shared_image_url_matches(self, make_release):
        release = make_release(
            title="Haunted Mansion Tumbler",
            image_url="https://cdn.example.com/uploads/hm-tumbler.jpg",
        )

        resolution = DuplicateResolver().resolve(
            "Completely Different Thing",
            image_url="https://cdn.example.com/uploads/hm-tumbler.jpg",
        )

        assert resolution.release_id == release.id
        assert resolution.reason == REASON_IMAGE
        assert resolution.confidence == 1.0

    def test_placeholder_images_are_ignored(self, make_release):
        make_release(
            title="Haunted Mansion Tumbler",
            image_url="https://cdn.example.com/placeholder.jpg",
        )

        resolution = DuplicateResolver().resolve(
            "Completely Different Thing",
            image_url="https://cdn.example.com/placeholder.jpg",
        )

        assert resolution.is_new

    def test_candidates_ranked_best_first(self, make_release):
        make_release(title="Stitch Loungefly Backpack")
        make_release(title="Stitch Loungefly Mini Backpack")

        candidates = find_similar_releases("Stitch Loungefly Mini Backpack Pink", threshold=0.5)

        assert len(candidates) == 2
        assert candidates[0].score >= candidates[1].score

    def test_empty_title_has_no_candidates(self, make_release):
        make_release(title="Figment Popcorn Bucket")
        assert find_similar_releases("!!!") == []


class TestFallbackMatch:
    """The title-prefix fallback runs only when similarity search fails."""

    def test_fallback_on_similarity_failure(self, make_release):
        release = make_release(title="Figment Popcorn Bucket Deluxe")

        with patch(
            "releases.services.duplicate_detector.find_similar_releases",
            side_effect=RuntimeError("search unavailable"),
        ):
            resolution = DuplicateResolver().resolve("Figment Popcorn Bucket Returns")

        assert resolution.release_id == release.id
        assert resolution.reason == REASON_FALLBACK
        assert resolution.confidence == 0.5

    def test_fallback_allows_words_in_between(self, make_release):
        release = make_release(title="Figment Glow Popcorn Light-Up Bucket")

        found = DuplicateResolver().find_by_title_prefix("Figment Popcorn Bucket Returns")

        assert found == release.id

    def test_fallback_requires_word_order(self, make_release):
        make_release(title="Bucket of Figment Popcorn")

        assert DuplicateResolver().find_by_title_prefix("Figment Popcorn Bucket") is None

    def test_fallback_escapes_regex_characters(self, make_release):
        release = make_release(title="Stitch (2025) Ears Headband")

        assert DuplicateResolver().find_by_title_prefix("Stitch (2025) Ears") == release.id
        assert DuplicateResolver().find_by_title_prefix("Stitch (.*) Ears") is None

    def test_fallback_without_match_is_new(self, make_release):
        make_release(title="Haunted Mansion Tumbler")

        with patch(
            "releases.services.duplicate_detector.find_similar_releases",
            side_effect=RuntimeError("search unavailable"),
        ):
            resolution = DuplicateResolver().resolve("Figment Popcorn Bucket Returns")

        assert resolution.is_new


class TestPotentialDuplicates:
    """Manual review listing."""

    def test_lists_similar_releases_excluding_self(self, make_release):
        release = make_release(title="Stitch Loungefly Mini Backpack")
        similar = make_release(title="Stitch Loungefly Mini Backpack 2025")
        make_release(title="Figment Popcorn Bucket")

        candidates = get_duplicate_resolver().find_potential_duplicates(release.id)

        assert [candidate.release_id for candidate in candidates] == [similar.id]

    def test_unknown_release(self, db):
        assert get_duplicate_resolver().find_potential_duplicates(uuid.uuid4()) == []


class TestWordOverlap:
    """Word overlap relative to the shorter title."""

    def test_full_overlap_of_shorter_set(self):
        assert _word_overlap({"figment", "bucket"}, {"figment", "bucket", "popcorn"}) == 1.0

    def test_requires_two_words(self):
        assert _word_overlap({"figment"}, {"figment", "bucket"}) == 0.0

    @pytest.mark.parametrize("a,b,expected", [
        ({"stitch", "ears", "pink"}, {"stitch", "ears", "blue"}, pytest.approx(2 / 3)),
        ({"stitch", "ears"}, {"mug", "tumbler"}, 0.0),
    ])
    def test_partial_overlap(self, a, b, expected):
        assert _word_overlap(a, b) == expected
