"""
Duplicate Resolution Service.

Decides whether a product extracted from an article is a release that is
already in the catalog. Only active (non-merged) releases are ever
considered as candidates.

Resolution Levels:
    Exact canonical match:
        An active release with the same canonical key. Confidence 1.0,
        short-circuits the other levels.

    Composite similarity match:
        Scores every active release on source URL plus title, shared image
        URL, fuzzy title similarity and word overlap, and returns a ranked
        candidate list. The top candidate is accepted at or above
        AUTO_MERGE_THRESHOLD.

    Fallback substring match:
        Only used when the similarity search itself fails. Looks for an
        active release whose title contains the first three words of the
        incoming title in order, with other words allowed between them.

Usage:
    from releases.services.duplicate_detector import get_duplicate_resolver

    resolver = get_duplicate_resolver()
    resolution = resolver.resolve(title, canonical_name, image_url, source_url)
    if resolution.is_new:
        ...
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from rapidfuzz import fuzz

from releases.utils.normalization import (
    generate_canonical_name,
    normalize_title,
    title_word_set,
)

logger = logging.getLogger(__name__)

# Score at or above which an ingested product is merged into an existing release
AUTO_MERGE_THRESHOLD = 0.7

# Score at or above which a pair is surfaced for manual review
REVIEW_THRESHOLD = 0.5

# Match reasons reported on ranked candidates
REASON_EXACT_CANONICAL = "exact_canonical_match"
REASON_URL_TITLE = "exact_url_title_match"
REASON_IMAGE = "exact_image_match"
REASON_SIMILAR_TITLE = "similar_title"
REASON_WORD_OVERLAP = "word_overlap"
REASON_FALLBACK = "fallback_substring_match"

FALLBACK_CONFIDENCE = 0.5


@dataclass(frozen=True)
class RankedCandidate:
    """An existing release scored against an incoming product."""

    release_id: UUID
    title: str
    score: float
    reason: str


@dataclass
class Resolution:
    """
    Outcome of duplicate resolution.

    Attributes:
        release_id: Matched release, or None when the product is new
        confidence: Score of the accepted match (0.0 when new)
        reason: Match reason of the accepted candidate
        candidates: Ranked candidates considered at the similarity level
    """

    release_id: Optional[UUID] = None
    confidence: float = 0.0
    reason: Optional[str] = None
    candidates: List[RankedCandidate] = field(default_factory=list)

    @property
    def is_new(self) -> bool:
        return self.release_id is None


def _is_placeholder(image_url: Optional[str]) -> bool:
    return not image_url or "placeholder" in image_url.lower()


def _word_overlap(words_a: set, words_b: set) -> float:
    """Share of the smaller word set that also appears in the larger one."""
    smaller = min(len(words_a), len(words_b))
    if smaller < 2:
        return 0.0
    return len(words_a & words_b) / smaller


def find_similar_releases(
    title: str,
    image_url: Optional[str] = None,
    source_url: Optional[str] = None,
    threshold: float = REVIEW_THRESHOLD,
    exclude_id: Optional[UUID] = None,
    limit: int = 10,
) -> List[RankedCandidate]:
    """
    Rank active releases by similarity to an incoming product.

    Each candidate is checked in order and reported with the first signal
    that reaches the threshold:
    1. Same source URL and same normalized title (score 1.0)
    2. Same non-placeholder image URL (score 1.0)
    3. Fuzzy title similarity (token sort ratio)
    4. Word overlap relative to the shorter title

    Args:
        title: Incoming product title
        image_url: Incoming image URL, if any
        source_url: Article URL the product came from, if any
        threshold: Minimum score for a candidate to be returned
        exclude_id: Release to leave out (used when a release looks for its own duplicates)
        limit: Maximum number of candidates returned

    Returns:
        Candidates sorted by score, best first
    """
    from releases.models import Release

    normalized = normalize_title(title)
    if not normalized:
        return []

    words = title_word_set(title)
    check_image = not _is_placeholder(image_url)

    queryset = Release.active.all()
    if exclude_id is not None:
        queryset = queryset.exclude(id=exclude_id)

    candidates = []
    for row in queryset.values("id", "title", "image_url", "source_url").iterator():
        existing_normalized = normalize_title(row["title"])

        if source_url and row["source_url"] == source_url and existing_normalized == normalized:
            candidates.append(RankedCandidate(row["id"], row["title"], 1.0, REASON_URL_TITLE))
            continue

        if check_image and row["image_url"] == image_url:
            candidates.append(RankedCandidate(row["id"], row["title"], 1.0, REASON_IMAGE))
            continue

        title_score = fuzz.token_sort_ratio(normalized, existing_normalized) / 100.0
        if title_score >= threshold:
            candidates.append(
                RankedCandidate(row["id"], row["title"], round(title_score, 4), REASON_SIMILAR_TITLE)
            )
            continue

        overlap = _word_overlap(words, title_word_set(row["title"]))
        if overlap >= threshold:
            candidates.append(
                RankedCandidate(row["id"], row["title"], round(overlap, 4), REASON_WORD_OVERLAP)
            )

    candidates.sort(key=lambda candidate: candidate.score, reverse=True)
    return candidates[:limit]


class DuplicateResolver:
    """
    Resolves incoming products against the active release catalog.

    The resolver never writes. A match tells the caller to enrich the
    existing release and append provenance instead of inserting.
    """

    def __init__(
        self,
        auto_merge_threshold: float = AUTO_MERGE_THRESHOLD,
        review_threshold: float = REVIEW_THRESHOLD,
    ) -> None:
        self.auto_merge_threshold = auto_merge_threshold
        self.review_threshold = review_threshold

    def find_by_canonical_name(self, canonical_name: str) -> Optional[UUID]:
        """Return the oldest active release carrying the canonical key."""
        from releases.models import Release

        if not canonical_name:
            return None

        match = (
            Release.active.filter(canonical_name=canonical_name)
            .order_by("created_at")
            .values_list("id", flat=True)
            .first()
        )
        return match

    def find_by_title_prefix(self, title: str) -> Optional[UUID]:
        """
        Fallback lookup on the first three words of the title.

        Args:
            title: Incoming product title

        Returns:
            ID of the first active release whose title contains the three
            words in order, other words allowed in between
        """
        from releases.models import Release

        words = (title or "").split()
        if not words:
            return None

        pattern = ".*".join(re.escape(word) for word in words[:3])
        return (
            Release.active.filter(title__iregex=pattern)
            .order_by("created_at")
            .values_list("id", flat=True)
            .first()
        )

    def resolve(
        self,
        title: str,
        canonical_name: Optional[str] = None,
        image_url: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> Resolution:
        """
        Decide whether a product matches an existing active release.

        Args:
            title: Product title as extracted
            canonical_name: Precomputed canonical key (derived from title when omitted)
            image_url: Candidate image URL for the product
            source_url: Article URL the product came from

        Returns:
            Resolution with the matched release ID, or an empty Resolution for a new product
        """
        canonical_name = canonical_name or generate_canonical_name(title)

        existing_id = self.find_by_canonical_name(canonical_name)
        if existing_id:
            logger.debug(f"Exact canonical match for '{title}' ({canonical_name})")
            return Resolution(
                release_id=existing_id,
                confidence=1.0,
                reason=REASON_EXACT_CANONICAL,
            )

        try:
            candidates = find_similar_releases(
                title,
                image_url=image_url,
                source_url=source_url,
                threshold=self.auto_merge_threshold,
            )
        except Exception as e:
            logger.warning(f"Similarity search failed for '{title}', using fallback: {e}")
            fallback_id = self.find_by_title_prefix(title)
            if fallback_id:
                return Resolution(
                    release_id=fallback_id,
                    confidence=FALLBACK_CONFIDENCE,
                    reason=REASON_FALLBACK,
                )
            return Resolution()

        if candidates:
            best = candidates[0]
            logger.debug(
                f"Similarity match for '{title}': '{best.title}' "
                f"({best.reason}, score={best.score:.2f})"
            )
            return Resolution(
                release_id=best.release_id,
                confidence=best.score,
                reason=best.reason,
                candidates=candidates,
            )

        return Resolution()

    def find_potential_duplicates(self, release_id: UUID) -> List[RankedCandidate]:
        """
        List active releases that may duplicate the given release.

        Used for manual review; runs at the lower review threshold and never
        returns the release itself.

        Args:
            release_id: Release to check

        Returns:
            Ranked candidates, best first (empty when the release does not exist)
        """
        from releases.models import Release

        release = Release.objects.filter(id=release_id).first()
        if release is None:
            return []

        return find_similar_releases(
            release.title,
            image_url=release.image_url,
            source_url=release.source_url,
            threshold=self.review_threshold,
            exclude_id=release.id,
        )


# Singleton instance
_duplicate_resolver: Optional[DuplicateResolver] = None


def get_duplicate_resolver() -> DuplicateResolver:
    """
    Get the global DuplicateResolver instance.

    Returns:
        DuplicateResolver singleton
    """
    global _duplicate_resolver
    if _duplicate_resolver is None:
        _duplicate_resolver = DuplicateResolver()
    return _duplicate_resolver


def reset_duplicate_resolver() -> None:
    """Reset the singleton (used by tests)."""
    global _duplicate_resolver
    _duplicate_resolver = None
