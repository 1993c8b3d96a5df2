"""
Release title normalization utility functions.

Provides the canonical dedup key for a Release and the lighter title
normalization used by similarity scoring.

Canonical Key Rules:
- Fold accented characters to ASCII and lowercase
- Remove everything except letters, digits, spaces and hyphens
- Drop generic marketing and venue words (see CANONICAL_STOP_WORDS)
- Join the remaining words with single hyphens
- Fall back to a hash slug when nothing is left
"""

import hashlib
import re
import unicodedata
from typing import Set

# Words that describe the venue or marketing language rather than the product.
CANONICAL_STOP_WORDS = frozenset({
    "anniversary",
    "edition",
    "limited",
    "exclusive",
    "disney",
    "walt",
    "world",
    "park",
    "parks",
})

FALLBACK_PREFIX = "release"


def _fold_ascii(text: str) -> str:
    """Strip accents so that 'Café' and 'Cafe' produce the same key."""
    normalized = unicodedata.normalize("NFKD", text)
    return normalized.encode("ascii", "ignore").decode("ascii")


def _fallback_key(title: str) -> str:
    stripped = (title or "").strip().lower()
    if not stripped:
        return f"{FALLBACK_PREFIX}-untitled"
    digest = hashlib.sha1(stripped.encode("utf-8")).hexdigest()[:12]
    return f"{FALLBACK_PREFIX}-{digest}"


def generate_canonical_name(title: str) -> str:
    """
    Generate the canonical deduplication key for a release title.

    The key is deterministic and idempotent: feeding a generated key back in
    returns it unchanged.

    Args:
        title: Raw product title

    Returns:
        Lowercase hyphenated slug, never empty

    Example:
        >>> generate_canonical_name("Disney Parks 50th Anniversary Spirit Jersey")
        '50th-spirit-jersey'
    """
    if not title:
        return _fallback_key(title)

    text = _fold_ascii(title).lower()
    text = re.sub(r"[^a-z0-9\s-]", "", text)

    words = [
        word for word in re.split(r"[\s-]+", text)
        if word and word not in CANONICAL_STOP_WORDS
    ]

    if not words:
        return _fallback_key(title)

    return "-".join(words)


def normalize_title(title: str) -> str:
    """
    Normalize a title for fuzzy comparison.

    Lowercases, removes punctuation and collapses whitespace. Unlike the
    canonical key, no words are dropped.

    Args:
        title: Raw product title

    Returns:
        Normalized title (may be empty)
    """
    if not title:
        return ""

    result = _fold_ascii(title).lower()
    result = re.sub(r"[^a-z0-9\s]", " ", result)
    result = re.sub(r"\s+", " ", result)
    return result.strip()


def title_word_set(title: str) -> Set[str]:
    """Return the set of normalized words longer than two characters."""
    return {word for word in normalize_title(title).split() if len(word) > 2}
