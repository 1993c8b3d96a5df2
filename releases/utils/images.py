"""
Image URL helpers shared by scraping and storage.
"""

import re
from urllib.parse import urlparse

# Filename tokens that mark site chrome rather than product photos
EXCLUDED_FILENAME_TOKENS = frozenset({
    "avatar",
    "avatars",
    "logo",
    "logos",
    "icon",
    "icons",
    "favicon",
    "subscribe",
    "gravatar",
    "emoji",
})

# Consecutive tokens, for sponsor banners named by phrase
EXCLUDED_FILENAME_PHRASES = (
    ("get", "away", "today"),
)

# Hosts that only serve avatars and emoji
EXCLUDED_IMAGE_HOSTS = ("gravatar.com", "s.w.org")

_TOKEN_SPLIT = re.compile(r"[-_./]+")

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

_FILENAME_PATTERN = re.compile(r"IMG_\d+|[^/]+\.(?:jpg|jpeg|png|webp|gif)", re.IGNORECASE)
_SIZE_SUFFIX = re.compile(r"-\d+x\d+(?=\.\w+$)")


def is_excluded_image_url(url: str) -> bool:
    """
    Check whether an image URL looks like an avatar, logo or icon.

    Only whole tokens of the filename count, so "iconic-castle.jpg" or
    "jack-sparrow.jpg" are kept while "site-logo.png" is dropped.
    """
    parsed = urlparse((url or "").strip().lower())
    host = parsed.netloc
    if any(host == excluded or host.endswith("." + excluded) for excluded in EXCLUDED_IMAGE_HOSTS):
        return True

    filename = parsed.path.rstrip("/").rsplit("/", 1)[-1]
    tokens = [token for token in _TOKEN_SPLIT.split(filename) if token]
    if EXCLUDED_FILENAME_TOKENS.intersection(tokens):
        return True

    for phrase in EXCLUDED_FILENAME_PHRASES:
        size = len(phrase)
        if any(tuple(tokens[i:i + size]) == phrase for i in range(len(tokens) - size + 1)):
            return True
    return False


def image_extension(content_type: str) -> str:
    """File extension for an image content type (jpg when unknown)."""
    return CONTENT_TYPE_EXTENSIONS.get((content_type or "").lower(), "jpg")


def image_dedup_key(url: str) -> str:
    """
    Key used to collapse resized copies of the same photo.

    WordPress serves one upload in several sizes (photo-300x200.jpg,
    photo-1024x768.jpg); the base filename identifies the photo.
    """
    match = _FILENAME_PATTERN.search(urlparse(url).path)
    if not match:
        return url
    return _SIZE_SUFFIX.sub("", match.group(0).lower())
