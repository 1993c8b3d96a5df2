"""
Release image storage and gallery management.

Images are downloaded, validated and written to Django's default storage
under a key namespaced by release:

    releases/{release_id}/{uuid}.{ext}
    releases/{release_id}/originals/original-{uuid}.{ext}

Gallery images carry a trust tier. Priority order is manual > blog >
shopdisney, and shopdisney images are never returned for public display.
"""

import logging
import uuid
from dataclasses import dataclass
from io import BytesIO
from typing import List, Optional
from urllib.parse import unquote

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.db import transaction
from PIL import Image, UnidentifiedImageError

from releases.fetchers.http_fetcher import HttpFetcher
from releases.models import ImageSource, Release, ReleaseImage
from releases.utils.images import image_extension

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024

IMAGE_SOURCE_PRIORITY = {
    ImageSource.MANUAL.value: 1,
    ImageSource.BLOG.value: 2,
    ImageSource.SHOPDISNEY.value: 3,
}

PUBLIC_IMAGE_SOURCES = {ImageSource.MANUAL.value, ImageSource.BLOG.value}

UNTYPED_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


@dataclass
class DownloadedImage:
    """Validated image payload."""

    url: str
    data: bytes
    content_type: str


def sniff_image_type(data: bytes) -> Optional[str]:
    """MIME type of image bytes as identified by Pillow, or None for non-images."""
    try:
        with Image.open(BytesIO(data)) as image:
            return Image.MIME.get(image.format)
    except (UnidentifiedImageError, OSError):
        return None


def download_image(url: str, fetcher: Optional[HttpFetcher] = None) -> Optional[DownloadedImage]:
    """
    Download an image and validate it.

    The body is streamed and abandoned past 10 MB. Responses declaring a
    non-image content type are rejected; untyped or octet-stream responses
    are accepted only when Pillow recognizes the bytes as an image.

    Args:
        url: Image URL
        fetcher: HTTP fetcher (a default one is created when omitted)

    Returns:
        DownloadedImage, or None when the download is unusable
    """
    owns_fetcher = fetcher is None
    fetcher = fetcher or HttpFetcher()

    try:
        response = fetcher.download(url, max_bytes=MAX_IMAGE_BYTES)
    finally:
        if owns_fetcher:
            fetcher.close()

    if not response.success:
        logger.warning(f"Failed to download image {url}: {response.error}")
        return None

    content_type = response.content_type
    if content_type in UNTYPED_CONTENT_TYPES:
        content_type = sniff_image_type(response.body) or ""

    if not content_type.startswith("image/"):
        logger.warning(f"Not an image ({content_type or 'unknown type'}): {url}")
        return None

    return DownloadedImage(url=url, data=response.body, content_type=content_type)


def _save_bytes(key: str, data: bytes) -> str:
    name = default_storage.save(key, ContentFile(data))
    return default_storage.url(name)


def sort_images_by_priority(images) -> List[ReleaseImage]:
    """Sort gallery images by trust tier, newest first within a tier."""
    ordered = sorted(images, key=lambda image: image.added_at, reverse=True)
    return sorted(ordered, key=lambda image: IMAGE_SOURCE_PRIORITY.get(image.source, 99))


def add_image_to_release(
    release: Release,
    url: str,
    source: str = ImageSource.BLOG,
    make_primary: bool = False,
) -> ReleaseImage:
    """
    Add an image to a release's gallery, ignoring URLs already present.

    Args:
        release: Release to attach the image to
        url: Stored image URL
        source: Trust tier of the image
        make_primary: Mark the image primary and use it as the release image

    Returns:
        The new or existing ReleaseImage
    """
    image, created = ReleaseImage.objects.get_or_create(
        release=release,
        url=url,
        defaults={
            "source": source,
            "position": release.images.count(),
        },
    )

    if make_primary and not image.is_primary:
        with transaction.atomic():
            release.images.filter(is_primary=True).update(is_primary=False)
            image.is_primary = True
            image.save(update_fields=["is_primary"])
            release.image_url = url
            release.save(update_fields=["image_url"])

    if created:
        logger.debug(f"Added {source} image to release {release.id}")

    return image


def store_release_image_bytes(
    release: Release,
    data: bytes,
    content_type: str = "image/jpeg",
    source: str = ImageSource.BLOG,
    make_primary: Optional[bool] = None,
) -> str:
    """
    Store image bytes for a release and add them to its gallery.

    By default the first image stored for a release without an image
    becomes its primary image.

    Args:
        release: Release the image belongs to
        data: Image bytes
        content_type: Image MIME type
        source: Trust tier of the image
        make_primary: Force (or prevent) replacing the primary image

    Returns:
        Public URL of the stored image
    """
    key = f"releases/{release.id}/{uuid.uuid4()}.{image_extension(content_type)}"
    url = _save_bytes(key, data)
    if make_primary is None:
        make_primary = not release.image_url
    add_image_to_release(release, url, source=source, make_primary=make_primary)
    logger.info(f"Stored image for release {release.id}: {url}")
    return url


def store_release_image(
    release: Release,
    image_url: str,
    source: str = ImageSource.BLOG,
    fetcher: Optional[HttpFetcher] = None,
    make_primary: Optional[bool] = None,
) -> Optional[str]:
    """
    Download an image from a URL and store it for a release.

    Args:
        release: Release the image belongs to
        image_url: Source image URL
        source: Trust tier of the image
        fetcher: HTTP fetcher to download with
        make_primary: Force (or prevent) replacing the primary image

    Returns:
        Public URL of the stored image, or None if the download failed validation
    """
    downloaded = download_image(image_url, fetcher=fetcher)
    if downloaded is None:
        return None
    return store_release_image_bytes(
        release, downloaded.data, content_type=downloaded.content_type, source=source,
        make_primary=make_primary,
    )


def store_original_image(
    release: Release,
    data: bytes,
    content_type: str = "image/jpeg",
) -> str:
    """
    Store the uncropped original of a composite image.

    Args:
        release: Release that received a crop of the image
        data: Original image bytes
        content_type: Image MIME type

    Returns:
        Public URL of the stored original
    """
    key = (
        f"releases/{release.id}/originals/"
        f"original-{uuid.uuid4()}.{image_extension(content_type)}"
    )
    url = _save_bytes(key, data)
    release.original_image_url = url
    release.save(update_fields=["original_image_url"])
    return url


def get_public_images(release: Release) -> List[ReleaseImage]:
    """Gallery images safe for public display, in priority order."""
    return sort_images_by_priority(
        image for image in release.images.all() if image.source in PUBLIC_IMAGE_SOURCES
    )


def get_primary_image(release: Release, for_public: bool = True) -> Optional[ReleaseImage]:
    """
    Highest-priority gallery image.

    Args:
        release: Release to inspect
        for_public: Exclude internal price-check images

    Returns:
        ReleaseImage or None
    """
    images = get_public_images(release) if for_public else sort_images_by_priority(release.images.all())
    return images[0] if images else None


def get_primary_image_url(release: Release, for_public: bool = True) -> Optional[str]:
    """
    URL to display for a release.

    Falls back to ``release.image_url``, except for public display of a
    release whose gallery holds only internal price-check images.
    """
    primary = get_primary_image(release, for_public=for_public)
    if primary:
        return primary.url

    if for_public:
        sources = set(release.images.values_list("source", flat=True))
        if sources and sources <= {ImageSource.SHOPDISNEY.value}:
            return None

    return release.image_url or None


def load_image(url: str, fetcher: Optional[HttpFetcher] = None) -> Optional[DownloadedImage]:
    """
    Load an image this service stored earlier, or download any other URL.

    URLs under MEDIA_URL are read back from default storage; everything else
    goes through ``download_image``.

    Args:
        url: Stored or remote image URL
        fetcher: HTTP fetcher for remote images

    Returns:
        DownloadedImage, or None when the image is missing or invalid
    """
    media_url = settings.MEDIA_URL or ""
    if media_url and url.startswith(media_url):
        name = unquote(url[len(media_url):])
        if not default_storage.exists(name):
            logger.warning(f"Stored image missing: {url}")
            return None
        with default_storage.open(name, "rb") as stored:
            data = stored.read()
        content_type = sniff_image_type(data)
        if content_type is None:
            logger.warning(f"Stored file is not an image: {url}")
            return None
        return DownloadedImage(url=url, data=data, content_type=content_type)

    return download_image(url, fetcher=fetcher)
