"""
Article page scraper.

Pulls the readable text and the candidate product images out of a news
article page.

Text comes from trafilatura. When trafilatura yields too little, the page
is reduced with BeautifulSoup: boilerplate blocks are removed and the text
of the main article container is used.

Images come from ``src``, ``data-src``, ``data-lazy-src`` and the largest
``srcset``/``data-srcset`` candidate of every <img>, plus the page's
og:image. Query strings are dropped, site chrome (avatars, logos, icons,
ads) is filtered out, resized copies are collapsed, and at most 20 images
are kept.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

import trafilatura
from bs4 import BeautifulSoup

from releases.utils.images import image_dedup_key, is_excluded_image_url

from .router import FetchRouter

logger = logging.getLogger(__name__)

MAX_ARTICLE_IMAGES = 20
MIN_EXTRACTED_LENGTH = 200

BOILERPLATE_SELECTORS = [
    "script", "style", "noscript", "nav", "header", "footer", "aside", "form",
    ".ad", ".advertisement", ".sidebar", ".comments", "#comments",
]

# Related-post widgets name other products and cause false matches
RELATED_SELECTORS = [
    ".related-posts", ".related-articles", ".related", ".yarpp-related",
    ".jp-relatedposts", "[class*=related-post]", "[class*=related-article]",
    ".more-stories", ".recommended-posts", ".you-may-also-like",
]

CONTENT_SELECTORS = ["article", ".post-content", ".entry-content", "main"]


@dataclass
class ScrapedArticle:
    """Readable content and candidate images of an article page."""

    url: str
    success: bool
    content: str = ""
    images: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _strip_noise(soup: BeautifulSoup) -> None:
    for selector in BOILERPLATE_SELECTORS + RELATED_SELECTORS:
        for element in soup.select(selector):
            element.decompose()


def _largest_srcset_candidate(srcset: str) -> Optional[str]:
    candidates = [part.strip().split(" ")[0] for part in srcset.split(",") if part.strip()]
    return candidates[-1] if candidates else None


def extract_images_from_html(html: str, base_url: str, limit: int = MAX_ARTICLE_IMAGES) -> List[str]:
    """
    Collect candidate product image URLs from an HTML fragment or page.

    Args:
        html: HTML to scan
        base_url: URL used to resolve relative image paths
        limit: Maximum number of images returned

    Returns:
        Absolute image URLs in document order
    """
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")
    _strip_noise(soup)

    raw_sources = []
    og_image = soup.find("meta", attrs={"property": "og:image"})
    if og_image and og_image.get("content"):
        raw_sources.append(og_image["content"])

    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src") or img.get("data-lazy-src")
        srcset = img.get("srcset") or img.get("data-srcset")
        if srcset:
            src = _largest_srcset_candidate(srcset) or src
        if src:
            raw_sources.append(src)

    images = []
    seen = set()
    for src in raw_sources:
        src = src.strip()
        if not src or src.startswith("data:") or is_excluded_image_url(src):
            continue

        absolute = urljoin(base_url, re.sub(r"\?.*$", "", src))
        if not absolute.startswith(("http://", "https://")):
            continue

        key = image_dedup_key(absolute)
        if key in seen:
            continue
        seen.add(key)
        images.append(absolute)

        if len(images) >= limit:
            break

    return images


def fragment_text(html: str) -> str:
    """Plain text of an HTML fragment such as embedded feed content."""
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(separator=" ", strip=True)
    return re.sub(r"\s+", " ", text).strip()


def extract_article_text(html: str) -> str:
    """
    Extract the readable text of an article page.

    Args:
        html: Raw page HTML

    Returns:
        Whitespace-collapsed article text
    """
    if not html:
        return ""

    try:
        extracted = trafilatura.extract(
            html,
            include_links=False,
            include_images=False,
            include_tables=False,
            include_comments=False,
            output_format="txt",
        )
    except Exception as e:
        logger.warning(f"trafilatura extraction failed: {e}")
        extracted = None

    if extracted and len(extracted) >= MIN_EXTRACTED_LENGTH:
        return re.sub(r"\s+", " ", extracted).strip()

    soup = BeautifulSoup(html, "html.parser")
    _strip_noise(soup)

    container = None
    for selector in CONTENT_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        container = soup.body or soup

    text = container.get_text(separator=" ", strip=True)
    return re.sub(r"\s+", " ", text).strip()


class ArticleScraper:
    """
    Fetches article pages and extracts their text and images.
    """

    def __init__(self, router: Optional[FetchRouter] = None):
        self.router = router or FetchRouter()

    def scrape(self, url: str) -> ScrapedArticle:
        """
        Scrape an article page.

        Args:
            url: Article URL

        Returns:
            ScrapedArticle; a failed fetch is reported with success=False
        """
        response = self.router.fetch(url)
        if not response.success:
            logger.warning(f"Failed to scrape {url}: {response.error}")
            return ScrapedArticle(url=url, success=False, error=response.error)

        return ScrapedArticle(
            url=url,
            success=True,
            content=extract_article_text(response.content),
            images=extract_images_from_html(response.content, url),
        )
