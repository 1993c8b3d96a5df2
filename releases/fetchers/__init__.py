"""
Content fetchers for feeds, article pages and images.

- HttpFetcher: direct httpx fetching with retry
- ProxyFetcher: ScraperAPI for domains that block direct requests
- FetchRouter: chooses between the two per URL
- fetch_feed / ArticleScraper: feed parsing and article extraction
"""

from .article_scraper import (
    ArticleScraper,
    ScrapedArticle,
    extract_article_text,
    extract_images_from_html,
    fragment_text,
)
from .feed_reader import FeedItem, fetch_feed, parse_feed
from .http_fetcher import FetchResponse, HttpFetcher
from .proxy import ProxyFetcher
from .router import BLOCKED_DOMAINS, FetchRouter, is_blocked_domain

__all__ = [
    "ArticleScraper",
    "BLOCKED_DOMAINS",
    "FeedItem",
    "FetchResponse",
    "FetchRouter",
    "HttpFetcher",
    "ProxyFetcher",
    "ScrapedArticle",
    "extract_article_text",
    "extract_images_from_html",
    "fetch_feed",
    "fragment_text",
    "is_blocked_domain",
    "parse_feed",
]
