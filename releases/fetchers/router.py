"""
Fetch Router - picks direct or proxied fetching per URL.

- Domains known to block direct requests go through the proxy when it is
  configured.
- Other URLs are fetched directly; a 403 on a direct fetch is retried
  through the proxy when available.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from .http_fetcher import FetchResponse, HttpFetcher
from .proxy import ProxyFetcher

logger = logging.getLogger(__name__)

BLOCKED_DOMAINS = (
    "wdwnt.com",
    "blogmickey.com",
    "chipandco.com",
    "attractionsmagazine.com",
    "disneyfoodblog.com",
    "allears.net",
)


def is_blocked_domain(url: str) -> bool:
    """Check whether a URL belongs to a domain that blocks direct requests."""
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith(f".{domain}") for domain in BLOCKED_DOMAINS)


class FetchRouter:
    """
    Routes fetches between the direct fetcher and the proxy.
    """

    def __init__(
        self,
        direct: Optional[HttpFetcher] = None,
        proxy: Optional[ProxyFetcher] = None,
    ):
        self.direct = direct or HttpFetcher()
        self.proxy = proxy or ProxyFetcher()

    def fetch(self, url: str) -> FetchResponse:
        """
        Fetch a URL over the appropriate path.

        Args:
            url: URL to fetch

        Returns:
            FetchResponse from whichever path served the request
        """
        if is_blocked_domain(url):
            if self.proxy.is_configured:
                return self.proxy.fetch(url)
            logger.debug(f"{url} is on a blocking domain but no proxy is configured")

        response = self.direct.fetch(url)

        if response.status_code == 403 and self.proxy.is_configured:
            logger.info(f"Direct fetch blocked for {url}, retrying through proxy")
            return self.proxy.fetch(url)

        return response

    def close(self):
        self.direct.close()
