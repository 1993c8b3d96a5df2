"""
ScraperAPI proxy client.

Some news sites block direct requests from server IP ranges. Pages from
those sites are fetched through ScraperAPI, which is enabled by setting
SCRAPER_API_KEY.
"""

import logging
from typing import Optional

import requests
from django.conf import settings

from .http_fetcher import FetchResponse

logger = logging.getLogger(__name__)


class ProxyFetcher:
    """
    Client for the ScraperAPI fetch proxy.

    Sends GET http://api.scraperapi.com/?api_key=...&url=... and returns the
    proxied page as a FetchResponse.
    """

    API_URL = "http://api.scraperapi.com/"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 60.0):
        """
        Initialize the proxy client.

        Args:
            api_key: ScraperAPI key (defaults to settings.SCRAPER_API_KEY)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key if api_key is not None else getattr(settings, "SCRAPER_API_KEY", "")
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch(self, url: str) -> FetchResponse:
        """
        Fetch a URL through the proxy.

        Args:
            url: Target URL

        Returns:
            FetchResponse with via_proxy=True
        """
        if not self.is_configured:
            return FetchResponse(
                content="",
                status_code=0,
                error="Proxy not configured",
                via_proxy=True,
            )

        logger.info(f"Proxy fetch: {url}")

        try:
            response = requests.get(
                self.API_URL,
                params={"api_key": self.api_key, "url": url},
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning(f"Proxy timeout fetching {url}")
            return FetchResponse(
                content="",
                status_code=0,
                error="Proxy request timeout",
                via_proxy=True,
            )
        except requests.RequestException as e:
            logger.warning(f"Proxy error fetching {url}: {e}")
            return FetchResponse(content="", status_code=0, error=str(e), via_proxy=True)

        is_success = response.status_code == 200
        if not is_success:
            logger.warning(f"Proxy returned HTTP {response.status_code} for {url}")

        return FetchResponse(
            content=response.text,
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            success=is_success,
            error=None if is_success else f"Proxy HTTP {response.status_code}",
            body=response.content,
            via_proxy=True,
        )
