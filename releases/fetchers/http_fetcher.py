"""
Direct HTTP fetcher - httpx with retry.

The default fetch path for feeds, article pages and images. Uses a
synchronous httpx client with a browser User-Agent and retries transient
failures (timeouts, connection errors, 429 and 5xx) with exponential
backoff.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """Response from a fetch operation."""

    content: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    success: bool = False
    error: Optional[str] = None
    body: bytes = b""
    via_proxy: bool = False

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";")[0].strip().lower()


class HttpFetcher:
    """
    Direct fetcher using a synchronous httpx client.

    Features:
    - Browser User-Agent and Accept headers
    - Redirect following
    - Configurable timeout and retry count
    - Exponential backoff between attempts
    """

    # Some feeds serve different content to bot user agents
    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )

    # httpx does not decode brotli without an extra package
    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
    }

    RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds (default from settings)
            max_retries: Retries after the first attempt (default from settings)
            user_agent: Custom User-Agent string
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.timeout = timeout if timeout is not None else getattr(
            settings, "INGEST_REQUEST_TIMEOUT", 30
        )
        self.max_retries = max_retries if max_retries is not None else getattr(
            settings, "INGEST_MAX_RETRIES", 2
        )
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                headers={**self.DEFAULT_HEADERS, "User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self):
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchResponse:
        """
        Fetch a URL.

        Args:
            url: URL to fetch
            headers: Extra request headers

        Returns:
            FetchResponse; failures are reported, not raised
        """
        try:
            response = self._fetch_with_retry(url, headers or {})
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout fetching {url}: {e}")
            return FetchResponse(content="", status_code=0, error=f"Timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"HTTP error fetching {url}: {e}")
            return FetchResponse(content="", status_code=0, error=str(e))

        is_success = 200 <= response.status_code < 400
        error_msg = None
        if not is_success:
            error_msg = f"HTTP {response.status_code}"
            logger.warning(f"HTTP {response.status_code} for {url}")

        return FetchResponse(
            content=response.text,
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            success=is_success,
            error=error_msg,
            body=response.content,
        )

    def download(
        self,
        url: str,
        max_bytes: int,
        headers: Optional[Dict[str, str]] = None,
    ) -> FetchResponse:
        """
        Stream a binary download, giving up once it exceeds ``max_bytes``.

        A declared Content-Length over the limit is rejected before the body
        is read. Downloads are not retried.

        Args:
            url: URL to download
            max_bytes: Largest accepted body size
            headers: Extra request headers

        Returns:
            FetchResponse with the raw bytes in ``body``; failures are reported, not raised
        """
        try:
            with self.client.stream("GET", url, headers=headers or {}) as response:
                response_headers = {k.lower(): v for k, v in response.headers.items()}

                if not 200 <= response.status_code < 400:
                    logger.warning(f"HTTP {response.status_code} for {url}")
                    return FetchResponse(
                        content="",
                        status_code=response.status_code,
                        headers=response_headers,
                        error=f"HTTP {response.status_code}",
                    )

                declared = response_headers.get("content-length", "")
                if declared.isdigit() and int(declared) > max_bytes:
                    return FetchResponse(
                        content="",
                        status_code=response.status_code,
                        headers=response_headers,
                        error=f"Too large ({declared} bytes)",
                    )

                chunks = []
                received = 0
                for chunk in response.iter_bytes():
                    received += len(chunk)
                    if received > max_bytes:
                        return FetchResponse(
                            content="",
                            status_code=response.status_code,
                            headers=response_headers,
                            error=f"Too large (over {max_bytes} bytes)",
                        )
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout downloading {url}: {e}")
            return FetchResponse(content="", status_code=0, error=f"Timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"HTTP error downloading {url}: {e}")
            return FetchResponse(content="", status_code=0, error=str(e))

        return FetchResponse(
            content="",
            status_code=response.status_code,
            headers=response_headers,
            success=True,
            body=b"".join(chunks),
        )

    def _fetch_with_retry(self, url: str, headers: Dict[str, str]) -> httpx.Response:
        """
        GET with exponential backoff on transient failures.

        The last response is returned once retries are exhausted on a
        retryable status; the last exception is raised for network errors.
        """
        attempts = self.max_retries + 1
        last_error: Optional[Exception] = None
        response = None

        for attempt in range(attempts):
            try:
                response = self.client.get(url, headers=headers)
                if response.status_code not in self.RETRY_STATUS_CODES:
                    return response
                last_error = None
                logger.warning(
                    f"HTTP {response.status_code} for {url} "
                    f"(attempt {attempt + 1}/{attempts})"
                )
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e
                response = None
                logger.warning(f"Error fetching {url}: {e} (attempt {attempt + 1}/{attempts})")

            if attempt < attempts - 1:
                time.sleep(2 ** attempt)

        if response is not None:
            return response
        raise last_error
