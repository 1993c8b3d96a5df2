"""
Exceptions raised by the ingestion pipeline.

Per-item failures (a feed that will not parse, an article that fails to
scrape) are recorded and skipped. Only lock contention and errors that
escape the top-level pass reach the caller.
"""


class IngestionError(Exception):
    """Base class for ingestion errors."""


class LockNotAcquired(IngestionError):
    """Another process holds the ingestion lock."""

    def __init__(self, lock_name: str):
        self.lock_name = lock_name
        super().__init__(f"Another process is running (lock '{lock_name}' is held)")


class FeedFetchError(IngestionError):
    """A feed could not be downloaded or parsed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch feed {url}: {reason}")
