"""
Sentry reporting for ingestion passes.

The SDK itself is initialised in settings when SENTRY_DSN is set; without a
DSN every call here is a no-op inside sentry_sdk.

- Breadcrumbs trace the source and article being processed
- Source-level failures are captured with the source as a tag
- Sensitive keys (API keys, tokens, cookies) are filtered from context
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "x-api-key",
}


def filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values of sensitive keys, recursing into nested dicts.

    Args:
        data: Context dictionary

    Returns:
        Copy of the dictionary with sensitive values replaced by "[Filtered]"
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()

        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = filter_sensitive_data(value)
        else:
            filtered[key] = value

    return filtered


def add_ingest_breadcrumb(
    source_name: str,
    url: str,
    message: str = "Ingestion step",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb for the ingestion step being run.

    Args:
        source_name: Name of the feed source
        url: Feed or article URL
        message: Description of the step
        level: Breadcrumb level (info, warning, error)
        extra_data: Additional context data
    """
    data = {"source": source_name, "url": url}
    if extra_data:
        data.update(filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(category="ingest", message=message, level=level, data=data)
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_ingest_error(
    error: Exception,
    source=None,
    url: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an ingestion error with the source as context.

    Args:
        error: The exception that occurred
        source: FeedSource or IngestionSource (optional)
        url: URL being processed when the error occurred
        extra_context: Additional context (filtered for sensitive data)
    """
    source_name = getattr(source, "name", None) or "Unknown"
    source_id = getattr(source, "id", None)

    add_ingest_breadcrumb(
        source_name=source_name,
        url=url or "Unknown",
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("ingest.source", source_name)
            if source_id:
                scope.set_extra("source_id", str(source_id))
            if url:
                scope.set_extra("ingest_url", url)
            if extra_context:
                scope.set_extra("ingest_context", filter_sensitive_data(extra_context))

            sentry_sdk.capture_exception(error)
    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    source_id: Optional[str] = None,
    source_name: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an alert message, used for threshold breaches.

    Args:
        message: Alert message
        level: Severity level (warning, error)
        source_id: FeedSource ID
        source_name: FeedSource name
        extra_data: Additional alert data
    """
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("alert.type", "threshold_breach")
            if source_name:
                scope.set_tag("ingest.source", source_name)
            if source_id:
                scope.set_extra("source_id", source_id)
            if extra_data:
                scope.set_extra("alert_data", filter_sensitive_data(extra_data))

            sentry_sdk.capture_message(message, level=level)
    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
