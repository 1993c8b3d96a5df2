"""
Monitoring for ingestion passes: Sentry context and source failure tracking.
"""

from .failure_tracker import FailureTracker, get_failure_tracker, reset_failure_tracker
from .sentry_integration import (
    add_ingest_breadcrumb,
    capture_alert,
    capture_ingest_error,
    filter_sensitive_data,
)

__all__ = [
    "FailureTracker",
    "add_ingest_breadcrumb",
    "capture_alert",
    "capture_ingest_error",
    "filter_sensitive_data",
    "get_failure_tracker",
    "reset_failure_tracker",
]
