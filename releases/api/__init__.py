"""
REST API for release ingestion.

- Triggering ingestion passes and reviewing their activity
- Reviewing potential duplicates of a release
- Applying lifecycle status transitions

All endpoints require authentication and have rate limiting.
"""

from releases.api.throttling import (
    IngestionTriggerThrottle,
    ReleaseAdminThrottle,
)
from releases.api.views import (
    ingestion_status,
    release_duplicates,
    trigger_ingestion,
    update_status,
)

__all__ = [
    # Views
    'trigger_ingestion',
    'ingestion_status',
    'release_duplicates',
    'update_status',
    # Throttling
    'IngestionTriggerThrottle',
    'ReleaseAdminThrottle',
]
