"""
API throttling classes.
"""

from rest_framework.throttling import UserRateThrottle


class IngestionTriggerThrottle(UserRateThrottle):
    """
    Throttle for ingestion trigger endpoints.

    Rate: 10 requests per hour per user.
    Applied to: /api/v1/ingestion/process/
    """

    rate = '10/hour'
    scope = 'ingestion_trigger'


class ReleaseAdminThrottle(UserRateThrottle):
    """
    Throttle for release review endpoints.

    Rate: 200 requests per hour per user.
    Applied to: /api/v1/releases/<id>/duplicates/, /api/v1/releases/<id>/status/
    """

    rate = '200/hour'
    scope = 'release_admin'


class ImageRefetchThrottle(UserRateThrottle):
    """
    Throttle for image refetches, which scrape pages and call the AI service.

    Rate: 30 requests per hour per user.
    Applied to: /api/v1/releases/<id>/refetch-image/
    """

    rate = '30/hour'
    scope = 'image_refetch'
