"""
REST API views for release ingestion.

This module provides endpoints for:
- Triggering an ingestion pass (queued on Celery, or run inline)
- Ingestion status: recent articles, active sources, lock state
- Potential duplicates of a release for manual review
- Lifecycle status transitions
- Image refetch from the articles a release came from

All endpoints require authentication and have rate limiting.
"""

import logging
import uuid
from datetime import date

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from releases.api.throttling import (
    ImageRefetchThrottle,
    IngestionTriggerThrottle,
    ReleaseAdminThrottle,
)
from releases.models import FeedSource, ProcessedArticle, Release
from releases.services.duplicate_detector import get_duplicate_resolver
from releases.services.feed_orchestrator import run_ingestion_pass
from releases.services.image_maintenance import ImageMaintenance
from releases.services.lifecycle import STATUS_ORDER, update_release_status
from releases.services.processing_lock import FEED_PROCESSING_LOCK, is_locked

logger = logging.getLogger(__name__)

RECENT_ARTICLES_LIMIT = 20

RELEASE_ID_PARAMETER = OpenApiParameter(
    name='release_id',
    type=str,
    location=OpenApiParameter.PATH,
    description='Release UUID',
)


def _is_valid_uuid(value) -> bool:
    """Check if a value is a UUID string."""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _locked_response():
    return Response(
        {'error': 'Another process is running', 'lock': FEED_PROCESSING_LOCK},
        status=status.HTTP_409_CONFLICT,
    )


# ============================================================
# Ingestion Endpoints
# ============================================================

@extend_schema(
    tags=['Ingestion'],
    summary='Trigger an ingestion pass',
    description='''
    Start an ingestion pass over the active feed sources, or over a single
    source. Returns 409 while another pass holds the processing lock.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'source_id': {'type': 'string', 'format': 'uuid', 'description': 'Process only this source'},
                'force': {'type': 'boolean', 'default': False, 'description': 'Ignore recheck intervals'},
                'async': {'type': 'boolean', 'default': True, 'description': 'Queue the pass on Celery'},
            },
        }
    },
    responses={
        200: {'description': 'Pass summary (inline run)'},
        202: {'description': 'Pass queued'},
        400: {'description': 'Invalid request'},
        409: {'description': 'Another pass is running'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([IngestionTriggerThrottle])
def trigger_ingestion(request):
    """
    Trigger an ingestion pass.

    Request body:
    {
        "source_id": "<uuid>",
        "force": false,
        "async": true
    }
    """
    source_id = request.data.get('source_id')
    force = bool(request.data.get('force', False))
    async_mode = request.data.get('async', True)

    if source_id and not _is_valid_uuid(source_id):
        return Response(
            {'error': 'source_id must be a UUID'},
            status=status.HTTP_400_BAD_REQUEST
        )

    if source_id and not FeedSource.objects.filter(pk=source_id).exists():
        return Response(
            {'error': 'Feed source not found'},
            status=status.HTTP_400_BAD_REQUEST
        )

    if is_locked(FEED_PROCESSING_LOCK):
        return _locked_response()

    if async_mode:
        from releases.tasks import process_feeds

        task = process_feeds.apply_async(
            kwargs={'force': force, 'source_id': str(source_id) if source_id else None},
            queue='ingestion',
        )
        return Response(
            {'success': True, 'task_id': task.id, 'status': 'queued'},
            status=status.HTTP_202_ACCEPTED,
        )

    summary = run_ingestion_pass(force=force, source_id=source_id)
    if not summary.lock_acquired:
        return _locked_response()

    return Response({'success': True, **summary.to_dict()})


@extend_schema(
    tags=['Ingestion'],
    summary='Get ingestion status',
    description='Recently processed articles, active feed sources and catalog counts.',
    responses={200: {'description': 'Ingestion status'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def ingestion_status(request):
    """
    Get ingestion status.

    Reports the lock state, the most recent processed articles and the
    bookkeeping of every active source.
    """
    recent = ProcessedArticle.objects.select_related('source').order_by('-processed_at')[:RECENT_ARTICLES_LIMIT]

    sources = [
        {
            'id': str(source.id),
            'name': source.name,
            'url': source.url,
            'park': source.park,
            'check_frequency_hours': source.check_frequency_hours,
            'last_checked': source.last_checked.isoformat() if source.last_checked else None,
            'last_error': source.last_error,
        }
        for source in FeedSource.objects.filter(is_active=True).order_by('name')
    ]

    return Response({
        'locked': is_locked(FEED_PROCESSING_LOCK),
        'counts': {
            'active_releases': Release.active.count(),
            'merged_releases': Release.objects.filter(merged_into__isnull=False).count(),
            'processed_articles': ProcessedArticle.objects.count(),
            'failed_articles': ProcessedArticle.objects.exclude(error__isnull=True).exclude(error='').count(),
        },
        'recent_articles': [
            {
                'url': article.url,
                'title': article.title,
                'source': article.source.name if article.source else None,
                'items_found': article.items_found,
                'error': article.error,
                'processed_at': article.processed_at.isoformat(),
            }
            for article in recent
        ],
        'sources': sources,
    })


# ============================================================
# Release Review Endpoints
# ============================================================

@extend_schema(
    tags=['Releases'],
    summary='List potential duplicates',
    description='Active releases similar enough to the given release to need manual review.',
    parameters=[RELEASE_ID_PARAMETER],
    responses={
        200: {'description': 'Ranked candidates'},
        404: {'description': 'Release not found'},
    },
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@throttle_classes([ReleaseAdminThrottle])
def release_duplicates(request, release_id):
    """
    List potential duplicates of a release, best match first.
    """
    release = Release.objects.filter(pk=release_id).first()
    if release is None:
        return Response(
            {'error': 'Release not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    candidates = get_duplicate_resolver().find_potential_duplicates(release.id)

    return Response({
        'release_id': str(release.id),
        'title': release.title,
        'duplicates': [
            {
                'release_id': str(candidate.release_id),
                'title': candidate.title,
                'score': candidate.score,
                'reason': candidate.reason,
            }
            for candidate in candidates
        ],
    })


@extend_schema(
    tags=['Releases'],
    summary='Update release status',
    description='''
    Move a release forward in its lifecycle:
    rumored -> announced -> coming_soon -> available -> sold_out.
    Backward moves are rejected.
    ''',
    parameters=[RELEASE_ID_PARAMETER],
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'status': {'type': 'string', 'enum': STATUS_ORDER},
                'date': {'type': 'string', 'format': 'date', 'description': 'Explicit availability or sold-out date'},
            },
            'required': ['status'],
        }
    },
    responses={
        200: {'description': 'Status updated'},
        400: {'description': 'Transition rejected'},
        404: {'description': 'Release not found'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([ReleaseAdminThrottle])
def update_status(request, release_id):
    """
    Apply a lifecycle transition.

    Request body:
    {
        "status": "available",
        "date": "2025-06-01"
    }
    """
    new_status = request.data.get('status')
    if not new_status:
        return Response(
            {'error': 'status is required'},
            status=status.HTTP_400_BAD_REQUEST
        )

    status_date = None
    raw_date = request.data.get('date')
    if raw_date:
        try:
            status_date = date.fromisoformat(str(raw_date))
        except ValueError:
            return Response(
                {'error': 'date must be an ISO date (YYYY-MM-DD)'},
                status=status.HTTP_400_BAD_REQUEST
            )

    if not Release.objects.filter(pk=release_id).exists():
        return Response(
            {'error': 'Release not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    result = update_release_status(release_id, new_status, status_date=status_date)

    if not result.success:
        return Response(
            {
                'success': False,
                'error': result.error,
                'status': result.status,
            },
            status=status.HTTP_400_BAD_REQUEST
        )

    release = Release.objects.get(pk=release_id)
    return Response({
        'success': True,
        'release_id': str(release.id),
        'status': release.status,
        'previous_status': result.previous_status,
        'actual_release_date': release.actual_release_date.isoformat() if release.actual_release_date else None,
        'sold_out_date': release.sold_out_date.isoformat() if release.sold_out_date else None,
    })


@extend_schema(
    tags=['Releases'],
    summary='Refetch release image',
    description='''
    Scrape the articles a release was found in again and verify their images
    against the release. With apply (default) the first verified image is
    stored and becomes the primary image; without it the candidates are only
    reported.
    ''',
    parameters=[RELEASE_ID_PARAMETER],
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'apply': {'type': 'boolean', 'default': True, 'description': 'Store the verified image'},
            },
        }
    },
    responses={
        200: {'description': 'Image found'},
        404: {'description': 'Release not found, or no matching image'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([ImageRefetchThrottle])
def refetch_image(request, release_id):
    """
    Refetch the image of a release.

    Request body:
    {
        "apply": true
    }
    """
    release = Release.objects.filter(pk=release_id).first()
    if release is None:
        return Response(
            {'error': 'Release not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    apply = bool(request.data.get('apply', True))

    maintenance = ImageMaintenance()
    try:
        result = maintenance.refetch_release_image(release, apply=apply)
    finally:
        maintenance.close()

    if not result.success:
        return Response(
            result.to_dict(),
            status=status.HTTP_404_NOT_FOUND
        )

    return Response({**result.to_dict(), 'applied': apply})
