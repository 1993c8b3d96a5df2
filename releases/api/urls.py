"""
Release API URL configuration.

Endpoints:
- POST /api/v1/ingestion/process/            - Trigger an ingestion pass
- GET  /api/v1/ingestion/status/             - Recent ingestion activity
- GET  /api/v1/releases/<id>/duplicates/     - Potential duplicates of a release
- POST /api/v1/releases/<id>/status/         - Lifecycle status transition
- POST /api/v1/releases/<id>/refetch-image/  - Refetch a release image from its articles
"""

from django.urls import path

from releases.api.views import (
    ingestion_status,
    refetch_image,
    release_duplicates,
    trigger_ingestion,
    update_status,
)

app_name = 'releases_api'

urlpatterns = [
    # Ingestion endpoints
    path('ingestion/process/', trigger_ingestion, name='trigger_ingestion'),
    path('ingestion/status/', ingestion_status, name='ingestion_status'),

    # Release review endpoints
    path('releases/<uuid:release_id>/duplicates/', release_duplicates, name='release_duplicates'),
    path('releases/<uuid:release_id>/status/', update_status, name='update_status'),
    path('releases/<uuid:release_id>/refetch-image/', refetch_image, name='refetch_image'),
]
