"""
Pytest configuration and fixtures for the release ingestion test suite.
"""

import io

import pytest


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture(autouse=True)
def reset_service_singletons():
    """Drop cached resolvers, trackers and throttle history between tests."""
    from django.core.cache import cache

    from releases.monitoring import reset_failure_tracker
    from releases.services.duplicate_detector import reset_duplicate_resolver

    reset_duplicate_resolver()
    reset_failure_tracker()
    cache.clear()
    yield
    reset_duplicate_resolver()
    reset_failure_tracker()


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def user(db):
    """Create a staff user for authenticated API calls."""
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(
        username="curator",
        password="curator-pass",
        is_staff=True,
    )


@pytest.fixture
def auth_client(api_client, user):
    """API client authenticated as the staff user."""
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def feed_source(db):
    """Create an active RSS feed source that has never been checked."""
    from releases.models import FeedSource

    return FeedSource.objects.create(
        name="Test Parks Blog",
        url="https://parksblog.example.com/feed/",
        source_type="rss",
        park="disney",
        is_active=True,
        check_frequency_hours=6,
    )


@pytest.fixture
def make_release(db):
    """Factory for Release rows with sensible defaults."""
    from releases.models import Release

    def _make(title="Figment Popcorn Bucket", **kwargs):
        kwargs.setdefault("source", "Test Parks Blog")
        kwargs.setdefault("source_url", "https://parksblog.example.com/figment-bucket/")
        return Release.objects.create(title=title, **kwargs)

    return _make


@pytest.fixture
def make_jpeg():
    """Factory for in-memory JPEG images."""
    from PIL import Image

    def _make(width=400, height=300, color=(200, 30, 60)):
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
        return buffer.getvalue()

    return _make
