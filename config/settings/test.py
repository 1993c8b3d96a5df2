"""
Test settings for the release ingestion service.

Uses in-memory SQLite, in-memory file storage and eager Celery for fast test
execution.
"""

import os
from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Test Cache - use local memory cache
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Test storage - images never touch disk
STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.InMemoryStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
}

# Test Celery - run tasks synchronously, no broker
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["releases"]["level"] = "WARNING"

# Password validators disabled for faster tests
AUTH_PASSWORD_VALIDATORS = []

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

# Test ingestion settings - fail fast, no waiting
INGEST_REQUEST_TIMEOUT = 5
INGEST_MAX_RETRIES = 0
INGEST_ARTICLE_DELAY = 0
INGEST_SOURCE_DELAY = 0
AI_ENHANCEMENT_SERVICE_URL = "http://ai.test"
AI_ENHANCEMENT_SERVICE_TOKEN = "test-token"
SCRAPER_API_KEY = ""
FORCE_RECHECK = False
