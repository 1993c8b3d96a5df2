"""
Celery configuration for the release ingestion service.

Ingestion passes run on their own queue; Celery Beat schedules a pass every
6 hours.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("releases")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Configure task queues
app.conf.task_queues = {
    "ingestion": {
        "exchange": "ingestion",
        "routing_key": "ingestion",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Route specific tasks to their queues
app.conf.task_routes = {
    "releases.tasks.process_feeds": {"queue": "ingestion"},
    "releases.tasks.backfill_missing_images": {"queue": "ingestion"},
}

# Configure Celery Beat schedule for periodic tasks
app.conf.beat_schedule = {
    "process-feeds-every-6-hours": {
        "task": "releases.tasks.process_feeds",
        "schedule": crontab(minute=0, hour="*/6"),
        "kwargs": {"force": False},
    },
    "backfill-missing-images-daily": {
        "task": "releases.tasks.backfill_missing_images",
        "schedule": crontab(minute=30, hour=3),
        "kwargs": {"limit": 100},
    },
}
