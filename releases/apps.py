"""
Releases application configuration.
"""

from django.apps import AppConfig


class ReleasesConfig(AppConfig):
    """Configuration for the releases Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "releases"
    verbose_name = "Merchandise Releases"

    def ready(self):
        """
        Perform application initialization.

        Imports signal handlers so that the canonical name of a Release is
        kept in step with its title.
        """
        from releases import signals  # noqa: F401
