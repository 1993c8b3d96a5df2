"""
Provenance tracking for releases.

Every article that mentions a release gets one ArticleSource row. Records
are upserted on (release, source_url) so re-discovering a release from the
same article refreshes the record instead of duplicating it.
"""

import logging
from typing import Optional

from django.db import transaction
from django.db.models import QuerySet

logger = logging.getLogger(__name__)

SNIPPET_MAX_LENGTH = 500


def _release_pk(release) -> object:
    return getattr(release, "pk", release)


@transaction.atomic
def add_source_to_release(
    release,
    source_url: str,
    source_name: Optional[str] = None,
    article_title: Optional[str] = None,
    snippet: Optional[str] = None,
):
    """
    Record that an article mentions a release.

    Args:
        release: Release instance or ID
        source_url: URL of the article
        source_name: Name of the feed source
        article_title: Title of the article
        snippet: Short excerpt of the article mentioning the product

    Returns:
        Tuple of (ArticleSource, created)
    """
    from releases.models import ArticleSource

    defaults = {
        "source_name": source_name,
        "article_title": article_title,
    }
    if snippet:
        defaults["snippet"] = snippet[:SNIPPET_MAX_LENGTH]

    article_source, created = ArticleSource.objects.update_or_create(
        release_id=_release_pk(release),
        source_url=source_url,
        defaults=defaults,
    )

    if created:
        logger.debug(f"Linked {source_url} to release {article_source.release_id}")

    return article_source, created


def get_release_sources(release) -> QuerySet:
    """
    Get all articles that mention a release, newest first.

    Args:
        release: Release instance or ID

    Returns:
        QuerySet of ArticleSource
    """
    from releases.models import ArticleSource

    return ArticleSource.objects.filter(release_id=_release_pk(release)).order_by("-discovered_at")
