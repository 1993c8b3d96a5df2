"""
Django signals for the releases application.

Release.canonical_name is derived from the title. It is recomputed whenever
the title changes and filled in on create when missing; it is never edited
independently of the title.
"""

from django.db.models.signals import pre_save
from django.dispatch import receiver

from releases.utils.normalization import generate_canonical_name


@receiver(pre_save, sender="releases.Release")
def sync_canonical_name(sender, instance, raw=False, **kwargs):
    """Keep the canonical dedup key in step with the title."""
    if raw:
        return

    if not instance._state.adding:
        previous_title = (
            sender.objects.filter(pk=instance.pk).values_list("title", flat=True).first()
        )
        if previous_title is not None and previous_title != instance.title:
            instance.canonical_name = generate_canonical_name(instance.title)

    if not instance.canonical_name:
        instance.canonical_name = generate_canonical_name(instance.title)
