"""
Utility helpers for the releases app.
"""

from .images import image_extension, is_excluded_image_url
from .normalization import generate_canonical_name, normalize_title, title_word_set

__all__ = [
    "generate_canonical_name",
    "image_extension",
    "is_excluded_image_url",
    "normalize_title",
    "title_word_set",
]
