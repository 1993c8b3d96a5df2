"""
Image cropping for composite product photos.

Cuts one product out of a photo that shows several, using a bounding box
expressed in percent of the image size.
"""

import io
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from PIL import Image

logger = logging.getLogger(__name__)

# Crops smaller than this in either dimension are unreliable
MIN_CROP_PIXELS = 50

JPEG_QUALITY = 90


@dataclass
class PercentBBox:
    """Bounding box in percent (0-100) of the image width and height."""

    x: float
    y: float
    width: float
    height: float


@dataclass
class CropResult:
    """Result of cropping a product region."""

    image_bytes: bytes
    original_width: int
    original_height: int
    crop_x: int
    crop_y: int
    crop_width: int
    crop_height: int
    content_type: str = "image/jpeg"


def _pixel_box(bbox: PercentBBox, width: int, height: int):
    """Convert a percent box to pixels, clamped to the image bounds."""
    x = round(bbox.x / 100 * width)
    y = round(bbox.y / 100 * height)
    w = round(bbox.width / 100 * width)
    h = round(bbox.height / 100 * height)

    safe_x = max(0, min(x, width - 1))
    safe_y = max(0, min(y, height - 1))
    safe_w = min(w, width - safe_x)
    safe_h = min(h, height - safe_y)
    return safe_x, safe_y, safe_w, safe_h


def _crop_image(img: Image.Image, bbox: PercentBBox) -> Optional[CropResult]:
    original_width, original_height = img.size
    x, y, w, h = _pixel_box(bbox, original_width, original_height)

    if w < MIN_CROP_PIXELS or h < MIN_CROP_PIXELS:
        logger.debug(f"Crop region too small ({w}x{h}), discarding")
        return None

    cropped = img.crop((x, y, x + w, y + h))
    if cropped.mode != "RGB":
        cropped = cropped.convert("RGB")

    output = io.BytesIO()
    cropped.save(output, format="JPEG", quality=JPEG_QUALITY)

    return CropResult(
        image_bytes=output.getvalue(),
        original_width=original_width,
        original_height=original_height,
        crop_x=x,
        crop_y=y,
        crop_width=w,
        crop_height=h,
    )


def crop_region(image_bytes: bytes, bbox: PercentBBox) -> Optional[CropResult]:
    """
    Crop one product region from an image.

    Args:
        image_bytes: The full image as bytes
        bbox: Bounding box in percent coordinates

    Returns:
        CropResult with JPEG bytes, or None if the region is too small or the image is unreadable
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            return _crop_image(img, bbox)
    except Exception as e:
        logger.error(f"Failed to crop region: {e}")
        return None


def crop_regions(image_bytes: bytes, boxes: Dict[str, PercentBBox]) -> Dict[str, CropResult]:
    """
    Crop several named regions from one image, opening it once.

    Args:
        image_bytes: The full image as bytes
        boxes: Bounding box per product name

    Returns:
        CropResult per product name; regions that could not be cropped are left out
    """
    results: Dict[str, CropResult] = {}

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            for name, bbox in boxes.items():
                crop = _crop_image(img, bbox)
                if crop is not None:
                    results[name] = crop
    except Exception as e:
        logger.error(f"Failed to open image for cropping: {e}")

    return results

