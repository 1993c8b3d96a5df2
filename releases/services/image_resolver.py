"""
Image resolution for extracted products.

Decides which article image belongs to which product, in two phases:

1. Composite phase: when an article names several products, the first five
   candidate images are checked for a photo that shows several of them. The
   first image the AI service identifies as a composite is cropped into one
   image per product and the remaining candidates are not checked.
2. Single-match phase: for a product without a crop, the first ten candidate
   images are verified one at a time and the first positive verdict with
   high or medium confidence wins.

A failure on one candidate never stops the search; it is logged and the next
candidate is tried.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from releases.fetchers.http_fetcher import HttpFetcher

from .ai_client import AIEnhancementClient, get_ai_client
from .image_cropper import CropResult, PercentBBox, crop_regions
from .image_storage import DownloadedImage, download_image

logger = logging.getLogger(__name__)

MAX_COMPOSITE_CANDIDATES = 5
MAX_VERIFY_CANDIDATES = 10


@dataclass
class CompositeResolution:
    """
    Crops produced from one composite image.

    Attributes:
        crops: Cropped image per product name
        source_url: URL of the composite image
        original_bytes: Uncropped composite image
        original_content_type: MIME type of the uncropped image
        original_url: Stored copy of the uncropped image, once saved
    """

    crops: Dict[str, CropResult] = field(default_factory=dict)
    source_url: Optional[str] = None
    original_bytes: Optional[bytes] = None
    original_content_type: str = "image/jpeg"
    original_url: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.crops)

    def crop_for(self, product_name: str) -> Optional[CropResult]:
        return self.crops.get(product_name)


class ImageResolver:
    """
    Matches article images to extracted products.
    """

    def __init__(
        self,
        ai_client: Optional[AIEnhancementClient] = None,
        fetcher: Optional[HttpFetcher] = None,
    ):
        self.ai_client = ai_client or get_ai_client()
        self.fetcher = fetcher

    def resolve_composites(
        self,
        product_names: List[str],
        image_urls: List[str],
    ) -> CompositeResolution:
        """
        Look for a composite image and crop it per product.

        Only runs for more than one product name and at least one image.

        Args:
            product_names: Names of the products found in the article
            image_urls: Candidate images in article order

        Returns:
            CompositeResolution; empty when no composite was found
        """
        if len(product_names) < 2 or not image_urls:
            return CompositeResolution()

        logger.info(f"Checking for composite images with {len(product_names)} products")

        for image_url in image_urls[:MAX_COMPOSITE_CANDIDATES]:
            try:
                resolution = self._try_composite(image_url, product_names)
            except Exception as e:
                logger.warning(f"Composite check failed for {image_url}: {e}")
                continue

            if resolution.found:
                logger.info(f"Found composite with {len(resolution.crops)} products: {image_url}")
                return resolution

        return CompositeResolution()

    def _try_composite(self, image_url: str, product_names: List[str]) -> CompositeResolution:
        downloaded = download_image(image_url, fetcher=self.fetcher)
        if downloaded is None:
            return CompositeResolution()
        return self.crop_composite(downloaded, product_names)

    def crop_composite(self, image: DownloadedImage, product_names: List[str]) -> CompositeResolution:
        """
        Crop an already loaded image into one image per product it shows.

        Args:
            image: The candidate composite image
            product_names: Products to look for

        Returns:
            CompositeResolution; empty when the image is not a composite of these products
        """
        analysis = self.ai_client.analyze_composite(image.data, image.content_type, product_names)
        if not analysis.is_composite:
            return CompositeResolution()

        wanted = set(product_names)
        boxes = {
            region.product_name: PercentBBox(region.x, region.y, region.width, region.height)
            for region in analysis.regions
            if region.product_name in wanted
        }
        if not boxes:
            return CompositeResolution()

        return CompositeResolution(
            crops=crop_regions(image.data, boxes),
            source_url=image.url,
            original_bytes=image.data,
            original_content_type=image.content_type,
        )

    def find_best_image(
        self,
        image_urls: List[str],
        product_name: str,
        category: Optional[str] = None,
    ) -> Optional[str]:
        """
        Find the first candidate image verified to show a product.

        Args:
            image_urls: Candidate images in article order
            product_name: Product to look for
            category: Product category hint

        Returns:
            URL of the accepted image, or None when no candidate matched
        """
        for image_url in image_urls[:MAX_VERIFY_CANDIDATES]:
            try:
                verdict = self.ai_client.verify_image(image_url, product_name, category)
            except Exception as e:
                logger.warning(f"Verification failed for {image_url}: {e}")
                continue

            if verdict.accepted:
                logger.info(f"Verified image for '{product_name}' ({verdict.confidence}): {image_url}")
                return image_url

            logger.debug(
                f"Rejected {image_url} for '{product_name}': "
                f"matches={verdict.matches}, confidence={verdict.confidence}"
            )

        logger.info(f"No verified image found for '{product_name}'")
        return None
