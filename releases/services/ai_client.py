"""
AI Enhancement Service API Client.

Synchronous httpx client for the three AI endpoints the ingestion pipeline
uses:

- POST /api/v1/releases/extract/   article text -> candidate products
- POST /api/v1/images/verify/      image URL + product name -> match verdict
- POST /api/v1/images/composite/   image + product names -> bounding boxes

Every call fails closed: transport errors, non-200 responses and malformed
bodies produce an empty or negative result carrying an ``error`` message,
never an exception.
"""

import base64
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

from releases.models import ItemCategory, ReleaseStatus

logger = logging.getLogger(__name__)

# Images above this size are not sent for composite analysis
MAX_COMPOSITE_IMAGE_BYTES = 4 * 1024 * 1024

ACCEPTED_CONFIDENCE = {"high", "medium"}


@dataclass
class ExtractedProduct:
    """A candidate product found in an article."""

    name: str
    description: str = ""
    category: str = ItemCategory.OTHER
    park: str = ""
    estimated_price: Optional[Decimal] = None
    is_limited_edition: bool = False
    is_online_only: bool = False
    tags: List[str] = field(default_factory=list)
    demand_score: int = 5
    image_url: Optional[str] = None
    release_status: str = ReleaseStatus.ANNOUNCED
    projected_date: Optional[date] = None
    store_name: Optional[str] = None
    store_area: Optional[str] = None


@dataclass
class ExtractionResult:
    """Result of article extraction."""

    success: bool
    is_merchandise_related: bool = False
    products: List[ExtractedProduct] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class VerificationResult:
    """Verdict on whether an image shows a product."""

    matches: bool = False
    confidence: str = "low"
    reason: str = ""
    error: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.matches and self.confidence in ACCEPTED_CONFIDENCE


@dataclass
class CompositeRegion:
    """Bounding box of one product, in percent of the image size."""

    product_name: str
    x: float
    y: float
    width: float
    height: float
    description: str = ""


@dataclass
class CompositeAnalysis:
    """Result of composite image analysis."""

    is_composite: bool = False
    regions: List[CompositeRegion] = field(default_factory=list)
    error: Optional[str] = None


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


def _to_date(value: Any) -> Optional[date]:
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _clamp_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 5
    return max(1, min(10, score))


def parse_extracted_product(data: Dict[str, Any]) -> Optional[ExtractedProduct]:
    """
    Validate one product from the extraction response.

    Args:
        data: Product object as returned by the service

    Returns:
        ExtractedProduct, or None when the entry has no usable name
    """
    if not isinstance(data, dict):
        return None

    name = (data.get("name") or "").strip()
    if not name:
        return None

    category = data.get("category")
    if category not in ItemCategory.values:
        category = ItemCategory.OTHER

    status = data.get("release_status")
    if status not in ReleaseStatus.values:
        status = ReleaseStatus.ANNOUNCED

    tags = data.get("tags") or []
    if not isinstance(tags, list):
        tags = []

    return ExtractedProduct(
        name=name,
        description=data.get("description") or "",
        category=category,
        park=data.get("park") or "",
        estimated_price=_to_decimal(data.get("estimated_price")),
        is_limited_edition=bool(data.get("is_limited_edition", False)),
        is_online_only=bool(data.get("is_online_only", False)),
        tags=[str(tag) for tag in tags],
        demand_score=_clamp_score(data.get("demand_score", 5)),
        image_url=data.get("image_url") or None,
        release_status=status,
        projected_date=_to_date(data.get("projected_date")),
        store_name=data.get("store_name") or None,
        store_area=data.get("store_area") or None,
    )


class AIEnhancementClient:
    """
    HTTP client for the AI Enhancement Service.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the AI Enhancement client.

        Args:
            base_url: Service URL (defaults to settings.AI_ENHANCEMENT_SERVICE_URL)
            api_key: Bearer token (defaults to settings.AI_ENHANCEMENT_SERVICE_TOKEN)
            timeout: Request timeout in seconds (defaults to settings.AI_ENHANCEMENT_TIMEOUT)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.base_url = (base_url or getattr(
            settings, "AI_ENHANCEMENT_SERVICE_URL", "http://localhost:8000"
        )).rstrip("/")
        self.api_key = api_key or getattr(settings, "AI_ENHANCEMENT_SERVICE_TOKEN", "")
        self.timeout = timeout or getattr(settings, "AI_ENHANCEMENT_TIMEOUT", 60.0)
        self._transport = transport

        self.extract_endpoint = f"{self.base_url}/api/v1/releases/extract/"
        self.verify_endpoint = f"{self.base_url}/api/v1/images/verify/"
        self.composite_endpoint = f"{self.base_url}/api/v1/images/composite/"

    def _get_headers(self) -> Dict[str, str]:
        """Build request headers with authentication."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        return headers

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded body.

        Raises:
            httpx.HTTPError: On transport failures and non-200 responses
            ValueError: When the body is not a JSON object
        """
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            response = client.post(endpoint, json=payload, headers=self._get_headers())

        if response.status_code != 200:
            raise httpx.HTTPStatusError(
                f"API returned status {response.status_code}: {response.text[:200]}",
                request=response.request,
                response=response,
            )

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Response body is not a JSON object")
        if "error" in data:
            raise ValueError(str(data["error"]))
        return data

    def extract_products(
        self,
        content: str,
        source_url: str,
        source_name: str,
    ) -> ExtractionResult:
        """
        Extract candidate products from article text.

        Args:
            content: Article text
            source_url: Article URL
            source_name: Name of the feed source

        Returns:
            ExtractionResult; malformed output yields no products
        """
        payload = {
            "content": content,
            "source_url": source_url,
            "source_name": source_name,
        }

        logger.debug(f"Extracting products from {source_url} ({len(content)} chars)")

        try:
            data = self._post(self.extract_endpoint, payload)
        except Exception as e:
            logger.error(f"Product extraction failed for {source_url}: {e}")
            return ExtractionResult(success=False, error=str(e))

        raw_products = data.get("products", [])
        if not isinstance(raw_products, list):
            logger.warning(f"Malformed extraction output for {source_url}")
            return ExtractionResult(success=False, error="Malformed products list")

        products = [p for p in (parse_extracted_product(item) for item in raw_products) if p]

        return ExtractionResult(
            success=True,
            is_merchandise_related=bool(data.get("is_merchandise_related", bool(products))),
            products=products,
        )

    def verify_image(
        self,
        image_url: str,
        product_name: str,
        category: Optional[str] = None,
    ) -> VerificationResult:
        """
        Ask whether an image shows a given product.

        Args:
            image_url: Candidate image URL
            product_name: Product to look for
            category: Product category hint

        Returns:
            VerificationResult; errors count as no match
        """
        payload = {
            "image_url": image_url,
            "product_name": product_name,
            "category": category or "",
        }

        try:
            data = self._post(self.verify_endpoint, payload)
        except Exception as e:
            logger.warning(f"Image verification failed for {image_url}: {e}")
            return VerificationResult(error=str(e))

        confidence = str(data.get("confidence", "low")).lower()
        return VerificationResult(
            matches=bool(data.get("matches", False)),
            confidence=confidence if confidence in {"high", "medium", "low"} else "low",
            reason=data.get("reason", "") or "",
        )

    def analyze_composite(
        self,
        image_bytes: bytes,
        content_type: str,
        product_names: List[str],
    ) -> CompositeAnalysis:
        """
        Ask whether an image shows several of the given products.

        Args:
            image_bytes: Raw image data
            content_type: Image MIME type
            product_names: Products named in the article

        Returns:
            CompositeAnalysis with one region per recognised product
        """
        if len(image_bytes) > MAX_COMPOSITE_IMAGE_BYTES:
            logger.debug("Image too large for composite analysis, skipping")
            return CompositeAnalysis(error="Image too large")

        payload = {
            "image": base64.b64encode(image_bytes).decode("ascii"),
            "media_type": content_type,
            "product_names": product_names,
        }

        try:
            data = self._post(self.composite_endpoint, payload)
        except Exception as e:
            logger.warning(f"Composite analysis failed: {e}")
            return CompositeAnalysis(error=str(e))

        if not data.get("is_composite"):
            return CompositeAnalysis(is_composite=False)

        regions = []
        for item in data.get("products", []) or []:
            try:
                regions.append(
                    CompositeRegion(
                        product_name=item["product_name"],
                        x=float(item["x"]),
                        y=float(item["y"]),
                        width=float(item["width"]),
                        height=float(item["height"]),
                        description=item.get("description", "") or "",
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping malformed composite region: {item}")

        return CompositeAnalysis(is_composite=bool(regions), regions=regions)

    def health_check(self) -> bool:
        """
        Check if the AI Enhancement Service is available.

        Returns:
            True if the service responds, False otherwise
        """
        try:
            with httpx.Client(timeout=5.0, transport=self._transport) as client:
                response = client.get(f"{self.base_url}/health/", headers=self._get_headers())
            return response.status_code == 200
        except Exception as e:
            logger.warning(f"AI Enhancement Service health check failed: {e}")
            return False


def get_ai_client() -> AIEnhancementClient:
    """
    Factory function to get a configured AI Enhancement client.

    Returns:
        AIEnhancementClient configured from Django settings
    """
    return AIEnhancementClient(
        base_url=getattr(settings, "AI_ENHANCEMENT_SERVICE_URL", None),
        api_key=getattr(settings, "AI_ENHANCEMENT_SERVICE_TOKEN", None),
        timeout=getattr(settings, "AI_ENHANCEMENT_TIMEOUT", 60.0),
    )
