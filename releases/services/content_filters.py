"""
Screening rules for articles and extracted products.

Each rule is a named predicate over lowercased text that returns a skip
reason or None. Rules run in list order and the first reason wins, so the
full filtering policy can be read off ``ARTICLE_RULES`` and
``PRODUCT_RULES``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

MERCHANDISE_KEYWORDS = (
    "merchandise", "merch", "loungefly", "spirit jersey", "ears",
    "popcorn bucket", "sipper", "pin", "plush", "mug", "tumbler",
    "collection", "exclusive", "limited", "release", "arriving",
    "now available", "coming soon", "new at", "shop", "store",
)

# Service area is the Orlando resorts; "70th" is Disneyland's anniversary
OUT_OF_REGION_KEYWORDS = (
    "disneyland", "california adventure", "dca", "anaheim",
    "universal hollywood", "universal studios hollywood",
    "70th anniversary", "disneyland 70", "times square", "nyc", "new york",
)

DISCOUNT_KEYWORDS = (
    "discount", "sale", "bogo", "buy one get one", "% off", "clearance",
    "markdown", "price cut", "deal", "save on",
)

THIRD_PARTY_RETAILERS = (
    "aldi", "five below", "at target", "target exclusive", "target.com",
    "walmart", "costco", "amazon.com", "on amazon", "at amazon",
    "boxlunch", "hot topic", "kohls", "kohl's", "jcpenney", "macy", "dollar tree",
    "dollar general", "walgreens", "cvs", "publix", "kroger", "trader joe",
)

ONLINE_EXCLUSIVE_KEYWORDS = (
    "shopdisney.com", "shopdisney exclusive", "online exclusive",
)

OUT_OF_REGION_VENUES = ("disneyland_ca", "dca_ca", "universal_hollywood")

# Nickelodeon lands are at Universal Orlando and are not listed here
NON_VENUE_BRANDS = ("warner bros", "six flags", "cedar fair", "seaworld", "busch gardens")


@dataclass(frozen=True)
class ScreeningResult:
    """Outcome of screening: which rule skipped the item and why."""

    skip: bool
    rule: Optional[str] = None
    reason: Optional[str] = None


PASS = ScreeningResult(skip=False)


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern:
    # Whole words only (plurals allowed), longest alternative first
    alternatives = "|".join(
        (r"(?<!\w)" if re.match(r"\w", keyword) else "") + re.escape(keyword)
        for keyword in sorted(keywords, key=len, reverse=True)
    )
    return re.compile(rf"(?P<keyword>{alternatives})(?:s|es)?(?!\w)")


def _first_match(text: str, pattern: re.Pattern) -> Optional[str]:
    match = pattern.search(text)
    return match.group("keyword") if match else None


MERCHANDISE_PATTERN = _keyword_pattern(MERCHANDISE_KEYWORDS)
MERCHANDISE_CONTENT_PATTERN = _keyword_pattern(("merchandise",))
OUT_OF_REGION_PATTERN = _keyword_pattern(OUT_OF_REGION_KEYWORDS)
DISCOUNT_PATTERN = _keyword_pattern(DISCOUNT_KEYWORDS)
THIRD_PARTY_PATTERN = _keyword_pattern(THIRD_PARTY_RETAILERS)
ONLINE_EXCLUSIVE_PATTERN = _keyword_pattern(ONLINE_EXCLUSIVE_KEYWORDS)
NON_VENUE_BRAND_PATTERN = _keyword_pattern(NON_VENUE_BRANDS)


# Article rules take (title, content), both lowercased

def require_merchandise_keyword(title: str, content: str) -> Optional[str]:
    if _first_match(title, MERCHANDISE_PATTERN) or MERCHANDISE_CONTENT_PATTERN.search(content):
        return None
    return "no merchandise keyword"


def exclude_out_of_region(title: str, content: str) -> Optional[str]:
    keyword = _first_match(title, OUT_OF_REGION_PATTERN)
    return f"out-of-region article ({keyword})" if keyword else None


def exclude_discount(title: str, content: str) -> Optional[str]:
    keyword = _first_match(title, DISCOUNT_PATTERN)
    return f"discount/sale article ({keyword})" if keyword else None


def exclude_third_party_retailer(title: str, content: str) -> Optional[str]:
    keyword = _first_match(title, THIRD_PARTY_PATTERN)
    return f"third-party retailer ({keyword})" if keyword else None


def exclude_online_exclusive(title: str, content: str) -> Optional[str]:
    keyword = _first_match(title, ONLINE_EXCLUSIVE_PATTERN)
    return f"online exclusive ({keyword})" if keyword else None


ArticleRule = Callable[[str, str], Optional[str]]

ARTICLE_RULES: List[Tuple[str, ArticleRule]] = [
    ("require_merchandise_keyword", require_merchandise_keyword),
    ("exclude_out_of_region", exclude_out_of_region),
    ("exclude_discount", exclude_discount),
    ("exclude_third_party_retailer", exclude_third_party_retailer),
    ("exclude_online_exclusive", exclude_online_exclusive),
]


# Product rules take an ExtractedProduct

def exclude_online_only(product) -> Optional[str]:
    return "online-only item" if product.is_online_only else None


def exclude_out_of_region_venue(product) -> Optional[str]:
    park = (product.park or "").lower()
    return f"out-of-region venue ({park})" if park in OUT_OF_REGION_VENUES else None


def exclude_non_venue_brand(product) -> Optional[str]:
    brand = _first_match(product.name.lower(), NON_VENUE_BRAND_PATTERN)
    return f"non-venue brand ({brand})" if brand else None


PRODUCT_RULES = [
    ("exclude_online_only", exclude_online_only),
    ("exclude_out_of_region_venue", exclude_out_of_region_venue),
    ("exclude_non_venue_brand", exclude_non_venue_brand),
]


def screen_article(title: str, content: str = "") -> ScreeningResult:
    """
    Decide whether an article is worth sending for extraction.

    Args:
        title: Article title
        content: Embedded feed content, if any

    Returns:
        ScreeningResult of the first rule that skipped the article, or a pass
    """
    lower_title = (title or "").lower()
    lower_content = (content or "").lower()

    for name, rule in ARTICLE_RULES:
        reason = rule(lower_title, lower_content)
        if reason:
            logger.debug(f"Skipping article '{title}': {reason}")
            return ScreeningResult(skip=True, rule=name, reason=reason)

    return PASS


def screen_product(product) -> ScreeningResult:
    """
    Decide whether an extracted product belongs in the catalog.

    Args:
        product: ExtractedProduct

    Returns:
        ScreeningResult of the first rule that skipped the product, or a pass
    """
    for name, rule in PRODUCT_RULES:
        reason = rule(product)
        if reason:
            logger.info(f"Skipping product '{product.name}': {reason}")
            return ScreeningResult(skip=True, rule=name, reason=reason)

    return PASS
