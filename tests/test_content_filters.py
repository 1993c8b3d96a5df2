"""
Tests for article and product screening rules.
"""

import pytest

from releases.services.ai_client import ExtractedProduct
from releases.services.content_filters import screen_article, screen_product


class TestScreenArticle:
    """Title and content screening before extraction."""

    def test_merchandise_article_passes(self):
        result = screen_article("New Loungefly Backpack Arrives at Magic Kingdom")

        assert not result.skip
        assert result.rule is None

    def test_article_without_merchandise_keyword_is_skipped(self):
        result = screen_article("Park Hours Extended for Summer")

        assert result.skip
        assert result.rule == "require_merchandise_keyword"

    def test_merchandise_in_content_is_enough(self):
        result = screen_article(
            "Park Hours Extended for Summer",
            "<p>New merchandise is also on the way.</p>",
        )

        assert not result.skip

    @pytest.mark.parametrize("title,rule,keyword", [
        ("New Merch Arrives at Disneyland", "exclude_out_of_region", "disneyland"),
        ("Loungefly Bags on Sale This Weekend", "exclude_discount", "sale"),
        ("New Stitch Plush Found at Target", "exclude_third_party_retailer", "at target"),
        ("Stitch Plush Deals at Walmart", "exclude_discount", "deal"),
        ("New Ears 20% Off This Week", "exclude_discount", "% off"),
        ("New Pin Set Is a shopDisney.com Exclusive", "exclude_online_exclusive", "shopdisney.com"),
    ])
    def test_exclusion_rules(self, title, rule, keyword):
        result = screen_article(title)

        assert result.skip
        assert result.rule == rule
        assert f"({keyword})" in result.reason

    def test_first_matching_rule_wins(self):
        result = screen_article("Disneyland Merch on Sale")

        assert result.rule == "exclude_out_of_region"

    @pytest.mark.parametrize("title", [
        "Hocus Pocus Salem Spirit Jersey Arrives at Magic Kingdom",
        "New Merch on the Parks Podcast: Loungefly Backpack Review",
        "Jungle Cruise Amazon Expedition Merchandise Collection Now Available",
        "Spinning Figment Popcorn Bucket Arrives at EPCOT",
        "Dealership-Themed Cars Land Tumbler Coming Soon to Hollywood Studios",
        "Targeted Release: New Haunted Mansion Plush",
    ])
    def test_keywords_inside_longer_words_do_not_skip(self, title):
        result = screen_article(title)

        assert not result.skip, result.reason

    def test_plural_keywords_match(self):
        assert not screen_article("New Pins Arrive at Magic Kingdom").skip
        assert screen_article("Ears Sales Begin at Walmart").rule == "exclude_discount"


class TestScreenProduct:
    """Screening of extracted products."""

    def test_park_product_passes(self):
        product = ExtractedProduct(name="Figment Popcorn Bucket", park="disney_epcot")
        assert not screen_product(product).skip

    def test_online_only_is_dropped(self):
        product = ExtractedProduct(name="Stitch Ears", is_online_only=True)

        result = screen_product(product)

        assert result.skip
        assert result.rule == "exclude_online_only"

    def test_out_of_region_venue_is_dropped(self):
        product = ExtractedProduct(name="Stitch Ears", park="DISNEYLAND_CA")

        result = screen_product(product)

        assert result.rule == "exclude_out_of_region_venue"

    def test_non_venue_brand_is_dropped(self):
        product = ExtractedProduct(name="Six Flags Coaster Mug")

        result = screen_product(product)

        assert result.rule == "exclude_non_venue_brand"
