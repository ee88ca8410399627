import unittest

from engine_fixtures import ebay_credentials, make_analysis, make_registry

from resell_engine.adapter import PlatformAdapter, format_whole_price, truncate
from resell_engine.marketplaces import (
    EbayMarketplace,
    MarketplaceRegistry,
    UnsupportedMarketplaceError,
    parse_price,
)
from resell_engine.models import MarketplaceId, MarketplaceRequirements, PriceFormat


class WholeEuroEbay(EbayMarketplace):
    requirements = MarketplaceRequirements(
        title_max_length=80,
        description_max_length=50000,
        max_images=24,
        allowed_categories=(),
        price_format=PriceFormat.INTEGER,
        currency='EUR',
    )


class TestTruncate(unittest.TestCase):
    def test_short_text_unchanged(self):
        self.assertEqual(truncate("Kamera", 10), "Kamera")

    def test_exact_length_unchanged(self):
        self.assertEqual(truncate("x" * 60, 60), "x" * 60)

    def test_long_text_cut_with_ellipsis(self):
        result = truncate("a" * 100, 60)

        self.assertEqual(len(result), 60)
        self.assertTrue(result.endswith("..."))
        self.assertEqual(result, "a" * 57 + "...")


class TestPlatformAdapter(unittest.TestCase):
    def setUp(self):
        self.adapter = PlatformAdapter(make_registry())

    def test_title_truncated_to_facebook_limit(self):
        analysis = make_analysis(title="T" * 100)

        adapted = self.adapter.adapt(analysis, MarketplaceId.FACEBOOK_MARKETPLACE)

        self.assertEqual(len(adapted.title), 60)
        self.assertTrue(adapted.title.endswith("..."))

    def test_title_within_limit_kept(self):
        adapted = self.adapter.adapt(make_analysis(), MarketplaceId.EBAY)

        self.assertEqual(adapted.title, 'Sony WH-1000XM4 Kopfhörer')

    def test_description_truncated_to_kleinanzeigen_limit(self):
        analysis = make_analysis(description="d" * 6000)

        adapted = self.adapter.adapt(analysis, 'ebay-kleinanzeigen')

        self.assertEqual(len(adapted.description), 5000)
        self.assertTrue(adapted.description.endswith("..."))

    def test_keywords_get_marketplace_suffixes(self):
        adapted = self.adapter.adapt(make_analysis(), MarketplaceId.EBAY)

        self.assertEqual(adapted.keywords, ['sony', 'kopfhörer', 'used', 'pre-owned', 'germany'])

    def test_keyword_suffixes_not_deduplicated(self):
        analysis = make_analysis(keywords=['gebraucht'])

        adapted = self.adapter.adapt(analysis, MarketplaceId.EBAY_KLEINANZEIGEN)

        self.assertEqual(adapted.keywords, ['gebraucht', 'gebraucht', 'second-hand', 'deutschland'])

    def test_original_analysis_untouched(self):
        analysis = make_analysis(title="T" * 100, features=['ANC'])

        adapted = self.adapter.adapt(analysis, MarketplaceId.FACEBOOK_MARKETPLACE)
        adapted.features.append('Bluetooth')

        self.assertEqual(analysis.title, "T" * 100)
        self.assertEqual(analysis.keywords, ['sony', 'kopfhörer'])
        self.assertEqual(analysis.features, ['ANC'])

    def test_decimal_price_kept(self):
        adapted = self.adapter.adapt(make_analysis(), MarketplaceId.EBAY)

        self.assertEqual(adapted.price_estimate, '149,50 €')

    def test_integer_price_format(self):
        registry = MarketplaceRegistry()
        registry.register(WholeEuroEbay(ebay_credentials()))
        adapter = PlatformAdapter(registry)

        adapted = adapter.adapt(make_analysis(), MarketplaceId.EBAY)

        self.assertEqual(adapted.price_estimate, '150€')

    def test_requirements_table(self):
        ebay = self.adapter.requirements_for(MarketplaceId.EBAY)
        facebook = self.adapter.requirements_for(MarketplaceId.FACEBOOK_MARKETPLACE)
        kleinanzeigen = self.adapter.requirements_for(MarketplaceId.EBAY_KLEINANZEIGEN)

        self.assertEqual((ebay.title_max_length, ebay.description_max_length, ebay.max_images),
                         (80, 50000, 24))
        self.assertEqual((facebook.title_max_length, facebook.description_max_length, facebook.max_images),
                         (60, 10000, 10))
        self.assertEqual((kleinanzeigen.title_max_length, kleinanzeigen.description_max_length,
                          kleinanzeigen.max_images), (75, 5000, 30))
        for requirements in (ebay, facebook, kleinanzeigen):
            self.assertEqual(requirements.currency, 'EUR')
            self.assertEqual(requirements.price_format, PriceFormat.DECIMAL)

    def test_unsupported_marketplace(self):
        with self.assertRaises(UnsupportedMarketplaceError):
            self.adapter.adapt(make_analysis(), 'etsy')


class TestPriceParsing(unittest.TestCase):
    def test_simple_price(self):
        self.assertEqual(parse_price("150€"), 150.0)

    def test_range_takes_first_amount(self):
        self.assertEqual(parse_price("150€ - 200€"), 150.0)

    def test_german_thousands_and_decimals(self):
        self.assertEqual(parse_price("1.299,50 €"), 1299.5)

    def test_decimal_comma(self):
        self.assertEqual(parse_price("49,99€"), 49.99)

    def test_decimal_point(self):
        self.assertEqual(parse_price("12.5"), 12.5)

    def test_no_number(self):
        with self.assertRaises(ValueError):
            parse_price("auf Anfrage")

    def test_format_whole_price_rounds_half_up(self):
        self.assertEqual(format_whole_price("149,50 €", 'EUR'), '150€')
        self.assertEqual(format_whole_price("149,49", 'EUR'), '149€')
        self.assertEqual(format_whole_price("20", 'CHF'), '20 CHF')


if __name__ == '__main__':
    unittest.main()
