"""
Per-marketplace adaptation of a product analysis
"""
import dataclasses

from .marketplaces import MarketplaceRegistry, parse_price
from .marketplaces.base import round_half_up
from .models import MarketplaceRequirements, PriceFormat, ProductAnalysis

ELLIPSIS = '...'

_CURRENCY_SYMBOLS = {'EUR': '€', 'USD': '$', 'GBP': '£'}


def truncate(text: str, max_length: int) -> str:
    """Cut text to max_length characters, ending in an ellipsis when cut"""
    if len(text) <= max_length:
        return text
    return text[:max_length - len(ELLIPSIS)] + ELLIPSIS


def format_whole_price(price_estimate: str, currency: str) -> str:
    amount = round_half_up(parse_price(price_estimate))
    symbol = _CURRENCY_SYMBOLS.get(currency)
    return f"{amount}{symbol}" if symbol else f"{amount} {currency}"


class PlatformAdapter:
    """Makes a ProductAnalysis fit one marketplace without touching the original"""

    def __init__(self, registry: MarketplaceRegistry):
        self.registry = registry

    def requirements_for(self, marketplace) -> MarketplaceRequirements:
        return self.registry.get(marketplace).requirements

    def adapt(self, analysis: ProductAnalysis, marketplace) -> ProductAnalysis:
        impl = self.registry.get(marketplace)
        requirements = impl.requirements

        price_estimate = analysis.price_estimate
        if requirements.price_format == PriceFormat.INTEGER:
            price_estimate = format_whole_price(price_estimate, requirements.currency)

        # Suffixes are appended even when already present
        keywords = list(analysis.keywords) + list(impl.keyword_suffixes)

        return dataclasses.replace(
            analysis,
            title=truncate(analysis.title, requirements.title_max_length),
            description=truncate(analysis.description, requirements.description_max_length),
            price_estimate=price_estimate,
            keywords=keywords,
            features=list(analysis.features),
            defects=list(analysis.defects),
        )
