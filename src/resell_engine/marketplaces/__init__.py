"""
Marketplace implementations and the registry that selects them
"""
from typing import Dict, Iterator, Optional, Union

from ..config import Config
from ..models import MarketplaceId
from .base import (
    APIError,
    Marketplace,
    NoProgrammaticPublishError,
    PublishError,
    UnsupportedMarketplaceError,
    parse_price,
)
from .ebay import EbayMarketplace
from .facebook import FacebookMarketplace
from .kleinanzeigen import KleinanzeigenMarketplace

MARKETPLACE_CLASSES = {
    MarketplaceId.EBAY: EbayMarketplace,
    MarketplaceId.FACEBOOK_MARKETPLACE: FacebookMarketplace,
    MarketplaceId.EBAY_KLEINANZEIGEN: KleinanzeigenMarketplace,
}


def resolve_marketplace_id(value: Union[MarketplaceId, str]) -> MarketplaceId:
    if isinstance(value, MarketplaceId):
        return value
    try:
        return MarketplaceId(value)
    except ValueError:
        raise UnsupportedMarketplaceError(f"Marketplace {value!r} is not supported")


class MarketplaceRegistry:
    """Marketplace implementations keyed by MarketplaceId"""

    def __init__(self, config: Optional[Config] = None):
        self._marketplaces: Dict[MarketplaceId, Marketplace] = {}
        if config is not None:
            for marketplace_id, cls in MARKETPLACE_CLASSES.items():
                self.register(cls(config.credentials_for(marketplace_id), config.http_timeout))

    def register(self, marketplace: Marketplace):
        self._marketplaces[marketplace.marketplace_id] = marketplace

    def get(self, marketplace: Union[MarketplaceId, str]) -> Marketplace:
        marketplace_id = resolve_marketplace_id(marketplace)
        try:
            return self._marketplaces[marketplace_id]
        except KeyError:
            raise UnsupportedMarketplaceError(f"Marketplace {marketplace_id.value} is not configured")

    def __iter__(self) -> Iterator[Marketplace]:
        return iter(list(self._marketplaces.values()))


__all__ = [
    'APIError',
    'EbayMarketplace',
    'FacebookMarketplace',
    'KleinanzeigenMarketplace',
    'Marketplace',
    'MarketplaceRegistry',
    'NoProgrammaticPublishError',
    'PublishError',
    'UnsupportedMarketplaceError',
    'parse_price',
    'resolve_marketplace_id',
]
