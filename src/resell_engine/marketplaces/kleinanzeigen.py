"""
eBay Kleinanzeigen: listing preparation only

There is no public listing API, so publish and status checks are refused
without touching the network. Authorization goes through eBay Identity.
"""
from ..models import MarketplaceId, MarketplaceRequirements, PriceFormat
from .base import Marketplace, NoProgrammaticPublishError
from .ebay import EbayIdentityMixin


class KleinanzeigenMarketplace(EbayIdentityMixin, Marketplace):

    marketplace_id = MarketplaceId.EBAY_KLEINANZEIGEN
    display_name = 'eBay Kleinanzeigen'
    requirements = MarketplaceRequirements(
        title_max_length=75,
        description_max_length=5000,
        max_images=30,
        allowed_categories=('Elektronik', 'Mode', 'Haus & Garten', 'Auto & Motorrad', 'Sport & Freizeit'),
        price_format=PriceFormat.DECIMAL,
        currency='EUR',
    )
    keyword_suffixes = ('gebraucht', 'second-hand', 'deutschland')
    supports_publishing = False

    def calculate_fees(self, price: float) -> float:
        return 0.0

    def publish(self, analysis, images, access_token):
        raise NoProgrammaticPublishError(
            "eBay Kleinanzeigen has no public listing API; "
            "post the prepared listing through the Kleinanzeigen website"
        )

    def check_status(self, marketplace_listing_id, access_token):
        raise NoProgrammaticPublishError(
            "Status checks are not available for eBay Kleinanzeigen (no API)"
        )
