"""
eBay marketplace: Identity OAuth, Inventory API publishing, Browse API status
"""
import base64
import uuid
import logging
import requests
from typing import Optional, Sequence
from urllib.parse import urlencode

from ..models import (
    ListingPublishResult,
    MarketplaceId,
    MarketplaceRequirements,
    PriceFormat,
    PublishStatus,
)
from .base import APIError, Marketplace, parse_price, raise_for_status

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.ebay.com"

# Item page host per eBay site
_SITE_HOSTS = {
    'EBAY_DE': 'www.ebay.de',
    'EBAY_US': 'www.ebay.com',
    'EBAY_GB': 'www.ebay.co.uk',
    'EBAY_AT': 'www.ebay.at',
    'EBAY_FR': 'www.ebay.fr',
}


class EbayIdentityMixin:
    """Authorization-code and refresh-token grants against eBay Identity"""

    default_scopes = ('https://api.ebay.com/oauth/api_scope/sell.inventory',)

    @property
    def api_base_url(self) -> str:
        return (self.credentials.api_base_url or DEFAULT_API_BASE_URL).rstrip('/')

    @property
    def token_url(self) -> str:
        return f"{self.api_base_url}/identity/v1/oauth2/token"

    @property
    def auth_url(self) -> str:
        if 'sandbox' in self.api_base_url:
            return "https://auth.sandbox.ebay.com/oauth2/authorize"
        return "https://auth.ebay.com/oauth2/authorize"

    def _basic_auth_headers(self) -> dict:
        credentials = f"{self.credentials.client_id}:{self.credentials.client_secret}"
        b64_credentials = base64.b64encode(credentials.encode()).decode()
        return {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Authorization': f'Basic {b64_credentials}'
        }

    def build_authorization_url(self, scopes=None) -> str:
        params = {
            'client_id': self.credentials.client_id,
            'redirect_uri': self.credentials.redirect_uri,
            'response_type': 'code',
            'scope': ' '.join(self.scopes_or_default(scopes)),
        }
        return f"{self.auth_url}?{urlencode(params)}"

    def exchange_code(self, code: str) -> dict:
        data = {
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.credentials.redirect_uri
        }
        response = requests.post(self.token_url, headers=self._basic_auth_headers(), data=data,
                                 timeout=self.timeout)
        raise_for_status(response, f"{self.display_name} token exchange")
        return response.json()

    def refresh(self, token) -> dict:
        if not token.refresh_token:
            raise APIError(f"No refresh token available for {self.display_name}")
        data = {
            'grant_type': 'refresh_token',
            'refresh_token': token.refresh_token,
        }
        response = requests.post(self.token_url, headers=self._basic_auth_headers(), data=data,
                                 timeout=self.timeout)
        raise_for_status(response, f"{self.display_name} token refresh")
        return response.json()


class EbayMarketplace(EbayIdentityMixin, Marketplace):
    """eBay, published through the Inventory API (item, offer, publish)"""

    marketplace_id = MarketplaceId.EBAY
    display_name = 'eBay'
    requirements = MarketplaceRequirements(
        title_max_length=80,
        description_max_length=50000,
        max_images=24,
        allowed_categories=('Electronics', 'Fashion', 'Home & Garden', 'Vehicles', 'Sports'),
        price_format=PriceFormat.DECIMAL,
        currency='EUR',
    )
    keyword_suffixes = ('used', 'pre-owned', 'germany')

    condition_map = {
        'Neu': 'NEW',
        'Wie neu': 'NEW_OTHER',
        'Sehr gut': 'USED_EXCELLENT',
        'Gut': 'USED_GOOD',
        'Akzeptabel': 'USED_ACCEPTABLE',
    }
    default_condition = 'USED_GOOD'

    category_map = {
        'Elektronik': '9355',  # Consumer Electronics
        'Mode': '11450',  # Clothing, Shoes & Accessories
        'Haus & Garten': '11700',
        'Auto & Motorrad': '6000',  # eBay Motors
        'Sport & Freizeit': '159043',
        'Sammlerstücke': '1',
        'Bücher': '267',
        'Musik': '11233',
        'Filme': '617',
        'Spielzeug': '220',
        'Gesundheit & Schönheit': '26395',
        'Baby': '2984',
        'Haustiere': '1281',
        'Immobilien': '10542',
        'Dienstleistungen': '176',
        'Sonstiges': '99',
    }
    # Everything Else
    default_category = '99'

    FEE_RATE = 0.10
    FIXED_FEE = 0.35

    @property
    def site_code(self) -> str:
        return self.credentials.marketplace_code or 'EBAY_DE'

    def calculate_fees(self, price: float) -> float:
        return price * self.FEE_RATE + self.FIXED_FEE

    def listing_url(self, marketplace_listing_id: str) -> str:
        host = _SITE_HOSTS.get(self.site_code, 'www.ebay.de')
        return f"https://{host}/itm/{marketplace_listing_id}"

    def _headers(self, access_token: str) -> dict:
        return {
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json',
            'Content-Language': 'de-DE',
            'X-EBAY-C-MARKETPLACE-ID': self.site_code
        }

    def build_inventory_item(self, analysis, images: Sequence[str]) -> dict:
        product = {
            'title': analysis.title,
            'description': analysis.description,
            'imageUrls': list(images)[:self.requirements.max_images],
        }
        if analysis.brand:
            product['brand'] = analysis.brand
            product['aspects'] = {'Marke': [analysis.brand]}
        return {
            'availability': {
                'shipToLocationAvailability': {
                    'quantity': 1
                }
            },
            'condition': self.map_condition(analysis.condition),
            'product': product,
        }

    def build_offer(self, analysis, sku: str) -> dict:
        price = parse_price(analysis.price_estimate)
        return {
            'sku': sku,
            'marketplaceId': self.site_code,
            'format': 'FIXED_PRICE',
            'availableQuantity': 1,
            'pricingSummary': {
                'price': {
                    'currency': self.requirements.currency,
                    'value': f"{price:.2f}"
                }
            },
            'listingDescription': analysis.description,
            'merchantLocationKey': 'default',
            'categoryId': self.map_category(analysis.category),
        }

    def publish(self, analysis, images, access_token) -> ListingPublishResult:
        headers = self._headers(access_token)
        sku = f"resell_{uuid.uuid4().hex[:16]}"
        inventory_url = f"{self.api_base_url}/sell/inventory/v1"

        response = requests.put(f"{inventory_url}/inventory_item/{sku}",
                                json=self.build_inventory_item(analysis, images),
                                headers=headers, timeout=self.timeout)
        raise_for_status(response, "eBay inventory item creation")

        response = requests.post(f"{inventory_url}/offer", json=self.build_offer(analysis, sku),
                                 headers=headers, timeout=self.timeout)
        raise_for_status(response, "eBay offer creation")
        offer_id = response.json()['offerId']

        response = requests.post(f"{inventory_url}/offer/{offer_id}/publish", json={},
                                 headers=headers, timeout=self.timeout)
        raise_for_status(response, "eBay offer publish")
        listing_id = str(response.json()['listingId'])

        logger.info(f"Published eBay offer {offer_id} (sku {sku}) as listing {listing_id}")
        return ListingPublishResult(
            id=listing_id,
            marketplace=self.marketplace_id,
            status=PublishStatus.PUBLISHED,
            url=self.listing_url(listing_id),
        )

    def check_status(self, marketplace_listing_id, access_token) -> ListingPublishResult:
        url = f"{self.api_base_url}/buy/browse/v1/item/get_item_by_legacy_id"
        params = {'legacy_item_id': marketplace_listing_id}
        response = requests.get(url, headers=self._headers(access_token), params=params,
                                timeout=self.timeout)

        if response.status_code == 404:
            return ListingPublishResult(
                id=marketplace_listing_id,
                marketplace=self.marketplace_id,
                status=PublishStatus.EXPIRED,
            )
        raise_for_status(response, "eBay status check")

        status = PublishStatus.PUBLISHED
        if _availability(response.json()) == 'OUT_OF_STOCK':
            status = PublishStatus.SOLD
        return ListingPublishResult(
            id=marketplace_listing_id,
            marketplace=self.marketplace_id,
            status=status,
            url=self.listing_url(marketplace_listing_id),
        )


def _availability(item: dict) -> Optional[str]:
    availabilities = item.get('estimatedAvailabilities') or []
    if not availabilities:
        return None
    return availabilities[0].get('estimatedAvailabilityStatus')
