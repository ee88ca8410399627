"""
Facebook Marketplace via the Graph API (page-scoped listings)
"""
import logging
import requests
from urllib.parse import urlencode

from ..config import DEFAULT_HTTP_TIMEOUT
from ..models import (
    ListingPublishResult,
    MarketplaceId,
    MarketplaceRequirements,
    PriceFormat,
    PublishStatus,
)
from .base import APIError, Marketplace, parse_price, raise_for_status

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_URL = "https://graph.facebook.com/v18.0"
DIALOG_URL = "https://www.facebook.com/v18.0/dialog/oauth"

# Berlin
DEFAULT_LOCATION = {'latitude': 52.5200, 'longitude': 13.4050}


class FacebookMarketplace(Marketplace):

    marketplace_id = MarketplaceId.FACEBOOK_MARKETPLACE
    display_name = 'Facebook Marketplace'
    requirements = MarketplaceRequirements(
        title_max_length=60,
        description_max_length=10000,
        max_images=10,
        allowed_categories=('Electronics', 'Clothing', 'Home', 'Vehicles', 'Sports'),
        price_format=PriceFormat.DECIMAL,
        currency='EUR',
    )
    keyword_suffixes = ('used', 'second hand', 'local pickup')
    default_scopes = ('email', 'pages_manage_posts', 'pages_show_list')

    condition_map = {
        'Neu': 'NEW',
        'Wie neu': 'REFURBISHED',
        'Sehr gut': 'USED_GOOD',
        'Gut': 'USED_FAIR',
        'Akzeptabel': 'USED_POOR',
    }
    default_condition = 'USED_GOOD'

    category_map = {
        'Elektronik': 'electronics',
        'Mode': 'clothing',
        'Haus & Garten': 'home_garden',
        'Auto & Motorrad': 'vehicles',
        'Sport & Freizeit': 'sports_leisure',
    }
    default_category = 'miscellaneous'

    FEE_RATE = 0.05

    def __init__(self, credentials, timeout=DEFAULT_HTTP_TIMEOUT, location=None):
        super().__init__(credentials, timeout)
        self.location = location or DEFAULT_LOCATION

    @property
    def graph_url(self) -> str:
        return (self.credentials.api_base_url or DEFAULT_GRAPH_URL).rstrip('/')

    def calculate_fees(self, price: float) -> float:
        return price * self.FEE_RATE

    def listing_url(self, marketplace_listing_id: str) -> str:
        return f"https://www.facebook.com/marketplace/item/{marketplace_listing_id}"

    def build_authorization_url(self, scopes=None) -> str:
        params = {
            'client_id': self.credentials.client_id,
            'redirect_uri': self.credentials.redirect_uri,
            'scope': ','.join(self.scopes_or_default(scopes)),
            'response_type': 'code',
        }
        return f"{DIALOG_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> dict:
        params = {
            'client_id': self.credentials.client_id,
            'redirect_uri': self.credentials.redirect_uri,
            'client_secret': self.credentials.client_secret,
            'code': code,
        }
        response = requests.get(f"{self.graph_url}/oauth/access_token", params=params,
                                timeout=self.timeout)
        raise_for_status(response, "Facebook token exchange")
        return response.json()

    def refresh(self, token) -> dict:
        # Facebook has no refresh tokens; a live token is exchanged for a long-lived one
        params = {
            'grant_type': 'fb_exchange_token',
            'client_id': self.credentials.client_id,
            'client_secret': self.credentials.client_secret,
            'fb_exchange_token': token.access_token,
        }
        response = requests.get(f"{self.graph_url}/oauth/access_token", params=params,
                                timeout=self.timeout)
        raise_for_status(response, "Facebook token refresh")
        return response.json()

    def _first_page(self, access_token: str) -> dict:
        response = requests.get(f"{self.graph_url}/me/accounts",
                                params={'access_token': access_token}, timeout=self.timeout)
        raise_for_status(response, "Facebook pages lookup")
        pages = response.json().get('data') or []
        if not pages:
            raise APIError("No Facebook page found; Marketplace listings require a page")
        return pages[0]

    def build_listing(self, analysis, images) -> dict:
        return {
            'availability': 'available',
            'category': self.map_category(analysis.category),
            'condition': self.map_condition(analysis.condition),
            'currency': self.requirements.currency,
            'description': analysis.description,
            'images': [{'url': url} for url in list(images)[:self.requirements.max_images]],
            'location': dict(self.location),
            'price': parse_price(analysis.price_estimate),
            'title': analysis.title,
        }

    def publish(self, analysis, images, access_token) -> ListingPublishResult:
        page = self._first_page(access_token)
        response = requests.post(
            f"{self.graph_url}/{page['id']}/marketplace_listings",
            params={'access_token': page['access_token']},
            json=self.build_listing(analysis, images),
            timeout=self.timeout,
        )
        raise_for_status(response, "Facebook Marketplace listing creation")
        listing_id = str(response.json()['id'])

        logger.info(f"Published Facebook Marketplace listing {listing_id} on page {page['id']}")
        return ListingPublishResult(
            id=listing_id,
            marketplace=self.marketplace_id,
            status=PublishStatus.PUBLISHED,
            url=self.listing_url(listing_id),
        )

    def check_status(self, marketplace_listing_id, access_token) -> ListingPublishResult:
        params = {'fields': 'id,title,status', 'access_token': access_token}
        response = requests.get(f"{self.graph_url}/{marketplace_listing_id}", params=params,
                                timeout=self.timeout)
        if response.status_code == 404:
            return ListingPublishResult(
                id=marketplace_listing_id,
                marketplace=self.marketplace_id,
                status=PublishStatus.EXPIRED,
            )
        raise_for_status(response, "Facebook status check")

        remote_status = response.json().get('status')
        if remote_status == 'ACTIVE':
            status = PublishStatus.PUBLISHED
        elif remote_status == 'SOLD':
            status = PublishStatus.SOLD
        else:
            status = PublishStatus.DRAFT
        return ListingPublishResult(
            id=marketplace_listing_id,
            marketplace=self.marketplace_id,
            status=status,
            url=self.listing_url(marketplace_listing_id),
        )
