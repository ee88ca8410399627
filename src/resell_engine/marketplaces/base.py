"""
Marketplace capability interface

Every supported marketplace implements authorization, publishing, status
checks and fee modeling in one class. The registry picks the implementation
by MarketplaceId, so nothing else branches on the marketplace.
"""
import re
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config import DEFAULT_HTTP_TIMEOUT, MarketplaceCredentials
from ..models import (
    ListingPublishResult,
    MarketplaceId,
    MarketplaceRequirements,
    OAuthToken,
    ProductAnalysis,
)

_NUMBER_RE = re.compile(r'\d[\d.,]*')


class APIError(Exception):
    """Raised when a marketplace endpoint answers with a non-2xx status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PublishError(Exception):
    """Base class for publish requests that can never succeed"""
    pass


class UnsupportedMarketplaceError(PublishError):
    pass


class NoProgrammaticPublishError(PublishError):
    pass


def parse_price(price_estimate: str) -> float:
    """
    Parse the first amount out of a price estimate string.

    Handles "150€", "150€ - 200€", "1.299,50 €" and "12.5".
    """
    match = _NUMBER_RE.search(price_estimate or '')
    if not match:
        raise ValueError(f"No price found in {price_estimate!r}")
    raw = match.group(0).rstrip('.,')
    if ',' in raw and '.' in raw:
        raw = raw.replace('.', '').replace(',', '.')
    elif ',' in raw:
        raw = raw.replace(',', '.')
    elif raw.count('.') > 1:
        raw = raw.replace('.', '')
    return float(raw)


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def raise_for_status(response, action: str):
    if not 200 <= response.status_code < 300:
        raise APIError(f"{action} failed: HTTP {response.status_code} {response.text}",
                       status_code=response.status_code)


class Marketplace(ABC):
    """One marketplace: its rules, OAuth grants and listing endpoints"""

    marketplace_id: MarketplaceId
    display_name: str
    requirements: MarketplaceRequirements
    keyword_suffixes: Tuple[str, ...] = ()
    default_scopes: Tuple[str, ...] = ()
    condition_map: Dict[str, str] = {}
    default_condition: Optional[str] = None
    category_map: Dict[str, str] = {}
    default_category: Optional[str] = None
    supports_publishing = True

    def __init__(self, credentials: MarketplaceCredentials, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self.credentials = credentials
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self.credentials.is_configured

    def map_condition(self, condition: str) -> Optional[str]:
        return self.condition_map.get(condition, self.default_condition)

    def map_category(self, category: str) -> Optional[str]:
        return self.category_map.get(category, self.default_category)

    def scopes_or_default(self, scopes: Optional[Sequence[str]]) -> List[str]:
        return list(scopes) if scopes else list(self.default_scopes)

    @abstractmethod
    def calculate_fees(self, price: float) -> float:
        """Marketplace fee charged on a sale at ``price``"""

    @abstractmethod
    def build_authorization_url(self, scopes: Optional[Sequence[str]] = None) -> str:
        """OAuth consent URL; credentials must already be checked"""

    @abstractmethod
    def exchange_code(self, code: str) -> Dict[str, Any]:
        """Authorization-code grant, returns the token endpoint response"""

    @abstractmethod
    def refresh(self, token: OAuthToken) -> Dict[str, Any]:
        """Refresh grant, returns the token endpoint response"""

    @abstractmethod
    def publish(self, analysis: ProductAnalysis, images: Sequence[str],
                access_token: str) -> ListingPublishResult:
        """Create the listing; raises on any failure"""

    @abstractmethod
    def check_status(self, marketplace_listing_id: str, access_token: str) -> ListingPublishResult:
        """Read the current listing state; a missing listing is expired"""

    def listing_url(self, marketplace_listing_id: str) -> Optional[str]:
        return None
