"""
Data models for listings, sales and price suggestions
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class MarketplaceId(str, Enum):
    """Supported marketplaces"""
    EBAY = 'ebay'
    FACEBOOK_MARKETPLACE = 'facebook-marketplace'
    EBAY_KLEINANZEIGEN = 'ebay-kleinanzeigen'


class PriceFormat(str, Enum):
    DECIMAL = 'decimal'
    INTEGER = 'integer'


class ListingStatus(str, Enum):
    """Lifecycle state of a ledger listing"""
    ACTIVE = 'active'
    SOLD = 'sold'
    EXPIRED = 'expired'
    ENDED = 'ended'
    DELETED = 'deleted'


class PublishStatus(str, Enum):
    """Outcome of a publish attempt or a status check"""
    DRAFT = 'draft'
    PUBLISHED = 'published'
    SOLD = 'sold'
    EXPIRED = 'expired'


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class ShippingStatus(str, Enum):
    NOT_SHIPPED = 'not_shipped'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: Optional[datetime]) -> Optional[str]:
    # Stored values and query bounds share one offset so they order as strings
    return to_utc(value).isoformat(timespec='microseconds') if value is not None else None


def parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return to_utc(datetime.fromisoformat(value))


@dataclass
class OAuthToken:
    """Token set for one marketplace"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_token_response(cls, data: Dict[str, Any], now: datetime,
                            previous_refresh_token: Optional[str] = None) -> 'OAuthToken':
        """Build a token from an OAuth token endpoint response body"""
        expires_in = data.get('expires_in')
        return cls(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token') or previous_refresh_token,
            expires_at=now + timedelta(seconds=int(expires_in)) if expires_in else None,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass(frozen=True)
class MarketplaceRequirements:
    """Listing constraints of one marketplace"""
    title_max_length: int
    description_max_length: int
    max_images: int
    allowed_categories: Tuple[str, ...]
    price_format: PriceFormat
    currency: str


@dataclass
class ProductAnalysis:
    """Product analysis as delivered by the image-analysis provider"""
    title: str
    price_estimate: str  # e.g. "150€" or "150€ - 200€"
    condition: str  # e.g. "Gut", "Neu"
    category: str
    description: str
    keywords: List[str] = field(default_factory=list)
    brand: Optional[str] = None
    model: Optional[str] = None
    features: List[str] = field(default_factory=list)
    defects: List[str] = field(default_factory=list)
    reasoning: Optional[str] = None
    market_value: Optional[str] = None


@dataclass
class ListingPublishResult:
    """Uniform result of publishing or checking one listing"""
    id: str
    marketplace: MarketplaceId
    status: PublishStatus
    url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status != PublishStatus.DRAFT


@dataclass
class Listing:
    """Ledger record of one item offered on one marketplace"""
    id: str
    user_id: str
    analysis_id: str
    marketplace: MarketplaceId
    marketplace_listing_id: str
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    price: float
    currency: str
    title: str
    url: Optional[str] = None
    views: Optional[int] = None
    watch_count: Optional[int] = None
    last_checked_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['marketplace'] = self.marketplace.value
        data['status'] = self.status.value
        data['created_at'] = iso(self.created_at)
        data['updated_at'] = iso(self.updated_at)
        data['last_checked_at'] = iso(self.last_checked_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Listing':
        return cls(
            id=data['id'],
            user_id=data['user_id'],
            analysis_id=data['analysis_id'],
            marketplace=MarketplaceId(data['marketplace']),
            marketplace_listing_id=data['marketplace_listing_id'],
            status=ListingStatus(data['status']),
            created_at=parse_dt(data['created_at']),
            updated_at=parse_dt(data['updated_at']),
            price=float(data['price']),
            currency=data['currency'],
            title=data['title'],
            url=data.get('url'),
            views=data.get('views'),
            watch_count=data.get('watch_count'),
            last_checked_at=parse_dt(data.get('last_checked_at')),
        )


@dataclass
class SaleTransaction:
    """Sale derived from a listing entering the sold state"""
    id: str
    user_id: str
    listing_id: str
    marketplace: MarketplaceId
    sale_price: float
    currency: str
    fees: float  # marketplace fees
    net_amount: float  # sale_price - fees
    commission: float  # our own cut, not part of net_amount
    sold_at: datetime
    payment_status: PaymentStatus = PaymentStatus.PENDING
    shipping_status: ShippingStatus = ShippingStatus.NOT_SHIPPED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['marketplace'] = self.marketplace.value
        data['sold_at'] = iso(self.sold_at)
        data['payment_status'] = self.payment_status.value
        data['shipping_status'] = self.shipping_status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SaleTransaction':
        return cls(
            id=data['id'],
            user_id=data['user_id'],
            listing_id=data['listing_id'],
            marketplace=MarketplaceId(data['marketplace']),
            sale_price=float(data['sale_price']),
            currency=data['currency'],
            fees=float(data['fees']),
            net_amount=float(data['net_amount']),
            commission=float(data.get('commission') or 0.0),
            sold_at=parse_dt(data['sold_at']),
            payment_status=PaymentStatus(data.get('payment_status', 'pending')),
            shipping_status=ShippingStatus(data.get('shipping_status', 'not_shipped')),
        )


@dataclass
class MarketplacePerformance:
    marketplace: MarketplaceId
    listings: int
    sales: int
    revenue: float
    fees: float
    commission: float
    net_profit: float
    sell_through_rate: float
    average_time_to_sell: float


@dataclass
class SalesMetrics:
    """Aggregate over a user's listings and sales, recomputed per request"""
    total_listings: int
    active_listings: int
    sold_listings: int
    total_revenue: float
    total_fees: float
    total_commission: float
    net_profit: float
    average_sale_price: float
    average_time_to_sell: float  # days
    sell_through_rate: float  # percentage
    marketplace_performance: List[MarketplacePerformance] = field(default_factory=list)


@dataclass
class ComparableSale:
    price: float
    sold_at: datetime
    time_to_sell: Optional[float]  # days

    def to_dict(self) -> Dict[str, Any]:
        return {'price': self.price, 'sold_at': iso(self.sold_at), 'time_to_sell': self.time_to_sell}


@dataclass
class MarketItem:
    """One entry of an external market snapshot"""
    title: str
    price: float
    condition: str
    marketplace: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MarketDataSummary:
    similar_items: List[Dict[str, Any]]
    average_price: float
    price_min: float
    price_max: float
    strategy: Optional[str] = None


@dataclass
class PriceOptimization:
    """Suggested price change for an active listing"""
    id: str
    listing_id: str
    current_price: float
    suggested_price: float
    reasoning: str
    confidence: float  # 0-1
    created_at: datetime
    market_data: Optional[MarketDataSummary] = None
