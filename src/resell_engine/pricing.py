"""
Price optimization for active listings

Recent comparable sales and a market snapshot are sent to an external
reasoning service. If anything along that path fails, a fixed markdown
suggestion is returned instead, so callers always get a result.
"""
import logging
import requests
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config import DEFAULT_HTTP_TIMEOUT
from .ledger import ListingLedger, ListingNotFoundError
from .marketplaces import APIError
from .marketplaces.base import raise_for_status
from .models import (
    ComparableSale,
    Listing,
    ListingStatus,
    MarketDataSummary,
    MarketItem,
    PriceOptimization,
    ProductAnalysis,
    utcnow,
)

logger = logging.getLogger(__name__)

MAX_COMPARABLE_SALES = 10

FALLBACK_DISCOUNT = 0.95
FALLBACK_CONFIDENCE = 0.7
FALLBACK_REASONING = ("Based on current market trends and sales performance, "
                      "a small price reduction is recommended.")


class ReasoningClient(ABC):
    """External service that proposes a price from sales and market context"""

    @abstractmethod
    def suggest_price(self, analysis: ProductAnalysis, recent_sales: Sequence[ComparableSale],
                      market_data: Sequence[MarketItem]) -> Dict[str, Any]:
        """
        Returns:
            {
                "suggestedPrice": float,
                "reasoning": str,
                "confidence": float,  # 0-1
                "marketAnalysis": {
                    "averagePrice": float,
                    "priceRange": {"min": float, "max": float},
                    "recommendedStrategy": str
                }
            }
        """


class HttpReasoningClient(ReasoningClient):
    """Posts the pricing context as JSON to a configured endpoint"""

    def __init__(self, url: Optional[str], api_key: Optional[str] = None,
                 timeout: float = DEFAULT_HTTP_TIMEOUT):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def suggest_price(self, analysis, recent_sales, market_data):
        if not self.url:
            raise APIError("No price reasoning service configured")

        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        payload = {
            'analysis': {
                'title': analysis.title,
                'category': analysis.category,
                'condition': analysis.condition,
                'priceEstimate': analysis.price_estimate,
                'marketValue': analysis.market_value,
            },
            'recentSales': [sale.to_dict() for sale in recent_sales],
            'marketData': [item.to_dict() for item in market_data],
        }
        response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        raise_for_status(response, "Price reasoning request")
        return response.json()


class MarketDataSource(ABC):

    @abstractmethod
    def snapshot(self, listing: Listing, analysis: Optional[ProductAnalysis]) -> List[MarketItem]:
        """Current comparable offers for a listing"""


class StaticMarketData(MarketDataSource):
    """Fixed snapshot, e.g. loaded from a periodic market export"""

    def __init__(self, items: Optional[Sequence[MarketItem]] = None):
        self.items = list(items or [])

    def snapshot(self, listing, analysis):
        return list(self.items)


def analysis_from_listing(listing: Listing) -> ProductAnalysis:
    """Minimal analysis for listings whose original analysis is not at hand"""
    return ProductAnalysis(
        title=listing.title,
        price_estimate=f"{listing.price}€",
        condition='Gut',
        category='Sonstiges',
        description=listing.title,
    )


class PriceOptimizer:

    def __init__(self, ledger: ListingLedger, reasoning_client: ReasoningClient,
                 market_data: Optional[MarketDataSource] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.ledger = ledger
        self.reasoning_client = reasoning_client
        self.market_data = market_data or StaticMarketData()
        self.clock = clock

    def comparable_sales(self, listing: Listing) -> List[ComparableSale]:
        """Up to ten most recent sales of the same user on the same marketplace"""
        transactions = [t for t in self.ledger.transactions_for_user(listing.user_id)
                        if t.marketplace == listing.marketplace]
        sales = []
        for transaction in transactions[:MAX_COMPARABLE_SALES]:
            try:
                sold_listing = self.ledger.get_listing(transaction.listing_id)
                days = (transaction.sold_at - sold_listing.created_at).total_seconds() / 86400
            except ListingNotFoundError:
                days = None
            sales.append(ComparableSale(price=transaction.sale_price, sold_at=transaction.sold_at,
                                        time_to_sell=days))
        return sales

    def suggest(self, listing: Listing,
                analysis: Optional[ProductAnalysis] = None) -> Optional[PriceOptimization]:
        """Suggest a new price for an active listing, None for any other listing"""
        if listing.status != ListingStatus.ACTIVE:
            return None

        try:
            recent_sales = self.comparable_sales(listing)
            market = self.market_data.snapshot(listing, analysis)
            response = self.reasoning_client.suggest_price(
                analysis or analysis_from_listing(listing), recent_sales, market
            )
            return self._from_response(listing, response, market)
        except Exception as e:
            logger.warning(f"Price reasoning failed for {listing.id}, using fallback: {e}")
            return self._fallback(listing)

    def _from_response(self, listing: Listing, response: Dict[str, Any],
                       market: List[MarketItem]) -> PriceOptimization:
        suggested_price = float(response['suggestedPrice'])
        if suggested_price <= 0:
            raise ValueError(f"Invalid suggested price {suggested_price}")
        confidence = min(max(float(response['confidence']), 0.0), 1.0)

        analysis = response.get('marketAnalysis') or {}
        price_range = analysis.get('priceRange') or {}
        market_summary = MarketDataSummary(
            similar_items=[{'price': item.price, 'condition': item.condition} for item in market],
            average_price=float(analysis.get('averagePrice') or 0.0),
            price_min=float(price_range.get('min') or 0.0),
            price_max=float(price_range.get('max') or 0.0),
            strategy=analysis.get('recommendedStrategy'),
        )
        now = self.clock()
        return PriceOptimization(
            id=f"opt_{listing.id}_{int(now.timestamp() * 1000)}",
            listing_id=listing.id,
            current_price=listing.price,
            suggested_price=suggested_price,
            reasoning=str(response['reasoning']),
            confidence=confidence,
            created_at=now,
            market_data=market_summary,
        )

    def _fallback(self, listing: Listing) -> PriceOptimization:
        now = self.clock()
        return PriceOptimization(
            id=f"opt_{listing.id}_{int(now.timestamp() * 1000)}",
            listing_id=listing.id,
            current_price=listing.price,
            suggested_price=listing.price * FALLBACK_DISCOUNT,
            reasoning=FALLBACK_REASONING,
            confidence=FALLBACK_CONFIDENCE,
            created_at=now,
        )
