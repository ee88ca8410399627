"""
Seller-facing sales metrics, recomputed from the ledger on every call
"""
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .ledger import ListingLedger
from .models import (
    Listing,
    ListingStatus,
    MarketplaceId,
    MarketplacePerformance,
    SaleTransaction,
    SalesMetrics,
)

SECONDS_PER_DAY = 60 * 60 * 24


def sell_through_rate(sold: int, total: int) -> float:
    return sold / total * 100 if total else 0.0


def average_time_to_sell(transactions: Sequence[SaleTransaction],
                         listings_by_id: Dict[str, Listing]) -> float:
    """Mean days from listing creation to sale over transactions with a known listing"""
    durations = []
    for transaction in transactions:
        listing = listings_by_id.get(transaction.listing_id)
        if listing is None:
            continue
        durations.append((transaction.sold_at - listing.created_at).total_seconds() / SECONDS_PER_DAY)
    return sum(durations) / len(durations) if durations else 0.0


class SalesAnalytics:

    def __init__(self, ledger: ListingLedger):
        self.ledger = ledger

    def metrics_for(self, user_id: str, start: Optional[datetime] = None,
                    end: Optional[datetime] = None) -> SalesMetrics:
        """
        Aggregate a user's listings (by creation date) and sales (by sale date).

        Net profit subtracts both marketplace fees and our commission, while
        each transaction's net amount only subtracts fees.
        """
        listings = self.ledger.listings_for_user(user_id, start, end)
        transactions = self.ledger.transactions_for_user(user_id, start, end)

        # Time to sell needs the listing even when it was created before the range
        listings_by_id = {l.id: l for l in self.ledger.listings_for_user(user_id)}

        total_revenue = sum(t.sale_price for t in transactions)
        total_fees = sum(t.fees for t in transactions)
        total_commission = sum(t.commission for t in transactions)
        sold = sum(1 for l in listings if l.status == ListingStatus.SOLD)

        return SalesMetrics(
            total_listings=len(listings),
            active_listings=sum(1 for l in listings if l.status == ListingStatus.ACTIVE),
            sold_listings=sold,
            total_revenue=total_revenue,
            total_fees=total_fees,
            total_commission=total_commission,
            net_profit=total_revenue - total_fees - total_commission,
            average_sale_price=total_revenue / len(transactions) if transactions else 0.0,
            average_time_to_sell=average_time_to_sell(transactions, listings_by_id),
            sell_through_rate=sell_through_rate(sold, len(listings)),
            marketplace_performance=[
                self._performance(marketplace, listings, transactions, listings_by_id)
                for marketplace in MarketplaceId
            ],
        )

    @staticmethod
    def _performance(marketplace: MarketplaceId, listings: List[Listing],
                     transactions: List[SaleTransaction],
                     listings_by_id: Dict[str, Listing]) -> MarketplacePerformance:
        scoped_listings = [l for l in listings if l.marketplace == marketplace]
        scoped_sales = [t for t in transactions if t.marketplace == marketplace]
        revenue = sum(t.sale_price for t in scoped_sales)
        fees = sum(t.fees for t in scoped_sales)
        commission = sum(t.commission for t in scoped_sales)
        sold = sum(1 for l in scoped_listings if l.status == ListingStatus.SOLD)
        return MarketplacePerformance(
            marketplace=marketplace,
            listings=len(scoped_listings),
            sales=len(scoped_sales),
            revenue=revenue,
            fees=fees,
            commission=commission,
            net_profit=revenue - fees - commission,
            sell_through_rate=sell_through_rate(sold, len(scoped_listings)),
            average_time_to_sell=average_time_to_sell(scoped_sales, listings_by_id),
        )
