"""
Listing ledger

Durable record of published listings and the state machine that governs
them. A listing starts active and can move once to sold, expired, ended or
deleted. Entering sold is the only place a SaleTransaction is created.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

from .marketplaces import MarketplaceRegistry, resolve_marketplace_id
from .models import (
    Listing,
    ListingStatus,
    PaymentStatus,
    SaleTransaction,
    ShippingStatus,
    iso,
    utcnow,
)
from .store import LISTINGS, SALE_TRANSACTIONS, DocumentStore

logger = logging.getLogger(__name__)

# Our own cut of every sale, independent of the marketplace
COMMISSION_RATE = 0.02


class LedgerError(Exception):
    pass


class ListingNotFoundError(LedgerError):
    pass


class TransactionNotFoundError(LedgerError):
    pass


class InvalidTransitionError(LedgerError):
    pass


def calculate_commission(price: float) -> float:
    return price * COMMISSION_RATE


class ListingLedger:

    def __init__(self, store: DocumentStore, registry: MarketplaceRegistry,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.registry = registry
        self.clock = clock
        self._lock = threading.Lock()

    def calculate_fees(self, marketplace, price: float) -> float:
        return self.registry.get(marketplace).calculate_fees(price)

    def create_listing(self, user_id: str, analysis_id: str, marketplace, marketplace_listing_id: str,
                       price: float, currency: str, title: str, url: Optional[str] = None) -> Listing:
        marketplace_id = resolve_marketplace_id(marketplace)
        now = self.clock()
        listing = Listing(
            id=f"{marketplace_id.value}_{marketplace_listing_id}",
            user_id=user_id,
            analysis_id=analysis_id,
            marketplace=marketplace_id,
            marketplace_listing_id=marketplace_listing_id,
            status=ListingStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            price=price,
            currency=currency,
            title=title,
            url=url,
            last_checked_at=now,
        )
        self.store.save(LISTINGS, listing.id, listing.to_dict())
        logger.info(f"Recorded listing {listing.id} for user {user_id}")
        return listing

    def get_listing(self, listing_id: str) -> Listing:
        data = self.store.get(LISTINGS, listing_id)
        if data is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return Listing.from_dict(data)

    def transition_status(self, listing_id: str, new_status, views: Optional[int] = None,
                          watch_count: Optional[int] = None) -> Listing:
        """
        Move an active listing into a terminal state.

        Only active listings can move, and never back into active; a sold
        listing is final, so repeating a sold transition raises
        InvalidTransitionError instead of recording a second sale.
        """
        try:
            target = ListingStatus(new_status)
        except ValueError:
            raise InvalidTransitionError(f"Unknown listing status {new_status!r}")
        if target == ListingStatus.ACTIVE:
            raise InvalidTransitionError("Listings cannot be reactivated; create a new listing instead")

        with self._lock:
            listing = self.get_listing(listing_id)
            if listing.status != ListingStatus.ACTIVE:
                raise InvalidTransitionError(
                    f"Listing {listing_id} is {listing.status.value}, cannot move to {target.value}"
                )
            if target == ListingStatus.SOLD and self.transaction_for_listing(listing_id):
                raise InvalidTransitionError(f"Listing {listing_id} already has a sale transaction")

            now = self.clock()
            updates = {'status': target.value, 'updated_at': iso(now), 'last_checked_at': iso(now)}
            if views is not None:
                updates['views'] = views
            if watch_count is not None:
                updates['watch_count'] = watch_count
            previous = {key: value for key, value in listing.to_dict().items() if key in updates}
            listing = Listing.from_dict(self.store.update(LISTINGS, listing_id, updates))

            if target == ListingStatus.SOLD:
                try:
                    self._create_sale_transaction(listing, now)
                except Exception as e:
                    # A sold listing must have its sale; put it back so the call can be repeated
                    logger.error(f"Recording sale for {listing_id} failed, listing left active: {e}")
                    self.store.update(LISTINGS, listing_id, previous)
                    raise
            logger.info(f"Listing {listing_id} moved to {target.value}")
        return listing

    def _create_sale_transaction(self, listing: Listing, sold_at: datetime) -> SaleTransaction:
        fees = self.calculate_fees(listing.marketplace, listing.price)
        transaction = SaleTransaction(
            id=f"sale_{listing.id}_{int(sold_at.timestamp() * 1000)}",
            user_id=listing.user_id,
            listing_id=listing.id,
            marketplace=listing.marketplace,
            sale_price=listing.price,
            currency=listing.currency,
            fees=fees,
            net_amount=listing.price - fees,
            commission=calculate_commission(listing.price),
            sold_at=sold_at,
        )
        self.store.save(SALE_TRANSACTIONS, transaction.id, transaction.to_dict())
        logger.info(f"Recorded sale {transaction.id}: price {transaction.sale_price:.2f}, "
                    f"fees {transaction.fees:.2f}")
        return transaction

    def record_check(self, listing_id: str, views: Optional[int] = None,
                     watch_count: Optional[int] = None) -> Listing:
        """Note a status check that found no state change"""
        self.get_listing(listing_id)
        now = self.clock()
        updates = {'last_checked_at': iso(now), 'updated_at': iso(now)}
        if views is not None:
            updates['views'] = views
        if watch_count is not None:
            updates['watch_count'] = watch_count
        return Listing.from_dict(self.store.update(LISTINGS, listing_id, updates))

    def listings_for_user(self, user_id: str, start: Optional[datetime] = None,
                          end: Optional[datetime] = None) -> List[Listing]:
        docs = self.store.query_by_user(LISTINGS, user_id, 'created_at', iso(start), iso(end))
        return [Listing.from_dict(doc) for doc in docs]

    def active_listings(self, user_id: str) -> List[Listing]:
        return [l for l in self.listings_for_user(user_id) if l.status == ListingStatus.ACTIVE]

    def transactions_for_user(self, user_id: str, start: Optional[datetime] = None,
                              end: Optional[datetime] = None) -> List[SaleTransaction]:
        docs = self.store.query_by_user(SALE_TRANSACTIONS, user_id, 'sold_at', iso(start), iso(end))
        return [SaleTransaction.from_dict(doc) for doc in docs]

    def transaction_for_listing(self, listing_id: str) -> Optional[SaleTransaction]:
        docs = self.store.find(SALE_TRANSACTIONS, listing_id=listing_id)
        return SaleTransaction.from_dict(docs[0]) if docs else None

    def update_transaction(self, transaction_id: str, payment_status=None,
                           shipping_status=None) -> SaleTransaction:
        """Record payment or shipping progress of a sale"""
        if self.store.get(SALE_TRANSACTIONS, transaction_id) is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        updates = {}
        try:
            if payment_status is not None:
                updates['payment_status'] = PaymentStatus(payment_status).value
            if shipping_status is not None:
                updates['shipping_status'] = ShippingStatus(shipping_status).value
        except ValueError as e:
            raise LedgerError(str(e)) from e
        if not updates:
            return SaleTransaction.from_dict(self.store.get(SALE_TRANSACTIONS, transaction_id))
        return SaleTransaction.from_dict(self.store.update(SALE_TRANSACTIONS, transaction_id, updates))
