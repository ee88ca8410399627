import unittest
from datetime import datetime, timedelta, timezone

from engine_fixtures import T0, FixedClock, make_registry

from resell_engine.ledger import (
    InvalidTransitionError,
    LedgerError,
    ListingLedger,
    ListingNotFoundError,
    TransactionNotFoundError,
    calculate_commission,
)
from resell_engine.models import (
    ListingStatus,
    MarketplaceId,
    PaymentStatus,
    ShippingStatus,
)
from resell_engine.store import SALE_TRANSACTIONS, InMemoryDocumentStore


class FlakySaleStore(InMemoryDocumentStore):
    """Fails the first sale transaction write"""

    def __init__(self):
        super().__init__()
        self.failures_left = 1

    def save(self, collection, doc_id, data):
        if collection == SALE_TRANSACTIONS and self.failures_left:
            self.failures_left -= 1
            raise IOError("document store unavailable")
        super().save(collection, doc_id, data)


class LedgerTestCase(unittest.TestCase):
    def setUp(self):
        self.clock = FixedClock()
        self.ledger = ListingLedger(InMemoryDocumentStore(), make_registry(), clock=self.clock)

    def _listing(self, marketplace=MarketplaceId.EBAY, listing_id='1001', price=100.0, user_id='user-1'):
        return self.ledger.create_listing(
            user_id=user_id,
            analysis_id='analysis-1',
            marketplace=marketplace,
            marketplace_listing_id=listing_id,
            price=price,
            currency='EUR',
            title='Sony WH-1000XM4',
        )


class TestListingLedger(LedgerTestCase):
    def test_create_listing(self):
        listing = self._listing()

        self.assertEqual(listing.id, 'ebay_1001')
        self.assertEqual(listing.status, ListingStatus.ACTIVE)
        self.assertEqual(listing.created_at, T0)
        self.assertEqual(self.ledger.get_listing('ebay_1001'), listing)

    def test_get_missing_listing(self):
        with self.assertRaises(ListingNotFoundError):
            self.ledger.get_listing('ebay_404')

    def test_sold_creates_one_transaction(self):
        listing = self._listing()
        self.clock.advance(days=3)

        sold = self.ledger.transition_status(listing.id, ListingStatus.SOLD, views=40, watch_count=3)

        self.assertEqual(sold.status, ListingStatus.SOLD)
        self.assertEqual(sold.views, 40)
        self.assertEqual(sold.watch_count, 3)
        transaction = self.ledger.transaction_for_listing(listing.id)
        self.assertEqual(transaction.sale_price, 100.0)
        self.assertAlmostEqual(transaction.fees, 10.35)
        self.assertAlmostEqual(transaction.net_amount, 89.65)
        self.assertAlmostEqual(transaction.commission, 2.0)
        self.assertEqual(transaction.sold_at, self.clock())
        self.assertEqual(transaction.payment_status, PaymentStatus.PENDING)
        self.assertEqual(transaction.shipping_status, ShippingStatus.NOT_SHIPPED)
        self.assertEqual(len(self.ledger.transactions_for_user('user-1')), 1)

    def test_second_sold_transition_rejected(self):
        listing = self._listing()
        self.ledger.transition_status(listing.id, 'sold')

        with self.assertRaises(InvalidTransitionError):
            self.ledger.transition_status(listing.id, 'sold')

        self.assertEqual(len(self.ledger.transactions_for_user('user-1')), 1)

    def test_expired_creates_no_transaction(self):
        listing = self._listing()

        expired = self.ledger.transition_status(listing.id, ListingStatus.EXPIRED)

        self.assertEqual(expired.status, ListingStatus.EXPIRED)
        self.assertIsNone(self.ledger.transaction_for_listing(listing.id))

    def test_terminal_states_are_final(self):
        listing = self._listing()
        self.ledger.transition_status(listing.id, ListingStatus.ENDED)

        with self.assertRaises(InvalidTransitionError):
            self.ledger.transition_status(listing.id, ListingStatus.SOLD)
        self.assertIsNone(self.ledger.transaction_for_listing(listing.id))

    def test_no_reactivation(self):
        listing = self._listing()

        with self.assertRaises(InvalidTransitionError):
            self.ledger.transition_status(listing.id, ListingStatus.ACTIVE)

    def test_unknown_status(self):
        listing = self._listing()

        with self.assertRaises(InvalidTransitionError):
            self.ledger.transition_status(listing.id, 'paused')

    def test_transition_missing_listing(self):
        with self.assertRaises(ListingNotFoundError):
            self.ledger.transition_status('ebay_404', ListingStatus.SOLD)

    def test_kleinanzeigen_sale_has_no_fees(self):
        listing = self._listing(marketplace=MarketplaceId.EBAY_KLEINANZEIGEN, price=50.0)

        self.ledger.transition_status(listing.id, ListingStatus.SOLD)

        transaction = self.ledger.transaction_for_listing(listing.id)
        self.assertEqual(transaction.fees, 0.0)
        self.assertEqual(transaction.net_amount, 50.0)
        self.assertAlmostEqual(transaction.commission, 1.0)

    def test_record_check(self):
        listing = self._listing()
        self.clock.advance(hours=1)

        checked = self.ledger.record_check(listing.id, views=12)

        self.assertEqual(checked.status, ListingStatus.ACTIVE)
        self.assertEqual(checked.views, 12)
        self.assertEqual(checked.last_checked_at, self.clock())

    def test_listings_for_user_range_and_order(self):
        first = self._listing(listing_id='1')
        self.clock.advance(days=10)
        second = self._listing(listing_id='2')
        self._listing(listing_id='3', user_id='someone-else')

        everything = self.ledger.listings_for_user('user-1')
        recent = self.ledger.listings_for_user('user-1', start=T0 + timedelta(days=1))

        self.assertEqual([l.id for l in everything], [second.id, first.id])
        self.assertEqual([l.id for l in recent], [second.id])

    def test_active_listings(self):
        self._listing(listing_id='1')
        sold = self._listing(listing_id='2')
        self.ledger.transition_status(sold.id, ListingStatus.SOLD)

        self.assertEqual([l.id for l in self.ledger.active_listings('user-1')], ['ebay_1'])

    def test_update_transaction(self):
        listing = self._listing()
        self.ledger.transition_status(listing.id, ListingStatus.SOLD)
        transaction = self.ledger.transaction_for_listing(listing.id)

        updated = self.ledger.update_transaction(transaction.id, payment_status='completed',
                                                 shipping_status=ShippingStatus.SHIPPED)

        self.assertEqual(updated.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(updated.shipping_status, ShippingStatus.SHIPPED)

    def test_update_transaction_errors(self):
        with self.assertRaises(TransactionNotFoundError):
            self.ledger.update_transaction('sale_missing', payment_status='completed')

        listing = self._listing()
        self.ledger.transition_status(listing.id, ListingStatus.SOLD)
        transaction = self.ledger.transaction_for_listing(listing.id)
        with self.assertRaises(LedgerError):
            self.ledger.update_transaction(transaction.id, payment_status='lost')

    def test_failed_sale_write_keeps_listing_active(self):
        ledger = ListingLedger(FlakySaleStore(), make_registry(), clock=self.clock)
        listing = ledger.create_listing('user-1', 'analysis-1', MarketplaceId.EBAY, '1', 100.0, 'EUR',
                                        'Sony WH-1000XM4')
        self.clock.advance(days=1)

        with self.assertRaises(IOError):
            ledger.transition_status(listing.id, ListingStatus.SOLD, views=7)

        restored = ledger.get_listing(listing.id)
        self.assertEqual(restored.status, ListingStatus.ACTIVE)
        self.assertEqual(restored.updated_at, listing.updated_at)
        self.assertIsNone(restored.views)
        self.assertIsNone(ledger.transaction_for_listing(listing.id))

        # Retrying records the sale once the store recovers
        sold = ledger.transition_status(listing.id, ListingStatus.SOLD)

        self.assertEqual(sold.status, ListingStatus.SOLD)
        self.assertAlmostEqual(ledger.transaction_for_listing(listing.id).fees, 10.35)
        self.assertEqual(len(ledger.transactions_for_user('user-1')), 1)

    def test_range_bounds_with_offsets(self):
        listing = self._listing()
        berlin = timezone(timedelta(hours=2))

        # 13:00+02:00 is 11:00 UTC, before the 12:00 UTC creation time
        after_offset_start = self.ledger.listings_for_user(
            'user-1', start=datetime(2026, 10, 1, 13, 0, tzinfo=berlin))
        # Naive bounds are UTC; an end bound equal to the creation time includes it
        naive_end = self.ledger.listings_for_user('user-1', end=datetime(2026, 10, 1, 12, 0))
        # 15:00+02:00 is 13:00 UTC, after creation
        late_start = self.ledger.listings_for_user(
            'user-1', start=datetime(2026, 10, 1, 15, 0, tzinfo=berlin))

        self.assertEqual([l.id for l in after_offset_start], [listing.id])
        self.assertEqual([l.id for l in naive_end], [listing.id])
        self.assertEqual(late_start, [])

    def test_commission(self):
        self.assertAlmostEqual(calculate_commission(250.0), 5.0)


if __name__ == '__main__':
    unittest.main()
