"""
Listing publisher

Publishes one product analysis to one marketplace and reports the outcome
uniformly. Marketplace and auth failures come back as draft results with an
error message instead of exceptions, so a caller looping over several
marketplaces keeps going after one of them fails.
"""
import time
import uuid
import logging
from typing import Dict, List, Sequence, Union

from .adapter import PlatformAdapter
from .auth import TokenStore
from .ledger import LedgerError, ListingLedger
from .marketplaces import (
    MarketplaceRegistry,
    NoProgrammaticPublishError,
    PublishError,
    parse_price,
)
from .models import (
    Listing,
    ListingPublishResult,
    ListingStatus,
    MarketplaceId,
    ProductAnalysis,
    PublishStatus,
)

logger = logging.getLogger(__name__)


def _failed_result(marketplace: Union[MarketplaceId, str], error: str) -> ListingPublishResult:
    try:
        marketplace = MarketplaceId(marketplace)
    except ValueError:
        pass
    return ListingPublishResult(
        id=f"failed_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}",
        marketplace=marketplace,
        status=PublishStatus.DRAFT,
        error=error,
    )


class ListingPublisher:

    def __init__(self, registry: MarketplaceRegistry, adapter: PlatformAdapter,
                 token_store: TokenStore, ledger: ListingLedger):
        self.registry = registry
        self.adapter = adapter
        self.token_store = token_store
        self.ledger = ledger

    def publish(self, analysis: ProductAnalysis, marketplace: Union[MarketplaceId, str],
                images: Sequence[str]) -> ListingPublishResult:
        """
        Publish an analysis to a single marketplace.

        Raises UnsupportedMarketplaceError for unknown marketplaces and
        NoProgrammaticPublishError for marketplaces without a listing API;
        every later failure is returned as a draft result.
        """
        impl = self.registry.get(marketplace)
        if not impl.supports_publishing:
            raise NoProgrammaticPublishError(
                f"{impl.display_name} has no public listing API; use its website to post the listing"
            )

        try:
            adapted = self.adapter.adapt(analysis, impl.marketplace_id)
            access_token = self.token_store.ensure_valid(impl.marketplace_id)
            return impl.publish(adapted, images, access_token)
        except Exception as e:
            logger.error(f"Publishing to {impl.display_name} failed: {e}")
            return _failed_result(impl.marketplace_id, str(e))

    def publish_to_marketplaces(self, user_id: str, analysis_id: str, analysis: ProductAnalysis,
                                marketplaces: Sequence[Union[MarketplaceId, str]],
                                images: Sequence[str]) -> List[ListingPublishResult]:
        """
        Publish to each marketplace in order, recording successes in the ledger.

        Marketplaces are handled one after another; a failure is recorded in
        its result before the next marketplace is attempted.
        """
        results = []
        for marketplace in marketplaces:
            try:
                result = self.publish(analysis, marketplace, images)
            except PublishError as e:
                logger.warning(f"Skipping {marketplace}: {e}")
                # unknown marketplaces keep the caller's raw value
                result = _failed_result(marketplace, str(e))

            if result.status == PublishStatus.PUBLISHED:
                self._record(user_id, analysis_id, analysis, result)
            results.append(result)
        return results

    def _record(self, user_id: str, analysis_id: str, analysis: ProductAnalysis,
                result: ListingPublishResult):
        impl = self.registry.get(result.marketplace)
        try:
            adapted = self.adapter.adapt(analysis, impl.marketplace_id)
            self.ledger.create_listing(
                user_id=user_id,
                analysis_id=analysis_id,
                marketplace=impl.marketplace_id,
                marketplace_listing_id=result.id,
                price=parse_price(adapted.price_estimate),
                currency=impl.requirements.currency,
                title=adapted.title,
                url=result.url,
            )
        except (LedgerError, ValueError) as e:
            logger.error(f"Listing {result.id} published on {impl.display_name} but not recorded: {e}")
            result.error = f"Published but not recorded: {e}"

    def check_status(self, marketplace_listing_id: str,
                     marketplace: Union[MarketplaceId, str]) -> ListingPublishResult:
        """Read-only status lookup; a listing the marketplace no longer knows is expired"""
        impl = self.registry.get(marketplace)
        if not impl.supports_publishing:
            raise NoProgrammaticPublishError(f"Status checks are not available for {impl.display_name}")

        try:
            access_token = self.token_store.ensure_valid(impl.marketplace_id)
            return impl.check_status(marketplace_listing_id, access_token)
        except Exception as e:
            logger.error(f"Status check for {marketplace_listing_id} on {impl.display_name} failed: {e}")
            return ListingPublishResult(
                id=marketplace_listing_id,
                marketplace=impl.marketplace_id,
                status=PublishStatus.DRAFT,
                error=str(e),
            )

    def reconcile(self, listing_id: str) -> Listing:
        """Apply the marketplace's current state to an active ledger listing"""
        listing = self.ledger.get_listing(listing_id)
        if listing.status != ListingStatus.ACTIVE:
            return listing

        result = self.check_status(listing.marketplace_listing_id, listing.marketplace)
        if result.error:
            logger.warning(f"Leaving {listing_id} unchanged: {result.error}")
            return listing

        if result.status == PublishStatus.EXPIRED:
            return self.ledger.transition_status(listing_id, ListingStatus.EXPIRED)
        if result.status == PublishStatus.SOLD:
            return self.ledger.transition_status(listing_id, ListingStatus.SOLD)
        return self.ledger.record_check(listing_id)

    def poll_listings(self, user_id: str) -> List[Listing]:
        """Reconcile every active listing of a user that has a status API"""
        updated = []
        for listing in self.ledger.active_listings(user_id):
            if not self.registry.get(listing.marketplace).supports_publishing:
                continue
            try:
                updated.append(self.reconcile(listing.id))
            except (LedgerError, PublishError) as e:
                logger.error(f"Polling listing {listing.id} failed: {e}")
        return updated

    def available_marketplaces(self) -> List[Dict[str, object]]:
        return [
            {
                'id': impl.marketplace_id,
                'name': impl.display_name,
                'available': impl.is_configured,
                'authenticated': self.token_store.is_authenticated(impl.marketplace_id),
                'publishable': impl.supports_publishing,
            }
            for impl in self.registry
        ]
