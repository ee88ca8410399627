"""
Multi-marketplace listing lifecycle engine
"""
from .adapter import PlatformAdapter
from .analytics import SalesAnalytics
from .auth import TokenStore, NotAuthenticatedError, AuthExchangeError, AuthRefreshError
from .config import Config, ConfigurationError, load_config
from .engine import ListingEngine, build_engine
from .ledger import ListingLedger, InvalidTransitionError
from .marketplaces import MarketplaceRegistry, UnsupportedMarketplaceError, NoProgrammaticPublishError
from .models import MarketplaceId, ProductAnalysis, Listing, ListingStatus, PublishStatus
from .pricing import PriceOptimizer
from .publisher import ListingPublisher

__all__ = [
    'AuthExchangeError', 'AuthRefreshError', 'Config', 'ConfigurationError', 'InvalidTransitionError',
    'Listing', 'ListingEngine', 'ListingLedger', 'ListingPublisher', 'ListingStatus', 'MarketplaceId',
    'MarketplaceRegistry', 'NoProgrammaticPublishError', 'NotAuthenticatedError', 'PlatformAdapter',
    'PriceOptimizer', 'ProductAnalysis', 'PublishStatus', 'SalesAnalytics', 'TokenStore',
    'UnsupportedMarketplaceError', 'build_engine', 'load_config',
]
