"""
Wires the engine services together for one configuration
"""
from dataclasses import dataclass
from typing import Optional

from .adapter import PlatformAdapter
from .analytics import SalesAnalytics
from .auth import TokenBackend, TokenStore
from .config import Config, load_config
from .ledger import ListingLedger
from .marketplaces import MarketplaceRegistry
from .pricing import HttpReasoningClient, MarketDataSource, PriceOptimizer, ReasoningClient
from .publisher import ListingPublisher
from .store import DocumentStore, InMemoryDocumentStore


@dataclass
class ListingEngine:
    config: Config
    registry: MarketplaceRegistry
    tokens: TokenStore
    adapter: PlatformAdapter
    ledger: ListingLedger
    publisher: ListingPublisher
    analytics: SalesAnalytics
    optimizer: PriceOptimizer


def build_engine(config: Optional[Config] = None,
                 store: Optional[DocumentStore] = None,
                 token_backend: Optional[TokenBackend] = None,
                 reasoning_client: Optional[ReasoningClient] = None,
                 market_data: Optional[MarketDataSource] = None) -> ListingEngine:
    """Build independent service instances; nothing is shared between engines"""
    config = config or load_config()
    registry = MarketplaceRegistry(config)
    tokens = TokenStore(registry, backend=token_backend)
    adapter = PlatformAdapter(registry)
    ledger = ListingLedger(store or InMemoryDocumentStore(), registry)
    reasoning_client = reasoning_client or HttpReasoningClient(
        config.price_reasoning_url, config.price_reasoning_api_key, config.http_timeout
    )
    return ListingEngine(
        config=config,
        registry=registry,
        tokens=tokens,
        adapter=adapter,
        ledger=ledger,
        publisher=ListingPublisher(registry, adapter, tokens, ledger),
        analytics=SalesAnalytics(ledger),
        optimizer=PriceOptimizer(ledger, reasoning_client, market_data),
    )
