"""
Configuration settings for the listing engine

Marketplace credentials are read from the environment (populated from .env).
Each marketplace gets its own credential record; a marketplace with no keys
set is simply not configured, one with only some keys set is rejected.
"""
import os
import logging
from dataclasses import dataclass
from typing import Dict, Optional
from dotenv import load_dotenv

from .models import MarketplaceId

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete"""
    pass


@dataclass(frozen=True)
class MarketplaceCredentials:
    """OAuth client credentials for one marketplace"""
    marketplace: MarketplaceId
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    api_base_url: Optional[str] = None
    marketplace_code: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    @property
    def is_empty(self) -> bool:
        return not (self.client_id or self.client_secret or self.redirect_uri)


# marketplace -> (client id key, client secret key, redirect uri key)
_CREDENTIAL_KEYS = {
    MarketplaceId.EBAY: ('EBAY_CLIENT_ID', 'EBAY_CLIENT_SECRET', 'EBAY_REDIRECT_URI'),
    MarketplaceId.FACEBOOK_MARKETPLACE: ('FACEBOOK_APP_ID', 'FACEBOOK_APP_SECRET', 'FACEBOOK_REDIRECT_URI'),
    MarketplaceId.EBAY_KLEINANZEIGEN: ('KLEINANZEIGEN_CLIENT_ID', 'KLEINANZEIGEN_CLIENT_SECRET',
                                       'KLEINANZEIGEN_REDIRECT_URI'),
}


class Config:
    """Listing engine configuration"""

    def __init__(self):
        self.marketplaces: Dict[MarketplaceId, MarketplaceCredentials] = {}
        for marketplace, (id_key, secret_key, redirect_key) in _CREDENTIAL_KEYS.items():
            self.marketplaces[marketplace] = MarketplaceCredentials(
                marketplace=marketplace,
                client_id=os.getenv(id_key) or None,
                client_secret=os.getenv(secret_key) or None,
                redirect_uri=os.getenv(redirect_key) or None,
                api_base_url=self._api_base_url(marketplace),
                marketplace_code=os.getenv('EBAY_MARKETPLACE_ID', 'EBAY_DE')
                if marketplace == MarketplaceId.EBAY else None,
            )

        self.http_timeout = self._float_env('HTTP_TIMEOUT_SECONDS', DEFAULT_HTTP_TIMEOUT)

        # Price reasoning service (optional, optimizer falls back without it)
        self.price_reasoning_url = os.getenv('PRICE_REASONING_URL') or None
        self.price_reasoning_api_key = os.getenv('PRICE_REASONING_API_KEY') or None

    @staticmethod
    def _api_base_url(marketplace: MarketplaceId) -> Optional[str]:
        if marketplace == MarketplaceId.EBAY:
            return os.getenv('EBAY_API_BASE_URL', 'https://api.ebay.com').rstrip('/')
        if marketplace == MarketplaceId.FACEBOOK_MARKETPLACE:
            return os.getenv('FACEBOOK_GRAPH_URL', 'https://graph.facebook.com/v18.0').rstrip('/')
        return None

    @staticmethod
    def _float_env(key: str, default: float) -> float:
        raw = os.getenv(key)
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError:
            raise ConfigurationError(f"{key} must be a number, got {raw!r}")
        if value <= 0:
            raise ConfigurationError(f"{key} must be positive")
        return value

    def credentials_for(self, marketplace: MarketplaceId) -> MarketplaceCredentials:
        return self.marketplaces[marketplace]

    def is_configured(self, marketplace: MarketplaceId) -> bool:
        return self.credentials_for(marketplace).is_configured

    def validate(self):
        """Reject marketplaces that are only partially configured"""
        for marketplace, keys in _CREDENTIAL_KEYS.items():
            credentials = self.marketplaces[marketplace]
            if credentials.is_empty or credentials.is_configured:
                continue
            values = (credentials.client_id, credentials.client_secret, credentials.redirect_uri)
            missing = [key for key, value in zip(keys, values) if not value]
            raise ConfigurationError(f"{', '.join(missing)} not set for {marketplace.value}")


def load_config(validate: bool = True) -> Config:
    """Load .env into the environment and build a validated Config"""
    load_dotenv()
    config = Config()
    if validate:
        config.validate()
    configured = [m.value for m in config.marketplaces if config.is_configured(m)]
    logger.info(f"Configured marketplaces: {', '.join(configured) or 'none'}")
    return config
