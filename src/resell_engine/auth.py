"""
Marketplace OAuth token store

Holds at most one token set per marketplace and refreshes it shortly before
it expires. Tokens live in memory by default; DotenvTokenBackend keeps them in
a .env file so command-line sessions survive restarts.

Usage:
    store = TokenStore(registry)
    access_token = store.ensure_valid(MarketplaceId.EBAY)
"""
import os
import logging
import threading
import requests
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Sequence
from dotenv import dotenv_values, set_key, unset_key

from .config import ConfigurationError
from .marketplaces import APIError, MarketplaceRegistry, resolve_marketplace_id
from .models import MarketplaceId, OAuthToken, iso, parse_dt, utcnow

logger = logging.getLogger(__name__)

# Refresh this long before expiry to absorb clock skew and request latency
REFRESH_BUFFER = timedelta(seconds=60)

_ENV_PREFIXES = {
    MarketplaceId.EBAY: 'EBAY',
    MarketplaceId.FACEBOOK_MARKETPLACE: 'FACEBOOK',
    MarketplaceId.EBAY_KLEINANZEIGEN: 'KLEINANZEIGEN',
}


class AuthError(Exception):
    """Base class for token lifecycle failures"""
    pass


class NotAuthenticatedError(AuthError):
    pass


class AuthExchangeError(AuthError):
    pass


class AuthRefreshError(AuthError):
    pass


class TokenBackend(ABC):
    """Where token sets are kept"""

    @abstractmethod
    def load(self, marketplace: MarketplaceId) -> Optional[OAuthToken]:
        pass

    @abstractmethod
    def save(self, marketplace: MarketplaceId, token: OAuthToken) -> None:
        pass

    @abstractmethod
    def delete(self, marketplace: MarketplaceId) -> None:
        pass


class MemoryTokenBackend(TokenBackend):

    def __init__(self):
        self._tokens: Dict[MarketplaceId, OAuthToken] = {}

    def load(self, marketplace):
        return self._tokens.get(marketplace)

    def save(self, marketplace, token):
        self._tokens[marketplace] = token

    def delete(self, marketplace):
        self._tokens.pop(marketplace, None)


class DotenvTokenBackend(TokenBackend):
    """Persists tokens as <PREFIX>_USER_TOKEN / _REFRESH_TOKEN / _TOKEN_EXPIRES_AT"""

    def __init__(self, env_file: Optional[str] = None):
        self.env_file = env_file or self._find_env_file()

    @staticmethod
    def _find_env_file() -> str:
        """Find the .env file location"""
        # Look for .env in current directory or parent directories
        current = os.getcwd()
        while True:
            env_path = os.path.join(current, '.env')
            if os.path.exists(env_path):
                return env_path
            parent = os.path.dirname(current)
            if parent == current:
                return '.env'  # Fallback
            current = parent

    @staticmethod
    def _keys(marketplace: MarketplaceId):
        prefix = _ENV_PREFIXES[marketplace]
        return f'{prefix}_USER_TOKEN', f'{prefix}_REFRESH_TOKEN', f'{prefix}_TOKEN_EXPIRES_AT'

    def load(self, marketplace):
        access_key, refresh_key, expires_key = self._keys(marketplace)
        values = dotenv_values(self.env_file) if os.path.exists(self.env_file) else {}
        if not values.get(access_key):
            return None
        return OAuthToken(
            access_token=values[access_key],
            refresh_token=values.get(refresh_key) or None,
            expires_at=parse_dt(values.get(expires_key)),
        )

    def save(self, marketplace, token):
        access_key, refresh_key, expires_key = self._keys(marketplace)
        if not os.path.exists(self.env_file):
            open(self.env_file, 'a').close()
        set_key(self.env_file, access_key, token.access_token)
        if token.refresh_token:
            set_key(self.env_file, refresh_key, token.refresh_token)
        if token.expires_at:
            set_key(self.env_file, expires_key, iso(token.expires_at))
        else:
            self._unset(expires_key)

    def delete(self, marketplace):
        for key in self._keys(marketplace):
            self._unset(key)

    def _unset(self, key: str):
        if key in dotenv_values(self.env_file):
            unset_key(self.env_file, key)


class TokenStore:
    """OAuth token sets per marketplace with refresh-before-expiry"""

    def __init__(self, registry: MarketplaceRegistry, backend: Optional[TokenBackend] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.registry = registry
        self.backend = backend or MemoryTokenBackend()
        self.clock = clock
        self._locks: Dict[MarketplaceId, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, marketplace: MarketplaceId) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(marketplace, threading.Lock())

    def build_authorization_url(self, marketplace, scopes: Optional[Sequence[str]] = None) -> str:
        """OAuth consent URL for a marketplace"""
        impl = self.registry.get(marketplace)
        credentials = impl.credentials
        if not credentials.client_id or not credentials.redirect_uri:
            raise ConfigurationError(f"OAuth configuration for {impl.display_name} is incomplete")
        return impl.build_authorization_url(scopes)

    def exchange_code(self, marketplace, code: str) -> OAuthToken:
        """Trade an authorization code for a token set and store it"""
        impl = self.registry.get(marketplace)
        if not impl.is_configured:
            raise ConfigurationError(f"OAuth configuration for {impl.display_name} is incomplete")

        try:
            token_data = impl.exchange_code(code)
            token = OAuthToken.from_token_response(token_data, self.clock())
        except (APIError, requests.exceptions.RequestException, KeyError, ValueError) as e:
            logger.error(f"Token exchange for {impl.display_name} failed: {e}")
            raise AuthExchangeError(f"Token exchange for {impl.display_name} failed: {e}") from e

        with self._lock_for(impl.marketplace_id):
            self.backend.save(impl.marketplace_id, token)
        logger.info(f"Connected {impl.display_name}")
        return token

    def ensure_valid(self, marketplace) -> str:
        """Return a usable access token, refreshing it first if it is about to expire"""
        marketplace_id = resolve_marketplace_id(marketplace)
        with self._lock_for(marketplace_id):
            token = self.backend.load(marketplace_id)
            if token is None:
                raise NotAuthenticatedError(f"No token available for {marketplace_id.value}")

            if token.expires_at and self.clock() > token.expires_at - REFRESH_BUFFER:
                token = self._refresh_locked(marketplace_id, token)
            return token.access_token

    def refresh(self, marketplace) -> OAuthToken:
        """Force a refresh of the stored token set"""
        marketplace_id = resolve_marketplace_id(marketplace)
        with self._lock_for(marketplace_id):
            token = self.backend.load(marketplace_id)
            if token is None:
                raise NotAuthenticatedError(f"No token available for {marketplace_id.value}")
            return self._refresh_locked(marketplace_id, token)

    def _refresh_locked(self, marketplace_id: MarketplaceId, token: OAuthToken) -> OAuthToken:
        impl = self.registry.get(marketplace_id)
        try:
            token_data = impl.refresh(token)
            new_token = OAuthToken.from_token_response(token_data, self.clock(),
                                                       previous_refresh_token=token.refresh_token)
        except (APIError, requests.exceptions.RequestException, KeyError, ValueError) as e:
            logger.error(f"Token refresh for {impl.display_name} failed: {e}")
            raise AuthRefreshError(f"Token refresh for {impl.display_name} failed: {e}") from e

        self.backend.save(marketplace_id, new_token)
        logger.info(f"Refreshed {impl.display_name} token")
        return new_token

    def set_token(self, marketplace, token: OAuthToken):
        marketplace_id = resolve_marketplace_id(marketplace)
        with self._lock_for(marketplace_id):
            self.backend.save(marketplace_id, token)

    def disconnect(self, marketplace):
        marketplace_id = resolve_marketplace_id(marketplace)
        with self._lock_for(marketplace_id):
            self.backend.delete(marketplace_id)
        logger.info(f"Disconnected {marketplace_id.value}")

    def is_authenticated(self, marketplace) -> bool:
        marketplace_id = resolve_marketplace_id(marketplace)
        with self._lock_for(marketplace_id):
            token = self.backend.load(marketplace_id)
        return bool(token and token.access_token and not token.is_expired(self.clock()))
