"""
Connect a marketplace account via the OAuth authorization code flow

Opens the marketplace consent page, takes the code (or the whole redirect
URL) pasted back by the user, exchanges it and stores the token set in .env.

    resell-connect ebay
"""
import sys
import argparse
import logging
import webbrowser
from typing import Optional
from urllib.parse import parse_qs, unquote, urlparse

from .auth import AuthExchangeError, DotenvTokenBackend, TokenStore
from .config import ConfigurationError, load_config
from .marketplaces import MarketplaceRegistry, UnsupportedMarketplaceError
from .models import MarketplaceId


def extract_code_from_text(text: str) -> str:
    """Extract authorization code from URL or raw string"""
    if not text:
        return ""

    auth_code = text.strip()

    # Check if input is a URL and extract code
    if 'code=' in auth_code:
        query_params = parse_qs(urlparse(auth_code).query)
        if 'code' not in query_params:
            # Fallback if it's just the query string part
            query_params = parse_qs(auth_code)
        if 'code' in query_params:
            auth_code = query_params['code'][0]

    return unquote(auth_code)


def run_oauth_flow(store: TokenStore, marketplace: MarketplaceId, open_browser: bool = True,
                   read_input=input) -> bool:
    """Run the OAuth flow with manual code entry"""
    auth_url = store.build_authorization_url(marketplace)

    print("=" * 80)
    print(f"Connect {marketplace.value}")
    print("=" * 80)
    print()
    print("1. Sign in on the page that opens and grant access")
    print("2. Copy the 'code' parameter (or the whole URL) from the redirect")
    print("3. Paste it below")
    print()
    print("If the browser doesn't open, go to this URL:")
    print(auth_url)
    print()

    if open_browser:
        webbrowser.open(auth_url)

    auth_input = read_input("Paste the authorization code (or full URL) here: ").strip()
    if not auth_input:
        print("❌ No code provided")
        return False

    auth_code = extract_code_from_text(auth_input)
    print(f"\n✓ Code received: {auth_code[:30]}...")

    try:
        token = store.exchange_code(marketplace, auth_code)
    except AuthExchangeError as e:
        print(f"❌ Failed to get tokens: {e}")
        print()
        print("Common issues:")
        print("- Code expired (they expire quickly, try again)")
        print("- Code was already used (get a new one)")
        print("- Wrong redirect URI (check the app configuration)")
        return False

    print("✓ Tokens saved to .env")
    if token.expires_at:
        print(f"  Access token valid until {token.expires_at.isoformat()}")
    if token.refresh_token:
        print("  Refresh token stored; the access token will be refreshed automatically")
    return True


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Connect a marketplace account")
    parser.add_argument('marketplace', help=', '.join(m.value for m in MarketplaceId))
    parser.add_argument('--env-file', default=None, help="where to store the tokens")
    parser.add_argument('--no-browser', action='store_true', help="only print the URL")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)

    try:
        config = load_config()
        registry = MarketplaceRegistry(config)
        marketplace = registry.get(args.marketplace).marketplace_id
        store = TokenStore(registry, backend=DotenvTokenBackend(args.env_file))
        success = run_oauth_flow(store, marketplace, open_browser=not args.no_browser)
        return 0 if success else 1

    except (ConfigurationError, UnsupportedMarketplaceError) as e:
        print(f"❌ Configuration Error: {e}")
        return 1

    except KeyboardInterrupt:
        print("\n\nCancelled by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
