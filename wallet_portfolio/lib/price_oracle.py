"""
Spot price lookup with a short-lived cache.

CoinMarketCapClient talks to the market-data provider; PriceOracle sits in
front of it and serves quotes from a per-symbol TTL cache shared by every
caller in the process. Stale entries are evicted lazily on lookup.
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from .exceptions import ConfigurationError, PriceUnavailable, TransientFetchError
from .http_client import HttpClient
from .models import PriceQuote

logger = logging.getLogger(__name__)

COIN_MARKET_CAP_URL = "https://pro-api.coinmarketcap.com/v2/cryptocurrency/quotes/latest"
DEFAULT_TTL_SECONDS = 300.0
DEFAULT_BATCH_SIZE = 100

# Wrapped / staked tickers priced as their canonical asset
SYMBOL_ALIASES = {
    "WETH": "ETH",
    "WBNB": "BNB",
    "WMATIC": "MATIC",
    "WAVAX": "AVAX",
    "WSOL": "SOL",
    "WBTC": "BTC",
    "LDBTC": "BTC",
}


def normalize_symbol(symbol: str) -> str:
    """Upper-case a ticker and map it to its canonical pricing symbol."""
    upper = symbol.strip().upper()
    return SYMBOL_ALIASES.get(upper, upper)


class CoinMarketCapClient:
    """Quote endpoint client for the CoinMarketCap Pro API."""

    def __init__(self, api_key: Optional[str], http: HttpClient, batch_size: int = DEFAULT_BATCH_SIZE):
        if not api_key:
            raise ConfigurationError("API key not configured for CoinMarketCap")
        self.api_key = api_key
        self.http = http
        self.batch_size = batch_size

    def fetch_quotes(self, symbols: List[str]) -> Dict[str, PriceQuote]:
        """
        Fetch USD quotes for many symbols, one request per batch.

        Args:
            symbols: Upper-case ticker symbols

        Returns:
            Quotes keyed by upper-case symbol; unknown symbols are absent

        Raises:
            TransientFetchError: If a request fails
        """
        quotes: Dict[str, PriceQuote] = {}
        for start in range(0, len(symbols), self.batch_size):
            batch = symbols[start:start + self.batch_size]
            data = self.http.get_json(
                COIN_MARKET_CAP_URL,
                params={"symbol": ",".join(batch), "skip_invalid": "true"},
                headers={"X-CMC_PRO_API_KEY": self.api_key, "Accept": "application/json"},
            )
            quotes.update(self._parse(data))
        return quotes

    def _parse(self, payload) -> Dict[str, PriceQuote]:
        fetched_at = time.monotonic()
        quotes: Dict[str, PriceQuote] = {}
        entries = (payload or {}).get("data") or {}
        for symbol, listings in entries.items():
            # A ticker can map to several assets; the first listing is the ranked one
            if isinstance(listings, dict):
                listings = [listings]
            if not listings:
                continue
            usd = ((listings[0].get("quote") or {}).get("USD")) or {}
            price = usd.get("price")
            if price is None:
                continue
            change = usd.get("percent_change_24h")
            quotes[symbol.upper()] = PriceQuote(
                symbol=symbol.upper(),
                price=Decimal(str(price)),
                change_24h=Decimal(str(change)) if change is not None else None,
                fetched_at=fetched_at,
            )
        return quotes


class PriceOracle:
    """
    Cached spot prices.

    Every cache read and write happens under one lock, so a stale read can
    never interleave with a fresh write for the same symbol. Network calls
    are made outside the lock.
    """

    def __init__(
        self,
        provider: CoinMarketCapClient,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._cache: Dict[str, PriceQuote] = {}
        self._lock = threading.Lock()

    def _cached(self, symbol: str) -> Optional[PriceQuote]:
        with self._lock:
            quote = self._cache.get(symbol)
            if quote is None:
                return None
            if self.clock() - quote.fetched_at < self.ttl_seconds:
                return quote
            del self._cache[symbol]
            return None

    def _store(self, quotes: Iterable[PriceQuote]) -> None:
        now = self.clock()
        with self._lock:
            for quote in quotes:
                # TTL is measured against the oracle clock
                self._cache[quote.symbol] = PriceQuote(
                    quote.symbol, quote.price, quote.change_24h, now
                )

    def get_price(self, symbol: str) -> PriceQuote:
        """
        Get one symbol's quote.

        Raises:
            PriceUnavailable: If the provider does not know the symbol or the call fails
        """
        key = symbol.strip().upper()
        cached = self._cached(key)
        if cached is not None:
            return cached

        try:
            quotes = self.provider.fetch_quotes([key])
        except TransientFetchError as e:
            raise PriceUnavailable(f"Failed to fetch price for {key}: {e}") from e

        quote = quotes.get(key)
        if quote is None:
            raise PriceUnavailable(f"Price not found for token: {key}")
        self._store([quote])
        return self._cached(key) or quote

    def get_prices(self, symbols: Iterable[str]) -> Dict[str, PriceQuote]:
        """
        Get quotes for many symbols with at most one provider round per call.

        Symbols the provider does not return are absent from the result. A
        failed provider call is logged and only cached quotes are returned.
        """
        wanted: List[str] = []
        for symbol in symbols:
            key = symbol.strip().upper()
            if key and key not in wanted:
                wanted.append(key)

        result: Dict[str, PriceQuote] = {}
        missing: List[str] = []
        for key in wanted:
            cached = self._cached(key)
            if cached is not None:
                result[key] = cached
            else:
                missing.append(key)

        if not missing:
            return result

        try:
            fetched = self.provider.fetch_quotes(missing)
        except TransientFetchError as e:
            logger.warning("Failed to fetch batch prices for %s: %s", ",".join(missing), e)
            return result

        fresh = [fetched[key] for key in missing if key in fetched]
        self._store(fresh)
        for quote in fresh:
            result[quote.symbol] = quote
        for key in missing:
            if key not in fetched:
                logger.warning("No price data found for %s", key)
        return result

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


def format_price_message(symbol: str, price: Decimal, change_24h: Optional[Decimal]) -> str:
    """Format a quote for display, e.g. "BTC: $64,000.00 +2.50% 24h"."""
    line = f"{symbol.upper()}: ${price:,.2f}"
    if change_24h is not None:
        # Percentages are display-only; float formatting is fine here
        change = float(change_24h)
        prefix = "+" if change > 0 else ""
        line += f" {prefix}{change:.2f}% 24h"
    return line
