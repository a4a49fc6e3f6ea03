"""
Exception hierarchy for wallet portfolio valuation.

Only ConfigurationError and PersistenceError are meant to reach callers of
the engine. Transient and wallet-level failures are absorbed into the data
model (omitted tokens, unknown prices, zero-valued wallets).
"""

from typing import Optional


class WalletPortfolioError(Exception):
    """Base class for all wallet portfolio errors."""

    pass


class ConfigurationError(WalletPortfolioError):
    """Raised when a network or provider cannot be used as configured (e.g. missing API key)."""

    pass


class PersistenceError(WalletPortfolioError):
    """Raised when a store read or write fails."""

    pass


class DuplicateTokenError(WalletPortfolioError):
    """Raised when a tracked token with the same contract and network already exists."""

    pass


class TransientFetchError(WalletPortfolioError):
    """Raised for a single failed lookup against an external API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(TransientFetchError):
    """Raised when rate limit is exceeded and retries are exhausted."""

    pass


class PriceUnavailable(TransientFetchError):
    """Raised when the market-data provider has no price for a symbol."""

    pass


class WalletLevelError(WalletPortfolioError):
    """Raised when a whole wallet cannot be fetched or valued."""

    pass


class SnapshotCancelled(WalletPortfolioError):
    """Raised when a snapshot run is abandoned before persisting."""

    pass
