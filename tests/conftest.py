"""
Pytest configuration and shared fixtures for wallet-portfolio tests.
"""

import time
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from wallet_portfolio.lib.exceptions import PersistenceError, TransientFetchError
from wallet_portfolio.lib.models import NetworkId, PriceQuote
from wallet_portfolio.lib.network_adapters import NetworkAdapter, SplHolding
from wallet_portfolio.lib.stores import InMemoryStore
from wallet_portfolio.lib.token_registry import TokenRegistry


@pytest.fixture
def sample_wallet_address():
    """Sample Ethereum wallet address for testing."""
    return "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"  # vitalik.eth


@pytest.fixture
def sample_solana_address():
    """Sample Solana wallet address for testing."""
    return "GKvqsuNcnwWqPzzuhLmGi4rzzh55FhJtGizkhHaEJqiV"


@pytest.fixture
def mock_explorer_api_key():
    """Mock explorer API key for testing."""
    return "test-explorer-key-12345"


@pytest.fixture
def mock_cmc_api_key():
    """Mock CoinMarketCap API key for testing."""
    return "test-cmc-key-67890"


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def token_registry(memory_store):
    return TokenRegistry(memory_store)


class FakeAdapter(NetworkAdapter):
    """
    Adapter serving canned raw balances.

    A value of TransientFetchError (the class) in native or tokens makes that
    lookup fail.
    """

    def __init__(
        self,
        network: NetworkId = NetworkId.ETHEREUM,
        native=0,
        tokens: Optional[Dict[str, object]] = None,
        holdings: Optional[List[SplHolding]] = None,
    ):
        super().__init__(network, "https://fake.invalid", "fake-key", http=None)
        self.native = native
        self.tokens = tokens or {}
        self.holdings = holdings
        self.supports_token_discovery = holdings is not None
        self.calls: List[str] = []

    def get_native_balance(self, address: str) -> int:
        self.calls.append("native")
        if self.native is TransientFetchError:
            raise TransientFetchError("native lookup failed")
        return self.native

    def get_token_balance(self, address: str, contract_address: str) -> int:
        self.calls.append(contract_address)
        value = self.tokens.get(contract_address, 0)
        if value is TransientFetchError:
            raise TransientFetchError(f"token lookup failed for {contract_address}")
        return value

    def get_token_holdings(self, address: str) -> List[SplHolding]:
        self.calls.append("holdings")
        if self.holdings is None:
            return super().get_token_holdings(address)
        return list(self.holdings)


class FakePriceProvider:
    """Price provider returning fixed USD prices and recording every request."""

    def __init__(self, prices: Optional[Dict[str, str]] = None, error: Optional[Exception] = None):
        self.prices = {k: Decimal(v) for k, v in (prices or {}).items()}
        self.error = error
        self.requests: List[List[str]] = []

    def fetch_quotes(self, symbols: List[str]) -> Dict[str, PriceQuote]:
        self.requests.append(list(symbols))
        if self.error is not None:
            raise self.error
        return {
            s: PriceQuote(symbol=s, price=self.prices[s], change_24h=None, fetched_at=time.monotonic())
            for s in symbols
            if s in self.prices
        }


class FailingStore(InMemoryStore):
    """InMemoryStore whose selected operations raise PersistenceError."""

    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = set(fail_on)
        self.create_calls = 0

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise PersistenceError(f"{operation} failed")

    def create_wallet(self, wallet):
        self.create_calls += 1
        self._check("create_wallet")
        super().create_wallet(wallet)

    def update_wallet_label(self, address, network, label):
        self._check("update_wallet_label")
        return super().update_wallet_label(address, network, label)

    def delete_wallet_by_address_and_network(self, address, network):
        self._check("delete_wallet")
        return super().delete_wallet_by_address_and_network(address, network)

    def list_all_wallets(self):
        self._check("list_all_wallets")
        return super().list_all_wallets()

    def save_snapshot(self, snapshot):
        self._check("save_snapshot")
        return super().save_snapshot(snapshot)


@pytest.fixture
def fake_adapter_cls():
    return FakeAdapter


@pytest.fixture
def fake_price_provider_cls():
    return FakePriceProvider


@pytest.fixture
def failing_store_cls():
    return FailingStore
