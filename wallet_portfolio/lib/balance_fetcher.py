"""
Resolve the token holdings of one wallet on one network.

The balance fetcher combines the tracked token registry with a network
adapter: it queries the native coin plus every tracked token, converts raw
on-chain integers to human units, and drops zero balances. A failed token
lookup is logged and omitted; only a network that cannot be used at all
(missing credential) is raised to the caller.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from .exceptions import TransientFetchError, WalletLevelError
from .models import DECIMAL_CONTEXT, NetworkId, TokenBalance, TrackedToken
from .network_adapters import NetworkAdapter
from .token_registry import TokenRegistry

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[NetworkId], NetworkAdapter]


def to_human_amount(raw_balance: int, decimals: int) -> Decimal:
    """
    Convert a raw on-chain balance to human-readable units.

    Args:
        raw_balance: Raw balance value (in smallest unit)
        decimals: Number of decimal places

    Returns:
        Exact Decimal amount

    Examples:
        to_human_amount(1000000, 6) -> Decimal("1")
        to_human_amount(1500000, 6) -> Decimal("1.5")
        to_human_amount(1234567890123456789, 18) -> Decimal("1.234567890123456789")
    """
    if raw_balance == 0:
        return Decimal(0)

    if decimals == 0:
        return Decimal(raw_balance)

    # Exponent shift, exact for any uint256 under DECIMAL_CONTEXT
    return Decimal(raw_balance).scaleb(-decimals, DECIMAL_CONTEXT)


def format_quantity(amount: Decimal) -> str:
    """Format an amount with full precision, trailing zeros trimmed."""
    if amount == 0:
        return "0"
    formatted = format(amount, "f")
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return formatted


class BalanceFetcher:
    """
    Produces the non-zero TokenBalances of an (address, network) pair.

    Token lookups within a wallet run on a bounded thread pool so the number
    of in-flight explorer requests never exceeds max_concurrency.
    """

    def __init__(
        self,
        token_registry: TokenRegistry,
        adapter_factory: AdapterFactory,
        max_concurrency: int = 4,
    ):
        """
        Initialize the fetcher.

        Args:
            token_registry: Source of tracked tokens per network
            adapter_factory: Returns the adapter for a network; raises
                ConfigurationError when the network cannot be used
            max_concurrency: Maximum parallel token lookups per wallet
        """
        self.token_registry = token_registry
        self.adapter_factory = adapter_factory
        self.max_concurrency = max(1, max_concurrency)

    def fetch_balances(self, address: str, network: NetworkId) -> List[TokenBalance]:
        """
        Fetch native and tracked-token balances for a wallet.

        Args:
            address: Wallet address
            network: Network the address lives on

        Returns:
            Non-zero balances, native coin first, tokens in registry order

        Raises:
            ConfigurationError: If the network has no usable credential
            WalletLevelError: If every lookup for the wallet failed
        """
        network = NetworkId(network)
        adapter = self.adapter_factory(network)
        tokens = self.token_registry.tokens_for(network)

        failures = 0
        attempts = 1
        balances: List[TokenBalance] = []

        native = self._fetch_native(adapter, address)
        if native is None:
            failures += 1
        elif native.amount > 0:
            balances.append(native)

        if adapter.supports_token_discovery:
            attempts += 1
            discovered = self._fetch_discovered(adapter, address, tokens)
            if discovered is None:
                failures += 1
            else:
                balances.extend(discovered)
        elif tokens:
            attempts += len(tokens)
            token_balances, token_failures = self._fetch_tracked(adapter, address, tokens)
            failures += token_failures
            balances.extend(token_balances)

        if failures:
            logger.warning(
                "[%s] Skipped %d of %d lookup(s) for %s due to fetch failures",
                network.value, failures, attempts, address,
            )
        if failures == attempts:
            raise WalletLevelError(f"All balance lookups failed for {address} on {network.value}")

        return balances

    def _fetch_native(self, adapter: NetworkAdapter, address: str) -> Optional[TokenBalance]:
        info = adapter.native_token_info()
        try:
            raw = adapter.get_native_balance(address)
        except TransientFetchError as e:
            logger.warning("[%s] Native balance lookup failed for %s: %s", adapter.network.value, address, e)
            return None
        return TokenBalance(
            symbol=info["symbol"],
            name=info["name"],
            amount=to_human_amount(raw, info["decimals"]),
            decimals=info["decimals"],
        )

    def _fetch_token(
        self, adapter: NetworkAdapter, address: str, token: TrackedToken
    ) -> Tuple[TrackedToken, Optional[int]]:
        try:
            return token, adapter.get_token_balance(address, token.contract_address)
        except TransientFetchError as e:
            logger.warning(
                "[%s] Error fetching balance for token %s: %s", adapter.network.value, token.symbol, e
            )
            return token, None

    def _fetch_tracked(
        self, adapter: NetworkAdapter, address: str, tokens: List[TrackedToken]
    ) -> Tuple[List[TokenBalance], int]:
        with ThreadPoolExecutor(max_workers=min(self.max_concurrency, len(tokens))) as pool:
            # map preserves registry order
            results = list(pool.map(lambda t: self._fetch_token(adapter, address, t), tokens))

        balances: List[TokenBalance] = []
        failures = 0
        for token, raw in results:
            if raw is None:
                failures += 1
                continue
            amount = to_human_amount(raw, token.decimals)
            if amount > 0:
                balances.append(
                    TokenBalance(
                        symbol=token.symbol,
                        name=token.name,
                        amount=amount,
                        decimals=token.decimals,
                        contract_address=token.contract_address,
                    )
                )
        return balances, failures

    def _fetch_discovered(
        self, adapter: NetworkAdapter, address: str, tokens: List[TrackedToken]
    ) -> Optional[List[TokenBalance]]:
        try:
            holdings = adapter.get_token_holdings(address)
        except TransientFetchError as e:
            logger.warning("[%s] Token list lookup failed for %s: %s", adapter.network.value, address, e)
            return None

        known: Dict[str, TrackedToken] = {t.contract_address.lower(): t for t in tokens}
        balances: List[TokenBalance] = []
        for holding in holdings:
            amount = to_human_amount(holding.amount, holding.decimals)
            if amount <= 0:
                continue
            tracked = known.get(holding.mint.lower())
            balances.append(
                TokenBalance(
                    symbol=holding.symbol or (tracked.symbol if tracked else "Unknown"),
                    name=holding.name or (tracked.name if tracked else "Unknown Token"),
                    amount=amount,
                    decimals=holding.decimals,
                    contract_address=holding.mint,
                )
            )
        return balances


def adapter_cache(factory: AdapterFactory) -> AdapterFactory:
    """
    Memoize an adapter factory per network.

    ConfigurationError is not cached, so a credential added later is picked up.
    """
    adapters: Dict[NetworkId, NetworkAdapter] = {}

    def get(network: NetworkId) -> NetworkAdapter:
        network = NetworkId(network)
        if network not in adapters:
            adapters[network] = factory(network)
        return adapters[network]

    return get
