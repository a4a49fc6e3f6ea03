"""
Per-network balance adapters.

Each adapter answers two questions for one network: what is an address's
native-coin balance, and what is its balance of a given token contract.
EVM-style chains share one explorer request style; Solana has its own
transport and response shape. Balances are returned as raw on-chain
integers (smallest unit); conversion to human units happens in the
balance fetcher.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError, TransientFetchError
from .http_client import HttpClient
from .models import NetworkId

# Explorer API endpoint per network
NETWORK_ENDPOINTS = {
    NetworkId.ETHEREUM: "https://api.etherscan.io/api",
    NetworkId.BSC: "https://api.bscscan.com/api",
    NetworkId.POLYGON: "https://api.polygonscan.com/api",
    NetworkId.ARBITRUM: "https://api.arbiscan.io/api",
    NetworkId.OPTIMISM: "https://api-optimistic.etherscan.io/api",
    NetworkId.AVALANCHE: "https://api.snowtrace.io/api",
    NetworkId.BASE: "https://api.basescan.org/api",
    NetworkId.SOLANA: "https://public-api.solscan.io",
}

# Native token configuration for each network
NATIVE_TOKENS = {
    NetworkId.ETHEREUM: {"symbol": "ETH", "name": "Ethereum", "decimals": 18},
    NetworkId.BSC: {"symbol": "BNB", "name": "Binance Coin", "decimals": 18},
    NetworkId.POLYGON: {"symbol": "MATIC", "name": "Polygon", "decimals": 18},
    NetworkId.ARBITRUM: {"symbol": "ETH", "name": "Ethereum", "decimals": 18},
    NetworkId.OPTIMISM: {"symbol": "ETH", "name": "Ethereum", "decimals": 18},
    NetworkId.AVALANCHE: {"symbol": "AVAX", "name": "Avalanche", "decimals": 18},
    NetworkId.BASE: {"symbol": "ETH", "name": "Ethereum", "decimals": 18},
    NetworkId.SOLANA: {"symbol": "SOL", "name": "Solana", "decimals": 9},
}


@dataclass
class SplHolding:
    """Represents an SPL token account reported by Solscan."""

    mint: str
    symbol: Optional[str]
    name: Optional[str]
    amount: int  # Raw amount in smallest unit
    decimals: int


class NetworkAdapter(ABC):
    """
    Abstract base class for network adapters.

    Subclasses that can enumerate every token held by an address (instead of
    probing known contracts one by one) set supports_token_discovery.
    """

    supports_token_discovery = False

    def __init__(self, network: NetworkId, base_url: str, api_key: str, http: HttpClient):
        """
        Initialize the adapter.

        Args:
            network: Network this adapter serves
            base_url: Explorer API base URL
            api_key: Explorer API credential
            http: Shared HTTP client
        """
        self.network = network
        self.base_url = base_url
        self.api_key = api_key
        self.http = http

    @abstractmethod
    def get_native_balance(self, address: str) -> int:
        """Get the native-coin balance of an address in the smallest unit."""
        pass

    @abstractmethod
    def get_token_balance(self, address: str, contract_address: str) -> int:
        """Get an address's balance of a token contract in the smallest unit."""
        pass

    def get_token_holdings(self, address: str) -> List[SplHolding]:
        """List every token held by an address (discovery-capable networks only)."""
        raise NotImplementedError(f"{self.network.value} does not support token discovery")

    def native_token_info(self) -> Dict[str, Any]:
        """
        Get native token info for this adapter's network.

        Returns:
            Dict with symbol, name, and decimals
        """
        return NATIVE_TOKENS[self.network].copy()


class EvmExplorerAdapter(NetworkAdapter):
    """
    Adapter for Etherscan-family explorers (Ethereum, BSC, Polygon, Arbitrum,
    Optimism, Avalanche, Base).
    """

    def _account_query(self, action: str, address: str, **extra: str) -> int:
        params = {
            "module": "account",
            "action": action,
            "address": address,
            "tag": "latest",
            "apikey": self.api_key,
        }
        params.update(extra)

        data = self.http.get_json(self.base_url, params=params)

        if not isinstance(data, dict) or data.get("status") != "1":
            message = data.get("result") or data.get("message") if isinstance(data, dict) else data
            raise TransientFetchError(f"[{self.network.value}] {action} lookup failed: {message}")

        try:
            return int(data["result"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransientFetchError(
                f"[{self.network.value}] {action} returned a non-integer result"
            ) from e

    def get_native_balance(self, address: str) -> int:
        return self._account_query("balance", address)

    def get_token_balance(self, address: str, contract_address: str) -> int:
        return self._account_query("tokenbalance", address, contractaddress=contract_address)


class SolanaAdapter(NetworkAdapter):
    """
    Adapter for Solana via the Solscan public API.

    Solscan lists every SPL token account of an owner in one call, so token
    balances are discovered rather than queried per contract.
    """

    supports_token_discovery = True

    def _get(self, path: str, address: str) -> Any:
        headers = {"token": self.api_key} if self.api_key else {}
        return self.http.get_json(
            f"{self.base_url}{path}", params={"account": address}, headers=headers
        )

    def get_native_balance(self, address: str) -> int:
        """
        Get SOL balance in lamports.

        Args:
            address: Solana wallet public key (base58)
        """
        data = self._get("/account/solBalance", address)
        try:
            return int(data["lamports"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransientFetchError("[solana] solBalance response missing lamports") from e

    def get_token_holdings(self, address: str) -> List[SplHolding]:
        """
        Get all SPL token accounts for an owner.

        Args:
            address: Solana wallet public key (base58)

        Returns:
            List of SplHolding objects
        """
        data = self._get("/account/tokens", address)
        if not isinstance(data, list):
            raise TransientFetchError("[solana] unexpected token list response")

        holdings: List[SplHolding] = []
        for item in data:
            token_amount = item.get("tokenAmount") or {}
            try:
                amount = int(token_amount.get("amount", 0))
                decimals = int(token_amount.get("decimals", 0))
            except (TypeError, ValueError):
                continue
            holdings.append(
                SplHolding(
                    mint=item.get("tokenAddress", ""),
                    symbol=item.get("tokenSymbol"),
                    name=item.get("tokenName"),
                    amount=amount,
                    decimals=decimals,
                )
            )
        return holdings

    def get_token_balance(self, address: str, contract_address: str) -> int:
        for holding in self.get_token_holdings(address):
            if holding.mint == contract_address:
                return holding.amount
        return 0


def create_adapter(network: NetworkId, api_key: Optional[str], http: HttpClient) -> NetworkAdapter:
    """
    Factory function to create the appropriate adapter for a network.

    Args:
        network: Network identifier
        api_key: Explorer credential for the network
        http: Shared HTTP client

    Returns:
        Adapter instance for the network

    Raises:
        ConfigurationError: If no credential is configured for the network
    """
    network = NetworkId(network)
    if not api_key:
        raise ConfigurationError(f"API key not configured for network: {network.value}")

    base_url = NETWORK_ENDPOINTS[network]
    if network in (
        NetworkId.ETHEREUM,
        NetworkId.BSC,
        NetworkId.POLYGON,
        NetworkId.ARBITRUM,
        NetworkId.OPTIMISM,
        NetworkId.AVALANCHE,
        NetworkId.BASE,
    ):
        return EvmExplorerAdapter(network, base_url, api_key, http)
    elif network == NetworkId.SOLANA:
        return SolanaAdapter(network, base_url, api_key, http)
    else:
        raise ConfigurationError(f"Unsupported network: {network.value}")
