"""
Data models for multi-chain wallet valuation.

This module defines the wallet, token, balance and snapshot records that
flow between the registry, the balance fetcher, the valuation aggregator
and the snapshot orchestrator.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Context, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

# Raw on-chain integers reach 78 digits (uint256). Amount and value arithmetic
# goes through this context rather than the per-thread default (28 digits).
DECIMAL_CONTEXT = Context(prec=80)


class NetworkId(str, Enum):
    """Supported blockchain networks."""

    ETHEREUM = "ethereum"
    BSC = "bsc"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    OPTIMISM = "optimism"
    AVALANCHE = "avalanche"
    BASE = "base"
    SOLANA = "solana"

    @classmethod
    def parse(cls, value: str) -> "NetworkId":
        """
        Resolve a network name to a NetworkId.

        Raises:
            ValueError: If the network is not supported
        """
        try:
            return cls(value)
        except ValueError:
            supported = ", ".join(n.value for n in cls)
            raise ValueError(f"Unsupported network: {value}. Supported: {supported}") from None


# CSV column order for the per-token breakdown
CSV_COLUMNS = [
    "network",
    "address",
    "label",
    "symbol",
    "name",
    "contract_address",
    "amount",
    "unit_price",
    "value_usd",
]


def identity_key(address: str, network: NetworkId) -> tuple:
    """Identity of a wallet or token: lower-cased address plus network."""
    return (address.lower(), NetworkId(network))


def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize a Decimal without exponent notation, trailing zeros trimmed."""
    if value is None:
        return None
    formatted = format(value, "f")
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return formatted or "0"


@dataclass
class Wallet:
    """A tracked public address on one network."""

    address: str
    network: NetworkId
    label: Optional[str] = None

    @property
    def key(self) -> tuple:
        return identity_key(self.address, self.network)

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "network": self.network.value, "label": self.label}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Wallet":
        return cls(
            address=data["address"],
            network=NetworkId.parse(data["network"]),
            label=data.get("label") or None,
        )


@dataclass(frozen=True)
class TrackedToken:
    """A fungible token contract that is checked for balances."""

    contract_address: str
    network: NetworkId
    symbol: str
    name: str
    decimals: int

    @property
    def key(self) -> tuple:
        return identity_key(self.contract_address, self.network)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract_address": self.contract_address,
            "network": self.network.value,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedToken":
        return cls(
            contract_address=data["contract_address"],
            network=NetworkId.parse(data["network"]),
            symbol=data["symbol"],
            name=data["name"],
            decimals=int(data["decimals"]),
        )


@dataclass
class TokenBalance:
    """
    A holding of one asset in human-readable units.

    contract_address is None for the network's native coin. unit_price and
    value_usd stay None when no price could be resolved ("unknown", never
    "worthless").
    """

    symbol: str
    name: str
    amount: Decimal
    decimals: int
    contract_address: Optional[str] = None
    unit_price: Optional[Decimal] = None
    value_usd: Optional[Decimal] = None

    @property
    def is_native(self) -> bool:
        return self.contract_address is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "amount": decimal_to_str(self.amount),
            "decimals": self.decimals,
            "contract_address": self.contract_address,
            "unit_price": decimal_to_str(self.unit_price),
            "value_usd": decimal_to_str(self.value_usd),
        }


@dataclass(frozen=True)
class PriceQuote:
    """Spot USD price of a symbol at fetch time."""

    symbol: str
    price: Decimal
    change_24h: Optional[Decimal]
    fetched_at: float  # monotonic clock seconds


@dataclass
class WalletValuation:
    """Balances and USD total of one wallet, recomputed on every request."""

    wallet: Wallet
    total_value_usd: Decimal
    balances: List[TokenBalance] = field(default_factory=list)
    error: Optional[str] = None  # Set when the wallet could not be valued

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        data = self.wallet.to_dict()
        data["value_usd"] = decimal_to_str(self.total_value_usd)
        data["token_balances"] = [b.to_dict() for b in self.balances]
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class PortfolioReport:
    """Per-wallet valuations plus the wallets-only total."""

    total_value_usd: Decimal
    wallets: List[WalletValuation]


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Immutable, timestamped record of total portfolio valuation."""

    id: str
    timestamp: datetime
    total_value_usd: Decimal
    wallets_value_usd: Decimal
    exchange_value_usd: Decimal
    detail: Dict[str, Any]

    def with_id(self, snapshot_id: str) -> "PortfolioSnapshot":
        return replace(self, id=snapshot_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "total_value_usd": decimal_to_str(self.total_value_usd),
            "wallets_value_usd": decimal_to_str(self.wallets_value_usd),
            "exchange_value_usd": decimal_to_str(self.exchange_value_usd),
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortfolioSnapshot":
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            total_value_usd=Decimal(data["total_value_usd"]),
            wallets_value_usd=Decimal(data["wallets_value_usd"]),
            exchange_value_usd=Decimal(data["exchange_value_usd"]),
            detail=data.get("detail") or {},
        )


@dataclass(frozen=True)
class ChartPoint:
    """One point of the portfolio value time series."""

    timestamp: datetime
    total_value_usd: Decimal
    wallets_value_usd: Decimal
    exchange_value_usd: Decimal
