"""
Runtime configuration loaded from environment variables.

An optional .env file in the working directory is read first; values
already present in the environment take precedence.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .models import NetworkId

# Environment variable holding each network's explorer credential
EXPLORER_KEY_VARS = {
    NetworkId.ETHEREUM: "ETHERSCAN_API_KEY",
    NetworkId.BSC: "BSCSCAN_API_KEY",
    NetworkId.POLYGON: "POLYGONSCAN_API_KEY",
    NetworkId.ARBITRUM: "ARBISCAN_API_KEY",
    NetworkId.OPTIMISM: "OPTIMISTIC_ETHERSCAN_API_KEY",
    NetworkId.AVALANCHE: "SNOWTRACE_API_KEY",
    NetworkId.BASE: "BASESCAN_API_KEY",
    NetworkId.SOLANA: "SOLSCAN_API_KEY",
}


@dataclass
class Settings:
    explorer_api_keys: Dict[NetworkId, str] = field(default_factory=dict)
    coin_market_cap_api_key: Optional[str] = None
    price_cache_ttl_seconds: float = 300.0
    http_timeout_seconds: float = 15.0
    http_max_retries: int = 3
    max_concurrent_requests: int = 4
    min_usd_value_to_show: Decimal = Decimal("10")
    snapshot_retention_days: int = 365
    data_file: str = "portfolio.json"
    log_level: str = "INFO"

    def explorer_key(self, network: NetworkId) -> Optional[str]:
        return self.explorer_api_keys.get(NetworkId(network))

    @property
    def secrets(self):
        keys = list(self.explorer_api_keys.values())
        if self.coin_market_cap_api_key:
            keys.append(self.coin_market_cap_api_key)
        return keys


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except (ValueError, ArithmeticError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env: Mapping to read instead of os.environ (the .env file is skipped)
        dotenv_path: Explicit .env location

    Returns:
        Populated Settings

    Raises:
        ConfigurationError: If a numeric setting cannot be parsed
    """
    if env is None:
        load_dotenv(dotenv_path=dotenv_path)
        env = os.environ

    keys = {}
    for network, var in EXPLORER_KEY_VARS.items():
        value = (env.get(var) or "").strip()
        if value:
            keys[network] = value

    defaults = Settings()
    return Settings(
        explorer_api_keys=keys,
        coin_market_cap_api_key=(env.get("COIN_MARKET_CAP_API_KEY") or "").strip() or None,
        price_cache_ttl_seconds=_number(
            env, "PRICE_CACHE_TTL_SECONDS", defaults.price_cache_ttl_seconds, float
        ),
        http_timeout_seconds=_number(env, "HTTP_TIMEOUT_SECONDS", defaults.http_timeout_seconds, float),
        http_max_retries=_number(env, "HTTP_MAX_RETRIES", defaults.http_max_retries, int),
        max_concurrent_requests=max(
            1, _number(env, "MAX_CONCURRENT_REQUESTS", defaults.max_concurrent_requests, int)
        ),
        min_usd_value_to_show=_number(
            env, "MIN_USD_VALUE_TO_SHOW", defaults.min_usd_value_to_show, Decimal
        ),
        snapshot_retention_days=_number(
            env, "SNAPSHOT_RETENTION_DAYS", defaults.snapshot_retention_days, int
        ),
        data_file=(env.get("PORTFOLIO_DATA_FILE") or "").strip() or defaults.data_file,
        log_level=(env.get("LOG_LEVEL") or defaults.log_level).strip().upper(),
    )
