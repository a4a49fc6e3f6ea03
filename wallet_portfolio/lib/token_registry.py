"""
Registry of fungible tokens checked for non-native balances.
"""

import logging
from typing import List

from .exceptions import DuplicateTokenError, PersistenceError
from .models import NetworkId, TrackedToken, identity_key
from .stores import TokenStore

logger = logging.getLogger(__name__)

# Curated tokens loaded into an empty store by seed_defaults()
DEFAULT_TRACKED_TOKENS = [
    TrackedToken("0x82a605D6D9114F4Ad6D5Ee461027477EeED31E34", NetworkId.ETHEREUM, "SNSY", "Sensay", 18),
    TrackedToken("0xdAC17F958D2ee523a2206206994597C13D831ec7", NetworkId.ETHEREUM, "USDT", "Tether", 6),
    TrackedToken("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", NetworkId.ETHEREUM, "USDC", "USD Coin", 6),
    TrackedToken("0x55d398326f99059fF775485246999027B3197955", NetworkId.BSC, "USDT", "Tether", 18),
    TrackedToken("0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2", NetworkId.BASE, "USDT", "Tether", 6),
    TrackedToken("0x50CE4129Ca261CCDe4EB100c170843c2936Bc11b", NetworkId.BASE, "KOLZ", "Kolz", 18),
]


class TokenRegistry:
    """Read-mostly view over the tracked token store."""

    def __init__(self, store: TokenStore):
        self.store = store

    def tokens_for(self, network: NetworkId) -> List[TrackedToken]:
        """List tracked tokens on one network."""
        try:
            return self.store.list_tokens_by_network(NetworkId(network))
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list tokens for {network}: {e}") from e

    def all_tokens(self) -> List[TrackedToken]:
        try:
            return self.store.list_all_tokens()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list tokens: {e}") from e

    def find(self, contract_address: str, network: NetworkId):
        """Return the tracked token with this identity key, or None."""
        key = identity_key(contract_address, network)
        for token in self.tokens_for(network):
            if token.key == key:
                return token
        return None

    def add_token(self, token: TrackedToken) -> TrackedToken:
        """
        Register a token.

        Raises:
            DuplicateTokenError: If the contract is already tracked on that network
            PersistenceError: If the store write fails
        """
        if self.find(token.contract_address, token.network) is not None:
            raise DuplicateTokenError(
                f"Token with contract address {token.contract_address} "
                f"on {token.network.value} already exists"
            )
        try:
            self.store.create_token(token)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save token {token.symbol}: {e}") from e
        logger.info("Tracking %s (%s) on %s", token.symbol, token.contract_address, token.network.value)
        return token

    def remove_token(self, contract_address: str, network: NetworkId) -> bool:
        try:
            return self.store.delete_token(contract_address, NetworkId(network))
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to delete token {contract_address}: {e}") from e

    def seed_defaults(self) -> int:
        """Add every default token that is not tracked yet. Returns the number added."""
        added = 0
        for token in DEFAULT_TRACKED_TOKENS:
            if self.find(token.contract_address, token.network) is None:
                self.add_token(token)
                added += 1
        return added
