"""
Authoritative set of tracked wallets.

The registry keeps an in-memory list (in insertion order) mirrored to a
WalletStore. Mutations are applied tentatively in memory, persisted, and
then either kept or rolled back, so memory and storage agree once any
operation returns or raises.
"""

import logging
import threading
from typing import Callable, List, Optional, TypeVar

from .exceptions import PersistenceError
from .models import NetworkId, Wallet, identity_key
from .stores import WalletStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WalletRegistry:
    def __init__(self, store: WalletStore):
        self.store = store
        self._wallets: List[Wallet] = []
        self._lock = threading.RLock()

    def _persist(self, action: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def _find_index(self, address: str, network: NetworkId) -> Optional[int]:
        key = identity_key(address, network)
        for i, wallet in enumerate(self._wallets):
            if wallet.key == key:
                return i
        return None

    def _replace_with(self, stored: List[Wallet]) -> None:
        self._wallets = []
        for wallet in stored:
            if self._find_index(wallet.address, wallet.network) is None:
                self._wallets.append(Wallet(wallet.address, wallet.network, wallet.label))

    def load(self) -> int:
        """
        Replace the in-memory set with the stored wallets.

        A store failure is logged and leaves the registry empty rather than
        blocking startup. Duplicate stored records collapse to the first one.

        Returns:
            Number of wallets loaded
        """
        with self._lock:
            self._wallets = []
            try:
                stored = self.store.list_all_wallets()
            except Exception as e:
                logger.error("Error loading wallets from store: %s", e)
                return 0

            self._replace_with(stored)
            logger.info("Loaded %d wallets from store", len(self._wallets))
            return len(self._wallets)

    def add(self, address: str, network: NetworkId, label: Optional[str] = None) -> Wallet:
        """
        Start tracking a wallet.

        If the wallet is already tracked, only its label is updated (when a
        new one is given); no duplicate record is created.

        Returns:
            Copy of the tracked wallet

        Raises:
            PersistenceError: If the store write fails (the in-memory change is rolled back)
        """
        network = NetworkId(network)
        address = address.strip()
        if not address:
            raise ValueError("Wallet address must not be empty")

        with self._lock:
            index = self._find_index(address, network)
            if index is not None:
                existing = self._wallets[index]
                if label and label != existing.label:
                    previous = existing.label
                    existing.label = label
                    try:
                        self._persist(
                            "update wallet label",
                            lambda: self.store.update_wallet_label(existing.address, network, label),
                        )
                    except PersistenceError:
                        existing.label = previous
                        raise
                    logger.info("Updated label of wallet %s (%s)", address, network.value)
                else:
                    logger.info("Wallet %s (%s) already exists", address, network.value)
                return Wallet(existing.address, existing.network, existing.label)

            # Tentative apply
            wallet = Wallet(address, network, label or None)
            self._wallets.append(wallet)
            try:
                self._persist("add wallet", lambda: self.store.create_wallet(wallet))
            except PersistenceError as e:
                # Roll back
                self._wallets = [w for w in self._wallets if w is not wallet]
                logger.error("Error adding wallet %s to store: %s", address, e)
                raise
            logger.info("Tracking wallet %s (%s)", address, network.value)
            return Wallet(wallet.address, wallet.network, wallet.label)

    def remove(self, address: str, network: NetworkId) -> bool:
        """
        Stop tracking a wallet.

        Returns:
            True if the wallet was tracked

        Raises:
            PersistenceError: If the store delete fails. The registry is then
                resynced from the store, or restored as it was if the store
                cannot be read either.
        """
        network = NetworkId(network)
        address = address.strip()
        if not address:
            raise ValueError("Wallet address must not be empty")

        with self._lock:
            previous = list(self._wallets)
            index = self._find_index(address, network)
            if index is not None:
                del self._wallets[index]
            try:
                self._persist(
                    "remove wallet",
                    lambda: self.store.delete_wallet_by_address_and_network(address, network),
                )
            except PersistenceError as e:
                logger.error("Error removing wallet %s from store: %s", address, e)
                self._resync(previous)
                raise
            return index is not None

    def _resync(self, previous: List[Wallet]) -> None:
        try:
            stored = self.store.list_all_wallets()
        except Exception as e:
            logger.error("Could not resync wallets from store, keeping previous set: %s", e)
            self._wallets = previous
            return
        self._replace_with(stored)

    def list(self) -> List[Wallet]:
        """Copies of the tracked wallets in registry order."""
        with self._lock:
            return [Wallet(w.address, w.network, w.label) for w in self._wallets]

    def __len__(self) -> int:
        with self._lock:
            return len(self._wallets)
