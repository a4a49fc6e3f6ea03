"""
Persistence contracts and reference store implementations.

The engine only talks to the abstract store classes. InMemoryStore backs
tests and embedding; JsonFileStore keeps wallets, tracked tokens and
snapshots in a single JSON document that is replaced atomically on every
write.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import PersistenceError
from .models import NetworkId, PortfolioSnapshot, TrackedToken, Wallet, identity_key

logger = logging.getLogger(__name__)


class WalletStore(ABC):
    @abstractmethod
    def create_wallet(self, wallet: Wallet) -> None:
        pass

    @abstractmethod
    def update_wallet_label(self, address: str, network: NetworkId, label: Optional[str]) -> bool:
        pass

    @abstractmethod
    def delete_wallet_by_address_and_network(self, address: str, network: NetworkId) -> bool:
        pass

    @abstractmethod
    def list_all_wallets(self) -> List[Wallet]:
        pass


class TokenStore(ABC):
    @abstractmethod
    def list_tokens_by_network(self, network: NetworkId) -> List[TrackedToken]:
        pass

    @abstractmethod
    def list_all_tokens(self) -> List[TrackedToken]:
        pass

    @abstractmethod
    def create_token(self, token: TrackedToken) -> None:
        pass

    @abstractmethod
    def delete_token(self, contract_address: str, network: NetworkId) -> bool:
        pass


class SnapshotStore(ABC):
    @abstractmethod
    def save_snapshot(self, snapshot: PortfolioSnapshot) -> str:
        """Persist a snapshot and return its id. Must be all-or-nothing."""
        pass

    @abstractmethod
    def get_latest_snapshot(self) -> Optional[PortfolioSnapshot]:
        pass

    @abstractmethod
    def get_snapshots_between(self, start: datetime, end: datetime) -> List[PortfolioSnapshot]:
        """Snapshots with start <= timestamp <= end, oldest first."""
        pass

    @abstractmethod
    def delete_snapshots_older_than(self, cutoff: datetime) -> int:
        pass


class ExchangeBalanceSource(ABC):
    """Optional external source of exchange-account holdings."""

    @abstractmethod
    def get_total_balance_usd(self) -> Decimal:
        pass


def new_snapshot_id() -> str:
    return uuid.uuid4().hex


class InMemoryStore(WalletStore, TokenStore, SnapshotStore):
    """All three store contracts held in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self.wallets: List[Wallet] = []
        self.tokens: List[TrackedToken] = []
        self.snapshots: List[PortfolioSnapshot] = []

    def create_wallet(self, wallet: Wallet) -> None:
        with self._lock:
            self.wallets.append(Wallet(wallet.address, wallet.network, wallet.label))

    def delete_wallet_by_address_and_network(self, address: str, network: NetworkId) -> bool:
        key = identity_key(address, network)
        with self._lock:
            before = len(self.wallets)
            self.wallets = [w for w in self.wallets if w.key != key]
            return len(self.wallets) < before

    def update_wallet_label(self, address: str, network: NetworkId, label: Optional[str]) -> bool:
        key = identity_key(address, network)
        with self._lock:
            for wallet in self.wallets:
                if wallet.key == key:
                    wallet.label = label
                    return True
            return False

    def list_all_wallets(self) -> List[Wallet]:
        with self._lock:
            return [Wallet(w.address, w.network, w.label) for w in self.wallets]

    def list_tokens_by_network(self, network: NetworkId) -> List[TrackedToken]:
        with self._lock:
            return [t for t in self.tokens if t.network == network]

    def list_all_tokens(self) -> List[TrackedToken]:
        with self._lock:
            return list(self.tokens)

    def create_token(self, token: TrackedToken) -> None:
        with self._lock:
            self.tokens.append(token)

    def delete_token(self, contract_address: str, network: NetworkId) -> bool:
        key = identity_key(contract_address, network)
        with self._lock:
            before = len(self.tokens)
            self.tokens = [t for t in self.tokens if t.key != key]
            return len(self.tokens) < before

    def save_snapshot(self, snapshot: PortfolioSnapshot) -> str:
        snapshot_id = snapshot.id or new_snapshot_id()
        with self._lock:
            self.snapshots.append(snapshot.with_id(snapshot_id))
        return snapshot_id

    def get_latest_snapshot(self) -> Optional[PortfolioSnapshot]:
        with self._lock:
            if not self.snapshots:
                return None
            return max(self.snapshots, key=lambda s: s.timestamp)

    def get_snapshots_between(self, start: datetime, end: datetime) -> List[PortfolioSnapshot]:
        with self._lock:
            selected = [s for s in self.snapshots if start <= s.timestamp <= end]
        return sorted(selected, key=lambda s: s.timestamp)

    def delete_snapshots_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            before = len(self.snapshots)
            self.snapshots = [s for s in self.snapshots if s.timestamp >= cutoff]
            return before - len(self.snapshots)


class JsonFileStore(WalletStore, TokenStore, SnapshotStore):
    """
    All three store contracts persisted to one JSON file.

    Every mutation reads the document, applies the change and replaces the
    file through a temporary sibling, so a failed write never leaves a
    partially written document behind.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"wallets": [], "tokens": [], "snapshots": []}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e
        for section in ("wallets", "tokens", "snapshots"):
            document.setdefault(section, [])
        return document

    def _write(self, document: Dict[str, Any]) -> None:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(directory))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

    def _records(self, section: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read()[section]

    # Wallets

    def create_wallet(self, wallet: Wallet) -> None:
        with self._lock:
            document = self._read()
            document["wallets"].append(wallet.to_dict())
            self._write(document)

    def delete_wallet_by_address_and_network(self, address: str, network: NetworkId) -> bool:
        key = identity_key(address, network)
        with self._lock:
            document = self._read()
            kept = [w for w in document["wallets"] if Wallet.from_dict(w).key != key]
            removed = len(kept) < len(document["wallets"])
            if removed:
                document["wallets"] = kept
                self._write(document)
            return removed

    def update_wallet_label(self, address: str, network: NetworkId, label: Optional[str]) -> bool:
        key = identity_key(address, network)
        with self._lock:
            document = self._read()
            for record in document["wallets"]:
                if Wallet.from_dict(record).key == key:
                    record["label"] = label
                    self._write(document)
                    return True
            return False

    def list_all_wallets(self) -> List[Wallet]:
        wallets: List[Wallet] = []
        for record in self._records("wallets"):
            try:
                wallets.append(Wallet.from_dict(record))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping unreadable wallet record %r: %s", record, e)
        return wallets

    # Tokens

    def list_all_tokens(self) -> List[TrackedToken]:
        tokens: List[TrackedToken] = []
        for record in self._records("tokens"):
            try:
                tokens.append(TrackedToken.from_dict(record))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping unreadable token record %r: %s", record, e)
        return tokens

    def list_tokens_by_network(self, network: NetworkId) -> List[TrackedToken]:
        return [t for t in self.list_all_tokens() if t.network == network]

    def create_token(self, token: TrackedToken) -> None:
        with self._lock:
            document = self._read()
            document["tokens"].append(token.to_dict())
            self._write(document)

    def delete_token(self, contract_address: str, network: NetworkId) -> bool:
        key = identity_key(contract_address, network)
        with self._lock:
            document = self._read()
            kept = [t for t in document["tokens"] if TrackedToken.from_dict(t).key != key]
            removed = len(kept) < len(document["tokens"])
            if removed:
                document["tokens"] = kept
                self._write(document)
            return removed

    # Snapshots

    def _snapshots(self) -> List[PortfolioSnapshot]:
        return [PortfolioSnapshot.from_dict(s) for s in self._records("snapshots")]

    def save_snapshot(self, snapshot: PortfolioSnapshot) -> str:
        snapshot_id = snapshot.id or new_snapshot_id()
        with self._lock:
            document = self._read()
            document["snapshots"].append(snapshot.with_id(snapshot_id).to_dict())
            self._write(document)
        return snapshot_id

    def get_latest_snapshot(self) -> Optional[PortfolioSnapshot]:
        snapshots = self._snapshots()
        if not snapshots:
            return None
        return max(snapshots, key=lambda s: s.timestamp)

    def get_snapshots_between(self, start: datetime, end: datetime) -> List[PortfolioSnapshot]:
        selected = [s for s in self._snapshots() if start <= s.timestamp <= end]
        return sorted(selected, key=lambda s: s.timestamp)

    def delete_snapshots_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            document = self._read()
            kept = [
                s for s in document["snapshots"]
                if datetime.fromisoformat(s["timestamp"]) >= cutoff
            ]
            deleted = len(document["snapshots"]) - len(kept)
            if deleted:
                document["snapshots"] = kept
                self._write(document)
            return deleted
