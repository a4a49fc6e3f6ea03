"""
Portfolio snapshot orchestration.

Combines the wallet registry, balance fetcher and valuation aggregator
(plus an optional exchange-balance source) into one portfolio total and
persists it as an immutable, timestamped snapshot. Upstream failures are
absorbed per wallet; only persistence failures abort a run.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .balance_fetcher import BalanceFetcher
from .exceptions import PersistenceError, SnapshotCancelled
from .models import (
    DECIMAL_CONTEXT,
    ChartPoint,
    PortfolioReport,
    PortfolioSnapshot,
    Wallet,
    WalletValuation,
    decimal_to_str,
)
from .stores import ExchangeBalanceSource, SnapshotStore
from .valuation import ValuationAggregator
from .wallet_registry import WalletRegistry

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE_TIMEOUT = 15.0  # seconds


class SnapshotState(str, Enum):
    IDLE = "idle"
    FETCHING_WALLETS = "fetching_wallets"
    VALUATING_WALLETS = "valuating_wallets"
    AGGREGATING_EXCHANGE_BALANCES = "aggregating_exchange_balances"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SnapshotResult:
    snapshot_id: str
    total_value_usd: Decimal
    snapshot: PortfolioSnapshot
    report: PortfolioReport


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotHistory:
    """Read and retention queries over stored snapshots. Needs no price or explorer access."""

    def __init__(self, snapshot_store: SnapshotStore, clock: Callable[[], datetime] = utc_now):
        self.snapshot_store = snapshot_store
        self.clock = clock

    def _query(self, action: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def latest_snapshot(self) -> Optional[PortfolioSnapshot]:
        return self._query("get latest snapshot", self.snapshot_store.get_latest_snapshot)

    def snapshots_between(self, start: datetime, end: datetime) -> List[PortfolioSnapshot]:
        """Snapshots in [start, end], oldest first."""
        return self._query(
            "get snapshots", lambda: self.snapshot_store.get_snapshots_between(start, end)
        )

    def chart_points(self, days: int = 30) -> List[ChartPoint]:
        """Portfolio value series for the last `days` days, oldest first."""
        end = self.clock()
        start = end - timedelta(days=days)
        return [
            ChartPoint(
                timestamp=s.timestamp,
                total_value_usd=s.total_value_usd,
                wallets_value_usd=s.wallets_value_usd,
                exchange_value_usd=s.exchange_value_usd,
            )
            for s in self.snapshots_between(start, end)
        ]

    def cleanup_old_snapshots(self, keep_days: int = 365) -> int:
        """Delete snapshots older than keep_days. Returns the number deleted."""
        cutoff = self.clock() - timedelta(days=keep_days)
        deleted = self._query(
            "delete old snapshots", lambda: self.snapshot_store.delete_snapshots_older_than(cutoff)
        )
        logger.info("Deleted %d snapshots older than %s", deleted, cutoff.isoformat())
        return deleted


class PortfolioSnapshotOrchestrator:
    """
    Generates and queries portfolio snapshots.

    Snapshot generations are serialized by a lock. Wallets may be valued in
    parallel (bounded by max_concurrency); results are always reported in
    registry order.
    """

    def __init__(
        self,
        wallet_registry: WalletRegistry,
        balance_fetcher: BalanceFetcher,
        valuation: ValuationAggregator,
        snapshot_store: SnapshotStore,
        exchange_source: Optional[ExchangeBalanceSource] = None,
        max_concurrency: int = 1,
        clock: Callable[[], datetime] = utc_now,
        exchange_timeout: float = DEFAULT_EXCHANGE_TIMEOUT,
    ):
        self.wallet_registry = wallet_registry
        self.balance_fetcher = balance_fetcher
        self.valuation = valuation
        self.snapshot_store = snapshot_store
        self.exchange_source = exchange_source
        self.max_concurrency = max(1, max_concurrency)
        self.exchange_timeout = exchange_timeout
        self.history = SnapshotHistory(snapshot_store, clock)
        self.state = SnapshotState.IDLE
        self._run_lock = threading.Lock()

    @property
    def clock(self) -> Callable[[], datetime]:
        return self.history.clock

    @clock.setter
    def clock(self, clock: Callable[[], datetime]) -> None:
        self.history.clock = clock

    # Valuation

    def valuate_wallet(self, wallet: Wallet) -> WalletValuation:
        """Fetch and price one wallet. Errors propagate to the caller."""
        balances = self.balance_fetcher.fetch_balances(wallet.address, wallet.network)
        valued = self.valuation.valuate(balances)
        return WalletValuation(
            wallet=wallet,
            total_value_usd=self.valuation.wallet_total(valued),
            balances=valued,
        )

    def _valuate_or_flag(
        self, wallet: Wallet, cancel: Optional[threading.Event]
    ) -> Optional[WalletValuation]:
        if cancel is not None and cancel.is_set():
            return None
        try:
            valuation = self.valuate_wallet(wallet)
        except Exception as e:
            logger.error(
                "Failed to get value for wallet %s on %s: %s", wallet.address, wallet.network.value, e
            )
            return WalletValuation(wallet=wallet, total_value_usd=Decimal(0), balances=[], error=str(e))
        logger.info("Added wallet %s with value $%s", wallet.address, decimal_to_str(valuation.total_value_usd))
        return valuation

    def build_report(self, cancel: Optional[threading.Event] = None) -> PortfolioReport:
        """
        Value every tracked wallet.

        A wallet whose fetch or valuation fails is reported with a zero total,
        no balances and its error message; the remaining wallets are unaffected.

        Raises:
            SnapshotCancelled: If cancel is set before all wallets are valued
        """
        self.state = SnapshotState.FETCHING_WALLETS
        wallets = self.wallet_registry.list()
        logger.info("Using %d wallets to calculate total value", len(wallets))

        self.state = SnapshotState.VALUATING_WALLETS
        if not wallets:
            valuations: List[Optional[WalletValuation]] = []
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_concurrency, len(wallets))) as pool:
                valuations = list(pool.map(lambda w: self._valuate_or_flag(w, cancel), wallets))

        if cancel is not None and cancel.is_set():
            raise SnapshotCancelled("Snapshot run cancelled before persisting")

        completed = [v for v in valuations if v is not None]
        total = self.valuation.portfolio_total(completed)
        logger.info("Total wallet value: $%s from %d wallets", decimal_to_str(total), len(completed))
        return PortfolioReport(total_value_usd=total, wallets=completed)

    def exchange_total(self) -> Decimal:
        """
        Exchange-account total in USD.

        The source runs on its own worker thread and is given exchange_timeout
        seconds; a failing or slow source counts as zero and the run goes on.
        """
        if self.exchange_source is None:
            return Decimal(0)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="exchange-balance")
        try:
            future = pool.submit(self.exchange_source.get_total_balance_usd)
            value = future.result(timeout=self.exchange_timeout)
            return value if isinstance(value, Decimal) else Decimal(str(value))
        except FuturesTimeoutError:
            logger.warning("Exchange balance timed out after %ss; counting it as zero", self.exchange_timeout)
            return Decimal(0)
        except Exception as e:
            logger.warning("Could not fetch exchange balance: %s", e)
            return Decimal(0)
        finally:
            # Never wait on a hung source
            pool.shutdown(wait=False)

    # Snapshots

    def generate_snapshot(self, cancel: Optional[threading.Event] = None) -> SnapshotResult:
        """
        Value the whole portfolio and persist one snapshot.

        Args:
            cancel: Set it to abandon the run; nothing is persisted

        Returns:
            SnapshotResult with the stored snapshot

        Raises:
            PersistenceError: If the snapshot could not be saved
            SnapshotCancelled: If the run was abandoned
        """
        with self._run_lock:
            try:
                report = self.build_report(cancel)
            except SnapshotCancelled:
                self.state = SnapshotState.IDLE
                raise

            self.state = SnapshotState.AGGREGATING_EXCHANGE_BALANCES
            exchange_total = self.exchange_total()
            total = DECIMAL_CONTEXT.add(report.total_value_usd, exchange_total)

            if cancel is not None and cancel.is_set():
                self.state = SnapshotState.IDLE
                raise SnapshotCancelled("Snapshot run cancelled before persisting")

            timestamp = self.clock()
            snapshot = PortfolioSnapshot(
                id="",
                timestamp=timestamp,
                total_value_usd=total,
                wallets_value_usd=report.total_value_usd,
                exchange_value_usd=exchange_total,
                detail=self._detail(report, exchange_total, timestamp),
            )

            self.state = SnapshotState.PERSISTING
            try:
                snapshot_id = self.snapshot_store.save_snapshot(snapshot)
            except Exception as e:
                self.state = SnapshotState.FAILED
                logger.error("Failed to save portfolio snapshot: %s", e)
                if isinstance(e, PersistenceError):
                    raise
                raise PersistenceError(f"Failed to save portfolio snapshot: {e}") from e

            self.state = SnapshotState.DONE
            logger.info(
                "Saved portfolio snapshot %s with total value: $%s", snapshot_id, decimal_to_str(total)
            )
            return SnapshotResult(
                snapshot_id=snapshot_id,
                total_value_usd=total,
                snapshot=snapshot.with_id(snapshot_id),
                report=report,
            )

    @staticmethod
    def _detail(report: PortfolioReport, exchange_total: Decimal, timestamp: datetime) -> Dict[str, Any]:
        return {
            "wallets": [v.to_dict() for v in report.wallets],
            "failed_wallets": sum(1 for v in report.wallets if v.failed),
            "exchange_value_usd": decimal_to_str(exchange_total),
            "timestamp": timestamp.isoformat(),
        }

    # History queries

    def latest_snapshot(self) -> Optional[PortfolioSnapshot]:
        return self.history.latest_snapshot()

    def snapshots_between(self, start: datetime, end: datetime) -> List[PortfolioSnapshot]:
        return self.history.snapshots_between(start, end)

    def chart_points(self, days: int = 30) -> List[ChartPoint]:
        return self.history.chart_points(days)

    def cleanup_old_snapshots(self, keep_days: int = 365) -> int:
        return self.history.cleanup_old_snapshots(keep_days)
