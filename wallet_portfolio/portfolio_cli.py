#!/usr/bin/env python3
"""
Track wallet addresses across blockchain networks and value the portfolio.

This script manages the tracked wallet and token lists, prints valuation
reports, and records portfolio snapshots to the local data file.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from wallet_portfolio.lib.balance_fetcher import BalanceFetcher, adapter_cache
from wallet_portfolio.lib.config import Settings, load_settings
from wallet_portfolio.lib.exceptions import WalletPortfolioError
from wallet_portfolio.lib.formatters import (
    format_snapshot_summary,
    format_total_holdings,
    format_wallet_report,
    write_balances_csv,
    write_balances_csv_file,
)
from wallet_portfolio.lib.http_client import HttpClient
from wallet_portfolio.lib.models import NetworkId, TrackedToken
from wallet_portfolio.lib.network_adapters import create_adapter
from wallet_portfolio.lib.price_oracle import CoinMarketCapClient, PriceOracle, format_price_message
from wallet_portfolio.lib.snapshot import PortfolioSnapshotOrchestrator, SnapshotHistory
from wallet_portfolio.lib.stores import JsonFileStore
from wallet_portfolio.lib.token_registry import TokenRegistry
from wallet_portfolio.lib.valuation import ValuationAggregator
from wallet_portfolio.lib.wallet_registry import WalletRegistry

SUPPORTED_NETWORKS = [n.value for n in NetworkId]


@dataclass
class Services:
    settings: Settings
    store: JsonFileStore
    wallets: WalletRegistry
    tokens: TokenRegistry
    http: HttpClient

    def price_oracle(self) -> PriceOracle:
        provider = CoinMarketCapClient(self.settings.coin_market_cap_api_key, self.http)
        return PriceOracle(provider, ttl_seconds=self.settings.price_cache_ttl_seconds)

    def orchestrator(self) -> PortfolioSnapshotOrchestrator:
        fetcher = BalanceFetcher(
            self.tokens,
            adapter_cache(lambda n: create_adapter(n, self.settings.explorer_key(n), self.http)),
            max_concurrency=self.settings.max_concurrent_requests,
        )
        return PortfolioSnapshotOrchestrator(
            wallet_registry=self.wallets,
            balance_fetcher=fetcher,
            valuation=ValuationAggregator(self.price_oracle()),
            snapshot_store=self.store,
            exchange_timeout=self.settings.http_timeout_seconds,
        )

    def history(self) -> SnapshotHistory:
        return SnapshotHistory(self.store)


def build_services(settings: Settings) -> Services:
    """Wire registries and clients from settings. Price and explorer clients are created lazily."""
    store = JsonFileStore(settings.data_file)
    wallets = WalletRegistry(store)
    wallets.load()
    http = HttpClient(
        secrets=settings.secrets,
        timeout=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
    )
    return Services(settings, store, wallets, TokenRegistry(store), http)


def validate_network(network: str) -> NetworkId:
    """
    Validate and normalize a network name.

    Raises:
        ValueError: If the network is not supported
    """
    return NetworkId.parse(network.strip().lower())


def cmd_add_wallet(services: Services, args: argparse.Namespace) -> int:
    wallet = services.wallets.add(args.address, validate_network(args.network), args.label)
    print(f"Tracking {wallet.address} on {wallet.network.value}" + (f" ({wallet.label})" if wallet.label else ""))
    return 0


def cmd_remove_wallet(services: Services, args: argparse.Namespace) -> int:
    removed = services.wallets.remove(args.address, validate_network(args.network))
    print("Wallet removed" if removed else "Wallet was not tracked")
    return 0


def cmd_list_wallets(services: Services, args: argparse.Namespace) -> int:
    wallets = services.wallets.list()
    if not wallets:
        print("No wallets tracked")
    for wallet in wallets:
        print(f"{wallet.network.value:<10} {wallet.address} {wallet.label or ''}".rstrip())
    return 0


def cmd_add_token(services: Services, args: argparse.Namespace) -> int:
    token = TrackedToken(
        contract_address=args.contract,
        network=validate_network(args.network),
        symbol=args.symbol.upper(),
        name=args.name,
        decimals=args.decimals,
    )
    services.tokens.add_token(token)
    print(f"Tracking {token.symbol} on {token.network.value}")
    return 0


def cmd_list_tokens(services: Services, args: argparse.Namespace) -> int:
    if args.network:
        tokens = services.tokens.tokens_for(validate_network(args.network))
    else:
        tokens = services.tokens.all_tokens()
    for token in tokens:
        print(f"{token.network.value:<10} {token.symbol:<8} {token.decimals:>3} {token.contract_address}")
    return 0


def cmd_seed_tokens(services: Services, args: argparse.Namespace) -> int:
    added = services.tokens.seed_defaults()
    print(f"Added {added} default token(s)")
    return 0


def cmd_price(services: Services, args: argparse.Namespace) -> int:
    oracle = services.price_oracle()
    quotes = oracle.get_prices(args.symbols)
    status = 0
    for symbol in args.symbols:
        quote = quotes.get(symbol.strip().upper())
        if quote is None:
            print(f"{symbol.upper()}: price unavailable", file=sys.stderr)
            status = 1
            continue
        print(format_price_message(quote.symbol, quote.price, quote.change_24h))
    return status


def cmd_balances(services: Services, args: argparse.Namespace) -> int:
    orchestrator = services.orchestrator()
    report = orchestrator.build_report()
    if args.csv == "-":
        write_balances_csv(report.wallets, sys.stdout)
        return 0
    print(format_wallet_report(report, services.settings.min_usd_value_to_show))
    if args.csv:
        path = write_balances_csv_file(report.wallets, args.csv)
        print(f"\nBalances written to: {path}", file=sys.stderr)
    return 0


def cmd_snapshot(services: Services, args: argparse.Namespace) -> int:
    result = services.orchestrator().generate_snapshot()
    print(
        format_total_holdings(
            result.report, result.snapshot.exchange_value_usd, services.settings.min_usd_value_to_show
        )
    )
    print(f"Snapshot saved: {result.snapshot_id}", file=sys.stderr)
    return 0


def cmd_latest(services: Services, args: argparse.Namespace) -> int:
    snapshot = services.history().latest_snapshot()
    if snapshot is None:
        print("No portfolio snapshots recorded yet")
        return 0
    print(format_snapshot_summary(snapshot))
    return 0


def cmd_history(services: Services, args: argparse.Namespace) -> int:
    points = services.history().chart_points(args.days)
    for point in points:
        print(
            f"{point.timestamp.isoformat()}  total={point.total_value_usd:.2f}  "
            f"wallets={point.wallets_value_usd:.2f}  exchange={point.exchange_value_usd:.2f}"
        )
    if not points:
        print(f"No snapshots in the last {args.days} days")
    return 0


def cmd_prune(services: Services, args: argparse.Namespace) -> int:
    keep_days = args.keep_days if args.keep_days is not None else services.settings.snapshot_retention_days
    deleted = services.history().cleanup_old_snapshots(keep_days)
    print(f"Deleted {deleted} snapshot(s) older than {keep_days} days")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Track crypto wallets across networks and record portfolio value snapshots.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s add-wallet 0x... ethereum --label main
  %(prog)s seed-tokens
  %(prog)s balances --csv balances.csv
  %(prog)s snapshot
  %(prog)s history --days 90

API keys are read from the environment or a .env file
(ETHERSCAN_API_KEY, SOLSCAN_API_KEY, COIN_MARKET_CAP_API_KEY, ...).
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add-wallet", help="Track a wallet address")
    p.add_argument("address")
    p.add_argument("network", help=f"Supported: {', '.join(SUPPORTED_NETWORKS)}")
    p.add_argument("--label")
    p.set_defaults(func=cmd_add_wallet)

    p = sub.add_parser("remove-wallet", help="Stop tracking a wallet address")
    p.add_argument("address")
    p.add_argument("network")
    p.set_defaults(func=cmd_remove_wallet)

    p = sub.add_parser("list-wallets", help="List tracked wallets")
    p.set_defaults(func=cmd_list_wallets)

    p = sub.add_parser("add-token", help="Track a token contract")
    p.add_argument("contract")
    p.add_argument("network")
    p.add_argument("symbol")
    p.add_argument("name")
    p.add_argument("decimals", type=int)
    p.set_defaults(func=cmd_add_token)

    p = sub.add_parser("list-tokens", help="List tracked tokens")
    p.add_argument("--network")
    p.set_defaults(func=cmd_list_tokens)

    p = sub.add_parser("seed-tokens", help="Track the default token list")
    p.set_defaults(func=cmd_seed_tokens)

    p = sub.add_parser("price", help="Show spot prices")
    p.add_argument("symbols", nargs="+")
    p.set_defaults(func=cmd_price)

    p = sub.add_parser("balances", help="Show current wallet holdings")
    p.add_argument("--csv", help="Also write a CSV breakdown (timestamp auto-appended); '-' for stdout only")
    p.set_defaults(func=cmd_balances)

    p = sub.add_parser("snapshot", help="Value the portfolio and save a snapshot")
    p.set_defaults(func=cmd_snapshot)

    p = sub.add_parser("latest", help="Show the most recent snapshot")
    p.set_defaults(func=cmd_latest)

    p = sub.add_parser("history", help="Show portfolio value over time")
    p.add_argument("--days", type=int, default=30)
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("prune", help="Delete old snapshots")
    p.add_argument("--keep-days", type=int)
    p.set_defaults(func=cmd_prune)

    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(name)s] %(levelname)s %(message)s",
    )


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parsed_args = build_parser().parse_args(args)

    try:
        settings = load_settings()
    except WalletPortfolioError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    configure_logging(settings.log_level)

    try:
        services = build_services(settings)
        return parsed_args.func(services, parsed_args)
    except (WalletPortfolioError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
