"""
Output formatters for wallet valuation reports.

This module renders plain-text holdings reports and CSV breakdowns of
per-token balances. Holdings below the display threshold are hidden from
itemized lists but always included in totals.
"""

import csv
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, TextIO

from .balance_fetcher import format_quantity
from .models import CSV_COLUMNS, PortfolioReport, PortfolioSnapshot, TokenBalance, WalletValuation

MIN_USD_VALUE_TO_SHOW = Decimal("10")
TOP_HOLDINGS = 5


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def generate_filename(base_path: str, timestamp: Optional[str] = None) -> str:
    """
    Generate a timestamped filename.

    Examples:
        generate_filename("balances.csv", "20241214_153022") -> "balances_20241214_153022.csv"
    """
    if timestamp is None:
        timestamp = generate_timestamp()

    path = Path(base_path)
    suffix = path.suffix or ".csv"
    return str(path.parent / f"{path.stem}_{timestamp}{suffix}")


def format_currency(value: Decimal) -> str:
    return f"{value:,.2f}"


def short_address(address: str) -> str:
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def _value(balance: TokenBalance) -> Decimal:
    return balance.value_usd if balance.value_usd is not None else Decimal(0)


def balance_rows(valuation: WalletValuation) -> List[List[str]]:
    """CSV rows for one wallet; unknown prices become empty cells."""
    wallet = valuation.wallet
    rows = []
    for balance in valuation.balances:
        rows.append([
            wallet.network.value,
            wallet.address,
            wallet.label or "",
            balance.symbol,
            balance.name,
            balance.contract_address or "NATIVE",
            format_quantity(balance.amount),
            format_quantity(balance.unit_price) if balance.unit_price is not None else "",
            format_quantity(balance.value_usd) if balance.value_usd is not None else "",
        ])
    return rows


def write_balances_csv(valuations: List[WalletValuation], stream: TextIO) -> None:
    """
    Write the per-token breakdown of every wallet to a CSV stream.

    Args:
        valuations: Wallet valuations in report order
        stream: File-like object to write to
    """
    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)

    for valuation in valuations:
        for row in balance_rows(valuation):
            writer.writerow(row)


def write_balances_csv_file(valuations: List[WalletValuation], output_path: str) -> str:
    """Write the breakdown to a timestamped file next to output_path and return its path."""
    path = generate_filename(output_path)
    with open(path, "w", newline="", encoding="utf-8") as f:
        write_balances_csv(valuations, f)
    return path


def format_wallet_report(
    report: PortfolioReport, min_usd_value: Decimal = MIN_USD_VALUE_TO_SHOW
) -> str:
    """
    Format a per-wallet holdings report.

    Tokens are sorted by value; at most TOP_HOLDINGS are itemized per wallet.
    """
    lines = ["Wallet Holdings Report", "", f"Total Value: ${format_currency(report.total_value_usd)}", ""]

    for valuation in report.wallets:
        wallet = valuation.wallet
        title = f"{wallet.label} ({wallet.network.value})" if wallet.label else wallet.network.value
        lines.append(f"{title} - {short_address(wallet.address)}")
        lines.append(f"Value: ${format_currency(valuation.total_value_usd)}")

        if valuation.failed:
            lines.append(f"Could not fetch balances: {valuation.error}")
            lines.append("")
            continue

        shown = sorted(
            (b for b in valuation.balances if b.value_usd is not None and _value(b) >= min_usd_value),
            key=_value,
            reverse=True,
        )
        hidden = [b for b in valuation.balances if b.value_usd is not None and _value(b) < min_usd_value]
        unpriced = [b for b in valuation.balances if b.value_usd is None]

        if shown:
            lines.append("Top Holdings:")
            for balance in shown[:TOP_HOLDINGS]:
                lines.append(
                    f"  - {balance.amount:,.4f} {balance.symbol} (${format_currency(_value(balance))})"
                )
            if len(shown) > TOP_HOLDINGS:
                rest = sum((_value(b) for b in shown[TOP_HOLDINGS:]), Decimal(0))
                lines.append(f"  - Plus {len(shown) - TOP_HOLDINGS} more tokens (${format_currency(rest)})")
            if hidden:
                hidden_total = sum((_value(b) for b in hidden), Decimal(0))
                lines.append(
                    f"  - {len(hidden)} low-value tokens not shown (${format_currency(hidden_total)})"
                )
        elif hidden:
            lines.append(f"Only low-value tokens (< ${format_currency(min_usd_value)}) found.")
        elif not unpriced:
            lines.append("No token balances found.")

        for balance in unpriced:
            lines.append(f"  - {balance.amount:,.4f} {balance.symbol} (Unknown value)")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def format_total_holdings(
    report: PortfolioReport,
    exchange_value_usd: Decimal = Decimal(0),
    min_usd_value: Decimal = MIN_USD_VALUE_TO_SHOW,
) -> str:
    """Format the wallets + exchange summary."""
    total = report.total_value_usd + exchange_value_usd
    lines = [
        "Total Crypto Holdings",
        "",
        f"Total Value: ${format_currency(total)}",
        "",
        f"Wallet Holdings: ${format_currency(report.total_value_usd)}",
    ]

    significant = [v for v in report.wallets if v.total_value_usd >= min_usd_value]
    low_value = [v for v in report.wallets if Decimal(0) < v.total_value_usd < min_usd_value]
    for valuation in significant:
        wallet = valuation.wallet
        name = wallet.label or f"{wallet.address[:8]}..."
        lines.append(f"  - {name} ({wallet.network.value}): ${format_currency(valuation.total_value_usd)}")
    if low_value:
        low_total = sum((v.total_value_usd for v in low_value), Decimal(0))
        lines.append(f"  - {len(low_value)} low-value wallets not shown: ${format_currency(low_total)}")

    failed = [v for v in report.wallets if v.failed]
    if failed:
        lines.append(f"  - {len(failed)} wallet(s) could not be valued")

    lines.append("")
    lines.append(f"Exchange Holdings: ${format_currency(exchange_value_usd)}")
    return "\n".join(lines) + "\n"


def format_snapshot_summary(snapshot: PortfolioSnapshot) -> str:
    """Format a stored snapshot's totals."""
    return "\n".join([
        "Crypto Portfolio Report",
        "",
        f"Total Value: ${format_currency(snapshot.total_value_usd)}",
        "",
        f"Wallet Holdings: ${format_currency(snapshot.wallets_value_usd)}",
        f"Exchange Holdings: ${format_currency(snapshot.exchange_value_usd)}",
        "",
        f"Generated at: {snapshot.timestamp.isoformat()}",
    ]) + "\n"
