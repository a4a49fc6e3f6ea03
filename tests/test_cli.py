"""
Unit tests for the CLI module.

Tests follow the Given/When/Then pattern for clarity.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
import responses

from wallet_portfolio.lib.config import EXPLORER_KEY_VARS
from wallet_portfolio.lib.models import NetworkId
from wallet_portfolio.lib.network_adapters import NETWORK_ENDPOINTS
from wallet_portfolio.lib.price_oracle import COIN_MARKET_CAP_URL
from wallet_portfolio.portfolio_cli import SUPPORTED_NETWORKS, main, validate_network


@pytest.fixture
def data_file(tmp_path, monkeypatch):
    """Point the CLI at a fresh data file with no API keys configured."""
    path = tmp_path / "portfolio.json"
    for var in list(EXPLORER_KEY_VARS.values()) + ["COIN_MARKET_CAP_API_KEY"]:
        monkeypatch.setenv(var, "")
    monkeypatch.setenv("PORTFOLIO_DATA_FILE", str(path))
    monkeypatch.setenv("HTTP_MAX_RETRIES", "0")
    return path


class TestValidateNetwork:
    """Tests for validate_network function."""

    def test_normalizes_network_names_to_lowercase(self):
        """
        Given a padded, mixed-case network name
        When validating it
        Then the matching NetworkId should be returned
        """
        assert validate_network(" Polygon ") is NetworkId.POLYGON

    def test_raises_error_for_unsupported_network(self):
        """
        Given an unknown network name
        When validating it
        Then a ValueError naming the network should be raised
        """
        with pytest.raises(ValueError, match="Unsupported network: unsupported_chain"):
            validate_network("unsupported_chain")

    def test_accepts_all_supported_networks(self):
        """
        Given every supported network name
        When validating each one
        Then each should map to its own NetworkId
        """
        assert [validate_network(n).value for n in SUPPORTED_NETWORKS] == SUPPORTED_NETWORKS


class TestWalletCommands:
    """Tests for wallet management subcommands."""

    def test_add_then_list_wallet(self, data_file, capsys, sample_wallet_address):
        """
        Given an empty data file
        When adding a wallet and listing wallets
        Then the wallet should be persisted and listed with its label
        """
        # When
        add_status = main(["add-wallet", sample_wallet_address, "Ethereum", "--label", "main"])
        list_status = main(["list-wallets"])

        # Then
        out = capsys.readouterr().out
        assert add_status == 0 and list_status == 0
        assert f"ethereum   {sample_wallet_address} main" in out
        stored = json.loads(data_file.read_text())
        assert stored["wallets"] == [
            {"address": sample_wallet_address, "network": "ethereum", "label": "main"}
        ]

    def test_remove_wallet(self, data_file, capsys, sample_wallet_address):
        """
        Given a tracked Base wallet
        When removing it with a lowercased address
        Then the command succeeds and the data file has no wallets
        """
        # Given
        main(["add-wallet", sample_wallet_address, "base"])

        # When
        status = main(["remove-wallet", sample_wallet_address.lower(), "base"])

        # Then
        assert status == 0
        assert "Wallet removed" in capsys.readouterr().out
        assert json.loads(data_file.read_text())["wallets"] == []

    def test_unsupported_network_exits_with_error(self, data_file, capsys, sample_wallet_address):
        """
        Given an unsupported network name
        When adding a wallet on it
        Then the command exits with 1 and reports the network
        """
        # When
        status = main(["add-wallet", sample_wallet_address, "dogechain"])

        # Then
        assert status == 1
        assert "Unsupported network: dogechain" in capsys.readouterr().err


class TestTokenCommands:
    def test_duplicate_token_exits_with_error(self, data_file, capsys):
        """
        Given a token already added on BSC
        When adding the same token again
        Then the command exits with 1 and reports the duplicate
        """
        # Given
        args = ["add-token", "0xabc", "bsc", "usdt", "Tether", "18"]
        main(args)

        # When
        status = main(args)

        # Then
        assert status == 1
        assert "already exists" in capsys.readouterr().err

    def test_seed_then_list_tokens_by_network(self, data_file, capsys):
        """
        Given the default token list
        When seeding it and listing Base tokens
        Then only Base tokens should be printed
        """
        # When
        main(["seed-tokens"])
        main(["list-tokens", "--network", "base"])

        # Then
        out = capsys.readouterr().out
        assert "Added 6 default token(s)" in out
        assert "KOLZ" in out
        assert "SNSY" not in out


class TestValuationCommands:
    """Tests for commands that reach external APIs."""

    def test_price_without_provider_key_exits_with_error(self, data_file, capsys):
        """
        Given no CoinMarketCap key
        When asking for a price
        Then the command exits with 1 and reports the missing key
        """
        status = main(["price", "BTC"])

        assert status == 1
        assert "API key not configured for CoinMarketCap" in capsys.readouterr().err

    @responses.activate
    def test_price_prints_quote(self, data_file, monkeypatch, capsys, mock_cmc_api_key):
        """
        Given a CoinMarketCap quote for BTC
        When asking for the BTC price
        Then the price and 24h change should be printed
        """
        # Given
        monkeypatch.setenv("COIN_MARKET_CAP_API_KEY", mock_cmc_api_key)
        responses.add(
            responses.GET,
            COIN_MARKET_CAP_URL,
            json={"data": {"BTC": [{"quote": {"USD": {"price": 64000, "percent_change_24h": 2.5}}}]}},
        )

        # When
        status = main(["price", "btc"])

        # Then
        assert status == 0
        assert "BTC: $64,000.00 +2.50% 24h" in capsys.readouterr().out

    @responses.activate
    def test_snapshot_values_wallet_and_saves_it(
        self, data_file, monkeypatch, capsys, sample_wallet_address, mock_explorer_api_key, mock_cmc_api_key
    ):
        """
        Given a tracked Ethereum wallet holding 2.5 ETH priced at $3000
        When taking a snapshot
        Then the total should be printed and one snapshot stored
        """
        # Given
        monkeypatch.setenv("ETHERSCAN_API_KEY", mock_explorer_api_key)
        monkeypatch.setenv("COIN_MARKET_CAP_API_KEY", mock_cmc_api_key)
        main(["add-wallet", sample_wallet_address, "ethereum", "--label", "main"])
        responses.add(
            responses.GET,
            NETWORK_ENDPOINTS[NetworkId.ETHEREUM],
            json={"status": "1", "message": "OK", "result": "2500000000000000000"},
        )
        responses.add(
            responses.GET,
            COIN_MARKET_CAP_URL,
            json={"data": {"ETH": [{"quote": {"USD": {"price": 3000, "percent_change_24h": 1}}}]}},
        )

        # When
        status = main(["snapshot"])
        latest_status = main(["latest"])

        # Then
        out = capsys.readouterr().out
        assert status == 0 and latest_status == 0
        assert "Total Value: $7,500.00" in out
        assert "main (ethereum): $7,500.00" in out
        snapshots = json.loads(data_file.read_text())["snapshots"]
        assert len(snapshots) == 1
        assert snapshots[0]["total_value_usd"] == "7500"

    @responses.activate
    def test_balances_flags_wallet_without_explorer_key(
        self, data_file, monkeypatch, capsys, sample_wallet_address, mock_cmc_api_key
    ):
        """
        Given a tracked Polygon wallet and no Polygonscan key
        When listing balances
        Then the wallet should be reported as not fetched
        """
        # Given
        monkeypatch.setenv("COIN_MARKET_CAP_API_KEY", mock_cmc_api_key)
        main(["add-wallet", sample_wallet_address, "polygon"])

        # When
        status = main(["balances"])

        # Then
        out = capsys.readouterr().out
        assert status == 0
        assert "Could not fetch balances: API key not configured for network: polygon" in out

    def test_history_with_no_snapshots(self, data_file, capsys):
        """
        Given no price provider key and no stored snapshots
        When asking for history
        Then the command should succeed and say there is nothing to show
        """
        assert main(["history", "--days", "7"]) == 0
        assert "No snapshots in the last 7 days" in capsys.readouterr().out


class TestSnapshotQueryCommands:
    """Snapshot queries read only the data file and need no API keys."""

    @pytest.fixture
    def stored_snapshot(self, data_file):
        now = datetime.now(timezone.utc)
        snapshots = [
            {
                "id": "old",
                "timestamp": (now - timedelta(days=400)).isoformat(),
                "total_value_usd": "10",
                "wallets_value_usd": "10",
                "exchange_value_usd": "0",
                "detail": {},
            },
            {
                "id": "recent",
                "timestamp": (now - timedelta(days=1)).isoformat(),
                "total_value_usd": "1234.5",
                "wallets_value_usd": "1000",
                "exchange_value_usd": "234.5",
                "detail": {},
            },
        ]
        data_file.write_text(json.dumps({"wallets": [], "tokens": [], "snapshots": snapshots}))
        return data_file

    def test_latest_without_provider_key(self, stored_snapshot, capsys):
        """
        Given a stored snapshot and no CoinMarketCap key
        When showing the latest snapshot
        Then its totals should be printed
        """
        # When
        status = main(["latest"])

        # Then
        captured = capsys.readouterr()
        assert status == 0
        assert "Total Value: $1,234.50" in captured.out
        assert "API key not configured" not in captured.err

    def test_latest_with_empty_data_file(self, data_file, capsys):
        """
        Given an empty data file and no API keys
        When showing the latest snapshot
        Then it should say no snapshots were recorded
        """
        assert main(["latest"]) == 0
        assert "No portfolio snapshots recorded yet" in capsys.readouterr().out

    def test_history_without_provider_key(self, stored_snapshot, capsys):
        """
        Given snapshots 1 and 400 days old and no CoinMarketCap key
        When listing 30 days of history
        Then only the recent snapshot should be printed
        """
        # When
        status = main(["history", "--days", "30"])

        # Then
        out = capsys.readouterr().out
        assert status == 0
        assert "total=1234.50" in out
        assert "total=10.00" not in out

    def test_prune_without_provider_key(self, stored_snapshot, monkeypatch, capsys):
        """
        Given snapshots 1 and 400 days old and no CoinMarketCap key
        When pruning with the default retention
        Then the old snapshot should be deleted from the data file
        """
        # Given
        monkeypatch.delenv("SNAPSHOT_RETENTION_DAYS", raising=False)

        # When
        status = main(["prune"])

        # Then
        assert status == 0
        assert "Deleted 1 snapshot(s) older than 365 days" in capsys.readouterr().out
        remaining = json.loads(stored_snapshot.read_text())["snapshots"]
        assert [s["id"] for s in remaining] == ["recent"]
