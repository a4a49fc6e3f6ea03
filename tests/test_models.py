"""
Unit tests for data models.

Tests follow the Given/When/Then pattern for clarity.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from wallet_portfolio.lib.models import (
    NetworkId,
    PortfolioSnapshot,
    TokenBalance,
    TrackedToken,
    Wallet,
    WalletValuation,
    decimal_to_str,
    identity_key,
)


class TestNetworkId:
    """Tests for network parsing."""

    def test_parses_every_supported_network(self):
        """
        Given each supported network name
        When parsing it
        Then the matching NetworkId should be returned
        """
        for network in NetworkId:
            assert NetworkId.parse(network.value) is network

    def test_rejects_unknown_network(self):
        """
        Given an unsupported network name
        When parsing it
        Then a ValueError listing the supported networks should be raised
        """
        with pytest.raises(ValueError, match="Unsupported network: dogechain. Supported: ethereum"):
            NetworkId.parse("dogechain")


class TestIdentityKey:
    """Tests for wallet and token identity."""

    def test_address_comparison_is_case_insensitive(self, sample_wallet_address):
        """
        Given the same address in two letter cases
        When building wallets on the same network
        Then their identity keys should match
        """
        # Given
        lower = Wallet(sample_wallet_address.lower(), NetworkId.ETHEREUM)
        mixed = Wallet(sample_wallet_address, NetworkId.ETHEREUM, label="main")

        # Then
        assert lower.key == mixed.key

    def test_same_address_on_different_networks_is_distinct(self, sample_wallet_address):
        """
        Given one address on two networks
        When comparing identity keys
        Then they should differ
        """
        assert identity_key(sample_wallet_address, NetworkId.ETHEREUM) != identity_key(
            sample_wallet_address, NetworkId.BASE
        )


class TestDecimalToStr:
    """Tests for decimal serialization."""

    def test_trims_trailing_zeros(self):
        """
        Given decimals with trailing zeros
        When serializing them
        Then the zeros should be dropped
        """
        assert decimal_to_str(Decimal("7600.000")) == "7600"
        assert decimal_to_str(Decimal("1.50")) == "1.5"

    def test_avoids_exponent_notation(self):
        """
        Given a very small decimal
        When serializing it
        Then it should be written in positional notation
        """
        assert decimal_to_str(Decimal("1E-18")) == "0.000000000000000001"

    def test_passes_through_none(self):
        """
        Given no value
        When serializing it
        Then None should be returned
        """
        assert decimal_to_str(None) is None


class TestSerialization:
    """Tests for dict conversion used by the stores."""

    def test_wallet_round_trips_through_dict(self, sample_wallet_address):
        """
        Given a labelled Polygon wallet
        When converting it to a dict and back
        Then the wallet should be unchanged
        """
        # Given
        wallet = Wallet(sample_wallet_address, NetworkId.POLYGON, label="cold")

        # When
        data = wallet.to_dict()

        # Then
        assert data == {"address": sample_wallet_address, "network": "polygon", "label": "cold"}
        assert Wallet.from_dict(data) == wallet

    def test_tracked_token_from_dict_coerces_decimals(self):
        """
        Given a stored token record with decimals as a string
        When loading it
        Then decimals should be an int and the network parsed
        """
        token = TrackedToken.from_dict(
            {"contract_address": "0xabc", "network": "bsc", "symbol": "USDT", "name": "Tether", "decimals": "18"}
        )
        assert token.decimals == 18
        assert token.network is NetworkId.BSC

    def test_token_balance_serializes_unknown_price_as_none(self):
        """
        Given a balance whose price could not be resolved
        When serializing it
        Then unit_price and value_usd should be None rather than zero
        """
        # Given
        balance = TokenBalance(symbol="XYZ", name="Unknown", amount=Decimal("3"), decimals=18)

        # When
        data = balance.to_dict()

        # Then
        assert data["unit_price"] is None
        assert data["value_usd"] is None
        assert data["amount"] == "3"

    def test_failed_wallet_valuation_carries_error(self, sample_wallet_address):
        """
        Given a wallet valuation flagged with an error
        When serializing it
        Then the record should show a zero value and the error message
        """
        # Given
        valuation = WalletValuation(
            wallet=Wallet(sample_wallet_address, NetworkId.ETHEREUM),
            total_value_usd=Decimal(0),
            error="boom",
        )

        # When
        data = valuation.to_dict()

        # Then
        assert valuation.failed
        assert data["value_usd"] == "0"
        assert data["token_balances"] == []
        assert data["error"] == "boom"

    def test_snapshot_round_trips_through_dict(self):
        """
        Given a snapshot with fractional totals
        When converting it to a dict and back
        Then the snapshot should be unchanged
        """
        # Given
        snapshot = PortfolioSnapshot(
            id="abc",
            timestamp=datetime(2024, 12, 14, 15, 30, tzinfo=timezone.utc),
            total_value_usd=Decimal("8100.5"),
            wallets_value_usd=Decimal("7600"),
            exchange_value_usd=Decimal("500.5"),
            detail={"failed_wallets": 0},
        )

        # When
        restored = PortfolioSnapshot.from_dict(snapshot.to_dict())

        # Then
        assert restored == snapshot
