"""
USD valuation of token balances.
"""

from decimal import Decimal
from typing import Iterable, List

from .models import DECIMAL_CONTEXT, TokenBalance, WalletValuation
from .price_oracle import PriceOracle, normalize_symbol


class ValuationAggregator:
    """
    Attaches prices to balances and sums totals.

    A balance without a price keeps unit_price and value_usd as None: it
    counts as zero in totals but stays in the list.
    """

    def __init__(self, price_oracle: PriceOracle):
        self.price_oracle = price_oracle

    def valuate(self, balances: List[TokenBalance]) -> List[TokenBalance]:
        """
        Price every balance with one batched oracle lookup.

        Returns new TokenBalance objects; the input list is left untouched.
        """
        if not balances:
            return []

        symbols = sorted({normalize_symbol(b.symbol) for b in balances})
        prices = self.price_oracle.get_prices(symbols)

        valued: List[TokenBalance] = []
        for balance in balances:
            quote = prices.get(normalize_symbol(balance.symbol))
            unit_price = value_usd = None
            if quote is not None:
                unit_price = quote.price
                value_usd = DECIMAL_CONTEXT.multiply(balance.amount, quote.price)
            valued.append(
                TokenBalance(
                    symbol=balance.symbol,
                    name=balance.name,
                    amount=balance.amount,
                    decimals=balance.decimals,
                    contract_address=balance.contract_address,
                    unit_price=unit_price,
                    value_usd=value_usd,
                )
            )
        return valued

    @staticmethod
    def wallet_total(balances: Iterable[TokenBalance]) -> Decimal:
        """Sum of value_usd over balances whose price is known."""
        total = Decimal(0)
        for balance in balances:
            if balance.value_usd is not None:
                total = DECIMAL_CONTEXT.add(total, balance.value_usd)
        return total

    @staticmethod
    def portfolio_total(valuations: Iterable[WalletValuation]) -> Decimal:
        """Sum of wallet totals; failed wallets carry a zero total."""
        total = Decimal(0)
        for valuation in valuations:
            total = DECIMAL_CONTEXT.add(total, valuation.total_value_usd)
        return total
