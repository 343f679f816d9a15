"""Portfolio analytics for the holdings and trade history views."""

import csv
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Tuple

from .models import Position, Trade, TradeType


@dataclass
class PortfolioSummary:
    """Snapshot of an account's value.

    Attributes:
        cash: Available cash balance
        holdings_value: Market value of all positions
        cost_basis: Sum of shares x average price over all positions
        unrealized_pnl: holdings_value - cost_basis
        total_value: cash + holdings_value
    """
    cash: Decimal
    holdings_value: Decimal
    cost_basis: Decimal
    unrealized_pnl: Decimal
    total_value: Decimal

    @property
    def unrealized_pnl_percent(self) -> Decimal:
        if self.cost_basis == 0:
            return Decimal("0")
        return self.unrealized_pnl / self.cost_basis * Decimal("100")


class PortfolioAnalytics:
    """Valuation and P/L over positions and journal records.

    Positions without a current price are valued at cost.
    """

    @staticmethod
    def position_value(position: Position, price: Decimal) -> Decimal:
        return position.shares * price

    @staticmethod
    def unrealized_pnl(position: Position, price: Decimal) -> Decimal:
        """(price - average_price) x shares."""
        return (price - position.average_price) * position.shares

    @staticmethod
    def unrealized_pnl_percent(position: Position, price: Decimal) -> Decimal:
        if position.average_price <= 0:
            return Decimal("0")
        return (price - position.average_price) / position.average_price * Decimal("100")

    def summarize(
        self,
        positions: Mapping[str, Position],
        prices: Mapping[str, Decimal],
        cash: Decimal,
    ) -> PortfolioSummary:
        """Value every position and add the cash balance.

        Args:
            positions: Symbol -> position
            prices: Symbol -> current price
            cash: Cash balance

        Returns:
            PortfolioSummary for the account
        """
        holdings = Decimal("0")
        cost = Decimal("0")
        for symbol, position in positions.items():
            cost += position.total_cost
            price = prices.get(symbol)
            holdings += position.total_cost if price is None else self.position_value(position, price)
        return PortfolioSummary(
            cash=cash,
            holdings_value=holdings,
            cost_basis=cost,
            unrealized_pnl=holdings - cost,
            total_value=cash + holdings,
        )

    def realized_pnl(self, trades: List[Trade]) -> Decimal:
        """Realized profit across all sells, net of fees.

        Replays trades oldest first with the same average-cost rule the
        ledger uses: a sell realizes ``(price - average) x shares - fee``
        and buy fees are part of the realized result of the buy itself.
        """
        book: Dict[str, Tuple[Decimal, Decimal]] = {}
        pnl = Decimal("0")
        for trade in sorted(trades, key=lambda t: t.created_at):
            shares, average = book.get(trade.symbol, (Decimal("0"), Decimal("0")))
            if trade.trade_type is TradeType.BUY:
                new_shares = shares + trade.shares
                average = (shares * average + trade.shares * trade.price_per_share) / new_shares
                book[trade.symbol] = (new_shares, average)
                pnl -= trade.fee
            else:
                pnl += (trade.price_per_share - average) * trade.shares - trade.fee
                remaining = shares - trade.shares
                if remaining > 0:
                    book[trade.symbol] = (remaining, average)
                else:
                    book.pop(trade.symbol, None)
        return pnl

    @staticmethod
    def sort_trades(trades: List[Trade], descending: bool = True) -> List[Trade]:
        return sorted(trades, key=lambda t: t.created_at, reverse=descending)

    @staticmethod
    def export_to_csv(trades: List[Trade], filepath: str) -> None:
        """Write the trade history to a CSV file."""
        fieldnames = [
            "id", "symbol", "trade_type", "shares", "price_per_share",
            "fee", "total_amount", "created_at",
        ]
        with open(filepath, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
            writer.writeheader()
            for trade in trades:
                writer.writerow({
                    "id": trade.id,
                    "symbol": trade.symbol,
                    "trade_type": trade.trade_type.value,
                    "shares": str(trade.shares),
                    "price_per_share": str(trade.price_per_share),
                    "fee": str(trade.fee),
                    "total_amount": str(trade.total_amount),
                    "created_at": trade.created_at.isoformat(),
                })
