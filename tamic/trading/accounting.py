"""Weighted-average-cost accounting.

Pure functions shared by live trading, demo trading and TAMG. Nothing here
touches storage: callers read the current position and balance, call
``apply_trade`` and persist the returned ``TradeOutcome``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from .models import (
    AssetClass,
    Position,
    Trade,
    TradeIntent,
    TradeOutcome,
    TradeQuote,
    TradeType,
)

ZERO = Decimal("0")

FEE_RATES: Dict[AssetClass, Decimal] = {
    AssetClass.EQUITY: Decimal("0.001"),
    AssetClass.CRYPTO: Decimal("0.0015"),
    AssetClass.TAMG: Decimal("0"),
}


class RejectionReason(Enum):
    """Reason for order rejection."""
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_PRICE = "invalid_price"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_HOLDINGS = "insufficient_holdings"
    NO_PRICE_DATA = "no_price_data"
    BELOW_MINIMUM = "below_minimum"


class TradeRejected(Exception):
    """A trade failed validation; no state was changed."""

    def __init__(self, reason: RejectionReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


def fee_rate_for(asset_class: AssetClass) -> Decimal:
    return FEE_RATES[asset_class]


def quote_trade(
    trade_type: TradeType,
    asset_class: AssetClass,
    shares: Decimal,
    price: Decimal,
) -> TradeQuote:
    """Compute subtotal, fee and grand total for a prospective trade.

    Args:
        trade_type: BUY or SELL
        asset_class: Selects the fee rate
        shares: Quantity to trade
        price: Price per share

    Returns:
        TradeQuote with ``grand_total = subtotal + fee`` for a buy and
        ``subtotal - fee`` for a sell
    """
    rate = fee_rate_for(asset_class)
    subtotal = shares * price
    fee = subtotal * rate
    if trade_type is TradeType.BUY:
        grand_total = subtotal + fee
    else:
        grand_total = subtotal - fee
    return TradeQuote(subtotal=subtotal, fee=fee, grand_total=grand_total, fee_rate=rate, price=price)


def apply_buy(
    position: Optional[Position],
    symbol: str,
    shares: Decimal,
    price: Decimal,
    company_name: str = "",
) -> Position:
    """Add shares to a position using the weighted-average-cost rule.

    A first buy opens the position at ``price``. Later buys blend:
    ``(old_shares * old_average + shares * price) / (old_shares + shares)``.
    """
    if position is None:
        return Position(symbol=symbol, shares=shares, average_price=price, company_name=company_name)
    new_shares = position.shares + shares
    new_average = (position.shares * position.average_price + shares * price) / new_shares
    return Position(
        symbol=position.symbol,
        shares=new_shares,
        average_price=new_average,
        company_name=position.company_name or company_name,
    )


def apply_sell(position: Optional[Position], shares: Decimal) -> Optional[Position]:
    """Remove shares from a position.

    The average price is left as it was. Returns None when nothing is left.

    Raises:
        TradeRejected: If the sell exceeds the shares held
    """
    held = position.shares if position else ZERO
    if position is None or shares > held:
        raise TradeRejected(
            RejectionReason.INSUFFICIENT_HOLDINGS,
            f"Insufficient shares: need {shares}, have {held}",
        )
    remaining = position.shares - shares
    if remaining <= ZERO:
        return None
    return Position(
        symbol=position.symbol,
        shares=remaining,
        average_price=position.average_price,
        company_name=position.company_name,
    )


def validate_trade(
    position: Optional[Position],
    balance: Decimal,
    intent: TradeIntent,
    price: Optional[Decimal],
) -> TradeQuote:
    """Run every pre-trade check and return the quote the trade would settle at.

    Checks run in order: quantity, price, then affordability (buy) or
    holdings (sell).

    Raises:
        TradeRejected: On the first failed check
    """
    if intent.shares <= ZERO:
        raise TradeRejected(RejectionReason.INVALID_QUANTITY, "Quantity must be greater than zero")
    if price is None:
        raise TradeRejected(RejectionReason.NO_PRICE_DATA, f"No price data available for {intent.symbol}")
    if price <= ZERO:
        raise TradeRejected(RejectionReason.INVALID_PRICE, "Price must be greater than zero")

    quote = quote_trade(intent.trade_type, intent.asset_class, intent.shares, price)

    if intent.trade_type is TradeType.BUY:
        if balance < quote.grand_total:
            raise TradeRejected(
                RejectionReason.INSUFFICIENT_BALANCE,
                f"Insufficient balance: need {quote.grand_total}, have {balance}",
            )
    else:
        held = position.shares if position else ZERO
        if held < intent.shares:
            raise TradeRejected(
                RejectionReason.INSUFFICIENT_HOLDINGS,
                f"Insufficient shares: need {intent.shares}, have {held}",
            )
    return quote


def apply_trade(
    position: Optional[Position],
    balance: Decimal,
    intent: TradeIntent,
    price: Optional[Decimal],
    now: Optional[datetime] = None,
) -> TradeOutcome:
    """Settle one trade against a position and a cash balance.

    Args:
        position: Current position in ``intent.symbol`` (None if not held)
        balance: Current cash balance
        intent: Side, symbol, quantity and asset class
        price: Execution price per share
        now: Trade timestamp (default: current UTC time)

    Returns:
        TradeOutcome with the new position, new balance and journal record

    Raises:
        TradeRejected: If the trade fails validation
    """
    quote = validate_trade(position, balance, intent, price)

    if intent.trade_type is TradeType.BUY:
        new_position: Optional[Position] = apply_buy(
            position, intent.symbol, intent.shares, quote.price, intent.company_name
        )
        new_balance = balance - quote.grand_total
    else:
        new_position = apply_sell(position, intent.shares)
        new_balance = balance + quote.grand_total

    trade = Trade(
        symbol=intent.symbol,
        trade_type=intent.trade_type,
        shares=intent.shares,
        price_per_share=quote.price,
        fee=quote.fee,
        total_amount=quote.subtotal + quote.fee,
        created_at=now or datetime.now(timezone.utc),
        company_name=intent.company_name or (position.company_name if position else ""),
    )
    return TradeOutcome(
        position=new_position,
        balance=new_balance,
        trade=trade,
        previous_position=position,
        quote=quote,
    )
