"""Data models for trading and settlement."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


TAMG_SYMBOL = "TAMG"
TAMG_COMPANY_NAME = "TAMIC GROUP Shares"


class AssetClass(Enum):
    """Instrument family; drives fee rate, delay chain and price source."""
    EQUITY = "equity"
    CRYPTO = "crypto"
    TAMG = "tamg"


class TradeType(Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass
class Position:
    """A user's holding in one symbol.

    Attributes:
        symbol: Instrument symbol (e.g., "AAPL", "BTC", "TAMG")
        shares: Quantity held, always > 0 while the position exists
        average_price: Weighted average cost per share
        company_name: Display name carried along with the row
    """
    symbol: str
    shares: Decimal
    average_price: Decimal
    company_name: str = ""

    @property
    def total_cost(self) -> Decimal:
        """Cost basis of the whole position."""
        return self.shares * self.average_price


@dataclass(frozen=True)
class Trade:
    """An executed order as written to the trade journal.

    Attributes:
        symbol: Instrument symbol
        trade_type: BUY or SELL
        shares: Quantity traded
        price_per_share: Execution price
        fee: Trading fee charged
        total_amount: ``shares * price_per_share + fee``
        created_at: Execution time (UTC)
        id: Unique trade identifier (UUID)
        company_name: Display name of the instrument
    """
    symbol: str
    trade_type: TradeType
    shares: Decimal
    price_per_share: Decimal
    fee: Decimal
    total_amount: Decimal
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    company_name: str = ""

    @property
    def gross(self) -> Decimal:
        return self.shares * self.price_per_share


@dataclass(frozen=True)
class TradeIntent:
    """What the user asked for before any price or validation is applied."""
    trade_type: TradeType
    symbol: str
    shares: Decimal
    asset_class: AssetClass = AssetClass.EQUITY
    company_name: str = ""


@dataclass(frozen=True)
class TradeQuote:
    """Cost breakdown shown before a trade is confirmed.

    ``grand_total`` is ``subtotal + fee`` for a buy and ``subtotal - fee``
    for a sell.
    """
    subtotal: Decimal
    fee: Decimal
    grand_total: Decimal
    fee_rate: Decimal
    price: Decimal


@dataclass(frozen=True)
class TradeOutcome:
    """New state produced by applying one trade.

    Attributes:
        position: Updated position, or None when it was fully sold
        balance: Cash balance after the trade
        trade: Journal record for the trade
        previous_position: Position before the trade (None if there was none)
        quote: Cost breakdown the trade was settled at
    """
    position: Optional[Position]
    balance: Decimal
    trade: Trade
    previous_position: Optional[Position]
    quote: TradeQuote
