"""Persisted position ledger, trade journal and balance account.

Each service wraps one slice of the hosted store. They accept anything with
the ``select/select_one/insert/update/delete`` surface, so they work on the
store directly or on a ``UnitOfWork`` opened from it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tamic.storage.datastore import ConstraintViolation, DataStoreError, Row

from . import accounting
from .models import TAMG_COMPANY_NAME, TAMG_SYMBOL, Position, Trade, TradeType

logger = logging.getLogger(__name__)

JOURNAL_DISPLAY_LIMIT = 50

PORTFOLIOS_TABLE = "portfolios"
TAMG_HOLDINGS_TABLE = "tamg_holdings"
TRADES_TABLE = "trades"
TRANSACTIONS_TABLE = "transactions"
PROFILES_TABLE = "profiles"

TAMG_PURCHASE = "tamg_purchase"
TAMG_LIQUIDATION = "tamg_liquidation"

_TAMG_NOTE = re.compile(
    r"(?P<verb>Purchased|Liquidated) (?P<shares>\d+(?:\.\d+)?) TAMG shares at \$(?P<price>\d+(?:\.\d+)?)"
)


def to_decimal(value: Any) -> Decimal:
    """Convert a stored numeric (float, int, str) to Decimal without float noise."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class PositionLedger:
    """Per-user symbol -> (shares, average price) rows in ``portfolios``."""

    table = PORTFOLIOS_TABLE

    def __init__(self, store) -> None:
        self._store = store

    def _filters(self, user_id: str, symbol: str) -> Dict[str, Any]:
        return {"user_id": user_id, "symbol": symbol}

    def _row_to_position(self, row: Row) -> Position:
        return Position(
            symbol=row.get("symbol") or TAMG_SYMBOL,
            shares=to_decimal(row.get("shares")),
            average_price=to_decimal(row.get("average_price")),
            company_name=row.get("company_name") or "",
        )

    def get_position(self, user_id: str, symbol: str) -> Optional[Position]:
        """Current position, or None when the user holds no shares."""
        row = self._store.select_one(self.table, self._filters(user_id, symbol))
        if row is None:
            return None
        position = self._row_to_position(row)
        return position if position.shares > 0 else None

    def get_positions(self, user_id: str) -> Dict[str, Position]:
        positions: Dict[str, Position] = {}
        for row in self._store.select(self.table, {"user_id": user_id}):
            position = self._row_to_position(row)
            if position.shares > 0:
                positions[position.symbol] = position
        return positions

    def _position_values(self, position: Position) -> Row:
        return {"shares": position.shares, "average_price": position.average_price}

    def _new_row(self, user_id: str, position: Position) -> Row:
        return {
            "user_id": user_id,
            "symbol": position.symbol,
            "company_name": position.company_name,
            "shares": position.shares,
            "average_price": position.average_price,
        }

    def save_position(self, user_id: str, symbol: str, position: Optional[Position]) -> None:
        """Write a position back: insert, update, or delete when None.

        Raises:
            ConstraintViolation: If the position has non-positive shares or price
        """
        filters = self._filters(user_id, symbol)
        if position is None:
            self._store.delete(self.table, filters)
            return
        if position.shares <= 0 or position.average_price <= 0:
            raise ConstraintViolation(
                f"Refusing to store {symbol} with shares={position.shares}, "
                f"average_price={position.average_price}"
            )
        if self._store.select_one(self.table, filters) is None:
            self._store.insert(self.table, self._new_row(user_id, position))
        else:
            self._store.update(self.table, self._position_values(position), filters)

    def apply_buy(
        self, user_id: str, symbol: str, shares: Decimal, price: Decimal, company_name: str = ""
    ) -> Position:
        """Insert on first buy, weighted-average update afterwards."""
        current = self.get_position(user_id, symbol)
        position = accounting.apply_buy(current, symbol, shares, price, company_name)
        self.save_position(user_id, symbol, position)
        return position

    def apply_sell(self, user_id: str, symbol: str, shares: Decimal) -> Optional[Position]:
        """Decrement shares; the row is deleted once nothing is left.

        Raises:
            TradeRejected: If the sell exceeds holdings (nothing is written)
        """
        current = self.get_position(user_id, symbol)
        position = accounting.apply_sell(current, shares)
        self.save_position(user_id, symbol, position)
        return position


class TAMGHoldingLedger(PositionLedger):
    """Single TAMG holding per user in ``tamg_holdings``."""

    table = TAMG_HOLDINGS_TABLE

    def _filters(self, user_id: str, symbol: str) -> Dict[str, Any]:
        return {"user_id": user_id}

    def _row_to_position(self, row: Row) -> Position:
        return Position(
            symbol=TAMG_SYMBOL,
            shares=to_decimal(row.get("shares")),
            average_price=to_decimal(row.get("average_price")),
            company_name=TAMG_COMPANY_NAME,
        )

    def _position_values(self, position: Position) -> Row:
        values = super()._position_values(position)
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        return values

    def _new_row(self, user_id: str, position: Position) -> Row:
        return {"user_id": user_id, "shares": position.shares, "average_price": position.average_price}


class TradeJournal:
    """Append-only trade log.

    Market trades go to ``trades``; TAMG trades are written to
    ``transactions`` as purchase/liquidation entries and folded back into
    the same history when read.
    """

    def __init__(self, store) -> None:
        self._store = store

    def record(self, user_id: str, trade: Trade) -> Row:
        if trade.symbol == TAMG_SYMBOL:
            return self._record_tamg(user_id, trade)
        return self._store.insert(
            TRADES_TABLE,
            {
                "user_id": user_id,
                "symbol": trade.symbol,
                "company_name": trade.company_name,
                "trade_type": trade.trade_type.value,
                "shares": trade.shares,
                "price_per_share": trade.price_per_share,
                "total_amount": trade.total_amount,
                "fee": trade.fee,
                "created_at": trade.created_at.isoformat(),
            },
        )

    def _record_tamg(self, user_id: str, trade: Trade) -> Row:
        if trade.trade_type is TradeType.BUY:
            kind = TAMG_PURCHASE
            notes = f"Purchased {trade.shares:f} TAMG shares at ${trade.price_per_share:.2f}"
        else:
            kind = TAMG_LIQUIDATION
            notes = f"Liquidated {trade.shares:f} TAMG shares at ${trade.price_per_share:.2f} per share"
        return self._store.insert(
            TRANSACTIONS_TABLE,
            {
                "user_id": user_id,
                "type": kind,
                "amount": trade.total_amount,
                "status": "completed",
                "notes": notes,
                "created_at": trade.created_at.isoformat(),
            },
        )

    def recent(self, user_id: str, limit: int = JOURNAL_DISPLAY_LIMIT) -> List[Trade]:
        """Most recent trades first, capped at ``limit``."""
        rows = self._store.select(
            TRADES_TABLE, {"user_id": user_id}, order_by="created_at", descending=True, limit=limit
        )
        trades = [self._row_to_trade(row) for row in rows]
        for kind in (TAMG_PURCHASE, TAMG_LIQUIDATION):
            try:
                tx_rows = self._store.select(
                    TRANSACTIONS_TABLE,
                    {"user_id": user_id, "type": kind},
                    order_by="created_at",
                    descending=True,
                    limit=limit,
                )
            except DataStoreError as e:
                logger.error(f"Failed to load TAMG history for {user_id}: {e}")
                continue
            for row in tx_rows:
                trade = self._tamg_row_to_trade(row)
                if trade is not None:
                    trades.append(trade)
        trades.sort(key=lambda t: t.created_at, reverse=True)
        return trades[:limit]

    @staticmethod
    def _row_to_trade(row: Row) -> Trade:
        return Trade(
            id=str(row.get("id")),
            symbol=row["symbol"],
            company_name=row.get("company_name") or "",
            trade_type=TradeType(row["trade_type"]),
            shares=to_decimal(row.get("shares")),
            price_per_share=to_decimal(row.get("price_per_share")),
            fee=to_decimal(row.get("fee")),
            total_amount=to_decimal(row.get("total_amount")),
            created_at=_to_datetime(row.get("created_at")),
        )

    @staticmethod
    def _tamg_row_to_trade(row: Row) -> Optional[Trade]:
        match = _TAMG_NOTE.search(row.get("notes") or "")
        if not match:
            return None
        return Trade(
            id=str(row.get("id")),
            symbol=TAMG_SYMBOL,
            company_name=TAMG_COMPANY_NAME,
            trade_type=TradeType.BUY if match.group("verb") == "Purchased" else TradeType.SELL,
            shares=Decimal(match.group("shares")),
            price_per_share=Decimal(match.group("price")),
            fee=Decimal("0"),
            total_amount=to_decimal(row.get("amount")),
            created_at=_to_datetime(row.get("created_at")),
        )


class BalanceAccount:
    """Cash balance stored on the user's profile row."""

    def __init__(self, store) -> None:
        self._store = store

    def get_balance(self, user_id: str) -> Decimal:
        """Read the authoritative balance.

        Raises:
            DataStoreError: If the user has no profile row
        """
        row = self._store.select_one(PROFILES_TABLE, {"id": user_id})
        if row is None:
            raise DataStoreError(f"No profile for user {user_id}")
        return to_decimal(row.get("balance"))

    def set_balance(self, user_id: str, balance: Decimal) -> Decimal:
        """Overwrite the balance.

        Raises:
            ConstraintViolation: If ``balance`` is negative
        """
        if balance < 0:
            raise ConstraintViolation(f"Refusing to store negative balance {balance}")
        updated = self._store.update(PROFILES_TABLE, {"balance": balance}, {"id": user_id})
        if not updated:
            raise DataStoreError(f"No profile for user {user_id}")
        return balance

    def credit(self, user_id: str, amount: Decimal) -> Decimal:
        return self.set_balance(user_id, self.get_balance(user_id) + amount)

    def debit(self, user_id: str, amount: Decimal) -> Decimal:
        return self.set_balance(user_id, self.get_balance(user_id) - amount)

    def open_account(self, user_id: str, balance: Decimal = Decimal("0"), email: str = "") -> Row:
        """Create the profile row a new user trades against."""
        return self._store.insert(PROFILES_TABLE, {"id": user_id, "email": email, "balance": balance})
