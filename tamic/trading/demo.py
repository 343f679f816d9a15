"""Demo trading session.

A device-local practice account with its own starting balance. It applies
the same accounting law as live trading but never touches the hosted store.
State is saved and loaded explicitly through ``DemoSessionStore``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from tamic.storage.storage import IStorageService

from .models import Position, Trade, TradeOutcome, TradeType

logger = logging.getLogger(__name__)

DEMO_STORAGE_KEY = "demo_mode"
DEMO_TRADE_HISTORY_LIMIT = 50

TUTORIAL_STEPS: List[Tuple[str, str]] = [
    ("Welcome to Demo Trading!",
     "This is a risk-free environment to learn trading. Your demo balance is virtual - perfect for practice!"),
    ("Understanding the Dashboard",
     "The dashboard shows your portfolio overview, recent trades, and market insights. "
     "Explore the navigation to find Stocks and Crypto."),
    ("Browsing Markets",
     "Use the Stocks and Crypto pages to browse available assets. Watch the prices change in real-time!"),
    ("Making Your First Trade",
     "Click on any asset to open the trade modal. You can buy or sell shares. "
     "Start small to understand the mechanics."),
    ("Managing Risk",
     "Never invest more than you can afford to lose. Diversify your portfolio across different assets."),
    ("Reading Charts",
     "Pay attention to price trends and percentage changes. Green means the asset is up, red means it's down."),
    ("Portfolio Tracking",
     "Visit the Portfolio page to see all your holdings, their current values, and your profit/loss."),
    ("You're Ready!",
     "You now know the basics! Continue practicing with your demo account. When ready, switch to real trading."),
]


class DemoSession:
    """In-memory demo account.

    Trade history is kept newest first and capped at
    ``DEMO_TRADE_HISTORY_LIMIT`` entries.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.active = False
        self.initial_balance = Decimal("0")
        self.balance = Decimal("0")
        self._positions: Dict[str, Position] = {}
        self._trades: List[Trade] = []
        self.tutorial_step = 0
        self.tutorial_complete = False

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def start(self, initial_balance: Decimal) -> None:
        """Begin a fresh demo with the chosen starting balance.

        Raises:
            ValueError: If ``initial_balance`` is not positive
        """
        if initial_balance <= 0:
            raise ValueError("Demo balance must be greater than zero")
        with self._lock:
            self.active = True
            self.initial_balance = initial_balance
            self.balance = initial_balance
            self._positions.clear()
            self._trades.clear()
            self.tutorial_step = 0
            self.tutorial_complete = False
        logger.info(f"Demo session started with balance {initial_balance}")

    def exit(self) -> None:
        """Leave demo mode; everything is discarded."""
        with self._lock:
            self.active = False
            self.initial_balance = Decimal("0")
            self.balance = Decimal("0")
            self._positions.clear()
            self._trades.clear()
            self.tutorial_step = 0
            self.tutorial_complete = False

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def get_positions(self) -> Dict[str, Position]:
        return self._positions.copy()

    def get_trades(self) -> List[Trade]:
        """Trades newest first."""
        return list(self._trades)

    def record(self, outcome: TradeOutcome) -> None:
        """Apply a settled trade to the session state."""
        with self._lock:
            symbol = outcome.trade.symbol
            if outcome.position is None:
                self._positions.pop(symbol, None)
            else:
                self._positions[symbol] = outcome.position
            self.balance = outcome.balance
            self._trades.insert(0, outcome.trade)
            del self._trades[DEMO_TRADE_HISTORY_LIMIT:]

    def next_tutorial_step(self) -> None:
        nxt = self.tutorial_step + 1
        if nxt >= len(TUTORIAL_STEPS):
            self.tutorial_complete = True
        else:
            self.tutorial_step = nxt

    def complete_tutorial(self) -> None:
        self.tutorial_step = len(TUTORIAL_STEPS)
        self.tutorial_complete = True

    @property
    def current_tutorial(self) -> Optional[Tuple[str, str]]:
        if self.tutorial_complete or self.tutorial_step >= len(TUTORIAL_STEPS):
            return None
        return TUTORIAL_STEPS[self.tutorial_step]


class DemoSessionSerializer:
    """Serializer for demo session state to/from JSON-compatible dictionaries."""

    @staticmethod
    def serialize(session: DemoSession) -> dict:
        positions = {
            symbol: {
                "symbol": p.symbol,
                "shares": str(p.shares),
                "average_price": str(p.average_price),
                "company_name": p.company_name,
            }
            for symbol, p in session.get_positions().items()
        }
        trades = [
            {
                "id": t.id,
                "symbol": t.symbol,
                "company_name": t.company_name,
                "trade_type": t.trade_type.value,
                "shares": str(t.shares),
                "price_per_share": str(t.price_per_share),
                "fee": str(t.fee),
                "total_amount": str(t.total_amount),
                "created_at": t.created_at.isoformat(),
            }
            for t in session.get_trades()
        ]
        return {
            "active": session.active,
            "initial_balance": str(session.initial_balance),
            "balance": str(session.balance),
            "tutorialStep": session.tutorial_step,
            "tutorialComplete": session.tutorial_complete,
            "positions": positions,
            "trades": trades,
        }

    @staticmethod
    def deserialize(data: dict) -> DemoSession:
        """Rebuild a session from ``serialize`` output.

        Raises:
            KeyError, ValueError, ArithmeticError: On malformed data
        """
        session = DemoSession()
        session.active = bool(data.get("active", False))
        session.initial_balance = Decimal(str(data.get("initial_balance", "0")))
        session.balance = Decimal(str(data["balance"]))
        session.tutorial_step = int(data.get("tutorialStep") or 0)
        session.tutorial_complete = bool(data.get("tutorialComplete", False))
        for symbol, p in data.get("positions", {}).items():
            session._positions[symbol] = Position(
                symbol=p["symbol"],
                shares=Decimal(p["shares"]),
                average_price=Decimal(p["average_price"]),
                company_name=p.get("company_name", ""),
            )
        for t in data.get("trades", [])[:DEMO_TRADE_HISTORY_LIMIT]:
            session._trades.append(Trade(
                id=t["id"],
                symbol=t["symbol"],
                company_name=t.get("company_name", ""),
                trade_type=TradeType(t["trade_type"]),
                shares=Decimal(t["shares"]),
                price_per_share=Decimal(t["price_per_share"]),
                fee=Decimal(t["fee"]),
                total_amount=Decimal(t["total_amount"]),
                created_at=datetime.fromisoformat(t["created_at"]),
            ))
        return session


class DemoSessionStore:
    """Explicit save/load boundary between a DemoSession and local storage."""

    def __init__(self, storage: IStorageService, key: str = DEMO_STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key

    def save(self, session: DemoSession) -> None:
        self._storage.save(self._key, DemoSessionSerializer.serialize(session))

    def load(self) -> DemoSession:
        """Load the saved session, or a fresh inactive one if none is usable."""
        data = self._storage.load(self._key)
        if data is None:
            return DemoSession()
        try:
            return DemoSessionSerializer.deserialize(data)
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            logger.error(f"Discarding unreadable demo session: {e}")
            return DemoSession()

    def clear(self) -> None:
        self._storage.delete(self._key)
