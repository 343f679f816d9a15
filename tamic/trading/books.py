"""Trading books: the live and demo storage strategies for settlement."""

from __future__ import annotations

import threading
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Dict, List, Optional

from tamic.storage.datastore import IDataStore

from .demo import DemoSession
from .ledger import (
    JOURNAL_DISPLAY_LIMIT,
    BalanceAccount,
    PositionLedger,
    TAMGHoldingLedger,
    TradeJournal,
)
from .models import TAMG_SYMBOL, Position, Trade, TradeOutcome
from .settlement import ITradingBook


class UserLockRegistry:
    """One re-entrant lock per user id, created on first use."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, user_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock


USER_LOCKS = UserLockRegistry()


class LiveTradingBook(ITradingBook):
    """Book backed by the hosted data store for one user.

    A commit writes the journal entry, then the position, then the balance
    inside one unit of work: if any write fails, the earlier ones are undone.
    """

    def __init__(
        self,
        store: IDataStore,
        user_id: str,
        locks: Optional[UserLockRegistry] = None,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._locks = locks or USER_LOCKS

    @property
    def user_id(self) -> str:
        return self._user_id

    @staticmethod
    def _ledger_for(symbol: str, store) -> PositionLedger:
        if symbol == TAMG_SYMBOL:
            return TAMGHoldingLedger(store)
        return PositionLedger(store)

    def get_balance(self) -> Decimal:
        return BalanceAccount(self._store).get_balance(self._user_id)

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._ledger_for(symbol, self._store).get_position(self._user_id, symbol)

    def get_positions(self) -> Dict[str, Position]:
        positions = PositionLedger(self._store).get_positions(self._user_id)
        positions.update(TAMGHoldingLedger(self._store).get_positions(self._user_id))
        return positions

    def get_trades(self, limit: int = JOURNAL_DISPLAY_LIMIT) -> List[Trade]:
        return TradeJournal(self._store).recent(self._user_id, limit)

    def commit(self, outcome: TradeOutcome) -> None:
        symbol = outcome.trade.symbol
        with self._store.unit_of_work() as uow:
            TradeJournal(uow).record(self._user_id, outcome.trade)
            self._ledger_for(symbol, uow).save_position(self._user_id, symbol, outcome.position)
            BalanceAccount(uow).set_balance(self._user_id, outcome.balance)

    def lock(self) -> AbstractContextManager:
        return self._locks.lock_for(self._user_id)


class DemoTradingBook(ITradingBook):
    """Book backed by an in-memory DemoSession."""

    def __init__(self, session: DemoSession) -> None:
        self._session = session

    @property
    def session(self) -> DemoSession:
        return self._session

    def get_balance(self) -> Decimal:
        return self._session.balance

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._session.get_position(symbol)

    def get_positions(self) -> Dict[str, Position]:
        return self._session.get_positions()

    def get_trades(self, limit: int = JOURNAL_DISPLAY_LIMIT) -> List[Trade]:
        return self._session.get_trades()[:limit]

    def commit(self, outcome: TradeOutcome) -> None:
        self._session.record(outcome)

    def lock(self) -> AbstractContextManager:
        return self._session.lock


def active_book(live: ITradingBook, session: Optional[DemoSession]) -> ITradingBook:
    """Pick the demo book while a demo session is running, else the live one."""
    if session is not None and session.active:
        return DemoTradingBook(session)
    return live
