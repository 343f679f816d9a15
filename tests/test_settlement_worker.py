from __future__ import annotations

import time
from decimal import Decimal
from typing import Optional

from PySide6.QtCore import QCoreApplication

from tamic.storage.datastore import DataStoreError, InMemoryDataStore
from tamic.trading.books import LiveTradingBook, UserLockRegistry
from tamic.trading.ledger import BalanceAccount
from tamic.trading.models import AssetClass, TradeIntent, TradeType
from tamic.trading.settlement import (
    InstantSettlementSimulator,
    IPriceSource,
    SettlementStatus,
    SettlementStep,
)
from tamic.workers import SettlementRunner, SettlementWorker


class _Price(IPriceSource):
    def get_current_price(self, symbol: str) -> Optional[Decimal]:
        return Decimal("100")


class _BrokenPrice(IPriceSource):
    def get_current_price(self, symbol: str) -> Optional[Decimal]:
        raise DataStoreError("price table unreachable")


def _worker(price_source: Optional[IPriceSource] = None) -> SettlementWorker:
    store = InMemoryDataStore()
    BalanceAccount(store).open_account("u1", Decimal("1000"))
    book = LiveTradingBook(store, "u1", locks=UserLockRegistry())
    return SettlementWorker(book, price_source or _Price(), InstantSettlementSimulator())


def test_worker_emits_steps_and_result():
    worker = _worker()
    steps, results = [], []
    worker.stepChanged.connect(steps.append)
    worker.finished.connect(results.append)

    worker.submit(TradeIntent(TradeType.BUY, "ETH", Decimal("1"), AssetClass.CRYPTO))

    assert steps == ["processing", "verifying", "waiting", "complete"]
    assert len(results) == 1
    assert results[0].status is SettlementStatus.EXECUTED
    assert worker.step is SettlementStep.COMPLETE


def test_worker_reports_submit_outside_input():
    worker = _worker()
    errors = []
    worker.error.connect(errors.append)
    intent = TradeIntent(TradeType.BUY, "AAPL", Decimal("1"))

    worker.submit(intent)
    worker.submit(intent)
    assert len(errors) == 1

    worker.reset()
    assert worker.step is SettlementStep.INPUT


def test_runner_settles_on_background_thread():
    worker = _worker()
    results = []
    worker.finished.connect(results.append)
    runner = SettlementRunner(worker)
    try:
        runner.submit(TradeIntent(TradeType.BUY, "AAPL", Decimal("2")))
        deadline = time.monotonic() + 5
        while not results and time.monotonic() < deadline:
            QCoreApplication.processEvents()
            time.sleep(0.01)
    finally:
        runner.shutdown()

    assert len(results) == 1
    assert results[0].status is SettlementStatus.EXECUTED
    assert results[0].balance == Decimal("799.8")


def test_worker_finishes_when_price_unreadable():
    worker = _worker(_BrokenPrice())
    results, errors = [], []
    worker.finished.connect(results.append)
    worker.error.connect(errors.append)

    worker.submit(TradeIntent(TradeType.BUY, "AAPL", Decimal("1")))

    assert errors == []
    assert len(results) == 1
    assert results[0].status is SettlementStatus.FAILED
    assert worker.step is SettlementStep.INPUT
