"""Qt bridge for running settlements off the GUI thread.

The settlement delay chain blocks for several seconds, so a front end moves
a ``SettlementWorker`` onto a ``QThread`` and talks to it through signals.
"""

from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QObject, QThread, Signal, Slot

from tamic.storage.datastore import DataStoreError
from tamic.trading.models import TradeIntent
from tamic.trading.settlement import (
    IPriceSource,
    ISettlementSimulator,
    ITradingBook,
    SettlementStep,
    SettlementWorkflow,
)

logger = logging.getLogger(__name__)


class SettlementWorker(QObject):
    stepChanged = Signal(str)  # SettlementStep value
    slowHint = Signal()
    finished = Signal(object)  # SettlementResult
    error = Signal(str)

    def __init__(
        self,
        book: ITradingBook,
        price_source: IPriceSource,
        simulator: Optional[ISettlementSimulator] = None,
    ) -> None:
        super().__init__()
        self._workflow = SettlementWorkflow(
            book,
            price_source,
            simulator,
            on_step=self._emit_step,
            on_slow=self.slowHint.emit,
        )

    @property
    def step(self) -> SettlementStep:
        return self._workflow.step

    def _emit_step(self, step: SettlementStep) -> None:
        self.stepChanged.emit(step.value)

    @Slot(object)
    def submit(self, intent: TradeIntent) -> None:
        try:
            result = self._workflow.submit(intent)
        except (RuntimeError, DataStoreError) as e:
            logger.error(f"Settlement not started: {e}")
            self.error.emit(str(e))
            return
        self.finished.emit(result)

    @Slot()
    def reset(self) -> None:
        self._workflow.reset()


class SettlementRunner(QObject):
    """Owns the worker thread and forwards submit requests to it."""
    requestSubmit = Signal(object)
    requestReset = Signal()

    def __init__(self, worker: SettlementWorker, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._worker = worker
        self._thread = QThread(self)
        worker.moveToThread(self._thread)
        self.requestSubmit.connect(worker.submit)
        self.requestReset.connect(worker.reset)
        self._thread.start()

    @property
    def worker(self) -> SettlementWorker:
        return self._worker

    def submit(self, intent: TradeIntent) -> None:
        self.requestSubmit.emit(intent)

    def reset(self) -> None:
        self.requestReset.emit()

    def shutdown(self) -> None:
        self._thread.quit()
        self._thread.wait()
