# Background workers
"""Qt workers that run blocking flows off the GUI thread."""

from tamic.workers.settlement_worker import SettlementRunner, SettlementWorker

__all__ = ["SettlementRunner", "SettlementWorker"]
