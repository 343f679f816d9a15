# Trading module
"""Trade settlement: accounting law, ledgers, live and demo books, TAMG, withdrawals."""

from .models import (
    AssetClass,
    Position,
    Trade,
    TradeIntent,
    TradeOutcome,
    TradeQuote,
    TradeType,
)
from .accounting import (
    FEE_RATES,
    RejectionReason,
    TradeRejected,
    apply_buy,
    apply_sell,
    apply_trade,
    quote_trade,
    validate_trade,
)
from .ledger import BalanceAccount, PositionLedger, TAMGHoldingLedger, TradeJournal
from .settlement import (
    DelayProfile,
    InstantSettlementSimulator,
    IPriceSource,
    ISettlementSimulator,
    ITradingBook,
    SettlementResult,
    SettlementStatus,
    SettlementStep,
    SettlementWorkflow,
    TimedSettlementSimulator,
)
from .demo import DemoSession, DemoSessionSerializer, DemoSessionStore
from .books import DemoTradingBook, LiveTradingBook, UserLockRegistry, active_book
from .tamg import AdminSettings, TAMGPriceSource, TAMGPriceTicker, TAMGService
from .wallet import WithdrawalMethod, WithdrawalResult, WithdrawalService, WithdrawalStatus
from .analytics import PortfolioAnalytics, PortfolioSummary

__all__ = [
    "AssetClass",
    "Position",
    "Trade",
    "TradeIntent",
    "TradeOutcome",
    "TradeQuote",
    "TradeType",
    "FEE_RATES",
    "RejectionReason",
    "TradeRejected",
    "apply_buy",
    "apply_sell",
    "apply_trade",
    "quote_trade",
    "validate_trade",
    "BalanceAccount",
    "PositionLedger",
    "TAMGHoldingLedger",
    "TradeJournal",
    "DelayProfile",
    "InstantSettlementSimulator",
    "IPriceSource",
    "ISettlementSimulator",
    "ITradingBook",
    "SettlementResult",
    "SettlementStatus",
    "SettlementStep",
    "SettlementWorkflow",
    "TimedSettlementSimulator",
    "DemoSession",
    "DemoSessionSerializer",
    "DemoSessionStore",
    "DemoTradingBook",
    "LiveTradingBook",
    "UserLockRegistry",
    "active_book",
    "AdminSettings",
    "TAMGPriceSource",
    "TAMGPriceTicker",
    "TAMGService",
    "WithdrawalMethod",
    "WithdrawalResult",
    "WithdrawalService",
    "WithdrawalStatus",
    "PortfolioAnalytics",
    "PortfolioSummary",
]
