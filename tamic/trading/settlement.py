"""Trade settlement workflow.

A trade moves through ``input -> processing -> verifying -> (waiting) ->
complete``. The middle steps are presentational pauses supplied by an
``ISettlementSimulator``; no external confirmation happens. Once the pauses
are over the workflow takes the book's per-user lock, re-reads the
authoritative balance and position, applies the accounting law and commits
the outcome through the book.

This module provides:
- SettlementStep / SettlementStatus enums
- DelayProfile and the per-asset-class delay chains
- ISettlementSimulator with timed and instant implementations
- ITradingBook, the storage strategy a workflow settles against
- IPriceSource, the price lookup protocol
- SettlementWorkflow
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from tamic.storage.datastore import DataStoreError

from .accounting import RejectionReason, TradeRejected, apply_trade, validate_trade
from .models import AssetClass, Position, Trade, TradeIntent, TradeOutcome, TradeQuote

logger = logging.getLogger(__name__)

SLOW_HINT_AFTER_S = 5.0


class SettlementStep(Enum):
    INPUT = "input"
    PROCESSING = "processing"
    VERIFYING = "verifying"
    WAITING = "waiting"
    COMPLETE = "complete"


class SettlementStatus(Enum):
    """Status of a settlement after submission."""
    EXECUTED = "executed"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class DelayProfile:
    """Seconds spent in each presentational step."""
    processing_s: float
    verifying_s: float
    waiting_s: float = 0.0


EQUITY_DELAYS = DelayProfile(processing_s=1.5, verifying_s=1.0)
CRYPTO_DELAYS = DelayProfile(processing_s=2.0, verifying_s=1.5, waiting_s=1.0)
TAMG_DELAYS = DelayProfile(processing_s=0.0, verifying_s=0.0)

DELAY_PROFILES: Dict[AssetClass, DelayProfile] = {
    AssetClass.EQUITY: EQUITY_DELAYS,
    AssetClass.CRYPTO: CRYPTO_DELAYS,
    AssetClass.TAMG: TAMG_DELAYS,
}


@dataclass
class SettlementResult:
    """Result of a settlement.

    Attributes:
        status: EXECUTED, REJECTED (validation) or FAILED (write error)
        step: Workflow step after the attempt (COMPLETE or INPUT)
        trade: Journal record if the trade executed
        quote: Cost breakdown, when one could be computed
        rejection_reason: Why validation failed
        message: Short human-readable message
        slow: True if the waiting hint was shown
        balance: Balance after the trade, if executed
        position: Position after the trade (None if closed or not executed)
    """
    status: SettlementStatus
    step: SettlementStep
    trade: Optional[Trade] = None
    quote: Optional[TradeQuote] = None
    rejection_reason: Optional[RejectionReason] = None
    message: str = ""
    slow: bool = False
    balance: Optional[Decimal] = None
    position: Optional[Position] = None


class ISettlementSimulator(ABC):
    """Strategy for the artificial pauses between settlement steps."""

    @abstractmethod
    def pause(self, step: SettlementStep, seconds: float) -> None:
        ...


class TimedSettlementSimulator(ISettlementSimulator):
    """Blocks for the real duration. Run it off the GUI thread."""

    def __init__(self, speed: float = 1.0) -> None:
        self._speed = speed

    def pause(self, step: SettlementStep, seconds: float) -> None:
        if seconds > 0 and self._speed > 0:
            time.sleep(seconds / self._speed)


class InstantSettlementSimulator(ISettlementSimulator):
    """No delay; records every requested pause."""

    def __init__(self) -> None:
        self.pauses: List[Tuple[SettlementStep, float]] = []

    def pause(self, step: SettlementStep, seconds: float) -> None:
        self.pauses.append((step, seconds))


class IPriceSource(ABC):
    """Current execution price for a symbol."""

    @abstractmethod
    def get_current_price(self, symbol: str) -> Optional[Decimal]:
        """Return the price as Decimal, or None if unavailable."""
        ...


class ITradingBook(ABC):
    """Storage strategy a settlement reads from and commits to."""

    @abstractmethod
    def get_balance(self) -> Decimal:
        ...

    @abstractmethod
    def get_position(self, symbol: str) -> Optional[Position]:
        ...

    @abstractmethod
    def commit(self, outcome: TradeOutcome) -> None:
        """Persist journal entry, position and balance as one unit.

        Raises:
            DataStoreError: If the outcome could not be stored; nothing is kept
        """
        ...

    @abstractmethod
    def lock(self) -> AbstractContextManager:
        """Serialize settlements for the book's owner."""
        ...


class SettlementWorkflow:
    """Drives one trade at a time through the settlement steps.

    Args:
        book: Where balance and positions are read and committed
        price_source: Supplies the execution price
        simulator: Pause strategy (default: real timed pauses)
        on_step: Called with each step as it is entered
        on_slow: Called once when the waiting hint should be shown
        clock: Monotonic clock used for the waiting hint
    """

    def __init__(
        self,
        book: ITradingBook,
        price_source: IPriceSource,
        simulator: Optional[ISettlementSimulator] = None,
        on_step: Optional[Callable[[SettlementStep], None]] = None,
        on_slow: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._book = book
        self._price_source = price_source
        self._simulator = simulator or TimedSettlementSimulator()
        self._on_step = on_step
        self._on_slow = on_slow
        self._clock = clock
        self._step = SettlementStep.INPUT

    @property
    def step(self) -> SettlementStep:
        return self._step

    def _enter(self, step: SettlementStep) -> None:
        self._step = step
        if self._on_step is not None:
            self._on_step(step)

    def reset(self) -> None:
        """Return to the input step ("Done")."""
        self._enter(SettlementStep.INPUT)

    def quote(self, intent: TradeIntent) -> TradeQuote:
        """Validate an intent against current state and price it.

        An unreadable price counts as no price data.

        Raises:
            TradeRejected: If the trade would be rejected
            DataStoreError: If the position or balance cannot be read
        """
        try:
            price = self._price_source.get_current_price(intent.symbol)
        except DataStoreError as e:
            logger.warning(f"Price of {intent.symbol} unavailable for quote: {e}")
            price = None
        return validate_trade(
            self._book.get_position(intent.symbol), self._book.get_balance(), intent, price
        )

    def _rejected(self, e: TradeRejected, quote: Optional[TradeQuote] = None) -> SettlementResult:
        self._enter(SettlementStep.INPUT)
        return SettlementResult(
            status=SettlementStatus.REJECTED,
            step=self._step,
            quote=quote,
            rejection_reason=e.reason,
            message=e.message,
        )

    def _failed(self, message: str, quote: Optional[TradeQuote] = None) -> SettlementResult:
        self._enter(SettlementStep.INPUT)
        return SettlementResult(
            status=SettlementStatus.FAILED, step=self._step, quote=quote, message=message
        )

    def submit(self, intent: TradeIntent) -> SettlementResult:
        """Run the full settlement pipeline for ``intent``.

        Returns:
            SettlementResult; the workflow ends in COMPLETE on success and
            back in INPUT otherwise

        Raises:
            RuntimeError: If called while not in the input step
        """
        if self._step is not SettlementStep.INPUT:
            raise RuntimeError(f"Cannot submit from step '{self._step.value}'; reset first")

        try:
            price = self._price_source.get_current_price(intent.symbol)
        except DataStoreError as e:
            logger.error(f"Could not read the price of {intent.symbol}: {e}")
            return self._failed("Trade failed: price unavailable")
        try:
            quote = validate_trade(
                self._book.get_position(intent.symbol), self._book.get_balance(), intent, price
            )
        except TradeRejected as e:
            return self._rejected(e)
        except DataStoreError as e:
            logger.error(f"Could not read account state for {intent.symbol}: {e}")
            return self._failed("Trade failed: account unavailable")

        delays = DELAY_PROFILES[intent.asset_class]
        started = self._clock()
        slow = False

        self._enter(SettlementStep.PROCESSING)
        self._simulator.pause(SettlementStep.PROCESSING, delays.processing_s)
        self._enter(SettlementStep.VERIFYING)
        self._simulator.pause(SettlementStep.VERIFYING, delays.verifying_s)
        if delays.waiting_s > 0:
            self._enter(SettlementStep.WAITING)
            self._simulator.pause(SettlementStep.WAITING, delays.waiting_s)
            if self._clock() - started > SLOW_HINT_AFTER_S:
                slow = True
                if self._on_slow is not None:
                    self._on_slow()

        with self._book.lock():
            try:
                outcome = apply_trade(
                    self._book.get_position(intent.symbol),
                    self._book.get_balance(),
                    intent,
                    price,
                )
            except TradeRejected as e:
                return self._rejected(e, quote)
            except DataStoreError as e:
                logger.error(f"Could not re-read account state for {intent.symbol}: {e}")
                return self._failed("Trade failed: account unavailable", quote)
            try:
                self._book.commit(outcome)
            except DataStoreError as e:
                logger.error(f"Settlement of {intent.trade_type.value} {intent.symbol} failed: {e}")
                return self._failed("Trade failed: could not record the trade", quote)

        logger.info(
            f"Settled {intent.trade_type.value} {intent.shares} {intent.symbol} "
            f"at {outcome.quote.price} (fee {outcome.quote.fee})"
        )
        self._enter(SettlementStep.COMPLETE)
        return SettlementResult(
            status=SettlementStatus.EXECUTED,
            step=self._step,
            trade=outcome.trade,
            quote=outcome.quote,
            message=f"{intent.trade_type.value.capitalize()} {intent.shares} {intent.symbol} at {outcome.quote.price}",
            slow=slow,
            balance=outcome.balance,
            position=outcome.position,
        )
