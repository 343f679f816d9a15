"""TAMG share subscription and liquidation.

TAMG is a single synthetic instrument priced by an admin setting instead
of a market feed. Purchases and liquidations go through the regular live
settlement workflow, so the weighted-average rule and balance updates are
the same ones used for stocks and crypto.
"""

from __future__ import annotations

import logging
import random
from decimal import Decimal
from typing import Optional

from tamic.notifications.email import INotifier, NullNotifier
from tamic.storage.datastore import DataStoreError, IDataStore

from .accounting import RejectionReason
from .books import LiveTradingBook, UserLockRegistry
from .models import TAMG_COMPANY_NAME, TAMG_SYMBOL, AssetClass, Position, TradeIntent, TradeType
from .settlement import (
    IPriceSource,
    ISettlementSimulator,
    SettlementResult,
    SettlementStatus,
    SettlementStep,
    SettlementWorkflow,
)

logger = logging.getLogger(__name__)

ADMIN_SETTINGS_TABLE = "admin_settings"
TAMG_PRICE_KEY = "tamg_share_price"
MIN_SHARES_KEY = "min_shares_purchase"
DEFAULT_TAMG_PRICE = Decimal("25.00")
DEFAULT_MIN_SHARES = 1


class AdminSettings:
    """Key/value settings maintained by administrators."""

    def __init__(self, store: IDataStore) -> None:
        self._store = store

    def get(self, key: str) -> Optional[str]:
        row = self._store.select_one(ADMIN_SETTINGS_TABLE, {"setting_key": key})
        return None if row is None else str(row.get("setting_value"))

    def get_decimal(self, key: str, default: Decimal) -> Decimal:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return Decimal(raw)
        except ArithmeticError:
            logger.error(f"Admin setting '{key}' is not a number: {raw!r}")
            return default

    def get_int(self, key: str, default: int) -> int:
        raw = self.get(key)
        try:
            return int(raw) if raw is not None else default
        except ValueError:
            logger.error(f"Admin setting '{key}' is not an integer: {raw!r}")
            return default

    def set(self, key: str, value: str) -> None:
        if self._store.update(ADMIN_SETTINGS_TABLE, {"setting_value": value}, {"setting_key": key}):
            return
        self._store.insert(ADMIN_SETTINGS_TABLE, {"setting_key": key, "setting_value": value})


class TAMGPriceSource(IPriceSource):
    """Reads the admin-configured TAMG share price on every lookup."""

    def __init__(self, settings: AdminSettings) -> None:
        self._settings = settings

    def get_current_price(self, symbol: str) -> Optional[Decimal]:
        if symbol != TAMG_SYMBOL:
            return None
        return self._settings.get_decimal(TAMG_PRICE_KEY, DEFAULT_TAMG_PRICE)


class TAMGPriceTicker:
    """Display-only price drift around the admin base price.

    Each tick moves 0.1-0.5%, upward 70% of the time, and the result is
    clamped to [0.8, 1.5] x base. Settlement always uses the base price.
    """

    def __init__(self, base_price: Decimal, rng: Optional[random.Random] = None) -> None:
        self._base = base_price
        self._price = base_price
        self._rng = rng or random.Random()

    @property
    def price(self) -> Decimal:
        return self._price

    def rebase(self, base_price: Decimal) -> None:
        self._base = base_price
        self._price = base_price

    def tick(self) -> Decimal:
        direction = 1 if self._rng.random() > 0.3 else -1
        change_pct = Decimal(str(self._rng.random() * 0.4 + 0.1)) * direction
        candidate = self._price * (1 + change_pct / 100)
        low, high = self._base * Decimal("0.8"), self._base * Decimal("1.5")
        self._price = max(low, min(high, candidate))
        return self._price


class TAMGService:
    """TAMG purchases and liquidations for one user."""

    def __init__(
        self,
        store: IDataStore,
        user_id: str,
        notifier: Optional[INotifier] = None,
        simulator: Optional[ISettlementSimulator] = None,
        locks: Optional[UserLockRegistry] = None,
    ) -> None:
        self._user_id = user_id
        self._settings = AdminSettings(store)
        self._book = LiveTradingBook(store, user_id, locks)
        self._price_source = TAMGPriceSource(self._settings)
        self._notifier = notifier or NullNotifier()
        self._simulator = simulator

    def get_price(self) -> Decimal:
        return self._settings.get_decimal(TAMG_PRICE_KEY, DEFAULT_TAMG_PRICE)

    def get_min_shares(self) -> int:
        return self._settings.get_int(MIN_SHARES_KEY, DEFAULT_MIN_SHARES)

    def get_holding(self) -> Optional[Position]:
        return self._book.get_position(TAMG_SYMBOL)

    def _workflow(self) -> SettlementWorkflow:
        return SettlementWorkflow(self._book, self._price_source, self._simulator)

    def subscribe(self, shares: Decimal) -> SettlementResult:
        """Buy whole TAMG shares at the admin price.

        Args:
            shares: Number of shares, at least the admin minimum

        Returns:
            SettlementResult; REJECTED with BELOW_MINIMUM for fractional or
            too-small orders
        """
        try:
            min_shares = self.get_min_shares()
        except DataStoreError as e:
            logger.error(f"Could not read the TAMG minimum: {e}")
            return SettlementResult(
                status=SettlementStatus.FAILED,
                step=SettlementStep.INPUT,
                message="Trade failed: TAMG settings unavailable",
            )
        if shares > 0 and (shares != shares.to_integral_value() or shares < min_shares):
            return SettlementResult(
                status=SettlementStatus.REJECTED,
                step=SettlementStep.INPUT,
                rejection_reason=RejectionReason.BELOW_MINIMUM,
                message=f"Minimum purchase is {min_shares} shares",
            )
        result = self._workflow().submit(
            TradeIntent(TradeType.BUY, TAMG_SYMBOL, shares, AssetClass.TAMG, TAMG_COMPANY_NAME)
        )
        if result.status is SettlementStatus.EXECUTED and result.trade is not None:
            self._notifier.notify_admin(
                "purchase",
                self._user_id,
                result.trade.total_amount,
                f"TAMG Purchase: {shares} shares at ${result.trade.price_per_share:.2f}",
            )
        return result

    def liquidate(self, shares: Decimal) -> SettlementResult:
        """Sell part or all of the TAMG holding; proceeds go to the balance."""
        return self._workflow().submit(
            TradeIntent(TradeType.SELL, TAMG_SYMBOL, shares, AssetClass.TAMG, TAMG_COMPANY_NAME)
        )
