"""Wires settings, stores, market data and notifications together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tamic.config import Settings, configure_logging
from tamic.data.providers import (
    AlphaVantageStockProvider,
    CoinGeckoCryptoProvider,
    MarketDataService,
    MarketPriceSource,
)
from tamic.notifications.email import FunctionsNotifier, INotifier, NullNotifier
from tamic.storage.datastore import IDataStore, InMemoryDataStore, RestDataStore
from tamic.storage.storage import IStorageService, JsonFileStorage
from tamic.trading.books import LiveTradingBook, active_book
from tamic.trading.demo import DemoSession, DemoSessionStore
from tamic.trading.models import AssetClass
from tamic.trading.settlement import ISettlementSimulator, SettlementWorkflow
from tamic.trading.tamg import TAMGService
from tamic.trading.wallet import WithdrawalService

logger = logging.getLogger(__name__)


@dataclass
class Platform:
    settings: Settings
    store: IDataStore
    local_storage: IStorageService
    market_data: MarketDataService
    notifier: INotifier

    def live_book(self, user_id: str) -> LiveTradingBook:
        return LiveTradingBook(self.store, user_id)

    def demo_store(self) -> DemoSessionStore:
        return DemoSessionStore(self.local_storage)

    def trade_workflow(
        self,
        user_id: str,
        asset_class: AssetClass,
        session: Optional[DemoSession] = None,
        simulator: Optional[ISettlementSimulator] = None,
    ) -> SettlementWorkflow:
        """Workflow for a stock or crypto trade, in demo mode when ``session`` is active."""
        book = active_book(self.live_book(user_id), session)
        return SettlementWorkflow(book, MarketPriceSource(self.market_data, asset_class), simulator)

    def tamg(self, user_id: str, simulator: Optional[ISettlementSimulator] = None) -> TAMGService:
        return TAMGService(self.store, user_id, self.notifier, simulator)

    def wallet(self, user_id: str, simulator: Optional[ISettlementSimulator] = None) -> WithdrawalService:
        return WithdrawalService(self.store, user_id, simulator, notifier=self.notifier)


def build_platform(settings: Optional[Settings] = None) -> Platform:
    """Build the service graph; without a backend configured, data stays in memory."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    if settings.has_backend:
        store: IDataStore = RestDataStore(
            settings.supabase_url, settings.supabase_key, timeout_s=settings.http_timeout_s
        )
        notifier: INotifier = FunctionsNotifier(
            settings.supabase_url, settings.supabase_key, timeout_s=settings.http_timeout_s
        )
    else:
        logger.warning("No backend configured, using in-memory data store")
        store = InMemoryDataStore()
        notifier = NullNotifier()

    market_data = MarketDataService(
        stocks=AlphaVantageStockProvider(settings.alpha_vantage_api_key, timeout_s=settings.http_timeout_s),
        crypto=CoinGeckoCryptoProvider(timeout_s=settings.http_timeout_s),
    )
    return Platform(
        settings=settings,
        store=store,
        local_storage=JsonFileStorage(Path(settings.data_dir)),
        market_data=market_data,
        notifier=notifier,
    )
