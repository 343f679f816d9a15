"""Tests for TAMG subscription, liquidation and pricing."""

from __future__ import annotations

import random
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from tamic.notifications.email import RecordingNotifier
from tamic.trading.accounting import RejectionReason
from tamic.trading.books import UserLockRegistry
from tamic.trading.ledger import TAMG_HOLDINGS_TABLE, TRANSACTIONS_TABLE, BalanceAccount, TradeJournal
from tamic.trading.models import TAMG_SYMBOL, TradeType
from tamic.trading.settlement import InstantSettlementSimulator, SettlementStatus, SettlementStep
from tamic.trading.tamg import (
    ADMIN_SETTINGS_TABLE,
    MIN_SHARES_KEY,
    TAMG_PRICE_KEY,
    AdminSettings,
    TAMGPriceTicker,
    TAMGService,
)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def tamg(funded_store, user_id, notifier) -> TAMGService:
    return TAMGService(
        funded_store, user_id, notifier, InstantSettlementSimulator(), locks=UserLockRegistry()
    )


def test_defaults_without_admin_settings(tamg):
    assert tamg.get_price() == Decimal("25.00")
    assert tamg.get_min_shares() == 1
    assert tamg.get_holding() is None


def test_subscribe_debits_without_fee(tamg, funded_store, user_id, notifier):
    result = tamg.subscribe(Decimal("10"))

    assert result.status is SettlementStatus.EXECUTED
    assert result.quote.fee == 0
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("750")
    holding = tamg.get_holding()
    assert holding.shares == Decimal("10")
    assert holding.average_price == Decimal("25")
    assert notifier.sent == [
        ("admin", "purchase", {
            "userId": user_id,
            "amount": "250.00",
            "details": "TAMG Purchase: 10 shares at $25.00",
        })
    ]


def test_admin_price_drives_weighted_average(tamg, funded_store):
    settings_ = AdminSettings(funded_store)
    tamg.subscribe(Decimal("10"))
    settings_.set(TAMG_PRICE_KEY, "35")
    tamg.subscribe(Decimal("10"))

    holding = tamg.get_holding()
    assert holding.shares == Decimal("20")
    assert holding.average_price == Decimal("30")
    assert len(funded_store.select(TAMG_HOLDINGS_TABLE)) == 1


@pytest.mark.parametrize("shares", [Decimal("0.5"), Decimal("2.5"), Decimal("4")])
def test_below_minimum_or_fractional_rejected(tamg, funded_store, shares):
    AdminSettings(funded_store).set(MIN_SHARES_KEY, "5")

    result = tamg.subscribe(shares)

    assert result.status is SettlementStatus.REJECTED
    assert result.rejection_reason is RejectionReason.BELOW_MINIMUM
    assert tamg.get_holding() is None


def test_subscribe_beyond_balance_rejected(tamg, notifier):
    result = tamg.subscribe(Decimal("41"))

    assert result.rejection_reason is RejectionReason.INSUFFICIENT_BALANCE
    assert notifier.sent == []


def test_liquidate_partial_then_full(tamg, funded_store, user_id):
    tamg.subscribe(Decimal("10"))
    AdminSettings(funded_store).set(TAMG_PRICE_KEY, "30")

    partial = tamg.liquidate(Decimal("4"))
    assert partial.status is SettlementStatus.EXECUTED
    assert tamg.get_holding().shares == Decimal("6")
    assert tamg.get_holding().average_price == Decimal("25")
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("870")

    full = tamg.liquidate(Decimal("6"))
    assert full.position is None
    assert tamg.get_holding() is None
    assert funded_store.select(TAMG_HOLDINGS_TABLE) == []
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("1050")


def test_liquidate_more_than_held_rejected(tamg):
    tamg.subscribe(Decimal("2"))
    result = tamg.liquidate(Decimal("3"))
    assert result.rejection_reason is RejectionReason.INSUFFICIENT_HOLDINGS


def test_unreadable_admin_settings_fail_without_raising(tamg, funded_store, user_id, notifier):
    tamg.subscribe(Decimal("4"))
    notifier.sent.clear()
    funded_store.fail_on("select", ADMIN_SETTINGS_TABLE)

    liquidated = tamg.liquidate(Decimal("1"))
    subscribed = tamg.subscribe(Decimal("1"))

    assert liquidated.status is SettlementStatus.FAILED
    assert liquidated.step is SettlementStep.INPUT
    assert subscribed.status is SettlementStatus.FAILED
    assert notifier.sent == []
    funded_store.clear_failures()
    assert tamg.get_holding().shares == Decimal("4")
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("900")


def test_history_shows_tamg_trades(tamg, funded_store, user_id):
    tamg.subscribe(Decimal("3"))
    tamg.liquidate(Decimal("1.5"))

    assert len(funded_store.select(TRANSACTIONS_TABLE, {"user_id": user_id})) == 2
    history = TradeJournal(funded_store).recent(user_id)
    assert {t.trade_type for t in history} == {TradeType.BUY, TradeType.SELL}
    assert all(t.symbol == TAMG_SYMBOL for t in history)
    sell = next(t for t in history if t.trade_type is TradeType.SELL)
    assert sell.shares == Decimal("1.5")


def test_bad_admin_values_fall_back(funded_store):
    admin = AdminSettings(funded_store)
    admin.set(TAMG_PRICE_KEY, "abc")
    admin.set(MIN_SHARES_KEY, "x")
    assert admin.get_decimal(TAMG_PRICE_KEY, Decimal("25.00")) == Decimal("25.00")
    assert admin.get_int(MIN_SHARES_KEY, 1) == 1


@given(seed=st.integers(min_value=0, max_value=2**32 - 1), ticks=st.integers(min_value=1, max_value=300))
@settings(max_examples=50)
def test_ticker_stays_in_band(seed, ticks):
    """The display price never leaves [0.8, 1.5] x base."""
    base = Decimal("25.00")
    ticker = TAMGPriceTicker(base, random.Random(seed))
    for _ in range(ticks):
        price = ticker.tick()
        assert base * Decimal("0.8") <= price <= base * Decimal("1.5")


def test_ticker_rebase_resets_price():
    ticker = TAMGPriceTicker(Decimal("25"), random.Random(3))
    ticker.tick()
    ticker.rebase(Decimal("40"))
    assert ticker.price == Decimal("40")
