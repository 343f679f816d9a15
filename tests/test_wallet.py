"""Tests for withdrawal requests."""

from __future__ import annotations

from decimal import Decimal

import pytest

from tamic.notifications.email import RecordingNotifier
from tamic.trading.books import UserLockRegistry
from tamic.trading.ledger import PROFILES_TABLE, TRANSACTIONS_TABLE, BalanceAccount
from tamic.trading.settlement import InstantSettlementSimulator, SettlementStep
from tamic.trading.wallet import (
    PROCESSING_DELAYS_S,
    WITHDRAWAL_REQUESTS_TABLE,
    WithdrawalMethod,
    WithdrawalService,
    WithdrawalStatus,
)


class _FixedRandom:
    """Deterministic stand-in for random.Random."""

    def __init__(self, draw: float) -> None:
        self._draw = draw

    def random(self) -> float:
        return self._draw

    def choice(self, seq):
        return seq[-1]


def _service(store, user_id, draw=0.5, notifier=None, simulator=None):
    return WithdrawalService(
        store,
        user_id,
        simulator or InstantSettlementSimulator(),
        rng=_FixedRandom(draw),
        notifier=notifier,
        locks=UserLockRegistry(),
    )


def test_bank_withdrawal_debits_exact_amount(funded_store, user_id):
    notifier = RecordingNotifier()
    simulator = InstantSettlementSimulator()

    result = _service(funded_store, user_id, notifier=notifier, simulator=simulator).withdraw(
        Decimal("250.50"), bank_name="First Bank"
    )

    assert result.status is WithdrawalStatus.SUBMITTED
    assert result.request_id
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("749.50")
    request = funded_store.select_one(WITHDRAWAL_REQUESTS_TABLE, {"id": result.request_id})
    assert request["status"] == "pending"
    assert request["method"] == "bank"
    tx = funded_store.select(TRANSACTIONS_TABLE, {"user_id": user_id, "type": "withdrawal"})
    assert len(tx) == 1
    assert tx[0]["notes"] == "Bank: First Bank"
    assert simulator.pauses == [(SettlementStep.PROCESSING, PROCESSING_DELAYS_S[-1])]
    assert notifier.sent[0][:2] == ("admin", "withdrawal")


def test_crypto_withdrawal_records_wallet(funded_store, user_id):
    result = _service(funded_store, user_id).withdraw(
        Decimal("100"), WithdrawalMethod.CRYPTO, crypto_type="btc", wallet_address="bc1qxyz"
    )

    assert result.status is WithdrawalStatus.SUBMITTED
    request = funded_store.select_one(WITHDRAWAL_REQUESTS_TABLE, {"id": result.request_id})
    assert request["wallet_address"] == "bc1qxyz"
    assert request["crypto_type"] == "btc"
    tx = funded_store.select_one(TRANSACTIONS_TABLE, {"user_id": user_id})
    assert tx["notes"] == "BTC withdrawal"


def test_declined_withdrawal_writes_nothing(funded_store, user_id):
    result = _service(funded_store, user_id, draw=0.01).withdraw(Decimal("100"))

    assert result.status is WithdrawalStatus.DECLINED
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("1000")
    assert funded_store.select(WITHDRAWAL_REQUESTS_TABLE) == []
    assert funded_store.select(TRANSACTIONS_TABLE) == []


@pytest.mark.parametrize("amount,method,address,message", [
    (Decimal("0"), WithdrawalMethod.BANK, None, "Please enter a valid amount"),
    (Decimal("-5"), WithdrawalMethod.BANK, None, "Please enter a valid amount"),
    (Decimal("10"), WithdrawalMethod.CRYPTO, "", "Please enter a wallet address"),
    (Decimal("1000.01"), WithdrawalMethod.BANK, None, "You do not have enough funds"),
])
def test_invalid_requests_rejected(funded_store, user_id, amount, method, address, message):
    simulator = InstantSettlementSimulator()
    result = _service(funded_store, user_id, simulator=simulator).withdraw(
        amount, method, crypto_type="eth", wallet_address=address
    )

    assert result.status is WithdrawalStatus.REJECTED
    assert result.message == message
    assert simulator.pauses == []
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("1000")


def test_failed_balance_write_undoes_request(funded_store, user_id):
    funded_store.fail_on("update", PROFILES_TABLE)

    result = _service(funded_store, user_id).withdraw(Decimal("100"))
    funded_store.clear_failures()

    assert result.status is WithdrawalStatus.FAILED
    assert funded_store.select(WITHDRAWAL_REQUESTS_TABLE) == []
    assert funded_store.select(TRANSACTIONS_TABLE) == []
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("1000")


def test_funds_spent_during_processing_are_noticed(funded_store, user_id):
    class SpendingSimulator(InstantSettlementSimulator):
        def pause(self, step, seconds):
            super().pause(step, seconds)
            BalanceAccount(funded_store).set_balance(user_id, Decimal("20"))

    result = _service(funded_store, user_id, simulator=SpendingSimulator()).withdraw(Decimal("100"))

    assert result.status is WithdrawalStatus.REJECTED
    assert BalanceAccount(funded_store).get_balance(user_id) == Decimal("20")
    assert funded_store.select(WITHDRAWAL_REQUESTS_TABLE) == []


def test_unknown_user_fails(store):
    result = _service(store, "ghost").withdraw(Decimal("10"))
    assert result.status is WithdrawalStatus.FAILED
