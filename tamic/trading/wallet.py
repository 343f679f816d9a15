"""Withdrawals from the cash balance.

A withdrawal waits a random processing time and is then declined with a
small fixed probability, mimicking a real payment rail without one. A
submitted withdrawal records a pending request, a transaction entry and
the balance debit as one unit of work.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

from tamic.notifications.email import INotifier, NullNotifier
from tamic.storage.datastore import DataStoreError, IDataStore

from .books import USER_LOCKS, UserLockRegistry
from .ledger import TRANSACTIONS_TABLE, BalanceAccount
from .settlement import ISettlementSimulator, SettlementStep, TimedSettlementSimulator

logger = logging.getLogger(__name__)

WITHDRAWAL_REQUESTS_TABLE = "withdrawal_requests"
DECLINE_PROBABILITY = 0.02
PROCESSING_DELAYS_S: Sequence[float] = (2, 3, 4, 5, 7, 10)


class WithdrawalMethod(Enum):
    BANK = "bank"
    CRYPTO = "crypto"


class WithdrawalStatus(Enum):
    SUBMITTED = "submitted"
    DECLINED = "declined"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class WithdrawalResult:
    status: WithdrawalStatus
    amount: Decimal
    request_id: Optional[str] = None
    message: str = ""


class WithdrawalService:
    """Withdrawal requests for one user.

    Args:
        store: Hosted data store
        user_id: Account owner
        simulator: Pause strategy for the processing delay
        rng: Random source for the delay and the decline draw
        notifier: Receives an admin alert for each submitted request
    """

    def __init__(
        self,
        store: IDataStore,
        user_id: str,
        simulator: Optional[ISettlementSimulator] = None,
        rng: Optional[random.Random] = None,
        notifier: Optional[INotifier] = None,
        locks: Optional[UserLockRegistry] = None,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._simulator = simulator or TimedSettlementSimulator()
        self._rng = rng or random.Random()
        self._notifier = notifier or NullNotifier()
        self._locks = locks or USER_LOCKS

    def _reject(self, amount: Decimal, message: str) -> WithdrawalResult:
        return WithdrawalResult(status=WithdrawalStatus.REJECTED, amount=amount, message=message)

    def withdraw(
        self,
        amount: Decimal,
        method: WithdrawalMethod = WithdrawalMethod.BANK,
        crypto_type: Optional[str] = None,
        wallet_address: Optional[str] = None,
        bank_name: str = "",
    ) -> WithdrawalResult:
        """Request a withdrawal of ``amount`` from the cash balance.

        Returns:
            WithdrawalResult: SUBMITTED (balance debited), DECLINED (no
            write), REJECTED (validation) or FAILED (write error, nothing kept)
        """
        if amount <= 0:
            return self._reject(amount, "Please enter a valid amount")
        if method is WithdrawalMethod.CRYPTO and not wallet_address:
            return self._reject(amount, "Please enter a wallet address")
        accounts = BalanceAccount(self._store)
        try:
            balance = accounts.get_balance(self._user_id)
        except DataStoreError as e:
            logger.error(f"Could not read balance for withdrawal: {e}")
            return WithdrawalResult(status=WithdrawalStatus.FAILED, amount=amount, message="Failed to process withdrawal")
        if amount > balance:
            return self._reject(amount, "You do not have enough funds")

        self._simulator.pause(SettlementStep.PROCESSING, self._rng.choice(PROCESSING_DELAYS_S))

        if self._rng.random() < DECLINE_PROBABILITY:
            logger.info(f"Withdrawal of {amount} declined")
            return WithdrawalResult(status=WithdrawalStatus.DECLINED, amount=amount, message="Withdrawal declined")

        if method is WithdrawalMethod.BANK:
            notes = f"Bank: {bank_name}"
            tx_method = "bank"
        else:
            notes = f"{(crypto_type or '').upper()} withdrawal"
            tx_method = crypto_type

        try:
            with self._locks.lock_for(self._user_id), self._store.unit_of_work() as uow:
                # re-read under the lock; another flow may have spent the funds
                uow_accounts = BalanceAccount(uow)
                current = uow_accounts.get_balance(self._user_id)
                if amount > current:
                    return self._reject(amount, "You do not have enough funds")
                request = uow.insert(
                    WITHDRAWAL_REQUESTS_TABLE,
                    {
                        "user_id": self._user_id,
                        "amount": amount,
                        "method": method.value,
                        "crypto_type": crypto_type if method is WithdrawalMethod.CRYPTO else None,
                        "wallet_address": wallet_address if method is WithdrawalMethod.CRYPTO else None,
                        "status": "pending",
                    },
                )
                uow.insert(
                    TRANSACTIONS_TABLE,
                    {
                        "user_id": self._user_id,
                        "type": "withdrawal",
                        "method": tx_method,
                        "amount": amount,
                        "status": "pending",
                        "wallet_address": wallet_address if method is WithdrawalMethod.CRYPTO else None,
                        "notes": notes,
                    },
                )
                uow_accounts.set_balance(self._user_id, current - amount)
        except DataStoreError as e:
            logger.error(f"Withdrawal error: {e}")
            return WithdrawalResult(status=WithdrawalStatus.FAILED, amount=amount, message="Failed to process withdrawal")

        self._notifier.notify_admin("withdrawal", self._user_id, amount, notes)
        return WithdrawalResult(
            status=WithdrawalStatus.SUBMITTED,
            amount=amount,
            request_id=str(request.get("id")),
            message="Your withdrawal request has been submitted",
        )
