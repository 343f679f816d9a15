from __future__ import annotations

import os
from decimal import Decimal
import pytest
from PySide6.QtWidgets import QApplication

from tamic.storage.datastore import InMemoryDataStore
from tamic.trading.ledger import BalanceAccount


@pytest.fixture(scope="session", autouse=True)
def _qt_app():
    # Use offscreen to avoid GUI requirement in CI
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def user_id() -> str:
    return "user-1"


@pytest.fixture
def funded_store(store: InMemoryDataStore, user_id: str) -> InMemoryDataStore:
    BalanceAccount(store).open_account(user_id, Decimal("1000"))
    return store
