"""Property-based tests for the local JSON storage.

Tests the storage service round-trip properties using Hypothesis.
"""

from __future__ import annotations

import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict

from hypothesis import given, settings, strategies as st

from tamic.storage import JsonFileStorage


@st.composite
def demo_state_strategy(draw):
    """Generate data shaped like a saved demo session."""
    positions = {}
    for symbol in draw(st.lists(st.sampled_from(["AAPL", "MSFT", "BTC", "ETH", "TAMG"]), unique=True)):
        positions[symbol] = {
            "symbol": symbol,
            "shares": str(draw(st.decimals(min_value=Decimal("0.0001"), max_value=Decimal("1000"), places=4))),
            "average_price": str(draw(st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2))),
            "company_name": draw(st.text(max_size=20)),
        }
    return {
        "active": draw(st.booleans()),
        "balance": str(draw(st.decimals(min_value=Decimal("0"), max_value=Decimal("10000000"), places=2))),
        "tutorialStep": draw(st.integers(min_value=0, max_value=8)),
        "positions": positions,
        "trades": [],
    }


key_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd"), whitelist_characters="_-"),
    min_size=1,
    max_size=40,
)


@given(data=demo_state_strategy())
@settings(max_examples=50, deadline=None)
def test_save_load_round_trip(data: Dict[str, Any]):
    """Whatever is saved under a key is loaded back unchanged."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        storage.save("demo_mode", data)
        assert storage.load("demo_mode") == data


@given(key=key_strategy)
@settings(max_examples=30)
def test_delete_removes_data(key: str):
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        storage.save(key, {"v": 1})
        storage.delete(key)
        assert storage.load(key) is None
        storage.delete(key)


def test_load_missing_returns_none():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert JsonFileStorage(tmpdir).load("nothing") is None


def test_load_corrupt_returns_none():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        (Path(tmpdir) / "broken.json").write_text("{not json", encoding="utf-8")
        assert storage.load("broken") is None


def test_save_leaves_no_temp_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStorage(tmpdir)
        storage.save("a", {"x": 1})
        storage.save("a", {"x": 2})
        assert sorted(p.name for p in Path(tmpdir).iterdir()) == ["a.json"]
        assert storage.load("a") == {"x": 2}
