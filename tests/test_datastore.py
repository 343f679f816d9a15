"""Tests for the in-memory and REST data stores and the unit of work."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from tamic.storage.datastore import (
    DataStoreError,
    RestDataStore,
)


def test_insert_assigns_id_and_timestamp(store):
    row = store.insert("things", {"name": "a"})
    assert row["id"]
    assert row["created_at"]
    assert store.select("things") == [row]


def test_rows_are_copies(store):
    row = store.insert("things", {"tags": ["x"]})
    row["tags"].append("y")
    assert store.select_one("things", {"id": row["id"]})["tags"] == ["x"]


def test_select_filters_orders_and_limits(store):
    for i, owner in enumerate(["a", "b", "a", "a"]):
        store.insert("things", {"owner": owner, "rank": i})

    rows = store.select("things", {"owner": "a"}, order_by="rank", descending=True, limit=2)

    assert [r["rank"] for r in rows] == [3, 2]


def test_update_and_delete_return_affected_rows(store):
    store.insert("things", {"owner": "a", "n": 1})
    store.insert("things", {"owner": "b", "n": 1})

    updated = store.update("things", {"n": 2}, {"owner": "a"})
    deleted = store.delete("things", {"owner": "b"})

    assert [r["n"] for r in updated] == [2]
    assert len(deleted) == 1
    assert [r["owner"] for r in store.select("things")] == ["a"]


def test_fail_on_raises_until_cleared(store):
    store.fail_on("insert", "things")
    with pytest.raises(DataStoreError):
        store.insert("things", {"n": 1})
    store.clear_failures()
    store.insert("things", {"n": 1})
    assert len(store.select("things")) == 1


def test_unit_of_work_commits_when_block_succeeds(store):
    with store.unit_of_work() as uow:
        uow.insert("things", {"n": 1})
        uow.insert("things", {"n": 2})
        assert uow.pending_undo == 2
    assert len(store.select("things")) == 2


def test_unit_of_work_undoes_every_write_on_failure(store):
    kept = store.insert("things", {"n": 1})
    doomed = store.insert("things", {"n": 5})

    with pytest.raises(DataStoreError):
        with store.unit_of_work() as uow:
            uow.insert("things", {"n": 2})
            uow.update("things", {"n": 10}, {"id": kept["id"]})
            uow.delete("things", {"id": doomed["id"]})
            raise DataStoreError("boom")

    rows = {r["id"]: r["n"] for r in store.select("things")}
    assert rows == {kept["id"]: 1, doomed["id"]: 5}


def test_rollback_continues_past_failing_undo(store):
    a = store.insert("a", {"n": 1})
    store.insert("b", {"n": 1})

    with pytest.raises(RuntimeError):
        with store.unit_of_work() as uow:
            uow.update("a", {"n": 2}, {"id": a["id"]})
            uow.insert("b", {"n": 2})
            store.fail_on("delete", "b")
            raise RuntimeError("boom")

    assert store.select_one("a", {"id": a["id"]})["n"] == 1
    assert len(store.select("b")) == 2


class _Recorder:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, status: int = 200, body=None) -> None:
        self.status = status
        self.body = body if body is not None else []
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


def _rest(handler) -> RestDataStore:
    client = httpx.Client(base_url="https://db.example.co", transport=httpx.MockTransport(handler))
    return RestDataStore("https://db.example.co", "anon-key", access_token="user-jwt", client=client)


def test_rest_select_builds_postgrest_query():
    handler = _Recorder(body=[{"id": "1", "symbol": "AAPL"}])
    rows = _rest(handler).select(
        "portfolios", {"user_id": "u1", "active": True, "deleted_at": None},
        order_by="created_at", descending=True, limit=5,
    )

    assert rows == [{"id": "1", "symbol": "AAPL"}]
    request = handler.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/portfolios"
    params = request.url.params
    assert params["select"] == "*"
    assert params["user_id"] == "eq.u1"
    assert params["active"] == "eq.true"
    assert params["deleted_at"] == "is.null"
    assert params["order"] == "created_at.desc"
    assert params["limit"] == "5"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer user-jwt"


def test_rest_insert_encodes_decimals():
    handler = _Recorder(status=201, body=[{"id": "9", "shares": "1.5"}])
    row = _rest(handler).insert("portfolios", {"shares": Decimal("1.5")})

    assert row == {"id": "9", "shares": "1.5"}
    request = handler.requests[0]
    assert request.method == "POST"
    assert request.headers["prefer"] == "return=representation"
    assert json.loads(request.content) == {"shares": "1.5"}


def test_rest_update_and_delete_use_filters():
    handler = _Recorder(body=[])
    store = _rest(handler)
    store.update("profiles", {"balance": Decimal("10")}, {"id": "u1"})
    store.delete("portfolios", {"id": "p1"})

    patch, delete = handler.requests
    assert patch.method == "PATCH"
    assert patch.url.params["id"] == "eq.u1"
    assert json.loads(patch.content) == {"balance": "10"}
    assert delete.method == "DELETE"
    assert delete.url.params["id"] == "eq.p1"


def test_rest_http_error_becomes_datastore_error():
    store = _rest(_Recorder(status=409, body={"message": "conflict"}))
    with pytest.raises(DataStoreError):
        store.select("profiles")


def test_rest_transport_error_becomes_datastore_error():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(DataStoreError):
        _rest(handler).insert("trades", {"symbol": "AAPL"})


def test_rest_insert_without_representation_fails():
    with pytest.raises(DataStoreError):
        _rest(_Recorder(status=201, body=[])).insert("trades", {"symbol": "AAPL"})


def test_rest_store_supports_unit_of_work():
    handler = _Recorder(status=201, body=[{"id": "t1"}])
    store = _rest(handler)

    with pytest.raises(ValueError):
        with store.unit_of_work() as uow:
            uow.insert("trades", {"symbol": "AAPL"})
            raise ValueError("abort")

    assert [r.method for r in handler.requests] == ["POST", "DELETE"]
    assert handler.requests[1].url.params["id"] == "eq.t1"