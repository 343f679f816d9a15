"""Relational data store access.

The hosted backend is consumed through four generic operations with
equality filters only. ``InMemoryDataStore`` backs tests and offline runs,
``RestDataStore`` talks the PostgREST dialect of the hosted backend.

Every write a settlement makes goes through a ``UnitOfWork``, which keeps
an undo action per write and replays them in reverse when the block
raises. That turns the journal/ledger/balance sequence into a single
all-or-nothing step without needing server-side transactions.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

import httpx

from tamic.util.net import build_http_client

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Filters = Dict[str, Any]


class DataStoreError(Exception):
    """A read or write against the data store failed."""


class ConstraintViolation(DataStoreError):
    """A write would break a storage-level invariant (e.g. negative balance)."""


class IDataStore(ABC):
    """Generic select/insert/update/delete over named tables."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Return rows of ``table`` matching every equality filter.

        Args:
            table: Table name
            filters: Column -> value equality filters (all must match)
            order_by: Column to sort on
            descending: Sort direction when ``order_by`` is given
            limit: Maximum number of rows to return

        Returns:
            List of row dictionaries (copies, safe to mutate)
        """
        ...

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it as stored (with ``id``/``created_at``)."""
        ...

    @abstractmethod
    def update(self, table: str, values: Row, filters: Filters) -> List[Row]:
        """Apply ``values`` to every matching row and return the updated rows."""
        ...

    @abstractmethod
    def delete(self, table: str, filters: Filters) -> List[Row]:
        """Delete every matching row and return the deleted rows."""
        ...

    def select_one(self, table: str, filters: Filters) -> Optional[Row]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    @contextmanager
    def unit_of_work(self) -> Iterator["UnitOfWork"]:
        """Group writes so that they are all undone if the block raises."""
        uow = UnitOfWork(self)
        try:
            yield uow
        except Exception:
            uow.rollback()
            raise


class UnitOfWork:
    """Write proxy that records how to undo each write it performs."""

    def __init__(self, store: IDataStore) -> None:
        self._store = store
        self._undo: List[Tuple[str, Callable[[], Any]]] = []

    @property
    def pending_undo(self) -> int:
        return len(self._undo)

    def select(self, table: str, filters: Optional[Filters] = None, **kwargs: Any) -> List[Row]:
        return self._store.select(table, filters, **kwargs)

    def select_one(self, table: str, filters: Filters) -> Optional[Row]:
        return self._store.select_one(table, filters)

    def insert(self, table: str, row: Row) -> Row:
        created = self._store.insert(table, row)
        row_id = created.get("id")
        self._undo.append(
            (f"delete {table}:{row_id}", lambda: self._store.delete(table, {"id": row_id}))
        )
        return created

    def update(self, table: str, values: Row, filters: Filters) -> List[Row]:
        before = self._store.select(table, filters)
        updated = self._store.update(table, values, filters)
        for row in before:
            previous = {col: row.get(col) for col in values}
            self._undo.append(
                (
                    f"restore {table}:{row['id']}",
                    lambda previous=previous, row_id=row["id"]: self._store.update(
                        table, previous, {"id": row_id}
                    ),
                )
            )
        return updated

    def delete(self, table: str, filters: Filters) -> List[Row]:
        deleted = self._store.delete(table, filters)
        for row in deleted:
            self._undo.append(
                (f"reinsert {table}:{row.get('id')}", lambda row=row: self._store.insert(table, row))
            )
        return deleted

    def rollback(self) -> None:
        """Undo every recorded write, newest first.

        Undo failures are logged and the remaining actions still run.
        """
        while self._undo:
            label, action = self._undo.pop()
            try:
                action()
            except DataStoreError as e:
                logger.error(f"Rollback step '{label}' failed: {e}")
        logger.info("Unit of work rolled back")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: Row, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(row.get(col) == value for col, value in filters.items())


class InMemoryDataStore(IDataStore):
    """Thread-safe in-process tables.

    ``fail_on(operation, table)`` makes the next matching calls raise
    ``DataStoreError``, which is how write failures are simulated.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, List[Row]] = {}
        self._lock = threading.RLock()
        self._failures: Set[Tuple[str, str]] = set()

    def fail_on(self, operation: str, table: str) -> None:
        self._failures.add((operation, table))

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check_failure(self, operation: str, table: str) -> None:
        if (operation, table) in self._failures:
            raise DataStoreError(f"{operation} on '{table}' failed")

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        with self._lock:
            self._check_failure("select", table)
            rows = [copy.deepcopy(r) for r in self._tables.get(table, []) if _matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table, row):
        with self._lock:
            self._check_failure("insert", table)
            stored = copy.deepcopy(row)
            stored.setdefault("id", str(uuid.uuid4()))
            stored.setdefault("created_at", _now_iso())
            self._tables.setdefault(table, []).append(stored)
            return copy.deepcopy(stored)

    def update(self, table, values, filters):
        with self._lock:
            self._check_failure("update", table)
            updated = []
            for row in self._tables.get(table, []):
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    updated.append(copy.deepcopy(row))
            return updated

    def delete(self, table, filters):
        with self._lock:
            self._check_failure("delete", table)
            rows = self._tables.get(table, [])
            deleted = [r for r in rows if _matches(r, filters)]
            self._tables[table] = [r for r in rows if not _matches(r, filters)]
            return deleted


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _encode_row(row: Row) -> Row:
    return {k: _encode(v) for k, v in row.items()}


def _filter_param(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{_encode(value)}"


class RestDataStore(IDataStore):
    """PostgREST client for the hosted backend (``/rest/v1/<table>``)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 7.0,
    ) -> None:
        self._client = client or build_http_client(base_url, timeout_s)
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> List[Row]:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            r = self._client.request(method, f"/rest/v1/{table}", params=params, json=json, headers=headers)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DataStoreError(f"{method} {table} returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DataStoreError(f"{method} {table} failed: {e}") from e
        if not r.content:
            return []
        data = r.json()
        return data if isinstance(data, list) else [data]

    @staticmethod
    def _filter_params(filters: Optional[Filters]) -> Dict[str, str]:
        return {col: _filter_param(value) for col, value in (filters or {}).items()}

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        params = {"select": "*", **self._filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        return self._request("GET", table, params=params)

    def insert(self, table, row):
        rows = self._request("POST", table, json=_encode_row(row), prefer="return=representation")
        if not rows:
            raise DataStoreError(f"POST {table} returned no row")
        return rows[0]

    def update(self, table, values, filters):
        return self._request(
            "PATCH",
            table,
            params=self._filter_params(filters),
            json=_encode_row(values),
            prefer="return=representation",
        )

    def delete(self, table, filters):
        return self._request(
            "DELETE", table, params=self._filter_params(filters), prefer="return=representation"
        )
