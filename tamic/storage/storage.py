"""Local key/value storage.

Holds device-local state such as the demo session blob and saved
settings. The hosted relational store lives in ``datastore``.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class IStorageService(ABC):
    """Key/value store for JSON-compatible blobs."""

    @abstractmethod
    def save(self, key: str, data: Any) -> None:
        """Store ``data`` under ``key``, replacing what was there.

        Args:
            key: Blob name (e.g. "demo_mode")
            data: Anything ``json.dump`` accepts
        """
        ...

    @abstractmethod
    def load(self, key: str) -> Optional[Any]:
        """Return the blob stored under ``key``, or None if missing or unreadable."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""
        ...


class JsonFileStorage(IStorageService):
    """One ``<key>.json`` file per key in a directory.

    A save writes ``<key>.json.tmp`` and renames it over the old file, so
    readers never see a half-written blob.
    """

    def __init__(self, base_path: str | Path) -> None:
        self._root = Path(base_path)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._root

    def _file(self, key: str) -> Path:
        name = key.replace("/", "_").replace("\\", "_")
        return self._root / f"{name}.json"

    def save(self, key: str, data: Any) -> None:
        """Write ``data`` for ``key``.

        Raises:
            TypeError: If ``data`` cannot be encoded as JSON
            OSError: If the file cannot be written
        """
        target = self._file(key)
        staging = target.with_suffix(".json.tmp")
        try:
            staging.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(staging, target)
        except (TypeError, OSError) as e:
            logger.error(f"Could not save '{key}': {e}")
            staging.unlink(missing_ok=True)
            raise

    def load(self, key: str) -> Optional[Any]:
        target = self._file(key)
        if not target.exists():
            return None
        try:
            return json.loads(target.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error(f"Ignoring unreadable blob '{key}': {e}")
        except OSError as e:
            logger.error(f"Could not read '{key}': {e}")
        return None

    def delete(self, key: str) -> None:
        try:
            self._file(key).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Could not delete '{key}': {e}")
