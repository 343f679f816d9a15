"""Runtime configuration for the trading core.

Settings come from environment variables and can be persisted through a
storage service the same way local app preferences are.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Mapping, Optional

from tamic.storage.storage import IStorageService

SETTINGS_STORAGE_KEY = "app_settings"
DEFAULT_DATA_DIR = str(Path.home() / ".tamic" / "data")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Application settings model."""
    supabase_url: str = ""
    supabase_key: str = ""
    alpha_vantage_api_key: str = ""
    data_dir: str = DEFAULT_DATA_DIR
    log_level: str = "INFO"
    http_timeout_s: float = 7.0

    @property
    def has_backend(self) -> bool:
        """True when the hosted data store is configured."""
        return bool(self.supabase_url and self.supabase_key)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Create from dictionary."""
        return cls(
            supabase_url=data.get("supabase_url", ""),
            supabase_key=data.get("supabase_key", ""),
            alpha_vantage_api_key=data.get("alpha_vantage_api_key", ""),
            data_dir=data.get("data_dir", DEFAULT_DATA_DIR),
            log_level=data.get("log_level", "INFO"),
            http_timeout_s=float(data.get("http_timeout_s", 7.0)),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Create from environment variables.

        Args:
            environ: Mapping to read from (default: ``os.environ``)

        Returns:
            Settings with unset variables left at their defaults
        """
        env = os.environ if environ is None else environ
        return cls(
            supabase_url=env.get("TAMIC_SUPABASE_URL", ""),
            supabase_key=env.get("TAMIC_SUPABASE_KEY", ""),
            alpha_vantage_api_key=env.get("ALPHA_VANTAGE_API_KEY", ""),
            data_dir=env.get("TAMIC_DATA_DIR", DEFAULT_DATA_DIR),
            log_level=env.get("TAMIC_LOG_LEVEL", "INFO").upper(),
            http_timeout_s=float(env.get("TAMIC_HTTP_TIMEOUT", "7.0")),
        )


def load_settings(storage: IStorageService) -> Settings:
    """Load persisted settings, falling back to the environment."""
    data = storage.load(SETTINGS_STORAGE_KEY)
    if isinstance(data, dict):
        return Settings.from_dict(data)
    return Settings.from_env()


def save_settings(storage: IStorageService, settings: Settings) -> None:
    storage.save(SETTINGS_STORAGE_KEY, settings.to_dict())


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the root logger once."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=_LOG_FORMAT)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
