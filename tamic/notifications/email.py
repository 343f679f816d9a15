"""Fire-and-forget email notifications through hosted functions.

Notifications never block or fail the flow that triggers them: every error
is logged and swallowed.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import httpx

from tamic.util.net import build_http_client

logger = logging.getLogger(__name__)

ADMIN_EMAIL_FUNCTION = "send-admin-email"


class INotifier(ABC):
    """Interface for outbound notifications."""

    @abstractmethod
    def notify_admin(self, kind: str, user_id: str, amount: Decimal, details: str) -> None:
        """Alert administrators about a user action (purchase, withdrawal, ...)."""
        ...


class NullNotifier(INotifier):
    """Drops every notification."""

    def notify_admin(self, kind, user_id, amount, details):
        return None


class RecordingNotifier(INotifier):
    """Keeps notifications in memory; handy for offline runs."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    def notify_admin(self, kind, user_id, amount, details):
        self.sent.append(("admin", kind, {"userId": user_id, "amount": str(amount), "details": details}))


class FunctionsNotifier(INotifier):
    """Invokes the hosted ``/functions/v1/<name>`` email endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 7.0,
    ) -> None:
        self._client = client or build_http_client(base_url, timeout_s)
        self._headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}

    def _invoke(self, function: str, body: Dict[str, Any]) -> None:
        try:
            r = self._client.post(f"/functions/v1/{function}", json=body, headers=self._headers)
            r.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Notification '{function}' failed: {e}")

    def notify_admin(self, kind, user_id, amount, details):
        self._invoke(
            ADMIN_EMAIL_FUNCTION,
            {"type": kind, "userId": user_id, "amount": float(amount), "details": details},
        )
