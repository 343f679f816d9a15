"""HTTP client construction shared by the data store, price feeds and notifier."""

from __future__ import annotations

import os
import ssl
from typing import Dict, Optional

import certifi
import httpx
import truststore


def fix_ssl_env() -> None:
    """Repair certificate env vars that point nowhere.

    A dangling ``SSL_CERT_FILE`` is redirected to the certifi bundle and a
    dangling ``SSL_CERT_DIR`` is removed.
    """
    cert_file = os.environ.get("SSL_CERT_FILE")
    if cert_file and not os.path.exists(cert_file):
        os.environ["SSL_CERT_FILE"] = certifi.where()
    cert_dir = os.environ.get("SSL_CERT_DIR")
    if cert_dir and not os.path.isdir(cert_dir):
        del os.environ["SSL_CERT_DIR"]


def make_ssl_context() -> ssl.SSLContext:
    # OS trust store first, then the certifi bundle
    try:
        return truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    except (OSError, ssl.SSLError):
        return ssl.create_default_context(cafile=certifi.where())


def build_http_client(
    base_url: str = "",
    timeout_s: float = 5.0,
    headers: Optional[Dict[str, str]] = None,
) -> httpx.Client:
    fix_ssl_env()
    return httpx.Client(
        base_url=base_url,
        timeout=timeout_s,
        headers=headers or {},
        verify=make_ssl_context(),
    )
