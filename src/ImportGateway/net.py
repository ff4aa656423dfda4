# === NAVMAP v1 ===
# {
#   "module": "ImportGateway.net",
#   "purpose": "Build the HTTPX client used for upstream fetches",
#   "sections": [
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client construction for upstream fetches.

The client never follows redirects (each hop is admitted separately by
:func:`ImportGateway.io.network.request_with_redirect_audit`), ignores proxy
environment variables so the peer address check sees the real upstream, and
verifies TLS against the certifi bundle.
"""

from __future__ import annotations

import logging
import ssl
import time
from typing import MutableMapping, Optional

import certifi
import httpx

from .settings import DownloadConfiguration

LOGGER = logging.getLogger("ImportGateway.net")

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(config: DownloadConfiguration) -> httpx.Timeout:
    return httpx.Timeout(config.timeout_sec)


def _request_hook(request: httpx.Request) -> None:
    meta: MutableMapping[str, object] = request.extensions.setdefault("gateway_meta", {})  # type: ignore[assignment]
    meta["start_time"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    meta = response.request.extensions.get("gateway_meta", {})
    start = meta.get("start_time") if isinstance(meta, dict) else None
    elapsed = time.perf_counter() - start if isinstance(start, (int, float)) else None
    LOGGER.debug(
        "upstream-http-response",
        extra={
            "stage": "fetch",
            "url": str(response.request.url),
            "status": response.status_code,
            "extra_fields": {"elapsed_sec": elapsed},
        },
    )


# --- Public API ----------------------------------------------------------------


def build_http_client(
    config: Optional[DownloadConfiguration] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Return an HTTPX client configured for gateway fetches.

    Args:
        config: Download settings supplying the timeout.
        transport: Optional transport override, e.g. ``httpx.MockTransport`` in tests.
    """

    cfg = config or DownloadConfiguration()
    kwargs: dict = {}
    if transport is not None:
        kwargs["transport"] = transport
    else:
        kwargs["transport"] = httpx.HTTPTransport(verify=_build_ssl_context(), retries=0)
    return httpx.Client(
        timeout=_timeout_for(cfg),
        follow_redirects=False,
        trust_env=False,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
        **kwargs,
    )


__all__ = ["build_http_client"]
