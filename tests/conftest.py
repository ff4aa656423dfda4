"""
Pytest Configuration

Shared fixtures for the import gateway suite: ``src`` on ``sys.path`` for
checkouts that are not installed, DNS stubs and the cached default settings
reset around every test, and a store rooted in a temporary directory.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ImportGateway.io.network import clear_dns_stubs  # noqa: E402
from ImportGateway.settings import (  # noqa: E402
    GatewaySettings,
    StorageSettings,
    invalidate_default_settings_cache,
)
from ImportGateway.storage import DocumentStore  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "IMPORT_GATEWAY_TIMEOUT_SEC",
        "IMPORT_GATEWAY_MAX_BYTES",
        "IMPORT_GATEWAY_MAX_REDIRECTS",
        "IMPORT_GATEWAY_ALLOWED_HOSTS",
        "IMPORT_GATEWAY_STORAGE_DIR",
        "IMPORT_GATEWAY_LOG_LEVEL",
        "IMPORT_GATEWAY_LOG_DIR",
        "IMPORT_GATEWAY_HOST",
        "IMPORT_GATEWAY_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_dns_stubs()
    invalidate_default_settings_cache()
    yield
    clear_dns_stubs()
    invalidate_default_settings_cache()


@pytest.fixture
def store(tmp_path: Path) -> DocumentStore:
    return DocumentStore(tmp_path / "uploads")


@pytest.fixture
def gateway_settings(tmp_path: Path) -> GatewaySettings:
    return GatewaySettings(storage=StorageSettings(root=tmp_path / "uploads"))
