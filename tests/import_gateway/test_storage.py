"""Document store tests: identifier grammar, atomic writes, and permissions."""

from __future__ import annotations

import os
import stat
import uuid
from pathlib import Path

import pytest

from ImportGateway.errors import InternalError, InvalidIdentifierError, NotFoundError
from ImportGateway.storage import DocumentStore, normalize_identifier
from ImportGateway.testing import BENIGN_SVG

VALID_ID = "3f2b8c1e-9d4a-4b7e-8f21-6c5d4e3b2a19"


def test_save_writes_exact_bytes_under_generated_name(store: DocumentStore) -> None:
    stored = store.save(BENIGN_SVG)

    assert stored.filename == f"{stored.identifier}.svg"
    assert stored.path.parent == store.root
    assert uuid.UUID(stored.identifier).version == 4
    assert stored.path.read_text(encoding="utf-8") == BENIGN_SVG
    assert store.read(stored.identifier) == BENIGN_SVG.encode("utf-8")
    assert store.read(stored.filename) == BENIGN_SVG.encode("utf-8")


def test_save_never_reuses_identifiers(store: DocumentStore) -> None:
    identifiers = {store.save(BENIGN_SVG).identifier for _ in range(20)}
    assert len(identifiers) == 20


def test_save_leaves_no_temporary_files(store: DocumentStore) -> None:
    store.save(BENIGN_SVG)
    names = [path.name for path in store.root.iterdir()]
    assert len(names) == 1
    assert not any(".part." in name for name in names)


def test_failed_write_cleans_up_and_publishes_nothing(
    store: DocumentStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", _boom)

    with pytest.raises(OSError):
        store.save(BENIGN_SVG)
    assert list(store.root.iterdir()) == []


@pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
def test_store_directory_and_files_are_owner_only(tmp_path: Path) -> None:
    root = tmp_path / "uploads"
    root.mkdir(mode=0o755)
    os.chmod(root, 0o755)

    store = DocumentStore(root)
    stored = store.save(BENIGN_SVG)

    assert stat.S_IMODE(root.stat().st_mode) == 0o700
    assert stat.S_IMODE(stored.path.stat().st_mode) == 0o600


@pytest.mark.parametrize(
    "identifier",
    [
        "..",
        "../etc/passwd",
        "/etc/passwd",
        f"../{VALID_ID}.svg",
        f"{VALID_ID}/x",
        VALID_ID.upper(),
        f"{VALID_ID}.SVG",
        f"{VALID_ID}.svg.bak",
        f"{VALID_ID}.html",
        "3f2b8c1e-9d4a-1b7e-8f21-6c5d4e3b2a19",
        "3f2b8c1e-9d4a-4b7e-7f21-6c5d4e3b2a19",
        f"{VALID_ID}\n",
        "",
    ],
)
def test_malformed_identifiers_are_rejected_before_filesystem_access(
    store: DocumentStore, monkeypatch: pytest.MonkeyPatch, identifier: str
) -> None:
    """Grammar violations never reach the filesystem."""

    def _unexpected(*args, **kwargs):
        raise AssertionError("filesystem touched")

    monkeypatch.setattr(Path, "read_bytes", _unexpected)
    monkeypatch.setattr(Path, "is_file", _unexpected)

    with pytest.raises(InvalidIdentifierError):
        store.read(identifier)
    with pytest.raises(InvalidIdentifierError):
        store.exists(identifier)


def test_non_string_identifier_is_rejected() -> None:
    with pytest.raises(InvalidIdentifierError):
        normalize_identifier(None)


def test_normalize_identifier_strips_extension() -> None:
    assert normalize_identifier(f"{VALID_ID}.svg") == VALID_ID
    assert normalize_identifier(VALID_ID) == VALID_ID


def test_unknown_identifier_is_not_found(store: DocumentStore) -> None:
    assert not store.exists(VALID_ID)
    with pytest.raises(NotFoundError, match="Not found"):
        store.read(VALID_ID)


def test_unexpected_read_failure_is_internal(
    store: DocumentStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    stored = store.save(BENIGN_SVG)

    def _denied(self):
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "read_bytes", _denied)

    with pytest.raises(InternalError) as excinfo:
        store.read(stored.identifier)
    assert str(stored.path) not in str(excinfo.value)
