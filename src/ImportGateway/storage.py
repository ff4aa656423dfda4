"""Filesystem store for sanitised SVG documents.

Documents live flat in one owner-only directory as ``<uuid4>.svg``.  Names are
always generated here, never taken from a request, and every read validates the
requested identifier against that grammar before touching the filesystem.
Writes go to an exclusive temporary file in the same directory and are made
visible with a single ``os.replace``, so readers never observe a partial file.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import uuid
from dataclasses import dataclass
from pathlib import Path

from .errors import InternalError, InvalidIdentifierError, NotFoundError

__all__ = [
    "DOCUMENT_EXTENSION",
    "IDENTIFIER_PATTERN",
    "StoredDocument",
    "DocumentStore",
    "normalize_identifier",
]

LOGGER = logging.getLogger("ImportGateway.storage")

DOCUMENT_EXTENSION = ".svg"
IDENTIFIER_PATTERN = re.compile(
    r"^(?P<identifier>[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12})"
    r"(?:\.svg)?$"
)
_DIRECTORY_MODE = 0o700
_FILE_MODE = 0o600


@dataclass(frozen=True, slots=True)
class StoredDocument:
    identifier: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name


def normalize_identifier(value: object) -> str:
    """Return the bare identifier for ``<uuid>`` or ``<uuid>.svg``.

    Raises:
        InvalidIdentifierError: ``value`` is not exactly a lowercase UUID4,
            optionally followed by ``.svg``.
    """

    if not isinstance(value, str):
        raise InvalidIdentifierError("Invalid filename")
    match = IDENTIFIER_PATTERN.fullmatch(value)
    if match is None:
        raise InvalidIdentifierError("Invalid filename")
    return match.group("identifier")


class DocumentStore:
    """Append-only document store rooted at ``root``.

    Attributes:
        root: Directory holding the stored documents, created owner-only.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(mode=_DIRECTORY_MODE, parents=True, exist_ok=True)
        current = stat.S_IMODE(self.root.stat().st_mode)
        if current != _DIRECTORY_MODE:
            os.chmod(self.root, _DIRECTORY_MODE)

    def path_for(self, identifier: str) -> Path:
        """Validate ``identifier`` and return the path it maps to."""

        bare = normalize_identifier(identifier)
        return self.root / f"{bare}{DOCUMENT_EXTENSION}"

    def save(self, cleaned_text: str) -> StoredDocument:
        """Persist ``cleaned_text`` under a fresh identifier and return it."""

        identifier = str(uuid.uuid4())
        destination = self.root / f"{identifier}{DOCUMENT_EXTENSION}"
        temp_path = self.root / f".{destination.name}.part.{uuid.uuid4().hex}"
        payload = cleaned_text.encode("utf-8")

        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, _FILE_MODE)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, destination)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        LOGGER.info(
            "stored document",
            extra={
                "stage": "store",
                "identifier": identifier,
                "extra_fields": {"size_bytes": len(payload)},
            },
        )
        return StoredDocument(identifier=identifier, path=destination)

    def exists(self, identifier: str) -> bool:
        return self.path_for(identifier).is_file()

    def read(self, identifier: str) -> bytes:
        """Return the stored bytes for ``identifier``.

        Raises:
            InvalidIdentifierError: Malformed identifier.
            NotFoundError: No document with that identifier.
            InternalError: Any other filesystem failure.
        """

        path = self.path_for(identifier)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError("Not found") from exc
        except OSError as exc:
            LOGGER.exception(
                "failed to read stored document",
                extra={"stage": "store", "identifier": path.stem},
            )
            raise InternalError() from exc
