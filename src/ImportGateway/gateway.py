"""Fetch gate: the only path by which documents enter the store.

``FetchGate.import_from_url`` runs the import pipeline once, with early exits:

1. URL shape and host admission (:func:`~ImportGateway.io.network.validate_url_security`)
2. Bounded fetch with per-hop admission and the size gate
   (:func:`~ImportGateway.io.network.fetch_document`)
3. Sanitisation (:func:`~ImportGateway.sanitizer.sanitize_svg`)
4. Atomic persistence (:meth:`~ImportGateway.storage.DocumentStore.save`)

Nothing is retried and nothing is persisted unless every earlier step passed.
Each failure surfaces as a typed :class:`~ImportGateway.errors.ImportGatewayError`.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

import httpx

from .errors import ContentRejectedError, ImportGatewayError, InternalError
from .io.network import fetch_document, validate_url_security
from .logging_config import generate_correlation_id
from .net import build_http_client
from .sanitizer import Rejected, sanitize_svg
from .settings import DownloadConfiguration
from .storage import DocumentStore

__all__ = ["ImportResult", "FetchGate"]

LOGGER = logging.getLogger("ImportGateway.gateway")


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Outcome of a successful import.

    Attributes:
        identifier: Generated document identifier (UUID4 string).
        filename: Stored file name, ``<identifier>.svg``.
        source_url: URL as submitted by the caller.
        final_url: URL the body was finally read from after redirects.
        size_bytes: Size of the fetched body, UTF-8 encoded.
        redirects: Number of redirect hops followed.
        content_type: ``Content-Type`` reported upstream, if any.
    """

    identifier: str
    filename: str
    source_url: str
    final_url: str
    size_bytes: int
    redirects: int
    content_type: Optional[str]

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class FetchGate:
    """Import remote SVG documents into a :class:`DocumentStore`.

    The gate holds no per-request state; concurrent calls are independent.  When
    no ``client`` is supplied one is built and owned by the gate, and closed by
    :meth:`close`.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        http_config: Optional[DownloadConfiguration] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.store = store
        self.http_config = http_config or DownloadConfiguration()
        self._owns_client = client is None
        self.client = client or build_http_client(self.http_config)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "FetchGate":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def import_from_url(self, url: str) -> ImportResult:
        """Fetch, sanitise, and store the SVG at ``url``.

        Raises:
            InvalidInputError, UnresolvableHostError, ForbiddenTargetError,
            FetchTimeoutError, UpstreamError, PayloadTooLargeError,
            ContentRejectedError: Expected outcomes, see :mod:`ImportGateway.errors`.
            InternalError: The document could not be persisted.
        """

        correlation_id = generate_correlation_id()
        submitted = (url or "").strip()
        LOGGER.info(
            "import requested",
            extra={"stage": "import", "correlation_id": correlation_id, "url": submitted},
        )
        try:
            validated = validate_url_security(submitted, self.http_config)
            fetched = fetch_document(
                validated,
                client=self.client,
                http_config=self.http_config,
                correlation_id=correlation_id,
                assume_url_validated=True,
            )

            outcome = sanitize_svg(fetched.text)
            if isinstance(outcome, Rejected):
                raise ContentRejectedError(f"SVG rejected: {outcome.detail}", reason=outcome.reason)

            try:
                stored = self.store.save(outcome.cleaned_text)
            except OSError as exc:
                LOGGER.exception(
                    "failed to persist document",
                    extra={"stage": "store", "correlation_id": correlation_id},
                )
                raise InternalError() from exc
        except ImportGatewayError as exc:
            LOGGER.warning(
                "import rejected: %s",
                exc,
                extra={
                    "stage": "import",
                    "correlation_id": correlation_id,
                    "url": submitted,
                    "reason": exc.code,
                },
            )
            raise

        result = ImportResult(
            identifier=stored.identifier,
            filename=stored.filename,
            source_url=submitted,
            final_url=fetched.final_url,
            size_bytes=fetched.size_bytes,
            redirects=fetched.redirects,
            content_type=fetched.content_type,
        )
        LOGGER.info(
            "import stored",
            extra={
                "stage": "import",
                "correlation_id": correlation_id,
                "identifier": result.identifier,
                "url": result.final_url,
            },
        )
        return result
