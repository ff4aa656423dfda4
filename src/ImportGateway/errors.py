"""Exception hierarchy shared across admission, fetching, sanitisation, and storage.

An import attempt can fail at several well-defined stages: the submitted URL is
malformed, its host resolves to an internal address, the upstream server times
out or misbehaves, the payload is too large, or the document carries constructs
that cannot be neutralised.  Reads can fail because the identifier is malformed
or unknown.  Every one of these is an expected outcome the caller can react to,
so each maps to its own subclass with a stable ``code`` and an HTTP status the
web surface reuses.  Anything outside this taxonomy is surfaced as
:class:`InternalError` with a generic message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .sanitizer import RejectionReason

__all__ = [
    "ImportGatewayError",
    "InvalidInputError",
    "UnresolvableHostError",
    "ForbiddenTargetError",
    "FetchTimeoutError",
    "UpstreamError",
    "PayloadTooLargeError",
    "ContentRejectedError",
    "NotFoundError",
    "InvalidIdentifierError",
    "InternalError",
    "ConfigError",
]


class ImportGatewayError(RuntimeError):
    """Base exception for expected, caller-recoverable gateway failures."""

    code = "import_gateway_error"
    http_status = 400


class InvalidInputError(ImportGatewayError):
    """Raised when the submitted URL is not an absolute http(s) URL."""

    code = "invalid_input"
    http_status = 400


class UnresolvableHostError(ImportGatewayError):
    """Raised when a hostname resolves to no usable address."""

    code = "unresolvable_host"
    http_status = 400


class ForbiddenTargetError(ImportGatewayError):
    """Raised when a fetch target is internal or outside the host allowlist."""

    code = "forbidden_target"
    http_status = 403


class FetchTimeoutError(ImportGatewayError):
    """Raised when the upstream fetch exceeds the configured deadline."""

    code = "fetch_timeout"
    http_status = 504


class UpstreamError(ImportGatewayError):
    """Raised when the upstream server answers with a non-success outcome."""

    code = "upstream_error"
    http_status = 502

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PayloadTooLargeError(ImportGatewayError):
    """Raised when the fetched body exceeds the size ceiling."""

    code = "payload_too_large"
    http_status = 413

    def __init__(self, message: str, *, limit_bytes: Optional[int] = None) -> None:
        super().__init__(message)
        self.limit_bytes = limit_bytes


class ContentRejectedError(ImportGatewayError):
    """Raised when the sanitiser refuses a document."""

    code = "content_rejected"
    http_status = 400

    def __init__(self, message: str, *, reason: "RejectionReason") -> None:
        super().__init__(message)
        self.reason = reason


class NotFoundError(ImportGatewayError):
    """Raised when a well-formed identifier has no stored document."""

    code = "not_found"
    http_status = 404


class InvalidIdentifierError(ImportGatewayError):
    """Raised when a requested identifier does not match the storage grammar."""

    code = "invalid_identifier"
    http_status = 400


class InternalError(ImportGatewayError):
    """Raised for unexpected failures; the message never carries internal details."""

    code = "internal_error"
    http_status = 500

    def __init__(self, message: str = "Internal error while processing the request") -> None:
        super().__init__(message)


class ConfigError(ValueError):
    """Raised when settings files or environment overrides are invalid."""


# === NAVMAP v1 ===
# {
#   "module": "ImportGateway.errors",
#   "purpose": "Define the exception hierarchy used across admission, fetching, sanitisation, and storage",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "admission", "name": "Admission & Fetch Errors", "anchor": "ADM", "kind": "api"},
#     {"id": "content", "name": "Content Errors", "anchor": "CNT", "kind": "api"},
#     {"id": "storage", "name": "Storage Errors", "anchor": "STO", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
