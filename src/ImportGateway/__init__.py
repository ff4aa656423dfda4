"""
SVG Import Gateway

Accepts a user-supplied URL, refuses internal network targets, fetches the
document under a deadline and size ceiling, strips active content from the SVG,
and stores the result under a generated identifier for raw or preview serving.

Public entry points:

- :class:`FetchGate` and :class:`ImportResult` for imports
- :class:`DocumentStore` for persistence
- :func:`sanitize_svg` for the content sanitiser
- :func:`serve_raw` / :func:`serve_preview` for the read paths
- :func:`create_app` (in :mod:`ImportGateway.api`) for the HTTP service
"""

from .errors import (
    ContentRejectedError,
    FetchTimeoutError,
    ForbiddenTargetError,
    ImportGatewayError,
    InternalError,
    InvalidIdentifierError,
    InvalidInputError,
    NotFoundError,
    PayloadTooLargeError,
    UnresolvableHostError,
    UpstreamError,
)
from .gateway import FetchGate, ImportResult
from .presentation import PresentedDocument, serve_preview, serve_raw
from .sanitizer import Accepted, Rejected, RejectionReason, sanitize_svg
from .settings import GatewaySettings, get_default_settings, load_settings
from .storage import DocumentStore, StoredDocument

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "FetchGate",
    "ImportResult",
    "DocumentStore",
    "StoredDocument",
    "PresentedDocument",
    "serve_raw",
    "serve_preview",
    "Accepted",
    "Rejected",
    "RejectionReason",
    "sanitize_svg",
    "GatewaySettings",
    "get_default_settings",
    "load_settings",
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
]
