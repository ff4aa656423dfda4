"""Network helpers for admission control and bounded fetching."""

from .network import (
    FetchedDocument,
    ResolvedAddress,
    classify_host,
    clear_dns_stubs,
    fetch_document,
    is_internal_address,
    register_dns_stub,
    request_with_redirect_audit,
    resolve_host,
    validate_url_security,
)

__all__ = [
    "FetchedDocument",
    "ResolvedAddress",
    "classify_host",
    "clear_dns_stubs",
    "fetch_document",
    "is_internal_address",
    "register_dns_stub",
    "request_with_redirect_audit",
    "resolve_host",
    "validate_url_security",
]
