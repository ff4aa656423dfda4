"""Read paths for stored documents: raw bytes and a locked-down inline preview.

Both paths go through :class:`~ImportGateway.storage.DocumentStore`, so the
identifier grammar is enforced before any filesystem access.  The preview page
inlines the already-sanitised SVG under a Content-Security-Policy that forbids
scripts and every fetch except same-origin images; that policy is a second line
of defence, not a substitute for sanitisation.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Dict

from .storage import DOCUMENT_EXTENSION, DocumentStore, normalize_identifier

__all__ = [
    "SVG_MEDIA_TYPE",
    "HTML_MEDIA_TYPE",
    "PREVIEW_CONTENT_SECURITY_POLICY",
    "RAW_CONTENT_SECURITY_POLICY",
    "PresentedDocument",
    "serve_raw",
    "serve_preview",
]

SVG_MEDIA_TYPE = "image/svg+xml; charset=utf-8"
HTML_MEDIA_TYPE = "text/html; charset=utf-8"

PREVIEW_CONTENT_SECURITY_POLICY = (
    "default-src 'none'; script-src 'none'; img-src 'self'; style-src 'unsafe-inline'; "
    "base-uri 'none'; form-action 'none'; frame-ancestors 'none'"
)
RAW_CONTENT_SECURITY_POLICY = "default-src 'none'; script-src 'none'; style-src 'unsafe-inline'"

_PREVIEW_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>View SVG - {title}</title>
  <meta name="viewport" content="width=device-width,initial-scale=1">
</head>
<body>
  <h1>Viewing SVG: {title}</h1>
  <div id="preview">{svg}</div>
  <p><a href="/uploads/{filename}" download>Download SVG</a> | <a href="/">Back</a></p>
</body>
</html>
"""


@dataclass(slots=True)
class PresentedDocument:
    """Response payload produced by the read paths."""

    body: bytes
    media_type: str
    headers: Dict[str, str] = field(default_factory=dict)


def serve_raw(store: DocumentStore, identifier: str) -> PresentedDocument:
    """Return the stored SVG bytes with the canonical SVG media type."""

    body = store.read(identifier)
    return PresentedDocument(
        body=body,
        media_type=SVG_MEDIA_TYPE,
        headers={
            "X-Content-Type-Options": "nosniff",
            "Content-Security-Policy": RAW_CONTENT_SECURITY_POLICY,
        },
    )


def serve_preview(store: DocumentStore, identifier: str) -> PresentedDocument:
    """Return an HTML page embedding the stored SVG under a restrictive policy."""

    body = store.read(identifier)
    filename = f"{normalize_identifier(identifier)}{DOCUMENT_EXTENSION}"
    page = _PREVIEW_TEMPLATE.format(
        title=html.escape(identifier, quote=True),
        filename=html.escape(filename, quote=True),
        svg=body.decode("utf-8", errors="replace"),
    )
    return PresentedDocument(
        body=page.encode("utf-8"),
        media_type=HTML_MEDIA_TYPE,
        headers={
            "Content-Security-Policy": PREVIEW_CONTENT_SECURITY_POLICY,
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "no-referrer",
        },
    )
