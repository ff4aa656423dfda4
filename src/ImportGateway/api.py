"""FastAPI application exposing import, raw retrieval, and preview routes.

Routes mirror the service contract:

- ``POST /import.url`` with ``{"url": "..."}`` imports a remote SVG
- ``GET /uploads/{name}`` serves the stored bytes as ``image/svg+xml``
- ``GET /view/{name}`` serves the locked-down HTML preview

Gateway errors are rendered as ``{"error": <code>, "detail": <message>}`` with
the status code attached to each error class.  Unexpected exceptions are logged
in full and answered with a generic 500 body.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel

from .errors import (
    ContentRejectedError,
    ImportGatewayError,
    InternalError,
    InvalidInputError,
    UpstreamError,
)
from .gateway import FetchGate
from .presentation import PresentedDocument, serve_preview, serve_raw
from .settings import GatewaySettings, get_default_settings
from .storage import DocumentStore

__all__ = ["ImportRequest", "router", "create_app"]

LOGGER = logging.getLogger("ImportGateway.api")

router = APIRouter()

_INDEX_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>SVG Import Service</title></head>
<body>
  <h2>SVG Import Service</h2>
  <p>POST /import.url with JSON { "url": "https://example.com/file.svg" }</p>
  <p>GET /uploads/&lt;id&gt;.svg for the sanitised file, GET /view/&lt;id&gt;.svg for a preview.</p>
</body>
</html>
"""


class ImportRequest(BaseModel):
    """Body of an import request."""

    url: str = ""


def get_gate(request: Request) -> FetchGate:
    return request.app.state.gate


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def _as_response(document: PresentedDocument) -> Response:
    return Response(content=document.body, media_type=document.media_type, headers=document.headers)


@router.get("/", response_class=HTMLResponse, tags=["meta"])
def index() -> HTMLResponse:
    return HTMLResponse(_INDEX_PAGE)


@router.get("/healthz", tags=["meta"])
def healthz() -> dict:
    return {"status": "ok"}


@router.post("/import.url", status_code=201, tags=["import"])
def import_url(payload: ImportRequest, gate: FetchGate = Depends(get_gate)) -> dict:
    """Fetch the SVG at ``payload.url``, sanitise it, and store it."""

    result = gate.import_from_url(payload.url)
    return {
        "message": "Imported",
        "identifier": result.identifier,
        "filename": result.filename,
        "raw_url": f"/uploads/{result.filename}",
        "view_url": f"/view/{result.filename}",
    }


@router.get("/uploads/{name:path}", tags=["documents"])
def get_raw(name: str, store: DocumentStore = Depends(get_store)) -> Response:
    """Serve a stored SVG with the canonical media type."""

    return _as_response(serve_raw(store, name))


@router.get("/view/{name:path}", tags=["documents"])
def get_preview(name: str, store: DocumentStore = Depends(get_store)) -> Response:
    """Serve a stored SVG inlined in a script-free HTML page."""

    return _as_response(serve_preview(store, name))


async def _gateway_error_handler(request: Request, exc: ImportGatewayError) -> JSONResponse:
    body: dict = {"error": exc.code, "detail": str(exc)}
    if isinstance(exc, UpstreamError) and exc.status_code is not None:
        body["upstream_status"] = exc.status_code
    if isinstance(exc, ContentRejectedError):
        body["reason"] = exc.reason.value
    return JSONResponse(status_code=exc.http_status, content=body)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await _gateway_error_handler(request, InvalidInputError("Request body must be JSON with a string url"))


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception(
        "unhandled error",
        exc_info=exc,
        extra={"stage": "api", "url": str(request.url.path)},
    )
    fallback = InternalError()
    return JSONResponse(
        status_code=fallback.http_status, content={"error": fallback.code, "detail": str(fallback)}
    )


def create_app(
    settings: Optional[GatewaySettings] = None,
    *,
    client: Optional[httpx.Client] = None,
    store: Optional[DocumentStore] = None,
) -> FastAPI:
    """Build the application around an explicit store and fetch gate.

    Args:
        settings: Gateway settings; defaults plus environment when omitted.
        client: Optional HTTPX client (tests pass one backed by ``MockTransport``).
        store: Optional pre-built store; otherwise one is rooted at
            ``settings.storage.root``.
    """

    resolved = settings or get_default_settings()
    document_store = store or DocumentStore(resolved.storage.root)
    gate = FetchGate(document_store, http_config=resolved.http, client=client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        gate.close()

    app = FastAPI(title="SVG Import Gateway", lifespan=lifespan)
    app.state.settings = resolved
    app.state.store = document_store
    app.state.gate = gate
    app.include_router(router)
    app.add_exception_handler(ImportGatewayError, _gateway_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    return app
