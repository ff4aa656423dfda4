# === NAVMAP v1 ===
# {
#   "module": "ImportGateway.cli",
#   "purpose": "Command-line entry points: serve, fetch, show, config",
#   "sections": [
#     {"id": "helpers", "name": "Helper Functions", "anchor": "HELP", "kind": "helpers"},
#     {"id": "commands", "name": "Commands", "anchor": "CMD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Command-line interface for the SVG import gateway.

Provides:
- serve  - Run the HTTP service with uvicorn
- fetch  - Import one URL into the configured store
- show   - Print a stored document (raw SVG or preview HTML)
- config - Print the effective settings
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .errors import ConfigError, ImportGatewayError
from .gateway import FetchGate
from .logging_config import setup_logging
from .presentation import serve_preview, serve_raw
from .settings import GatewaySettings, get_default_settings, load_settings
from .storage import DocumentStore

logger = logging.getLogger("ImportGateway.cli")

app = typer.Typer(
    name="import-gateway",
    help="Import remote SVG files safely and serve the sanitised copies",
    no_args_is_help=True,
)


# ============================================================================
# Helper Functions
# ============================================================================


def _settings(ctx: typer.Context) -> GatewaySettings:
    return ctx.obj["settings"]


def _fail(exc: ImportGatewayError) -> None:
    typer.echo(f"❌ {exc.code}: {exc}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML settings file; IMPORT_GATEWAY_* variables still apply on top",
    ),
    log_to_file: bool = typer.Option(
        False,
        "--log-to-file/--no-log-to-file",
        help="Also write JSON-lines logs to the configured log directory",
    ),
) -> None:
    try:
        settings = load_settings(config) if config else get_default_settings(copy=True)
    except ConfigError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=2) from exc
    if log_to_file:
        setup_logging(settings.logging)
    else:
        logging.basicConfig(level=settings.logging.level, format="%(levelname)s: %(message)s")
    ctx.obj = {"settings": settings}


# ============================================================================
# Commands
# ============================================================================


@app.command()
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
) -> None:
    """Run the HTTP service."""

    import uvicorn

    from .api import create_app

    settings = _settings(ctx)
    bind_host = host or settings.server.host
    bind_port = port or settings.server.port
    logger.info("starting server", extra={"stage": "serve", "url": f"http://{bind_host}:{bind_port}"})
    uvicorn.run(create_app(settings), host=bind_host, port=bind_port)


@app.command()
def fetch(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Absolute http(s) URL of the SVG to import"),
    json_output: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
) -> None:
    """Import ``URL`` into the store and print the new identifier."""

    settings = _settings(ctx)
    store = DocumentStore(settings.storage.root)
    with FetchGate(store, http_config=settings.http) as gate:
        try:
            result = gate.import_from_url(url)
        except ImportGatewayError as exc:
            _fail(exc)
            return
    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        typer.echo(result.identifier)


@app.command()
def show(
    ctx: typer.Context,
    identifier: str = typer.Argument(..., help="Document identifier, with or without .svg"),
    preview: bool = typer.Option(False, "--preview", help="Print the HTML preview instead"),
) -> None:
    """Print a stored document to stdout."""

    store = DocumentStore(_settings(ctx).storage.root)
    try:
        document = serve_preview(store, identifier) if preview else serve_raw(store, identifier)
    except ImportGatewayError as exc:
        _fail(exc)
        return
    typer.echo(document.body.decode("utf-8", errors="replace"), nl=False)


@app.command(name="config")
def show_config(ctx: typer.Context) -> None:
    """Print the effective settings as JSON."""

    typer.echo(json.dumps(_settings(ctx).model_dump(mode="json"), indent=2))


def run() -> None:  # pragma: no cover - console script shim
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
