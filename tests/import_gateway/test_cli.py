"""Command-line interface tests using typer's ``CliRunner``."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ImportGateway import gateway as gateway_mod
from ImportGateway.cli import app
from ImportGateway.net import build_http_client
from ImportGateway.storage import DocumentStore
from ImportGateway.testing import BENIGN_SVG, ResponseSpec, RoutingTransport, stub_dns

runner = CliRunner()

SOURCE_URL = "https://images.example.org/logo.svg"


@pytest.fixture
def storage_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "uploads"
    monkeypatch.setenv("IMPORT_GATEWAY_STORAGE_DIR", str(root))
    return root


def test_config_prints_effective_settings(storage_dir: Path) -> None:
    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["storage"]["root"] == str(storage_dir)
    assert payload["http"]["max_bytes"] == 500 * 1024


def test_config_file_option_is_honoured(tmp_path: Path, storage_dir: Path) -> None:
    config_path = tmp_path / "gateway.yaml"
    config_path.write_text("http:\n  max_redirects: 1\n", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(config_path), "config"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["http"]["max_redirects"] == 1


def test_invalid_config_file_exits_with_code_two(tmp_path: Path) -> None:
    config_path = tmp_path / "gateway.yaml"
    config_path.write_text("http:\n  timeout_sec: -1\n", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(config_path), "config"])

    assert result.exit_code == 2


def test_show_prints_raw_document(storage_dir: Path) -> None:
    stored = DocumentStore(storage_dir).save(BENIGN_SVG)

    result = runner.invoke(app, ["show", stored.filename])

    assert result.exit_code == 0, result.output
    assert result.stdout == BENIGN_SVG


def test_show_preview_prints_html(storage_dir: Path) -> None:
    stored = DocumentStore(storage_dir).save(BENIGN_SVG)

    result = runner.invoke(app, ["show", stored.identifier, "--preview"])

    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("<!doctype html>")
    assert BENIGN_SVG in result.stdout


def test_show_rejects_malformed_identifier(storage_dir: Path) -> None:
    result = runner.invoke(app, ["show", "../../etc/passwd"])

    assert result.exit_code == 1
    assert "invalid_identifier" in result.output


def test_fetch_refuses_internal_target(storage_dir: Path) -> None:
    result = runner.invoke(app, ["fetch", "http://127.0.0.1/anything"])

    assert result.exit_code == 1
    assert "forbidden_target" in result.output
    assert not storage_dir.exists() or list(storage_dir.iterdir()) == []


def test_fetch_prints_identifier_json(storage_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    transport = RoutingTransport({SOURCE_URL: ResponseSpec(body=BENIGN_SVG)})
    monkeypatch.setattr(
        gateway_mod,
        "build_http_client",
        lambda config=None: build_http_client(config, transport=transport),
    )

    with stub_dns({"images.example.org": ["93.184.216.34"]}):
        result = runner.invoke(app, ["fetch", SOURCE_URL, "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["source_url"] == SOURCE_URL
    assert payload["size_bytes"] == len(BENIGN_SVG.encode("utf-8"))
    assert DocumentStore(storage_dir).read(payload["identifier"]) == BENIGN_SVG.encode("utf-8")
