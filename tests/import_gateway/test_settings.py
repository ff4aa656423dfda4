"""Settings model, environment override, and YAML loading tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from ImportGateway.errors import ConfigError
from ImportGateway.settings import (
    DEFAULT_MAX_BYTES,
    DEFAULT_TIMEOUT_SEC,
    DownloadConfiguration,
    build_settings,
    get_default_settings,
    invalidate_default_settings_cache,
    load_settings,
)


def test_defaults_match_service_limits() -> None:
    settings = build_settings()

    assert settings.http.timeout_sec == DEFAULT_TIMEOUT_SEC == 7.0
    assert settings.http.max_bytes == DEFAULT_MAX_BYTES == 500 * 1024
    assert settings.http.max_redirects == 5
    assert settings.http.allowed_hosts == []
    assert settings.server.port == 3000


def test_environment_overrides_are_applied(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("IMPORT_GATEWAY_TIMEOUT_SEC", "3.5")
    monkeypatch.setenv("IMPORT_GATEWAY_MAX_BYTES", "1024")
    monkeypatch.setenv("IMPORT_GATEWAY_MAX_REDIRECTS", "0")
    monkeypatch.setenv("IMPORT_GATEWAY_ALLOWED_HOSTS", "CDN.Example.org, *.assets.example.net")
    monkeypatch.setenv("IMPORT_GATEWAY_STORAGE_DIR", str(tmp_path / "docs"))
    monkeypatch.setenv("IMPORT_GATEWAY_LOG_LEVEL", "debug")

    settings = build_settings()

    assert settings.http.timeout_sec == 3.5
    assert settings.http.max_bytes == 1024
    assert settings.http.max_redirects == 0
    assert settings.http.allowed_hosts == ["cdn.example.org", "*.assets.example.net"]
    assert settings.storage.root == tmp_path / "docs"
    assert settings.logging.level == "DEBUG"


def test_invalid_environment_override_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IMPORT_GATEWAY_MAX_BYTES", "-5")

    with pytest.raises(ConfigError):
        build_settings()


def test_yaml_file_is_loaded(tmp_path: Path) -> None:
    config_path = tmp_path / "gateway.yaml"
    config_path.write_text(
        "http:\n"
        "  timeout_sec: 2\n"
        "  max_bytes: 2048\n"
        "  allowed_hosts:\n"
        "    - .example.org\n"
        f"storage:\n  root: {tmp_path / 'store'}\n"
        "server:\n  port: 8081\n",
        encoding="utf-8",
    )

    settings = load_settings(config_path)

    assert settings.http.timeout_sec == 2
    assert settings.http.max_bytes == 2048
    assert settings.http.normalized_allowed_hosts() == (set(), {"example.org"})
    assert settings.storage.root == tmp_path / "store"
    assert settings.server.port == 8081


def test_environment_wins_over_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "gateway.yaml"
    config_path.write_text("http:\n  max_bytes: 2048\n", encoding="utf-8")
    monkeypatch.setenv("IMPORT_GATEWAY_MAX_BYTES", "4096")

    assert load_settings(config_path).http.max_bytes == 4096


@pytest.mark.parametrize(
    "content",
    ["http: [unclosed\n", "- just\n- a list\n", "http:\n  timeout_sec: 0\n", "logging:\n  level: LOUD\n"],
)
def test_bad_yaml_files_raise_config_error(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "gateway.yaml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_settings(config_path)


def test_missing_config_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "absent.yaml")


def test_empty_yaml_file_yields_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "gateway.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_settings(config_path).http.max_bytes == DEFAULT_MAX_BYTES


def test_allowlist_rejects_urls_and_ports() -> None:
    with pytest.raises(ValueError):
        DownloadConfiguration(allowed_hosts=["https://example.org"])
    with pytest.raises(ValueError):
        DownloadConfiguration(allowed_hosts=["example.org:8443"])


def test_default_settings_are_cached_until_invalidated(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_default_settings()
    assert get_default_settings() is first
    assert get_default_settings(copy=True) is not first

    monkeypatch.setenv("IMPORT_GATEWAY_MAX_REDIRECTS", "2")
    assert get_default_settings().http.max_redirects == first.http.max_redirects

    invalidate_default_settings_cache()
    assert get_default_settings().http.max_redirects == 2
